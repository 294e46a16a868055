from typing import Callable, List

import pytest


class ManualHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.ran = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Stands in for ``loop.call_later``; time only moves through ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: List[ManualHandle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    def clock(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for handle in list(self.handles):
            if handle.cancelled or handle.ran or handle.when > self.now:
                continue
            handle.ran = True
            handle.callback()

    def live_handles(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.ran]


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
