"""Deadline timers for timed challenge nodes."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol

DEFAULT_DEADLINE = 5.0
MIN_DEADLINE = 0.1


class Cancellable(Protocol):
    def cancel(self) -> object: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]
Clock = Callable[[], float]


def asyncio_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    """Schedule ``callback`` on the running event loop.

    Raises ``RuntimeError`` when called outside a running loop.
    """
    return asyncio.get_running_loop().call_later(delay, callback)


def normalize_deadline(value: object, default: float = DEFAULT_DEADLINE) -> float:
    try:
        seconds = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if seconds != seconds:
        return default
    return max(seconds, MIN_DEADLINE)


class DeadlineTimer:
    """Fires ``callback`` once after ``delay`` seconds unless cancelled first.

    ``live`` is true from ``start`` until the timer fires or is cancelled;
    after that both ``cancel`` and a late firing are no-ops.
    """

    PENDING = "pending"
    LIVE = "live"
    FIRED = "fired"
    CANCELLED = "cancelled"

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        *,
        scheduler: Scheduler = asyncio_scheduler,
        clock: Clock = time.monotonic,
    ) -> None:
        self.delay = normalize_deadline(delay)
        self._callback = callback
        self._scheduler = scheduler
        self._clock = clock
        self._handle: Optional[Cancellable] = None
        self._started_at: Optional[float] = None
        self.state = self.PENDING

    @property
    def live(self) -> bool:
        return self.state == self.LIVE

    def start(self) -> "DeadlineTimer":
        if self.state != self.PENDING:
            return self
        started_at = self._clock()
        # A scheduler that raises leaves the timer pending.
        self._handle = self._scheduler(self.delay, self._fire)
        self._started_at = started_at
        self.state = self.LIVE
        return self

    def remaining(self) -> float:
        if not self.live or self._started_at is None:
            return 0.0
        return max(self.delay - (self._clock() - self._started_at), 0.0)

    def cancel(self) -> bool:
        if not self.live:
            return False
        self.state = self.CANCELLED
        if self._handle is not None:
            self._handle.cancel()
        return True

    def _fire(self) -> None:
        if not self.live:
            return
        self.state = self.FIRED
        self._callback()
