"""Selection surfaces and the global black-out budget."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from .intervals import Interval, IntervalSet

logger = logging.getLogger(__name__)

SelectionListener = Callable[[str, List[Interval], Optional[Interval]], None]


@dataclass(frozen=True)
class CommitResult:
    accepted: bool
    merged: Optional[Interval]
    total_used: int
    remaining: int


@dataclass(frozen=True)
class PreviewResult:
    would_exceed: bool
    total_if_committed: int


class SelectionBook:
    """Every text surface's IntervalSet, keyed by a stable surface id.

    Listeners (the mask renderer) are told about each surface whose
    committed or pending intervals change.
    """

    def __init__(self) -> None:
        self._surfaces: Dict[str, IntervalSet] = {}
        self._listeners: List[SelectionListener] = []

    def __iter__(self) -> Iterator[IntervalSet]:
        return iter(self._surfaces.values())

    def __contains__(self, surface_id: object) -> bool:
        return surface_id in self._surfaces

    def register(self, surface_id: str, text_length: Optional[int] = None) -> IntervalSet:
        surface = self.surface(surface_id)
        surface.text_length = text_length
        return surface

    def surface(self, surface_id: str) -> IntervalSet:
        surface = self._surfaces.get(surface_id)
        if surface is None:
            surface = IntervalSet(surface_id)
            self._surfaces[surface_id] = surface
        return surface

    def subscribe(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def notify(self, surface_id: str) -> None:
        surface = self.surface(surface_id)
        for listener in list(self._listeners):
            listener(surface_id, surface.intervals, surface.pending)

    def total_used(self) -> int:
        return sum(surface.total_length() for surface in self._surfaces.values())

    def clear_all(self) -> None:
        for surface_id, surface in self._surfaces.items():
            surface.clear()
            self.notify(surface_id)


class SelectionBudgetLedger:
    """Caps the summed length of committed intervals across all surfaces."""

    def __init__(self, book: SelectionBook, max_total: int) -> None:
        self.book = book
        self.max_total = max(int(max_total), 0)

    def used(self) -> int:
        return self.book.total_used()

    def remaining(self) -> int:
        return max(self.max_total - self.used(), 0)

    def _delta(self, surface: IntervalSet, start: int, end: int) -> Optional[int]:
        simulated = surface.simulate_add(start, end)
        if simulated is None:
            return None
        merged, absorbed = simulated
        return merged.length - absorbed

    def _fits(self, surface: IntervalSet, start: int, end: int) -> bool:
        delta = self._delta(surface, start, end)
        return delta is not None and self.used() + delta <= self.max_total

    def preview(self, surface_id: str, start: int, end: int) -> PreviewResult:
        surface = self.book.surface(surface_id)
        delta = self._delta(surface, start, end)
        total = self.used() + (delta or 0)
        return PreviewResult(would_exceed=total > self.max_total, total_if_committed=total)

    def commit(self, surface_id: str, start: int, end: int) -> CommitResult:
        surface = self.book.surface(surface_id)
        if not self._fits(surface, start, end):
            logger.info(
                "Rejected selection [%s, %s] on '%s': budget %s, used %s.",
                start,
                end,
                surface_id,
                self.max_total,
                self.used(),
            )
            return CommitResult(False, None, self.used(), self.remaining())
        merged = surface.add(start, end)
        logger.debug("Committed %s on '%s'.", merged, surface_id)
        self.book.notify(surface_id)
        return CommitResult(True, merged, self.used(), self.remaining())

    def fit_pending(self, surface_id: str, anchor: int, index: int) -> Optional[Interval]:
        """Set the drag preview from ``anchor`` towards ``index`` within budget.

        When the full span would overrun the cap the span is shortened from
        the far end; when not even the anchor character fits, no pending
        interval is kept.
        """
        surface = self.book.surface(surface_id)
        anchor_bounds = surface.clamp(anchor, anchor)
        index_bounds = surface.clamp(index, index)
        if anchor_bounds is None or index_bounds is None:
            surface.clear_pending()
            self.book.notify(surface_id)
            return None
        origin, target = anchor_bounds[0], index_bounds[0]
        step = 1 if target >= origin else -1

        def span(extent: int) -> tuple:
            far = origin + step * extent
            return (min(origin, far), max(origin, far))

        if self._fits(surface, *span(abs(target - origin))):
            pending = surface.set_pending(*span(abs(target - origin)))
        elif not self._fits(surface, *span(0)):
            surface.clear_pending()
            pending = None
        else:
            low, high = 0, abs(target - origin)
            while low < high:
                middle = (low + high + 1) // 2
                if self._fits(surface, *span(middle)):
                    low = middle
                else:
                    high = middle - 1
            pending = surface.set_pending(*span(low))
        self.book.notify(surface_id)
        return pending

    def preview_pending(self, surface_id: str) -> PreviewResult:
        pending = self.book.surface(surface_id).pending
        if pending is None:
            used = self.used()
            return PreviewResult(would_exceed=used > self.max_total, total_if_committed=used)
        return self.preview(surface_id, pending.start, pending.end)
