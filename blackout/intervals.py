"""Closed character intervals and the per-surface interval set."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple


@dataclass(frozen=True, order=True)
class Interval:
    """A closed span of character indices, ``start <= end``."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start > self.end:
            start, end = self.end, self.start
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def contains(self, index: int) -> bool:
        return self.start <= index <= self.end

    def covers(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def overlaps(self, other: "Interval") -> bool:
        return not (self.end < other.start or self.start > other.end)

    def touches(self, other: "Interval") -> bool:
        return self.end + 1 == other.start or other.end + 1 == self.start

    def merge(self, other: "Interval") -> "Interval":
        return Interval(min(self.start, other.start), max(self.end, other.end))

    def without(self, index: int) -> List["Interval"]:
        if not self.contains(index):
            return [self]
        if self.start == self.end:
            return []
        if index == self.start:
            return [Interval(self.start + 1, self.end)]
        if index == self.end:
            return [Interval(self.start, self.end - 1)]
        return [Interval(self.start, index - 1), Interval(index + 1, self.end)]

    def as_tuple(self) -> Tuple[int, int]:
        return (self.start, self.end)


class IntervalSet:
    """Committed selections on one text surface, kept in maximal normal form.

    Stored intervals are sorted and neither overlap nor touch. A single
    pending interval tracks a drag in progress; it is never part of
    ``intervals`` and never counted by ``total_length``.
    """

    def __init__(self, surface_id: str, text_length: Optional[int] = None) -> None:
        self.surface_id = surface_id
        self.text_length = text_length
        self._intervals: List[Interval] = []
        self.pending: Optional[Interval] = None

    def __iter__(self) -> Iterator[Interval]:
        return iter(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def __repr__(self) -> str:
        spans = ", ".join(f"[{iv.start}, {iv.end}]" for iv in self._intervals)
        return f"IntervalSet({self.surface_id!r}: {spans})"

    @property
    def intervals(self) -> List[Interval]:
        return list(self._intervals)

    def clamp(self, start: int, end: int) -> Optional[Tuple[int, int]]:
        """Order and clamp raw indices; ``None`` when the surface has no text."""
        start, end = int(start), int(end)
        if start > end:
            start, end = end, start
        if self.text_length is None:
            return max(start, 0), max(end, 0)
        if self.text_length <= 0:
            return None
        last = self.text_length - 1
        return min(max(start, 0), last), min(max(end, 0), last)

    def _neighbours(self, candidate: Interval) -> List[Interval]:
        return [
            iv
            for iv in self._intervals
            if iv.overlaps(candidate) or iv.touches(candidate)
        ]

    def simulate_add(self, start: int, end: int) -> Optional[Tuple[Interval, int]]:
        """Return the interval an add would produce and the length it absorbs."""
        bounds = self.clamp(start, end)
        if bounds is None:
            return None
        merged = Interval(*bounds)
        absorbed = 0
        for iv in self._neighbours(merged):
            absorbed += iv.length
            merged = merged.merge(iv)
        return merged, absorbed

    def add(self, start: int, end: int, auto_merge: bool = True) -> Optional[Interval]:
        bounds = self.clamp(start, end)
        if bounds is None:
            return None
        candidate = Interval(*bounds)
        neighbours = self._neighbours(candidate)
        if neighbours and not auto_merge:
            return None
        for iv in neighbours:
            candidate = candidate.merge(iv)
        if neighbours:
            self._intervals = [iv for iv in self._intervals if iv not in neighbours]
        bisect.insort(self._intervals, candidate)
        return candidate

    def remove(self, char_index: int) -> List[Interval]:
        updated: List[Interval] = []
        for iv in self._intervals:
            updated.extend(iv.without(char_index))
        self._intervals = updated
        return self.intervals

    def remove_range(self, start: int, end: int) -> List[Interval]:
        if start > end:
            start, end = end, start
        cut = Interval(start, end)
        updated: List[Interval] = []
        for iv in self._intervals:
            if not iv.overlaps(cut):
                updated.append(iv)
                continue
            if iv.start < cut.start:
                updated.append(Interval(iv.start, cut.start - 1))
            if iv.end > cut.end:
                updated.append(Interval(cut.end + 1, iv.end))
        self._intervals = updated
        return self.intervals

    def contains(self, index: int) -> bool:
        pos = bisect.bisect_right(self._intervals, Interval(index, index)) - 1
        for candidate in self._intervals[max(pos, 0) : pos + 2]:
            if candidate.contains(index):
                return True
        return False

    def total_length(self) -> int:
        return sum(iv.length for iv in self._intervals)

    def clear(self) -> None:
        self._intervals = []
        self.pending = None

    def set_pending(self, start: int, end: int) -> Optional[Interval]:
        bounds = self.clamp(start, end)
        self.pending = Interval(*bounds) if bounds is not None else None
        return self.pending

    def clear_pending(self) -> None:
        self.pending = None

    def selected_indices(self) -> List[int]:
        indices: List[int] = []
        for iv in self._intervals:
            indices.extend(range(iv.start, iv.end + 1))
        return indices

    def selected_text(self, text: str) -> str:
        return "".join(text[iv.start : iv.end + 1] for iv in self._intervals)
