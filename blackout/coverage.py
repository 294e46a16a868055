"""Keyword spans and whether the current black-out covers them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from .errors import ConfigurationError
from .intervals import IntervalSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Keyword:
    """An authored span ``[start, end)`` of a content block's text."""

    id: str
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    @property
    def last(self) -> int:
        return self.end - 1

    def __len__(self) -> int:
        return max(self.end - self.start, 0)


class KeywordIndex:
    """Resolves keyword ids authored on one content block."""

    def __init__(self, keywords: Iterable[Keyword] = ()) -> None:
        self._by_id: Dict[str, Keyword] = {}
        for keyword in keywords:
            self._by_id.setdefault(keyword.id, keyword)

    def __contains__(self, keyword_id: object) -> bool:
        return keyword_id in self._by_id

    def __iter__(self):
        return iter(self._by_id.values())

    def resolve(self, keyword_id: str) -> Keyword:
        try:
            return self._by_id[keyword_id]
        except KeyError:
            raise ConfigurationError(f"unknown keyword id '{keyword_id}'") from None


class KeywordCoverageEvaluator:
    """Checks keywords against one surface's committed intervals."""

    def __init__(self, surface: Optional[IntervalSet]) -> None:
        self.surface = surface

    def is_covered(self, keyword: Keyword) -> bool:
        if keyword.is_empty or self.surface is None:
            return False
        intervals = self.surface.intervals
        if not intervals:
            return False
        for interval in intervals:
            if interval.covers(keyword.start, keyword.last):
                return True
        for index in range(keyword.start, keyword.end):
            if not any(interval.contains(index) for interval in intervals):
                return False
        return True

    def coverage_map(self, keywords: Iterable[Keyword]) -> Mapping[str, bool]:
        coverage = {keyword.id: self.is_covered(keyword) for keyword in keywords}
        covered = sorted(kid for kid, hit in coverage.items() if hit)
        logger.debug("Covered keywords: %s", ", ".join(covered) or "none")
        return coverage
