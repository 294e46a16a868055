import pytest

from blackout.coverage import Keyword, KeywordCoverageEvaluator, KeywordIndex
from blackout.errors import ConfigurationError
from blackout.intervals import Interval, IntervalSet

KEYWORD = Keyword("gold", 4, 10)


class RawSurface:
    """Intervals stored exactly as given, bypassing merging."""

    def __init__(self, *intervals: Interval) -> None:
        self.intervals = list(intervals)


def evaluator_for(*pairs) -> KeywordCoverageEvaluator:
    surface = IntervalSet("body", 40)
    for start, end in pairs:
        surface.add(start, end)
    return KeywordCoverageEvaluator(surface)


def test_single_interval_covers_keyword() -> None:
    assert evaluator_for((4, 9)).is_covered(KEYWORD)
    assert evaluator_for((0, 20)).is_covered(KEYWORD)


def test_end_index_is_exclusive() -> None:
    assert not evaluator_for((4, 8)).is_covered(KEYWORD)
    assert evaluator_for((4, 9)).is_covered(KEYWORD)


def test_touching_unmerged_intervals_cover_keyword() -> None:
    evaluator = KeywordCoverageEvaluator(RawSurface(Interval(4, 6), Interval(7, 9)))
    assert evaluator.is_covered(KEYWORD)


def test_one_character_gap_is_not_covered() -> None:
    assert not evaluator_for((4, 6), (8, 9)).is_covered(KEYWORD)


def test_coverage_reassembled_after_erase_and_redraw() -> None:
    surface = IntervalSet("body", 40)
    surface.add(0, 20)
    surface.remove(7)
    evaluator = KeywordCoverageEvaluator(surface)
    assert not evaluator.is_covered(KEYWORD)
    surface.add(7, 7)
    assert evaluator.is_covered(KEYWORD)


def test_empty_keyword_and_missing_surface_are_never_covered() -> None:
    assert not evaluator_for((0, 39)).is_covered(Keyword("empty", 5, 5))
    assert not KeywordCoverageEvaluator(None).is_covered(KEYWORD)
    assert not evaluator_for().is_covered(KEYWORD)


def test_coverage_map() -> None:
    evaluator = evaluator_for((0, 3))
    coverage = evaluator.coverage_map([Keyword("a", 0, 2), Keyword("b", 2, 6)])
    assert coverage == {"a": True, "b": False}


def test_keyword_index_rejects_unknown_ids() -> None:
    index = KeywordIndex([KEYWORD])
    assert index.resolve("gold") is KEYWORD
    assert "gold" in index
    with pytest.raises(ConfigurationError, match="nope"):
        index.resolve("nope")
