import logging

import pytest

from blackout.coverage import Keyword, KeywordCoverageEvaluator, KeywordIndex
from blackout.intervals import IntervalSet
from blackout.rules import ChangeRule, KeywordCondition, ResultRule, RuleEngine, ScoreBoard
from blackout.variables import Operation, VariableModifier, VariableStore

KEYWORDS = KeywordIndex([Keyword("K1", 0, 4), Keyword("K2", 10, 14)])


def covered(*pairs) -> KeywordCoverageEvaluator:
    surface = IntervalSet("body", 30)
    for start, end in pairs:
        surface.add(start, end)
    return KeywordCoverageEvaluator(surface)


def rule(conditions=(), *modifications) -> ChangeRule:
    return ChangeRule(
        tuple(KeywordCondition(keyword, wanted) for keyword, wanted in conditions),
        tuple(VariableModifier(variable, op, operand) for variable, op, operand in modifications),
    )


def test_change_rule_fires_when_keyword_covered() -> None:
    engine = RuleEngine(VariableStore({"X": 0}))
    report = engine.apply_change_rules(
        [rule([("K1", True)], ("X", Operation.ADD, 150))], KEYWORDS, covered((0, 3))
    )
    assert engine.variables.get("X") == 150.0
    assert report.fired == ["keyword 'K1' covered"]
    assert [change.description for change in report.changes] == ["X: 0 + 150 = 150"]
    assert (report.changes[0].old_value, report.changes[0].new_value) == (0.0, 150.0)


def test_all_conditions_must_match() -> None:
    engine = RuleEngine(VariableStore())
    rules = [rule([("K1", True), ("K2", False)], ("X", Operation.SET, 1))]
    engine.apply_change_rules(rules, KEYWORDS, covered((0, 3), (10, 13)))
    assert engine.variables.get("X") == 0.0
    engine.apply_change_rules(rules, KEYWORDS, covered((0, 3)))
    assert engine.variables.get("X") == 1.0


def test_rule_without_conditions_is_unconditional() -> None:
    engine = RuleEngine(VariableStore())
    report = engine.apply_change_rules([rule((), ("X", Operation.ADD, 2))], KEYWORDS, covered())
    assert report.fired == ["unconditional"]
    assert engine.variables.get("X") == 2.0


def test_later_rules_see_earlier_mutations() -> None:
    engine = RuleEngine(VariableStore({"X": 1}))
    rules = [
        rule((), ("X", Operation.ADD, 4)),
        rule((), ("X", Operation.MULTIPLY, 10)),
        rule((), ("Y", Operation.SET, 3), ("Y", Operation.DIVIDE_AND_FLOOR, 2)),
    ]
    report = engine.apply_change_rules(rules, KEYWORDS, covered())
    assert engine.variables.get("X") == 50.0
    assert engine.variables.get("Y") == 1.0
    assert len(report.changes) == 4


def test_skipped_division_is_left_out_of_the_change_log() -> None:
    engine = RuleEngine(VariableStore({"X": 5}))
    rules = [rule((), ("X", Operation.DIVIDE_AND_FLOOR, 0), ("X", Operation.ADD, 1))]
    report = engine.apply_change_rules(rules, KEYWORDS, covered())
    assert engine.variables.get("X") == 6.0
    assert report.fired == ["unconditional"]
    assert [change.description for change in report.changes] == ["X: 5 + 1 = 6"]


def test_unknown_keyword_fails_closed(caplog: pytest.LogCaptureFixture) -> None:
    engine = RuleEngine(VariableStore())
    rules = [
        rule([("missing", False)], ("X", Operation.SET, 99)),
        rule([("K1", True)], ("Y", Operation.SET, 1)),
    ]
    with caplog.at_level(logging.WARNING, logger="blackout.rules"):
        report = engine.apply_change_rules(rules, KEYWORDS, covered((0, 3)))
    assert engine.variables.get("X") == 0.0
    assert engine.variables.get("Y") == 1.0
    assert len(report.fired) == 1
    assert "missing" in caplog.text


def test_result_rules_accumulate_without_early_exit() -> None:
    scores = ScoreBoard()
    engine = RuleEngine(VariableStore(), scores)
    rules = [
        ResultRule("hid gold", required_covered=frozenset({"K1"}), deltas={"secrecy": 2}),
        ResultRule("left trail", required_uncovered=frozenset({"K2"}), deltas={"secrecy": -5, "risk": 1}),
        ResultRule("hid both", required_covered=frozenset({"K1", "K2"}), deltas={"secrecy": 10}),
    ]
    report = engine.apply_result_rules(rules, KEYWORDS, covered((0, 3)))
    assert report.fired == ["hid gold", "left trail"]
    assert report.deltas == {"secrecy": -3.0, "risk": 1.0}
    assert report.totals == {"secrecy": -3.0, "risk": 1.0}

    engine.apply_result_rules(rules, KEYWORDS, covered((0, 3)))
    assert scores["secrecy"] == -6.0
    assert scores["unknown"] == 0.0


def test_result_rule_with_unknown_keyword_never_matches() -> None:
    engine = RuleEngine(VariableStore())
    broken = ResultRule("broken", required_uncovered=frozenset({"nope"}), deltas={"risk": 1})
    assert not engine.result_rule_matches(broken, KEYWORDS, covered())
    report = engine.apply_result_rules([broken], KEYWORDS, covered())
    assert report.fired == []
    assert report.totals == {}
