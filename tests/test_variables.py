import logging

import pytest

from blackout.variables import (
    Comparison,
    Operation,
    VariableCondition,
    VariableStore,
)


@pytest.mark.parametrize(
    ("operation", "operand", "expected"),
    [
        (Operation.ADD, 5, 15.0),
        (Operation.SUBTRACT, 12, -2.0),
        (Operation.MULTIPLY, 1.5, 15.0),
        (Operation.DIVIDE_AND_FLOOR, 3, 3.0),
        (Operation.DIVIDE_AND_FLOOR, -3, -4.0),
        (Operation.SET, 7, 7.0),
    ],
)
def test_operations(operation: Operation, operand: float, expected: float) -> None:
    store = VariableStore({"X": 10})
    assert store.modify("X", operation, operand) == expected
    assert store.get("X") == expected


def test_unknown_variable_reads_as_zero_and_is_registered() -> None:
    store = VariableStore()
    assert "ghost" not in store
    assert store.get("ghost") == 0.0
    assert "ghost" in store


def test_modify_notifies_once_per_call() -> None:
    store = VariableStore({"X": 1})
    events = []
    store.subscribe(lambda variable, value: events.append((variable, value)))
    store.modify("X", Operation.ADD, 2)
    store.modify("Y", Operation.SET, 4)
    assert events == [("X", 3.0), ("Y", 4.0)]


def test_division_by_zero_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    store = VariableStore({"X": 9})
    events = []
    store.subscribe(lambda variable, value: events.append(value))
    with caplog.at_level(logging.WARNING, logger="blackout.variables"):
        assert store.modify("X", Operation.DIVIDE_AND_FLOOR, 0) is None
    assert store.get("X") == 9.0
    assert events == []
    assert "by zero" in caplog.text


@pytest.mark.parametrize(
    ("comparison", "value", "upper", "expected"),
    [
        (Comparison.EQUAL, 0.3, None, True),
        (Comparison.NOT_EQUAL, 0.3, None, False),
        (Comparison.GREATER, 0.25, None, True),
        (Comparison.LESS, 0.5, None, True),
        (Comparison.GREATER_OR_EQUAL, 0.3, None, True),
        (Comparison.LESS_OR_EQUAL, 0.2, None, False),
        (Comparison.RANGE, 0.3, 1.0, True),
        (Comparison.RANGE, 0.0, 0.25, False),
    ],
)
def test_comparisons(comparison: Comparison, value: float, upper, expected: bool) -> None:
    store = VariableStore()
    store.modify("v", Operation.SET, 0.1)
    store.modify("v", Operation.ADD, 0.2)
    assert store.evaluate(VariableCondition("v", comparison, value, upper)) is expected


def test_evaluate_all_requires_every_condition() -> None:
    store = VariableStore({"X": 15})
    conditions = (
        VariableCondition("X", Comparison.GREATER_OR_EQUAL, 10),
        VariableCondition("X", Comparison.LESS, 20),
    )
    assert store.evaluate_all(conditions)
    assert not store.evaluate_all(conditions + (VariableCondition("X", Comparison.EQUAL, 0),))
    assert store.evaluate_all(())


def test_reset_restores_initial_values() -> None:
    store = VariableStore({"X": 2})
    store.modify("X", Operation.MULTIPLY, 10)
    store.modify("Y", Operation.SET, 3)
    store.reset()
    assert store.snapshot() == {"X": 2.0, "Y": 0.0}
