"""Named numeric story variables, their operations and comparisons."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_EPSILON = 1e-5

VariableListener = Callable[[str, float], None]


class Operation(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE_AND_FLOOR = "divide_and_floor"
    SET = "set"

    @property
    def symbol(self) -> str:
        return OPERATION_SYMBOLS[self]


OPERATION_SYMBOLS: Mapping[Operation, str] = {
    Operation.ADD: "+",
    Operation.SUBTRACT: "-",
    Operation.MULTIPLY: "*",
    Operation.DIVIDE_AND_FLOOR: "//",
    Operation.SET: "=",
}


class Comparison(str, Enum):
    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER = "gt"
    LESS = "lt"
    GREATER_OR_EQUAL = "gte"
    LESS_OR_EQUAL = "lte"
    RANGE = "range"


@dataclass(frozen=True)
class VariableCondition:
    """Compares a variable against ``value`` (the minimum for ``RANGE``)."""

    variable: str
    comparison: Comparison
    value: float
    upper: Optional[float] = None

    def describe(self) -> str:
        if self.comparison is Comparison.RANGE:
            return f"{self.value} <= {self.variable} <= {self.upper}"
        return f"{self.variable} {self.comparison.value} {self.value}"


@dataclass(frozen=True)
class VariableModifier:
    variable: str
    operation: Operation
    operand: float

    def describe(self) -> str:
        return f"{self.variable} {self.operation.symbol} {self.operand:g}"


def apply_operation(current: float, operation: Operation, operand: float) -> float:
    if operation is Operation.ADD:
        return current + operand
    if operation is Operation.SUBTRACT:
        return current - operand
    if operation is Operation.MULTIPLY:
        return current * operand
    if operation is Operation.DIVIDE_AND_FLOOR:
        if operand == 0:
            raise ConfigurationError("divide_and_floor by zero")
        return float(math.floor(current / operand))
    if operation is Operation.SET:
        return operand
    raise ConfigurationError(f"unsupported operation '{operation}'")


class VariableStore:
    """Session-wide variable values.

    Values are floats. Ids that were never configured read as ``0.0`` and are
    registered on first use; entries are never removed.
    """

    def __init__(
        self,
        initial: Optional[Mapping[str, float]] = None,
        *,
        epsilon: float = DEFAULT_EPSILON,
    ) -> None:
        self._initial: Dict[str, float] = {
            str(key): float(value) for key, value in (initial or {}).items()
        }
        self._values: Dict[str, float] = dict(self._initial)
        self.epsilon = epsilon
        self._listeners: List[VariableListener] = []

    def __contains__(self, variable: object) -> bool:
        return variable in self._values

    def subscribe(self, listener: VariableListener) -> None:
        self._listeners.append(listener)

    def get(self, variable: str) -> float:
        if variable not in self._values:
            logger.debug("Variable '%s' read before it was set; defaulting to 0.", variable)
            self._values[variable] = 0.0
        return self._values[variable]

    def modify(self, variable: str, operation: Operation, operand: float) -> Optional[float]:
        """Apply ``operation`` and notify listeners once with the new value.

        An operation that cannot apply (division by zero) is logged, leaves
        the value untouched without notifying and returns ``None``.
        """
        current = self.get(variable)
        try:
            updated = apply_operation(current, Operation(operation), float(operand))
        except (ConfigurationError, ValueError) as exc:
            logger.warning("Skipped %s on '%s': %s", operation, variable, exc)
            return None
        self._values[variable] = updated
        logger.debug("Variable %s changed to %s", variable, updated)
        for listener in list(self._listeners):
            listener(variable, updated)
        return updated

    def approximately(self, left: float, right: float) -> bool:
        return math.isclose(left, right, rel_tol=1e-6, abs_tol=self.epsilon)

    def evaluate(self, condition: VariableCondition) -> bool:
        value = self.get(condition.variable)
        target = condition.value
        comparison = condition.comparison
        if comparison is Comparison.EQUAL:
            return self.approximately(value, target)
        if comparison is Comparison.NOT_EQUAL:
            return not self.approximately(value, target)
        if comparison is Comparison.GREATER:
            return value > target
        if comparison is Comparison.LESS:
            return value < target
        if comparison is Comparison.GREATER_OR_EQUAL:
            return value >= target
        if comparison is Comparison.LESS_OR_EQUAL:
            return value <= target
        if comparison is Comparison.RANGE:
            upper = condition.upper if condition.upper is not None else target
            return target <= value <= upper
        return False

    def evaluate_all(self, conditions: Iterable[VariableCondition]) -> bool:
        return all(self.evaluate(condition) for condition in conditions)

    def snapshot(self) -> Dict[str, float]:
        return dict(self._values)

    def reset(self) -> None:
        """Restore configured values; variables created later read as 0."""
        for variable in list(self._values):
            self._values[variable] = self._initial.get(variable, 0.0)
        for variable, value in self._values.items():
            for listener in list(self._listeners):
                listener(variable, value)
