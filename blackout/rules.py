"""Keyword-driven change rules and result scoring."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Sequence, Tuple

from .coverage import KeywordCoverageEvaluator, KeywordIndex
from .errors import ConfigurationError
from .variables import VariableModifier, VariableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordCondition:
    keyword: str
    covered: bool = True

    def describe(self) -> str:
        state = "covered" if self.covered else "uncovered"
        return f"keyword '{self.keyword}' {state}"


@dataclass(frozen=True)
class ChangeRule:
    """Apply ``modifications`` when every condition holds; no conditions always fires."""

    conditions: Tuple[KeywordCondition, ...] = ()
    modifications: Tuple[VariableModifier, ...] = ()

    def describe(self) -> str:
        if not self.conditions:
            return "unconditional"
        return " and ".join(condition.describe() for condition in self.conditions)


@dataclass(frozen=True)
class ResultRule:
    name: str
    required_covered: FrozenSet[str] = frozenset()
    required_uncovered: FrozenSet[str] = frozenset()
    deltas: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class VariableChange:
    description: str
    old_value: float
    new_value: float


@dataclass
class ChangeReport:
    fired: List[str] = field(default_factory=list)
    changes: List[VariableChange] = field(default_factory=list)


@dataclass
class ScoreReport:
    fired: List[str] = field(default_factory=list)
    deltas: Dict[str, float] = field(default_factory=dict)
    totals: Dict[str, float] = field(default_factory=dict)


class ScoreBoard:
    """Named score counters; accumulation is additive and unclamped."""

    def __init__(self) -> None:
        self._totals: Dict[str, float] = {}

    def __getitem__(self, counter: str) -> float:
        return self._totals.get(counter, 0.0)

    def add(self, counter: str, delta: float) -> float:
        self._totals[counter] = self._totals.get(counter, 0.0) + float(delta)
        return self._totals[counter]

    def totals(self) -> Dict[str, float]:
        return dict(self._totals)

    def reset(self) -> None:
        self._totals.clear()


class RuleEngine:
    def __init__(self, variables: VariableStore, scores: ScoreBoard | None = None) -> None:
        self.variables = variables
        self.scores = scores if scores is not None else ScoreBoard()

    def _conditions_hold(
        self,
        conditions: Sequence[KeywordCondition],
        keywords: KeywordIndex,
        evaluator: KeywordCoverageEvaluator,
    ) -> bool:
        for condition in conditions:
            keyword = keywords.resolve(condition.keyword)
            if evaluator.is_covered(keyword) != condition.covered:
                return False
        return True

    def apply_change_rules(
        self,
        rules: Sequence[ChangeRule],
        keywords: KeywordIndex,
        evaluator: KeywordCoverageEvaluator,
    ) -> ChangeReport:
        """Run every rule in authored order against the live variable store.

        Later rules see the values written by earlier ones.
        """
        report = ChangeReport()
        for index, rule in enumerate(rules):
            try:
                matched = self._conditions_hold(rule.conditions, keywords, evaluator)
            except ConfigurationError as exc:
                logger.warning("Change rule %s skipped: %s", index, exc)
                continue
            if not matched:
                continue
            report.fired.append(rule.describe())
            for modifier in rule.modifications:
                old_value = self.variables.get(modifier.variable)
                new_value = self.variables.modify(
                    modifier.variable, modifier.operation, modifier.operand
                )
                if new_value is None:
                    continue
                description = (
                    f"{modifier.variable}: {old_value:g} {modifier.operation.symbol} "
                    f"{modifier.operand:g} = {new_value:g}"
                )
                report.changes.append(VariableChange(description, old_value, new_value))
                logger.info("%s", description)
        return report

    def result_rule_matches(
        self,
        rule: ResultRule,
        keywords: KeywordIndex,
        evaluator: KeywordCoverageEvaluator,
    ) -> bool:
        try:
            for keyword_id in sorted(rule.required_covered):
                if not evaluator.is_covered(keywords.resolve(keyword_id)):
                    return False
            for keyword_id in sorted(rule.required_uncovered):
                if evaluator.is_covered(keywords.resolve(keyword_id)):
                    return False
        except ConfigurationError as exc:
            logger.warning("Result rule '%s' cannot match: %s", rule.name, exc)
            return False
        return True

    def apply_result_rules(
        self,
        rules: Sequence[ResultRule],
        keywords: KeywordIndex,
        evaluator: KeywordCoverageEvaluator,
    ) -> ScoreReport:
        report = ScoreReport()
        for rule in rules:
            if not self.result_rule_matches(rule, keywords, evaluator):
                continue
            report.fired.append(rule.name)
            for counter, delta in rule.deltas.items():
                self.scores.add(counter, delta)
                report.deltas[counter] = report.deltas.get(counter, 0.0) + float(delta)
            logger.info("Result '%s' applied: %s", rule.name, dict(rule.deltas))
        if not report.fired:
            logger.info("No result rule matched.")
        report.totals = self.scores.totals()
        return report
