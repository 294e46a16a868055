"""Traversal state machine over the narrative graph."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .budget import SelectionBook, SelectionBudgetLedger
from .coverage import KeywordCoverageEvaluator
from .errors import ConfigurationError
from .nodes import BranchNode, ContentBlock, Graph, Node, NodeKind, TimedChallengeNode
from .rules import ChangeReport, RuleEngine, ScoreReport
from .settings import Settings
from .timekeeping import Clock, DeadlineTimer, Scheduler, asyncio_scheduler, normalize_deadline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdvanceResult:
    moved: bool
    node_id: int
    kind: Optional[NodeKind]
    content: Optional[ContentBlock]
    error: Optional[str] = None


TransitionListener = Callable[[AdvanceResult], None]


class NarrativeGraph:
    """Owns the current node and moves it through the graph.

    Entering a node clears every selection surface, cancels the previous
    node's deadline, resets the budget cap to the node's budget and, for a
    timed challenge, starts a fresh deadline. Leaving a node applies its
    change rules first unless ``submit`` already applied them on this visit.

    A deadline that cannot be scheduled (no running event loop for the
    default scheduler) holds the traversal where it is.
    """

    def __init__(
        self,
        graph: Graph,
        rules: RuleEngine,
        book: SelectionBook,
        ledger: SelectionBudgetLedger,
        settings: Optional[Settings] = None,
        *,
        scheduler: Scheduler = asyncio_scheduler,
        clock: Clock = time.monotonic,
    ) -> None:
        self.graph = graph
        self.rules = rules
        self.variables = rules.variables
        self.book = book
        self.ledger = ledger
        self.settings = settings.copy().clamp() if settings is not None else Settings()
        self._scheduler = scheduler
        self._clock = clock
        self.current_id: int = graph.start_id
        self.history: List[Dict[str, object]] = []
        self.timer: Optional[DeadlineTimer] = None
        self._submitted = False
        self._listeners: List[TransitionListener] = []

    # ---------- State ----------
    @property
    def current_node(self) -> Optional[Node]:
        return self.graph.get(self.current_id)

    @property
    def content(self) -> Optional[ContentBlock]:
        node = self.current_node
        return node.content if node is not None else None

    @property
    def submitted(self) -> bool:
        return self._submitted

    def subscribe(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def coverage_evaluator(self) -> KeywordCoverageEvaluator:
        content = self.content
        if content is None or content.surface_id not in self.book:
            return KeywordCoverageEvaluator(None)
        return KeywordCoverageEvaluator(self.book.surface(content.surface_id))

    def _result(self, moved: bool, error: Optional[str] = None) -> AdvanceResult:
        node = self.current_node
        return AdvanceResult(
            moved=moved,
            node_id=self.current_id,
            kind=node.kind if node is not None else None,
            content=node.content if node is not None else None,
            error=error,
        )

    def _hold(self, message: str) -> AdvanceResult:
        logger.warning("Node %s: %s", self.current_id, message)
        return self._result(False, message)

    # ---------- Entering and leaving ----------
    def start(self) -> AdvanceResult:
        return self.reset(restore_variables=False)

    def reset(self, *, restore_variables: bool = True) -> AdvanceResult:
        start = self.graph.get(self.graph.start_id)
        try:
            timer = self._arm_timer(start)
        except ConfigurationError as exc:
            return self._hold(str(exc))
        self._cancel_timer()
        if restore_variables:
            self.variables.reset()
            self.rules.scores.reset()
        self.history = []
        if start is None:
            self.current_id = self.graph.start_id
            self.book.clear_all()
            self.ledger.max_total = self.settings.default_budget
            return self._hold(f"start node {self.graph.start_id} does not exist")
        self._enter(self.graph.start_id, start, timer)
        return self._result(True)

    def _cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def _arm_timer(self, node: Optional[Node]) -> Optional[DeadlineTimer]:
        """Start the deadline for ``node`` before any traversal state changes."""
        if not isinstance(node, TimedChallengeNode):
            return None
        timer = DeadlineTimer(
            normalize_deadline(node.deadline, self.settings.default_deadline),
            self._on_deadline,
            scheduler=self._scheduler,
            clock=self._clock,
        )
        try:
            return timer.start()
        except RuntimeError as exc:
            raise ConfigurationError(f"cannot schedule the deadline of node {node.id}: {exc}") from exc

    def _enter(self, node_id: int, node: Node, timer: Optional[DeadlineTimer]) -> None:
        self._cancel_timer()
        self.book.clear_all()
        self.current_id = node_id
        self._submitted = False
        content = node.content
        budget = self.settings.default_budget
        if content is not None:
            self.book.register(content.surface_id, len(content.text))
            if content.budget is not None:
                budget = content.budget
        self.ledger.max_total = max(int(budget), 0)
        self.timer = timer
        if timer is not None:
            logger.info("Timed challenge %s started: %.1fs.", node_id, timer.delay)
        logger.info("Entered node %s (%s).", node_id, node.kind.value)

    def _transition(self, target: Optional[int], via: str) -> AdvanceResult:
        try:
            node = self.graph.resolve(target)
            timer = self._arm_timer(node)
        except ConfigurationError as exc:
            return self._hold(f"{via}: {exc}")
        if not self._submitted:
            self.apply_change_rules()
        origin = self.current_id
        self.history.append({"from": origin, "to": target, "via": via})
        self._enter(target, node, timer)
        result = self._result(True)
        for listener in list(self._listeners):
            listener(result)
        return result

    # ---------- Rules ----------
    def apply_change_rules(self) -> ChangeReport:
        content = self.content
        self._submitted = True
        if content is None or not content.change_rules:
            return ChangeReport()
        return self.rules.apply_change_rules(
            content.change_rules, content.keyword_index(), self.coverage_evaluator()
        )

    def submit(self, node_id: int) -> ChangeReport:
        if node_id != self.current_id:
            logger.warning("Submit for node %s ignored; current node is %s.", node_id, self.current_id)
            return ChangeReport()
        if self._submitted:
            logger.info("Node %s already submitted on this visit.", node_id)
            return ChangeReport()
        return self.apply_change_rules()

    def score(self) -> ScoreReport:
        content = self.content
        if content is None or not content.result_rules:
            return ScoreReport(totals=self.rules.scores.totals())
        return self.rules.apply_result_rules(
            content.result_rules, content.keyword_index(), self.coverage_evaluator()
        )

    # ---------- Transitions ----------
    def advance(self) -> AdvanceResult:
        node = self.current_node
        if node is None:
            return self._hold("current node does not exist")
        if node.kind is NodeKind.LINEAR:
            return self._transition(node.next, "next")
        if node.kind is NodeKind.BRANCH:
            return self._advance_branch(node)
        if node.kind is NodeKind.TIMED_CHALLENGE:
            logger.info("Node %s resolves by outcome or deadline, not advance.", node.id)
            return self._result(False)
        if node.kind is NodeKind.TERMINAL:
            logger.info("Node %s is terminal.", node.id)
            return self._result(False)
        raise AssertionError(f"unhandled node kind {node.kind!r}")

    def _advance_branch(self, node: BranchNode) -> AdvanceResult:
        for index, branch in enumerate(node.branches):
            if not self.variables.evaluate_all(branch.conditions):
                continue
            if branch.target is None:
                logger.warning(
                    "Node %s branch %s matched but has no target.", node.id, branch.name or index
                )
                continue
            logger.info("Node %s took branch %s.", node.id, branch.name or index)
            return self._transition(branch.target, f"branch {index}")
        if node.default is None:
            return self._hold("no branch matched and no default target")
        return self._transition(node.default, "default")

    def select_branch(self, index: int) -> AdvanceResult:
        node = self.current_node
        if not isinstance(node, BranchNode):
            return self._hold("select_branch requires a branch node")
        if 0 <= index < len(node.branches) and node.branches[index].target is not None:
            return self._transition(node.branches[index].target, f"branch {index}")
        if node.default is None:
            return self._hold(f"branch {index} unavailable and no default target")
        return self._transition(node.default, "default")

    def report_challenge_outcome(self, success: bool) -> AdvanceResult:
        node = self.current_node
        if not isinstance(node, TimedChallengeNode):
            return self._hold("challenge outcome reported outside a timed challenge")
        if self.timer is None or not self.timer.live:
            return self._hold("challenge already resolved")
        return self._resolve_challenge(node, bool(success), "outcome")

    def _resolve_challenge(self, node: TimedChallengeNode, success: bool, via: str) -> AdvanceResult:
        target = node.success_target if success else node.failure_target
        label = "success" if success else "failure"
        return self._transition(target, f"{via}:{label}")

    def _on_deadline(self) -> None:
        node = self.current_node
        if not isinstance(node, TimedChallengeNode):
            return
        # Selections standing at time-out still count towards the outcome.
        if not self._submitted:
            self.apply_change_rules()
        value = self.variables.get(node.outcome_variable)
        success = self.variables.approximately(value, self.settings.challenge_success_value)
        logger.info(
            "Deadline on node %s: %s=%s, %s.",
            node.id,
            node.outcome_variable,
            value,
            "success" if success else "failure",
        )
        self._resolve_challenge(node, success, "deadline")
