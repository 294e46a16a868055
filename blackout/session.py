"""Session root: composes the selection, rule and traversal services."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol

from .budget import (
    CommitResult,
    PreviewResult,
    SelectionBook,
    SelectionBudgetLedger,
    SelectionListener,
)
from .graph import AdvanceResult, NarrativeGraph, TransitionListener
from .intervals import Interval
from .nodes import ContentBlock, Graph, Node
from .rules import ChangeReport, RuleEngine, ScoreBoard, ScoreReport
from .schema import report_graph_problems
from .settings import Settings
from .timekeeping import Clock, Scheduler, asyncio_scheduler
from .variables import VariableListener, VariableStore

logger = logging.getLogger(__name__)

SubmitResult = ChangeReport


class PointerResolver(Protocol):
    """Maps a screen position on a text surface to a character index."""

    def __call__(self, screen_pos: Any, text_id: str) -> Optional[int]: ...


class Session:
    """One play-through of a graph.

    Holds every long-lived service; nothing here is global. Timed challenge
    deadlines go through ``scheduler``, which defaults to the running asyncio
    loop.
    """

    def __init__(
        self,
        graph: Graph,
        settings: Optional[Settings] = None,
        *,
        variables: Optional[Mapping[str, float]] = None,
        scheduler: Scheduler = asyncio_scheduler,
        clock: Clock = time.monotonic,
        pointer_resolver: Optional[PointerResolver] = None,
    ) -> None:
        self.settings = settings.copy().clamp() if settings is not None else Settings()
        report_graph_problems(graph)
        initial = dict(graph.variables)
        initial.update(variables or {})
        self.variables = VariableStore(initial, epsilon=self.settings.equality_epsilon)
        self.scores = ScoreBoard()
        self.rules = RuleEngine(self.variables, self.scores)
        self.book = SelectionBook()
        self.ledger = SelectionBudgetLedger(self.book, self.settings.default_budget)
        self.pointer_resolver = pointer_resolver
        self._drag_anchors: Dict[str, int] = {}
        self.traversal = NarrativeGraph(
            graph,
            self.rules,
            self.book,
            self.ledger,
            self.settings,
            scheduler=scheduler,
            clock=clock,
        )
        self.traversal.subscribe(self._forget_drags)
        self.traversal.start()

    def _forget_drags(self, _result: AdvanceResult) -> None:
        self._drag_anchors.clear()

    # ---------- Observation ----------
    @property
    def node_id(self) -> int:
        return self.traversal.current_id

    @property
    def current_node(self) -> Optional[Node]:
        return self.traversal.current_node

    @property
    def content(self) -> Optional[ContentBlock]:
        return self.traversal.content

    def intervals(self, text_id: str) -> List[Interval]:
        return self.book.surface(text_id).intervals

    def remaining(self) -> int:
        return self.ledger.remaining()

    def on_selection_changed(self, listener: SelectionListener) -> None:
        self.book.subscribe(listener)

    def on_variable_changed(self, listener: VariableListener) -> None:
        self.variables.subscribe(listener)

    def on_transition(self, listener: TransitionListener) -> None:
        self.traversal.subscribe(listener)

    def pointer_index(self, screen_pos: Any, text_id: str) -> Optional[int]:
        if self.pointer_resolver is None:
            return None
        return self.pointer_resolver(screen_pos, text_id)

    # ---------- Selection ----------
    def commit_selection(self, text_id: str, start: int, end: int) -> CommitResult:
        return self.ledger.commit(text_id, start, end)

    def preview_selection(self, text_id: str, start: int, end: int) -> PreviewResult:
        return self.ledger.preview(text_id, start, end)

    def begin_drag(self, text_id: str, index: int) -> PreviewResult:
        self._drag_anchors[text_id] = index
        self.ledger.fit_pending(text_id, index, index)
        return self.ledger.preview_pending(text_id)

    def drag_to(self, text_id: str, index: int) -> PreviewResult:
        anchor = self._drag_anchors.get(text_id)
        if anchor is None:
            return self.ledger.preview_pending(text_id)
        self.ledger.fit_pending(text_id, anchor, index)
        return self.ledger.preview_pending(text_id)

    def end_drag(self, text_id: str) -> CommitResult:
        self._drag_anchors.pop(text_id, None)
        surface = self.book.surface(text_id)
        pending = surface.pending
        surface.clear_pending()
        if pending is None:
            self.book.notify(text_id)
            return CommitResult(False, None, self.ledger.used(), self.ledger.remaining())
        return self.ledger.commit(text_id, pending.start, pending.end)

    def cancel_drag(self, text_id: str) -> None:
        self._drag_anchors.pop(text_id, None)
        self.book.surface(text_id).clear_pending()
        self.book.notify(text_id)

    def erase_at(self, text_id: str, char_index: int) -> List[Interval]:
        updated = self.book.surface(text_id).remove(char_index)
        self.book.notify(text_id)
        return updated

    def erase_range(self, text_id: str, start: int, end: int) -> List[Interval]:
        updated = self.book.surface(text_id).remove_range(start, end)
        self.book.notify(text_id)
        return updated

    def clear_all(self) -> None:
        self._drag_anchors.clear()
        self.book.clear_all()

    # ---------- Rules and traversal ----------
    def submit(self, node_id: int) -> SubmitResult:
        return self.traversal.submit(node_id)

    def score(self) -> ScoreReport:
        return self.traversal.score()

    def advance(self) -> AdvanceResult:
        return self.traversal.advance()

    def select_branch(self, index: int) -> AdvanceResult:
        return self.traversal.select_branch(index)

    def report_challenge_outcome(self, success: bool) -> AdvanceResult:
        return self.traversal.report_challenge_outcome(success)

    def reset(self) -> AdvanceResult:
        self._drag_anchors.clear()
        logger.info("Session reset to node %s.", self.traversal.graph.start_id)
        return self.traversal.reset()
