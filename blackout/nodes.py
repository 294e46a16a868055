"""Read-only narrative graph data: node variants, content blocks and the graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Tuple, Union

from .coverage import Keyword, KeywordIndex
from .errors import ConfigurationError
from .rules import ChangeRule, ResultRule
from .variables import VariableCondition

DEFAULT_SURFACE_ID = "body"


class NodeKind(str, Enum):
    LINEAR = "linear"
    BRANCH = "branch"
    TIMED_CHALLENGE = "timed_challenge"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class ContentBlock:
    """Text shown on a node plus the keyword logic attached to it.

    ``budget`` of ``None`` falls back to the session's default budget.
    """

    text: str = ""
    keywords: Tuple[Keyword, ...] = ()
    change_rules: Tuple[ChangeRule, ...] = ()
    budget: Optional[int] = None
    result_rules: Tuple[ResultRule, ...] = ()
    surface_id: str = DEFAULT_SURFACE_ID

    def keyword_index(self) -> KeywordIndex:
        return KeywordIndex(self.keywords)


@dataclass(frozen=True)
class Branch:
    conditions: Tuple[VariableCondition, ...] = ()
    target: Optional[int] = None
    name: str = ""


@dataclass(frozen=True)
class LinearNode:
    kind: ClassVar[NodeKind] = NodeKind.LINEAR

    id: int
    next: Optional[int] = None
    content: Optional[ContentBlock] = None
    name: str = ""


@dataclass(frozen=True)
class BranchNode:
    kind: ClassVar[NodeKind] = NodeKind.BRANCH

    id: int
    branches: Tuple[Branch, ...] = ()
    default: Optional[int] = None
    content: Optional[ContentBlock] = None
    name: str = ""


@dataclass(frozen=True)
class TimedChallengeNode:
    kind: ClassVar[NodeKind] = NodeKind.TIMED_CHALLENGE

    id: int
    outcome_variable: str
    deadline: Optional[float] = None
    success_target: Optional[int] = None
    failure_target: Optional[int] = None
    content: Optional[ContentBlock] = None
    name: str = ""


@dataclass(frozen=True)
class TerminalNode:
    kind: ClassVar[NodeKind] = NodeKind.TERMINAL
    content: ClassVar[Optional[ContentBlock]] = None

    id: int
    ending: Optional[str] = None
    name: str = ""


Node = Union[LinearNode, BranchNode, TimedChallengeNode, TerminalNode]


def node_targets(node: Node) -> List[Tuple[str, Optional[int]]]:
    """Outgoing references of ``node`` as ``(field, target)`` pairs."""
    if node.kind is NodeKind.LINEAR:
        return [("next", node.next)]
    if node.kind is NodeKind.BRANCH:
        targets = [(f"branches[{idx}].target", b.target) for idx, b in enumerate(node.branches)]
        targets.append(("default", node.default))
        return targets
    if node.kind is NodeKind.TIMED_CHALLENGE:
        return [
            ("success_target", node.success_target),
            ("failure_target", node.failure_target),
        ]
    if node.kind is NodeKind.TERMINAL:
        return []
    raise AssertionError(f"unhandled node kind {node.kind!r}")


@dataclass
class Graph:
    nodes: Dict[int, Node]
    start_id: int
    title: str = ""
    variables: Dict[str, float] = field(default_factory=dict)

    def get(self, node_id: Optional[int]) -> Optional[Node]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def resolve(self, node_id: Optional[int]) -> Node:
        if node_id is None:
            raise ConfigurationError("transition has no target")
        node = self.nodes.get(node_id)
        if node is None:
            raise ConfigurationError(f"unknown node id {node_id}")
        return node

    def edges(self) -> Dict[int, List[int]]:
        graph: Dict[int, List[int]] = {}
        for node_id, node in self.nodes.items():
            graph[node_id] = [
                target
                for _, target in node_targets(node)
                if target is not None and target in self.nodes
            ]
        return graph
