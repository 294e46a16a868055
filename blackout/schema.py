"""Decoding and validation of authored Blackout graphs."""

from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .coverage import Keyword
from .nodes import (
    DEFAULT_SURFACE_ID,
    Branch,
    BranchNode,
    ContentBlock,
    Graph,
    LinearNode,
    Node,
    NodeKind,
    TerminalNode,
    TimedChallengeNode,
    node_targets,
)
from .rules import ChangeRule, KeywordCondition, ResultRule
from .timekeeping import normalize_deadline
from .variables import Comparison, Operation, VariableCondition, VariableModifier

logger = logging.getLogger(__name__)

COMPARISON_ALIASES: Mapping[str, Comparison] = {
    "==": Comparison.EQUAL,
    "!=": Comparison.NOT_EQUAL,
    ">": Comparison.GREATER,
    "<": Comparison.LESS,
    ">=": Comparison.GREATER_OR_EQUAL,
    "<=": Comparison.LESS_OR_EQUAL,
}
OPERATION_ALIASES: Mapping[str, Operation] = {
    "+": Operation.ADD,
    "-": Operation.SUBTRACT,
    "*": Operation.MULTIPLY,
    "//": Operation.DIVIDE_AND_FLOOR,
    "=": Operation.SET,
}


def path(*parts: object) -> str:
    path_str = ""
    for part in parts:
        if isinstance(part, int):
            path_str = f"{path_str}[{part}]"
            continue
        if not isinstance(part, str):
            part = str(part)
        if part.isidentifier():
            path_str = f"{path_str}.{part}" if path_str else part
        else:
            path_str = f"{path_str}[{json.dumps(part)}]"
    return path_str


def format_validation_message(path_str: str, context: str, message: str) -> str:
    if context:
        return f"{path_str}: {context}: {message}"
    return f"{path_str}: {message}"


def is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


class ValidationContext:
    """Utility container for accumulating validation errors."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def add(self, context: str, path_str: str, message: str) -> None:
        self.errors.append(format_validation_message(path_str, context, message))

    def ok(self) -> bool:
        return not self.errors


def _raise_graph_validation(errors: Sequence[str]) -> None:
    raise ValueError("Invalid graph:\n- " + "\n- ".join(errors))


def _node_id(value: Any) -> Optional[int]:
    if is_int(value):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    return None


def normalize_nodes(
    raw_nodes: Any, ctx: ValidationContext
) -> Dict[int, Mapping[str, Any]]:
    """Accept nodes as a list of entries with ``id`` or a mapping of id to node."""
    nodes: Dict[int, Mapping[str, Any]] = {}
    node_ids: List[int] = []

    if isinstance(raw_nodes, Mapping):
        for key, payload in raw_nodes.items():
            node_id = _node_id(key)
            if node_id is None:
                ctx.add("Nodes", path("nodes", str(key)), "node identifiers must be integers.")
                continue
            if not isinstance(payload, Mapping):
                ctx.add("Nodes", path("nodes", str(key)), f"node {node_id} must be an object.")
                continue
            node_ids.append(node_id)
            nodes[node_id] = payload
    elif is_list(raw_nodes):
        for idx, entry in enumerate(raw_nodes):
            if not isinstance(entry, Mapping):
                ctx.add(f"Node entry {idx + 1}", path("nodes", idx), "must be an object.")
                continue
            node_id = _node_id(entry.get("id"))
            if node_id is None:
                ctx.add(f"Node entry {idx + 1}", path("nodes", idx, "id"), "is missing an integer 'id'.")
                continue
            node_ids.append(node_id)
            nodes[node_id] = entry
    else:
        ctx.add(
            "Graph data",
            path("nodes"),
            "must be a list of node entries or an object mapping IDs to nodes.",
        )

    duplicates = sorted(node_id for node_id, count in Counter(node_ids).items() if count > 1)
    if duplicates:
        ctx.add("Nodes", path("nodes"), f"duplicate node IDs found: {', '.join(map(str, duplicates))}.")
    return nodes


def _optional_target(raw: Mapping[str, Any], key: str, where: Tuple[object, ...], ctx: ValidationContext) -> Optional[int]:
    value = raw.get(key)
    if value is None:
        return None
    target = _node_id(value)
    if target is None:
        ctx.add("", path(*where, key), f"'{key}' must be an integer node id or null.")
    return target


def _optional_deadline(raw: Mapping[str, Any], where: Tuple[object, ...], ctx: ValidationContext) -> Optional[float]:
    value = raw.get("deadline")
    if value is None:
        return None
    if not is_number(value):
        ctx.add("", path(*where, "deadline"), "'deadline' must be a number of seconds or null.")
        return None
    return normalize_deadline(value)


def _decode_keywords(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Tuple[Keyword, ...]:
    if raw is None:
        return ()
    if not is_list(raw):
        ctx.add("", path(*where), "'keywords' must be a list.")
        return ()
    keywords: List[Keyword] = []
    for idx, entry in enumerate(raw):
        at = (*where, idx)
        if not isinstance(entry, Mapping):
            ctx.add("", path(*at), "keyword must be an object.")
            continue
        keyword_id, start, end = entry.get("id"), entry.get("start"), entry.get("end")
        if not is_non_empty_str(keyword_id):
            ctx.add("", path(*at, "id"), "keyword requires a non-empty string 'id'.")
            continue
        if not is_int(start) or not is_int(end):
            ctx.add("", path(*at), f"keyword '{keyword_id}' requires integer 'start' and 'end'.")
            continue
        keywords.append(Keyword(keyword_id, start, end))
    return tuple(keywords)


def _decode_modifier(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Optional[VariableModifier]:
    if not isinstance(raw, Mapping):
        ctx.add("", path(*where), "modification must be an object.")
        return None
    variable, op_name, operand = raw.get("variable"), raw.get("op"), raw.get("value")
    if not is_non_empty_str(variable):
        ctx.add("", path(*where, "variable"), "requires a non-empty string 'variable'.")
        return None
    operation = OPERATION_ALIASES.get(op_name) if isinstance(op_name, str) else None
    if operation is None:
        try:
            operation = Operation(op_name)
        except ValueError:
            ctx.add("", path(*where, "op"), f"unsupported operation '{op_name}'.")
            return None
    if not is_number(operand):
        ctx.add("", path(*where, "value"), "requires a numeric 'value'.")
        return None
    return VariableModifier(variable, operation, float(operand))


def _decode_change_rules(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Tuple[ChangeRule, ...]:
    if raw is None:
        return ()
    if not is_list(raw):
        ctx.add("", path(*where), "'change_rules' must be a list.")
        return ()
    rules: List[ChangeRule] = []
    for idx, entry in enumerate(raw):
        at = (*where, idx)
        if not isinstance(entry, Mapping):
            ctx.add("", path(*at), "change rule must be an object.")
            continue
        conditions: List[KeywordCondition] = []
        for cidx, cond in enumerate(entry.get("conditions") or []):
            if not isinstance(cond, Mapping) or not is_non_empty_str(cond.get("keyword")):
                ctx.add("", path(*at, "conditions", cidx), "condition requires a non-empty 'keyword'.")
                continue
            conditions.append(KeywordCondition(cond["keyword"], bool(cond.get("covered", True))))
        modifications: List[VariableModifier] = []
        for midx, mod in enumerate(entry.get("modifications") or []):
            modifier = _decode_modifier(mod, (*at, "modifications", midx), ctx)
            if modifier is not None:
                modifications.append(modifier)
        rules.append(ChangeRule(tuple(conditions), tuple(modifications)))
    return tuple(rules)


def _keyword_ids(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> frozenset:
    if raw is None:
        return frozenset()
    if not is_list(raw) or not all(is_non_empty_str(item) for item in raw):
        ctx.add("", path(*where), "must be a list of keyword ids.")
        return frozenset()
    return frozenset(raw)


def _decode_result_rules(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Tuple[ResultRule, ...]:
    if raw is None:
        return ()
    if not is_list(raw):
        ctx.add("", path(*where), "'result_rules' must be a list.")
        return ()
    rules: List[ResultRule] = []
    for idx, entry in enumerate(raw):
        at = (*where, idx)
        if not isinstance(entry, Mapping):
            ctx.add("", path(*at), "result rule must be an object.")
            continue
        deltas = entry.get("deltas") or {}
        if not isinstance(deltas, Mapping) or not all(is_number(v) for v in deltas.values()):
            ctx.add("", path(*at, "deltas"), "must map counter names to numbers.")
            deltas = {}
        rules.append(
            ResultRule(
                name=str(entry.get("name") or f"result {idx}"),
                required_covered=_keyword_ids(entry.get("covered"), (*at, "covered"), ctx),
                required_uncovered=_keyword_ids(entry.get("uncovered"), (*at, "uncovered"), ctx),
                deltas={str(k): float(v) for k, v in deltas.items()},
            )
        )
    return tuple(rules)


def _decode_content(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Optional[ContentBlock]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        ctx.add("", path(*where), "'content' must be an object or null.")
        return None
    text = raw.get("text", "")
    if not isinstance(text, str):
        ctx.add("", path(*where, "text"), "'text' must be a string.")
        text = ""
    budget = raw.get("budget")
    if budget is not None and not is_int(budget):
        ctx.add("", path(*where, "budget"), "'budget' must be an integer or null.")
        budget = None
    surface = raw.get("surface", DEFAULT_SURFACE_ID)
    if not is_non_empty_str(surface):
        ctx.add("", path(*where, "surface"), "'surface' must be a non-empty string.")
        surface = DEFAULT_SURFACE_ID
    return ContentBlock(
        text=text,
        keywords=_decode_keywords(raw.get("keywords"), (*where, "keywords"), ctx),
        change_rules=_decode_change_rules(raw.get("change_rules"), (*where, "change_rules"), ctx),
        budget=budget,
        result_rules=_decode_result_rules(raw.get("result_rules"), (*where, "result_rules"), ctx),
        surface_id=surface,
    )


def _decode_condition(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Optional[VariableCondition]:
    if not isinstance(raw, Mapping):
        ctx.add("", path(*where), "condition must be an object.")
        return None
    variable, name, value = raw.get("variable"), raw.get("comparison"), raw.get("value")
    if not is_non_empty_str(variable):
        ctx.add("", path(*where, "variable"), "requires a non-empty string 'variable'.")
        return None
    comparison = COMPARISON_ALIASES.get(name) if isinstance(name, str) else None
    if comparison is None:
        try:
            comparison = Comparison(name)
        except ValueError:
            ctx.add("", path(*where, "comparison"), f"unsupported comparison '{name}'.")
            return None
    if not is_number(value):
        ctx.add("", path(*where, "value"), "requires a numeric 'value'.")
        return None
    upper = raw.get("upper")
    if comparison is Comparison.RANGE and not is_number(upper):
        ctx.add("", path(*where, "upper"), "'range' requires a numeric 'upper'.")
        return None
    return VariableCondition(variable, comparison, float(value), float(upper) if upper is not None else None)


def _decode_branches(raw: Any, where: Tuple[object, ...], ctx: ValidationContext) -> Tuple[Branch, ...]:
    if raw is None:
        return ()
    if not is_list(raw):
        ctx.add("", path(*where), "'branches' must be a list.")
        return ()
    branches: List[Branch] = []
    for idx, entry in enumerate(raw):
        at = (*where, idx)
        if not isinstance(entry, Mapping):
            ctx.add("", path(*at), "branch must be an object.")
            continue
        conditions: List[VariableCondition] = []
        for cidx, cond in enumerate(entry.get("conditions") or []):
            condition = _decode_condition(cond, (*at, "conditions", cidx), ctx)
            if condition is not None:
                conditions.append(condition)
        branches.append(
            Branch(
                conditions=tuple(conditions),
                target=_optional_target(entry, "target", at, ctx),
                name=str(entry.get("name") or ""),
            )
        )
    return tuple(branches)


def decode_node(node_id: int, raw: Mapping[str, Any], ctx: ValidationContext) -> Optional[Node]:
    where = ("nodes", node_id)
    name = str(raw.get("name") or "")
    try:
        kind = NodeKind(raw.get("kind"))
    except ValueError:
        ctx.add(f"Node {node_id}", path(*where, "kind"), f"unsupported node kind '{raw.get('kind')}'.")
        return None
    if kind is NodeKind.TERMINAL:
        ending = raw.get("ending")
        return TerminalNode(node_id, ending=str(ending) if ending is not None else None, name=name)
    content = _decode_content(raw.get("content"), (*where, "content"), ctx)
    if kind is NodeKind.LINEAR:
        return LinearNode(node_id, next=_optional_target(raw, "next", where, ctx), content=content, name=name)
    if kind is NodeKind.BRANCH:
        return BranchNode(
            node_id,
            branches=_decode_branches(raw.get("branches"), (*where, "branches"), ctx),
            default=_optional_target(raw, "default", where, ctx),
            content=content,
            name=name,
        )
    if kind is NodeKind.TIMED_CHALLENGE:
        outcome = raw.get("outcome_variable")
        if not is_non_empty_str(outcome):
            ctx.add(f"Node {node_id}", path(*where, "outcome_variable"), "requires a non-empty 'outcome_variable'.")
            return None
        return TimedChallengeNode(
            node_id,
            deadline=_optional_deadline(raw, where, ctx),
            outcome_variable=outcome,
            success_target=_optional_target(raw, "success_target", where, ctx),
            failure_target=_optional_target(raw, "failure_target", where, ctx),
            content=content,
            name=name,
        )
    raise AssertionError(f"unhandled node kind {kind!r}")


def graph_from_mapping(data: Any) -> Graph:
    """Build a graph from JSON-shaped data, raising ``ValueError`` on bad shapes.

    Broken references are not shape errors; see ``validate_graph``.
    """
    ctx = ValidationContext()
    if not isinstance(data, Mapping):
        _raise_graph_validation(["Graph data must be a JSON object."])
    raw_nodes = normalize_nodes(data.get("nodes"), ctx)
    start_id = _node_id(data.get("start"))
    if start_id is None:
        ctx.add("Graph data", path("start"), "must include an integer 'start' node id.")
    variables = data.get("variables") or {}
    if not isinstance(variables, Mapping) or not all(is_number(v) for v in variables.values()):
        ctx.add("Graph data", path("variables"), "must map variable names to numbers.")
        variables = {}

    nodes: Dict[int, Node] = {}
    for node_id, raw in raw_nodes.items():
        node = decode_node(node_id, raw, ctx)
        if node is not None:
            nodes[node_id] = node
    if not ctx.ok():
        _raise_graph_validation(ctx.errors)
    return Graph(
        nodes=nodes,
        start_id=start_id,
        title=str(data.get("title") or ""),
        variables={str(k): float(v) for k, v in variables.items()},
    )


def load_graph(graph_path: Path | str) -> Graph:
    with open(graph_path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    return graph_from_mapping(data)


def _validate_content(node_id: int, content: ContentBlock, ctx: ValidationContext) -> None:
    where = ("nodes", node_id, "content")
    context = f"Node {node_id}"
    ids = [keyword.id for keyword in content.keywords]
    for keyword_id, count in Counter(ids).items():
        if count > 1:
            ctx.add(context, path(*where, "keywords"), f"keyword id '{keyword_id}' is defined {count} times.")
    for idx, keyword in enumerate(content.keywords):
        if keyword.is_empty:
            ctx.add(context, path(*where, "keywords", idx), f"keyword '{keyword.id}' has an empty span.")
        elif keyword.start < 0 or keyword.end > len(content.text):
            ctx.add(
                context,
                path(*where, "keywords", idx),
                f"keyword '{keyword.id}' [{keyword.start}, {keyword.end}) lies outside the text "
                f"(length {len(content.text)}).",
            )
    known = set(ids)
    for idx, rule in enumerate(content.change_rules):
        for cidx, condition in enumerate(rule.conditions):
            if condition.keyword not in known:
                ctx.add(
                    context,
                    path(*where, "change_rules", idx, "conditions", cidx),
                    f"references unknown keyword '{condition.keyword}'.",
                )
    for idx, rule in enumerate(content.result_rules):
        for keyword_id in sorted(rule.required_covered | rule.required_uncovered):
            if keyword_id not in known:
                ctx.add(
                    context,
                    path(*where, "result_rules", idx),
                    f"result '{rule.name}' references unknown keyword '{keyword_id}'.",
                )
    if content.budget is not None and content.budget < 0:
        ctx.add(context, path(*where, "budget"), "budget must not be negative.")


def validate_graph(graph: Graph) -> List[str]:
    """Return reference problems in ``graph``; none of them stop a session."""
    ctx = ValidationContext()
    if graph.start_id not in graph.nodes:
        ctx.add("Graph data", path("start"), f"references unknown node {graph.start_id}.")
    for node_id, node in sorted(graph.nodes.items()):
        context = f"Node {node_id}"
        for field_name, target in node_targets(node):
            if target is not None and target not in graph.nodes:
                ctx.add(context, f"{path('nodes', node_id)}.{field_name}", f"targets unknown node {target}.")
        if node.kind is NodeKind.LINEAR and node.next is None:
            ctx.add(context, path("nodes", node_id, "next"), "linear node has no 'next'.")
        if node.kind is NodeKind.BRANCH and node.default is None:
            if not any(not branch.conditions for branch in node.branches):
                ctx.add(
                    context,
                    path("nodes", node_id, "default"),
                    "branch node has no default; traversal holds when no branch matches.",
                )
        if node.kind is NodeKind.TIMED_CHALLENGE:
            for field_name, target in node_targets(node):
                if target is None:
                    ctx.add(context, path("nodes", node_id, field_name), "timed challenge is missing a target.")
        if node.content is not None:
            _validate_content(node_id, node.content, ctx)
    return ctx.errors


def report_graph_problems(graph: Graph) -> List[str]:
    problems = validate_graph(graph)
    for problem in problems:
        logger.warning("Graph configuration: %s", problem)
    return problems
