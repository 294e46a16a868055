import json
from pathlib import Path

import pytest

from blackout.nodes import BranchNode, NodeKind, TimedChallengeNode
from blackout.schema import graph_from_mapping, load_graph, path, validate_graph
from blackout.variables import Comparison, Operation


def write_graph(tmp_path: Path, graph: dict) -> Path:
    graph_path = tmp_path / "graph.json"
    graph_path.write_text(json.dumps(graph))
    return graph_path


def minimal_graph(**overrides) -> dict:
    graph = {
        "title": "Test",
        "start": 1,
        "nodes": [
            {"id": 1, "kind": "linear", "next": 2, "content": {"text": "Gold here"}},
            {"id": 2, "kind": "terminal", "ending": "done"},
        ],
    }
    graph.update(overrides)
    return graph


@pytest.mark.parametrize(
    ("graph", "match"),
    [
        ([], "JSON object"),
        ({"nodes": []}, "start"),
        ({"start": 1, "nodes": "nope"}, "nodes"),
        ({"start": 1, "nodes": [{"kind": "terminal"}]}, "missing an integer 'id'"),
        ({"start": 1, "nodes": [{"id": 1, "kind": "portal"}]}, "unsupported node kind"),
        ({"start": 1, "nodes": [{"id": 1, "kind": "terminal"}, {"id": 1, "kind": "terminal"}]}, "duplicate"),
        ({"start": 1, "variables": {"X": "high"}, "nodes": []}, "variables"),
        (
            {"start": 1, "nodes": [{"id": 1, "kind": "timed_challenge", "outcome_variable": "E", "deadline": "soon"}]},
            "deadline",
        ),
    ],
)
def test_load_graph_rejects_invalid_shapes(tmp_path: Path, graph, match: str) -> None:
    graph_path = write_graph(tmp_path, graph)
    with pytest.raises(ValueError, match=match):
        load_graph(graph_path)


def test_shape_errors_are_collected_with_paths() -> None:
    data = minimal_graph()
    data["nodes"][0]["content"]["keywords"] = [{"id": "K1", "start": "0", "end": 4}]
    data["nodes"][0]["content"]["change_rules"] = [
        {"modifications": [{"variable": "X", "op": "pow", "value": 2}]}
    ]
    with pytest.raises(ValueError) as excinfo:
        graph_from_mapping(data)
    message = str(excinfo.value)
    assert message.startswith("Invalid graph:\n- ")
    assert "nodes[1].content.keywords[0]" in message
    assert "nodes[1].content.change_rules[0].modifications[0].op" in message


def test_decodes_every_node_kind() -> None:
    graph = graph_from_mapping(
        {
            "title": "All kinds",
            "start": "1",
            "variables": {"X": 2},
            "nodes": {
                "1": {
                    "kind": "branch",
                    "branches": [
                        {
                            "name": "rich",
                            "conditions": [{"variable": "X", "comparison": ">=", "value": 10}],
                            "target": 2,
                        },
                        {
                            "conditions": [{"variable": "X", "comparison": "range", "value": 0, "upper": 5}],
                            "target": 3,
                        },
                    ],
                    "default": 4,
                    "content": {
                        "text": "Gold here",
                        "budget": 3,
                        "keywords": [{"id": "gold", "start": 0, "end": 4}],
                        "change_rules": [
                            {
                                "conditions": [{"keyword": "gold", "covered": False}],
                                "modifications": [{"variable": "X", "op": "//", "value": 2}],
                            }
                        ],
                        "result_rules": [{"name": "kept", "uncovered": ["gold"], "deltas": {"greed": 1}}],
                    },
                },
                "2": {"kind": "timed_challenge", "deadline": 3, "outcome_variable": "E",
                      "success_target": 4, "failure_target": 3},
                "3": {"kind": "linear", "next": 4},
                "4": {"kind": "terminal", "ending": "end"},
            },
        }
    )
    assert graph.start_id == 1
    assert graph.title == "All kinds"
    assert graph.variables == {"X": 2.0}
    branch = graph.nodes[1]
    assert isinstance(branch, BranchNode)
    assert branch.branches[0].conditions[0].comparison is Comparison.GREATER_OR_EQUAL
    assert branch.branches[1].conditions[0].upper == 5.0
    assert branch.content.change_rules[0].modifications[0].operation is Operation.DIVIDE_AND_FLOOR
    assert branch.content.change_rules[0].conditions[0].covered is False
    assert branch.content.result_rules[0].required_uncovered == frozenset({"gold"})
    assert branch.content.budget == 3
    timed = graph.nodes[2]
    assert isinstance(timed, TimedChallengeNode)
    assert timed.deadline == 3.0
    assert graph.nodes[4].kind is NodeKind.TERMINAL
    assert validate_graph(graph) == []


def test_validate_reports_broken_references() -> None:
    data = minimal_graph(start=7)
    data["nodes"][0]["next"] = 42
    data["nodes"][0]["content"] = {
        "text": "Gold here",
        "budget": -1,
        "keywords": [
            {"id": "gold", "start": 0, "end": 4},
            {"id": "gold", "start": 5, "end": 9},
            {"id": "far", "start": 5, "end": 40},
            {"id": "empty", "start": 3, "end": 3},
        ],
        "change_rules": [{"conditions": [{"keyword": "silver"}], "modifications": []}],
        "result_rules": [{"name": "r", "covered": ["bronze"], "deltas": {}}],
    }
    data["nodes"].append({"id": 3, "kind": "branch", "branches": [{"conditions": [
        {"variable": "X", "comparison": "gt", "value": 1}], "target": 2}]})
    data["nodes"].append({"id": 4, "kind": "timed_challenge", "outcome_variable": "E", "success_target": 2})
    errors = validate_graph(graph_from_mapping(data))
    joined = "\n".join(errors)
    assert "start: Graph data: references unknown node 7." in errors
    assert "nodes[1].next: Node 1: targets unknown node 42." in errors
    assert "defined 2 times" in joined
    assert "'far' [5, 40) lies outside the text" in joined
    assert "'empty' has an empty span" in joined
    assert "unknown keyword 'silver'" in joined
    assert "unknown keyword 'bronze'" in joined
    assert "budget must not be negative" in joined
    assert "nodes[3].default: Node 3: branch node has no default" in joined
    assert "nodes[4].failure_target: Node 4: timed challenge is missing a target." in errors


def test_path_formatting() -> None:
    assert path("nodes", 3, "content", "keywords", 0) == "nodes[3].content.keywords[0]"
    assert path("variables", "two words") == 'variables["two words"]'


def test_missing_deadline_is_left_for_the_session() -> None:
    graph = graph_from_mapping(
        {"start": 1, "nodes": [{"id": 1, "kind": "timed_challenge", "outcome_variable": "E"}]}
    )
    assert graph.nodes[1].deadline is None
