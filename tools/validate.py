#!/usr/bin/env python3
"""Validate an authored Blackout graph for common authoring mistakes."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_GRAPH = REPO_ROOT / "stories" / "sample.json"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from blackout.schema import load_graph, validate_graph
from tools.list_unreachable import find_unreachable


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate a Blackout story graph.")
    parser.add_argument(
        "graph_path",
        nargs="?",
        default=str(DEFAULT_GRAPH),
        help="Path to the graph JSON file.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> None:
    args = parse_args(argv[1:])
    graph_path = Path(args.graph_path).resolve()
    try:
        graph = load_graph(graph_path)
    except json.JSONDecodeError as exc:
        print(f"Failed to parse JSON from {graph_path}: {exc}")
        sys.exit(1)
    except ValueError as exc:
        print("Validation failed (path: message):")
        for line in str(exc).splitlines()[1:]:
            print(f" {line}")
        sys.exit(1)

    errors = validate_graph(graph)
    if errors:
        print("Validation failed (path: message):")
        for err in errors:
            print(f" - {err}")
        sys.exit(1)

    unreachable = find_unreachable(graph)
    if unreachable:
        print("Unreachable node warnings:")
        for node_id in unreachable:
            print(f" - nodes[{node_id}]: not reachable from start node {graph.start_id}")

    print(f"Validation passed for {graph_path}.")


if __name__ == "__main__":
    main(sys.argv)
