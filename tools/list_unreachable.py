import sys
from pathlib import Path
from typing import Dict, List, Set

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_GRAPH_PATH = REPO_ROOT / "stories" / "sample.json"

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from blackout.nodes import Graph
from blackout.schema import load_graph


def traverse_from(start_node: int, edges: Dict[int, List[int]]) -> Set[int]:
    if start_node not in edges:
        return set()
    visited = set()
    stack = [start_node]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        stack.extend(edges.get(current, []))
    return visited


def find_unreachable(graph: Graph) -> List[int]:
    edges = graph.edges()
    return sorted(set(edges) - traverse_from(graph.start_id, edges))


def main() -> None:
    graph_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_GRAPH_PATH
    graph = load_graph(graph_path)
    edges = graph.edges()
    reached = traverse_from(graph.start_id, edges)
    unreachable = find_unreachable(graph)

    print(f"Graph file: {graph_path}")
    print(f"Total nodes: {len(edges)}")
    print(f"Reachable nodes: {len(reached)}")
    if unreachable:
        print("Unreachable nodes:")
        for node_id in unreachable:
            print(f"  - {node_id}")
    else:
        print(f"All nodes reachable from start node {graph.start_id}.")


if __name__ == "__main__":
    main()
