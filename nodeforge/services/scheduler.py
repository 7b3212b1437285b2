"""
Topological scheduler (Kahn's algorithm).

Cycles are not an error here: nodes on a cycle, and everything downstream
of one, never reach in-degree zero and are left out of the order.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable

from nodeforge.models.graph import Edge


def build_dependency_graph(
    node_ids: Iterable[str],
    edges: Iterable[Edge],
) -> tuple[dict[str, int], dict[str, list[str]]]:
    """
    Build dependency tracking structures from edges.

    Only edges whose endpoints are both in ``node_ids`` are counted; each edge
    counts once, so two edges between the same nodes add two to the in-degree
    and list the target twice in the adjacency.

    Returns:
        in_degree: count of incoming edges for each node
        adjacency: node -> downstream nodes, in edge order
    """
    in_degree: dict[str, int] = {nid: 0 for nid in node_ids}
    adjacency: dict[str, list[str]] = defaultdict(list)

    for edge in edges:
        src = edge.source_node_id
        tgt = edge.target_node_id
        if src in in_degree and tgt in in_degree:
            adjacency[src].append(tgt)
            in_degree[tgt] += 1

    return in_degree, adjacency


def compute_execution_order(
    node_ids: Iterable[str],
    edges: Iterable[Edge],
) -> list[str]:
    """
    Compute a valid run order.

    Ready nodes are taken in insertion/discovery order, so the result is
    stable for a given store.
    """
    in_degree, adjacency = build_dependency_graph(node_ids, edges)

    queue: deque[str] = deque(nid for nid, deg in in_degree.items() if deg == 0)
    order: list[str] = []

    while queue:
        nid = queue.popleft()
        order.append(nid)
        for neighbor in adjacency[nid]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return order


def find_unscheduled_nodes(node_ids: Iterable[str], order: list[str]) -> list[str]:
    """Nodes left out of ``order`` because they sit on or below a cycle."""
    scheduled = set(order)
    return [nid for nid in node_ids if nid not in scheduled]
