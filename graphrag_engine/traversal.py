"""Breadth- and depth-first traversal over the persisted graph.

Edges are walked in both directions. Relation allow-lists, depth and
node/edge budgets bound the walk; an unknown start node yields an empty
result rather than an error.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Sequence

from .models import GraphEdge, GraphNode


class GraphView(Protocol):
    @property
    def nodes(self) -> Sequence[GraphNode]: ...

    @property
    def edges(self) -> Sequence[GraphEdge]: ...


@dataclass(frozen=True)
class TraversalFilters:
    allowed_relations: Sequence[str] | None = None
    max_depth: int | None = None
    max_nodes: int | None = None
    max_edges: int | None = None


@dataclass
class TraversalResult:
    visited_nodes: set[str] = field(default_factory=set)
    visited_edges: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "visited_nodes": sorted(self.visited_nodes),
            "visited_edges": sorted(self.visited_edges),
        }


_UNBOUNDED = float("inf")


def build_adjacency(store: GraphView, filters: TraversalFilters) -> Dict[str, List[GraphEdge]]:
    allowed = set(filters.allowed_relations) if filters.allowed_relations is not None else None
    adj: Dict[str, List[GraphEdge]] = {}
    for e in store.edges:
        if allowed is not None and e.relation not in allowed:
            continue
        adj.setdefault(e.from_id, []).append(e)
        adj.setdefault(e.to_id, []).append(e)
    return adj


def _limits(filters: TraversalFilters) -> tuple[float, float, float]:
    def bound(value: int | None) -> float:
        return _UNBOUNDED if value is None else max(0, int(value))

    return bound(filters.max_depth), bound(filters.max_nodes), bound(filters.max_edges)


def _other_end(edge: GraphEdge, node_id: str) -> str:
    return edge.to_id if edge.from_id == node_id else edge.from_id


def _has_start(store: GraphView, start_id: str) -> bool:
    return any(n.id == start_id for n in store.nodes)


def bfs(store: GraphView, start_id: str, filters: TraversalFilters | None = None) -> TraversalResult:
    filters = filters or TraversalFilters()
    result = TraversalResult()
    max_depth, max_nodes, max_edges = _limits(filters)
    if not _has_start(store, start_id) or max_nodes < 1:
        return result

    adj = build_adjacency(store, filters)
    visited_n, visited_e = result.visited_nodes, result.visited_edges
    queue: deque[tuple[str, int]] = deque([(start_id, 0)])
    visited_n.add(start_id)

    while queue:
        node_id, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for edge in adj.get(node_id, []):
            if len(visited_e) >= max_edges:
                break
            other = _other_end(edge, node_id)
            if other in visited_n and edge.id in visited_e:
                continue
            visited_e.add(edge.id)
            if len(visited_n) < max_nodes and other not in visited_n:
                visited_n.add(other)
                queue.append((other, depth + 1))
        if len(visited_n) >= max_nodes:
            break
    return result


def dfs(store: GraphView, start_id: str, filters: TraversalFilters | None = None) -> TraversalResult:
    filters = filters or TraversalFilters()
    result = TraversalResult()
    max_depth, max_nodes, max_edges = _limits(filters)
    if not _has_start(store, start_id) or max_nodes < 1:
        return result

    adj = build_adjacency(store, filters)
    visited_n, visited_e = result.visited_nodes, result.visited_edges
    stack: list[tuple[str, int]] = [(start_id, 0)]

    while stack:
        if len(visited_n) >= max_nodes:
            break
        node_id, depth = stack.pop()
        if node_id in visited_n:
            continue
        visited_n.add(node_id)
        if depth >= max_depth:
            continue
        for edge in adj.get(node_id, []):
            if len(visited_e) >= max_edges:
                break
            other = _other_end(edge, node_id)
            if other in visited_n and edge.id in visited_e:
                continue
            visited_e.add(edge.id)
            stack.append((other, depth + 1))
    return result


def traverse(
    store: GraphView,
    start_id: str,
    filters: TraversalFilters | None = None,
    *,
    mode: str = "bfs",
) -> TraversalResult:
    if mode.strip().lower() == "dfs":
        return dfs(store, start_id, filters)
    return bfs(store, start_id, filters)
