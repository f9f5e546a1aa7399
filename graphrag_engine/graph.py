"""Index-space graph views used by the PageRank and label propagation engines.

Both engines only need ``node_count()`` and ``out_neighbors(u)``; anything that
provides them (a list of adjacency lists, a projection of the graph store, a
test double) can be scored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol, Sequence

from .models import GraphEdge, GraphNode


class GraphAccess(Protocol):
    def node_count(self) -> int: ...

    def out_neighbors(self, u: int) -> Sequence[int]: ...


@dataclass
class AdjacencyGraph:
    adj: List[List[int]] = field(default_factory=list)

    def node_count(self) -> int:
        return len(self.adj)

    def out_neighbors(self, u: int) -> Sequence[int]:
        return self.adj[u]

    @classmethod
    def from_edges(cls, n: int, edges: Iterable[tuple[int, int]]) -> "AdjacencyGraph":
        adj: List[List[int]] = [[] for _ in range(n)]
        for u, v in edges:
            if 0 <= u < n and 0 <= v < n:
                adj[u].append(v)
        return cls(adj=adj)


@dataclass
class StoreProjection:
    """A graph store mapped onto dense indices, preserving the stable ids."""

    graph: AdjacencyGraph
    node_ids: List[str]
    index_of: Dict[str, int]

    def node_count(self) -> int:
        return self.graph.node_count()

    def out_neighbors(self, u: int) -> Sequence[int]:
        return self.graph.out_neighbors(u)


def project(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
    *,
    undirected: bool = False,
    allowed_relations: Iterable[str] | None = None,
) -> StoreProjection:
    """Project store nodes/edges onto index space.

    Edges with an endpoint missing from ``nodes`` are skipped. Node order
    follows the store order so results are reproducible.
    """
    node_ids: List[str] = []
    index_of: Dict[str, int] = {}
    for node in nodes:
        if node.id in index_of:
            continue
        index_of[node.id] = len(node_ids)
        node_ids.append(node.id)

    allowed = set(allowed_relations) if allowed_relations is not None else None
    pairs: List[tuple[int, int]] = []
    for edge in edges:
        if allowed is not None and edge.relation not in allowed:
            continue
        u = index_of.get(edge.from_id)
        v = index_of.get(edge.to_id)
        if u is None or v is None:
            continue
        pairs.append((u, v))
        if undirected and u != v:
            pairs.append((v, u))

    graph = AdjacencyGraph.from_edges(len(node_ids), pairs)
    return StoreProjection(graph=graph, node_ids=node_ids, index_of=index_of)
