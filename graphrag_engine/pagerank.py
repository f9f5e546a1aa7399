"""PageRank centrality by power iteration.

Works on any :class:`~graphrag_engine.graph.GraphAccess`. Teleportation follows
an optional personalization vector and rank held by dangling nodes (no
out-neighbors) is redistributed by an optional dangling distribution, so the
ranks always sum to 1 regardless of topology.

Malformed vectors are never an error: negative or non-finite entries are
clamped to 0, the vector is renormalised, and a vector of the wrong length or
with no positive mass falls back to uniform.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .graph import GraphAccess

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageRankConfig:
    damping: float = 0.85
    iterations: int = 100
    convergence_threshold: float = 1e-6
    personalization: Sequence[float] | None = None
    dangling_distribution: Sequence[float] | None = None


def normalize_distribution(values: Sequence[float] | None, n: int) -> np.ndarray:
    """Clamp to non-negative finite values and scale to sum 1 (uniform fallback)."""
    uniform = np.full(n, 1.0 / n, dtype=np.float64)
    if values is None:
        return uniform
    if len(values) != n:
        logger.debug("distribution length %d does not match %d nodes; using uniform", len(values), n)
        return uniform
    vec = np.asarray(values, dtype=np.float64)
    vec = np.where(np.isfinite(vec), vec, 0.0)
    vec = np.clip(vec, 0.0, None)
    total = float(vec.sum())
    if total <= 0:
        return uniform
    return vec / total


class PageRankEngine:
    def __init__(self, config: PageRankConfig | None = None) -> None:
        self.config = config or PageRankConfig()

    def score_nodes(self, graph: GraphAccess) -> List[float]:
        n = graph.node_count()
        if n == 0:
            return []

        damping = float(self.config.damping)
        if not 0.0 < damping < 1.0:
            damping = min(max(damping, 0.0), 1.0)

        teleport = normalize_distribution(self.config.personalization, n)
        dangling_dist = normalize_distribution(self.config.dangling_distribution, n)

        src: List[int] = []
        dst: List[int] = []
        out_degree = np.zeros(n, dtype=np.float64)
        for u in range(n):
            for v in graph.out_neighbors(u):
                if 0 <= v < n:
                    src.append(u)
                    dst.append(v)
                    out_degree[u] += 1.0
        src_arr = np.asarray(src, dtype=np.int64)
        dst_arr = np.asarray(dst, dtype=np.int64)
        dangling = out_degree == 0
        inv_degree = np.zeros(n, dtype=np.float64)
        inv_degree[~dangling] = 1.0 / out_degree[~dangling]

        rank = np.full(n, 1.0 / n, dtype=np.float64)
        iterations = max(0, int(self.config.iterations))
        used = 0
        for _ in range(iterations):
            used += 1
            nxt = (1.0 - damping) * teleport
            if src_arr.size:
                contrib = rank[src_arr] * inv_degree[src_arr]
                nxt = nxt + damping * np.bincount(dst_arr, weights=contrib, minlength=n)
            dangling_mass = float(rank[dangling].sum())
            if dangling_mass > 0:
                nxt = nxt + damping * dangling_mass * dangling_dist
            diff = float(np.abs(nxt - rank).sum())
            rank = nxt
            if diff < self.config.convergence_threshold:
                break

        logger.debug("pagerank finished after %d iterations over %d nodes", used, n)
        return [float(x) for x in rank]
