"""Community detection by label propagation.

Each node starts in its own community (or a caller-supplied seed label) and
repeatedly adopts the most frequent label among its out-neighbors. Updates
are synchronous: every node in a sweep reads the labels of the previous
sweep, which keeps the result independent of visiting order. Ties go to the
smallest label so runs are deterministic.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .graph import GraphAccess

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommunityDetectionConfig:
    resolution: float = 1.0
    max_iterations: int = 50
    stability_threshold: float = 1e-4
    # Used as starting labels only when the length matches the node count.
    seed_labels: Sequence[int] | None = None


class CommunityDetectionEngine:
    def __init__(self, config: CommunityDetectionConfig | None = None) -> None:
        self.config = config or CommunityDetectionConfig()

    def _initial_labels(self, n: int) -> List[int]:
        seeds = self.config.seed_labels
        if seeds is not None and len(seeds) == n:
            return [int(x) for x in seeds]
        return list(range(n))

    def detect_communities(self, graph: GraphAccess) -> List[List[int]]:
        n = graph.node_count()
        if n == 0:
            return []

        labels = self._initial_labels(n)
        target = 1.0 - float(self.config.stability_threshold)
        sweeps = 0
        for _ in range(max(0, int(self.config.max_iterations))):
            sweeps += 1
            nxt = list(labels)
            unchanged = 0
            for u in range(n):
                counts = Counter(labels[v] for v in graph.out_neighbors(u) if 0 <= v < n)
                if counts:
                    best_count = max(counts.values())
                    nxt[u] = min(lab for lab, c in counts.items() if c == best_count)
                if nxt[u] == labels[u]:
                    unchanged += 1
            labels = nxt
            if unchanged / n >= target:
                break

        groups: Dict[int, List[int]] = {}
        for node, lab in enumerate(labels):
            groups.setdefault(lab, []).append(node)
        logger.debug("label propagation: %d communities after %d sweeps", len(groups), sweeps)
        return [members for _lab, members in sorted(groups.items()) if members]
