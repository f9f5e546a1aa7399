from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Mapping

from .community import CommunityDetectionConfig, CommunityDetectionEngine
from .graph import project
from .pagerank import PageRankConfig, PageRankEngine
from .traversal import GraphView

logger = logging.getLogger(__name__)


def pagerank_scores(
    store: GraphView,
    config: PageRankConfig | None = None,
    *,
    personalization: Mapping[str, float] | None = None,
    allowed_relations: List[str] | None = None,
) -> Dict[str, float]:
    """PageRank over the directed store graph, keyed by node id.

    ``personalization`` maps node ids to teleport weights; ids not in the
    store are ignored and unlisted nodes get weight 0.
    """
    config = config or PageRankConfig()
    proj = project(store.nodes, store.edges, allowed_relations=allowed_relations)
    if personalization:
        vec = [0.0] * len(proj.node_ids)
        for node_id, weight in personalization.items():
            idx = proj.index_of.get(node_id)
            if idx is not None:
                vec[idx] = float(weight)
        config = replace(config, personalization=vec)
    ranks = PageRankEngine(config).score_nodes(proj)
    return {node_id: ranks[i] for i, node_id in enumerate(proj.node_ids)}


def detect_communities(
    store: GraphView,
    config: CommunityDetectionConfig | None = None,
    *,
    allowed_relations: List[str] | None = None,
) -> List[List[str]]:
    """Label propagation over the undirected store graph; largest community first."""
    proj = project(store.nodes, store.edges, undirected=True, allowed_relations=allowed_relations)
    groups = CommunityDetectionEngine(config).detect_communities(proj)
    out = [[proj.node_ids[i] for i in members] for members in groups]
    out.sort(key=len, reverse=True)
    logger.debug("detected %d communities over %d nodes", len(out), len(proj.node_ids))
    return out
