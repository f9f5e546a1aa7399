"""Retrieval pipeline: TF-IDF scoring plus optional graph-flavoured stages.

One :class:`Retriever.search` call works on owned snapshots of the document
index and graph store, so concurrent queries share nothing mutable. Stages
run in a fixed order:

1. load snapshots (a store failure degrades to an empty corpus)
2. TF-IDF base scoring, after optional HyDE token expansion
3. top-K selection
4. centrality weighting (``score *= 1 + 0.2 * centrality``)
5. community boosting (``score *= 1 + 0.15 * neighbor_ratio``)
6. deterministic tie-break rerank
7. hybrid text/graph fusion on ``mentions`` degree
8. co-occurrence edges between results
9. extractive synthesis

Each optional stage is timed; timings land in the result metadata and the
context's metrics sink.
"""

from __future__ import annotations

import logging
import time
from typing import AbstractSet, Dict, List, Sequence, Tuple

from .config import GraphRAGConfig
from .context import EngineContext
from .error_codes import StoreError, classify_error
from .graph_store import GraphSnapshot
from .hyde import HyDEEngine
from .index_store import IndexStore
from .logging_utils import log_retrieval, query_id_var
from .metrics import PerformanceMetrics
from .models import (
    Document,
    RAGQuery,
    RAGResult,
    ResultEdge,
    ResultMetadata,
    ResultNode,
    SearchStrategy,
    now_ms,
)
from .reranking import stabilize
from .similarity import centrality, cooccurrence_pairs, neighbor_counts, normalize_by_max
from .synthesis import extractive_summary
from .tfidf import TfidfScorer, tokenize

logger = logging.getLogger(__name__)

CENTRALITY_ALPHA = 0.2
COMMUNITY_BETA = 0.15
COMMUNITY_THRESHOLD = 0.25
COOCCURRENCE_THRESHOLD = 0.2

Scored = List[Tuple[int, float]]


def _sort_desc(scored: Scored) -> None:
    # list.sort is stable, so equal scores keep their previous relative order.
    scored.sort(key=lambda x: x[1], reverse=True)


def _elapsed_ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000.0


def apply_centrality(top: Scored, sets: Sequence[AbstractSet[str]], alpha: float = CENTRALITY_ALPHA) -> Scored:
    cent = centrality(sets)
    out = [(idx, s * (1.0 + alpha * cent[i])) for i, (idx, s) in enumerate(top)]
    _sort_desc(out)
    return out


def apply_community_boost(
    top: Scored,
    sets: Sequence[AbstractSet[str]],
    *,
    beta: float = COMMUNITY_BETA,
    threshold: float = COMMUNITY_THRESHOLD,
) -> Scored:
    counts = neighbor_counts(sets, threshold=threshold)
    max_cnt = max(counts) if counts else 0
    if max_cnt <= 0:
        return list(top)
    out = [(idx, s * (1.0 + beta * counts[i] / max_cnt)) for i, (idx, s) in enumerate(top)]
    _sort_desc(out)
    return out


def mentions_degree(docs: Sequence[Document], graph: GraphSnapshot) -> Dict[str, float]:
    """Number of ``mentions`` edges touching each document.

    An edge endpoint counts for a document when it is the document id itself,
    its ``doc:<id>`` node, or any node whose ``source_document_id`` is the id.
    """
    doc_ids = {d.id for d in docs}
    owner: Dict[str, str] = {f"doc:{d.id}": d.id for d in docs}
    for node in graph.nodes:
        if node.source_document_id in doc_ids:
            owner[node.id] = node.source_document_id
    degree: Dict[str, float] = {}
    for edge in graph.edges:
        if edge.relation != "mentions":
            continue
        for endpoint in (edge.from_id, edge.to_id):
            doc_id = endpoint if endpoint in doc_ids else owner.get(endpoint)
            if doc_id is not None:
                degree[doc_id] = degree.get(doc_id, 0.0) + 1.0
    return degree


def apply_fusion(top: Scored, graph_scores: Sequence[float], config: GraphRAGConfig) -> Scored:
    text_w, graph_w = config.fusion_weights()
    t_norm = normalize_by_max([s for _, s in top])
    g_norm = normalize_by_max(graph_scores)
    out = [(idx, text_w * t_norm[i] + graph_w * g_norm[i]) for i, (idx, _) in enumerate(top)]
    _sort_desc(out)
    return out


class Retriever:
    """Ranks indexed documents for a query.

    Configuration and metrics come from the :class:`EngineContext`; the
    config is read once per query so a concurrent ``PUT /config`` never
    changes a query mid-flight.
    """

    def __init__(self, context: EngineContext, index_store: IndexStore) -> None:
        self.context = context
        self.index_store = index_store

    def _load(self, want_graph: bool) -> Tuple[List[Document], GraphSnapshot]:
        try:
            docs = self.index_store.snapshot()
            graph = self.index_store.graph_store().snapshot() if want_graph else GraphSnapshot()
        except StoreError as e:
            coded = classify_error(e=e, stage="query")
            self.context.metrics.inc_error(stage=coded.stage, code=coded.code)
            logger.warning(
                "store load failed; searching an empty corpus",
                extra={"fields": {"error_code": coded.code, "error": coded.message}},
            )
            return [], GraphSnapshot()
        return docs, graph

    def search(self, query: RAGQuery, strategy: SearchStrategy | None = None) -> RAGResult:
        token = query_id_var.set(query.id)
        try:
            return self._search(query, strategy)
        finally:
            query_id_var.reset(token)

    def _search(self, query: RAGQuery, strategy: SearchStrategy | None) -> RAGResult:
        t0 = time.perf_counter()
        config = self.context.config
        qcfg = query.config
        strategy = SearchStrategy.parse(strategy or query.strategy or config.search_strategy)
        algorithms: List[str] = [f"strategy:{strategy.value}"]
        timings: Dict[str, float] = {}
        budget = float(config.max_query_time_ms)

        def over_budget() -> bool:
            if budget > 0 and _elapsed_ms(t0) > budget:
                if "budget_exceeded" not in algorithms:
                    algorithms.append("budget_exceeded")
                    logger.warning("query time budget exceeded", extra={"fields": {"budget_ms": budget}})
                return True
            return False

        docs, graph = self._load(want_graph=config.hybrid_enabled)

        tokens = tokenize(query.text)
        hyde_on = qcfg.use_hyde or config.hyde_enabled
        if hyde_on:
            ts = time.perf_counter()
            algorithms.append("hyde")
            tokens = HyDEEngine.expand_tokens(tokens)
            timings["hyde"] = _elapsed_ms(ts)

        scorer = TfidfScorer([d.text for d in docs])
        scored = scorer.score_all(tokens)
        _sort_desc(scored)
        top: Scored = scored[: max(1, int(qcfg.max_results))]

        def top_sets() -> List[AbstractSet[str]]:
            return [scorer.token_sets[idx] for idx, _ in top]

        if config.pagerank_enabled and len(top) > 1 and not over_budget():
            ts = time.perf_counter()
            algorithms.append("pagerank_weighting")
            top = apply_centrality(top, top_sets())
            timings["pagerank"] = _elapsed_ms(ts)

        community_on = qcfg.use_community_detection or config.community_detection_enabled
        if community_on and len(top) > 1 and not over_budget():
            ts = time.perf_counter()
            algorithms.append("community_boost")
            top = apply_community_boost(top, top_sets())
            timings["community_detection"] = _elapsed_ms(ts)

        reranked = False
        if (qcfg.use_reranking or config.reranking_enabled) and not over_budget():
            ts = time.perf_counter()
            algorithms.append("advanced_rerank")
            top = stabilize(top)
            reranked = True
            timings["reranking"] = _elapsed_ms(ts)

        if config.hybrid_enabled and top and not over_budget():
            ts = time.perf_counter()
            algorithms.append("hybrid_fusion")
            degree = mentions_degree(docs, graph)
            top = apply_fusion(top, [degree.get(docs[idx].id, 0.0) for idx, _ in top], config)
            timings["hybrid_fusion"] = _elapsed_ms(ts)

        nodes = [
            ResultNode(
                id=docs[idx].id,
                content=docs[idx].text,
                score_proxy=max(0.0, s),
                source=docs[idx].title,
            )
            for idx, s in top
        ]
        scores = normalize_by_max([s for _, s in top])

        edges: List[ResultEdge] = []
        if len(top) > 1:
            algorithms.append("cooccurrence_edges")
            created_at = now_ms()
            for i, j, w in cooccurrence_pairs(top_sets(), threshold=COOCCURRENCE_THRESHOLD):
                src, tgt = docs[top[i][0]].id, docs[top[j][0]].id
                edges.append(
                    ResultEdge(
                        id=f"{src}-rel-{tgt}",
                        from_id=src,
                        to_id=tgt,
                        relation="related_to",
                        weight=w,
                        confidence=min(1.0, max(0.0, w)),
                        created_at=created_at,
                    )
                )

        algorithms.append(strategy.tag)
        algorithms.append("tfidf")

        summary = None
        if config.synthesis_enabled and top and not over_budget():
            ts = time.perf_counter()
            algorithms.append("synthesis")
            summary = extractive_summary(docs[idx].text for idx, _ in top)
            timings["synthesis"] = _elapsed_ms(ts)

        # Always report a positive duration, even for an empty corpus on a coarse clock.
        total_ms = max(_elapsed_ms(t0), 1e-3)
        self.context.metrics.record_query(
            strategy=strategy.tag,
            performance=PerformanceMetrics.from_stage_timings(timings, total_ms),
            corpus_size=len(docs),
            max_time_ms=config.max_query_time_ms,
            max_memory_mb=config.max_memory_mb,
            active_features=config.active_features(),
        )
        log_retrieval(
            logger=logger,
            strategy=strategy.value,
            results=len(nodes),
            corpus_size=len(docs),
            duration_ms=total_ms,
            algorithms=algorithms,
            stage_timings_ms=timings,
        )

        return RAGResult(
            query_id=query.id,
            nodes=nodes,
            edges=edges,
            scores=scores,
            metadata=ResultMetadata(
                processing_time_ms=total_ms,
                total_documents_searched=len(docs),
                reranked=reranked,
                hyde_enhanced=hyde_on,
                community_filtered=community_on,
                algorithms_used=algorithms,
                strategy=strategy.value,
                summary=summary,
                stage_timings_ms=timings,
                similarity_threshold=qcfg.similarity_threshold,
            ),
        )
