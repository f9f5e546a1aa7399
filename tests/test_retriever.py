"""
Tests for the retrieval pipeline orchestrator.
"""

import json

import pytest

import graphrag_engine.retriever as retriever_module
from graphrag_engine.config import GraphRAGConfig
from graphrag_engine.context import EngineContext
from graphrag_engine.graph_store import GraphSnapshot
from graphrag_engine.index_store import IndexStore
from graphrag_engine.models import Document, GraphEdge, GraphNode, QueryConfig, RAGQuery, SearchStrategy
from graphrag_engine.pipeline import GraphRAGPipeline
from graphrag_engine.retriever import Retriever, apply_fusion, mentions_degree


def _pipeline(config, docs=()):
    pipeline = GraphRAGPipeline(EngineContext.with_config(config), IndexStore())
    if docs:
        pipeline.index_documents(list(docs))
    return pipeline


# ============================================================================
# Result shape and normalization
# ============================================================================

class TestResultShape:

    def test_default_run(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph communities"))
        assert [n.id for n in result.nodes] == ["d2", "d1", "d3"]
        assert len(result.scores) == len(result.nodes)
        assert result.scores[0] == pytest.approx(1.0)
        assert all(0.0 <= s <= 1.0 for s in result.scores)
        assert result.metadata.total_documents_searched == 3
        assert result.metadata.algorithms_used == [
            "strategy:Automatic",
            "hyde",
            "pagerank_weighting",
            "community_boost",
            "hybrid_fusion",
            "cooccurrence_edges",
            "auto",
            "tfidf",
            "synthesis",
        ]

    def test_nodes_carry_stable_ids_and_raw_scores(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph communities"))
        top = result.nodes[0]
        assert top.id == "d2"
        assert top.source == "Communities"
        assert top.node_type == "document"
        assert top.score_proxy >= 0.0
        assert top.content.startswith("Label propagation")

    def test_stage_timings_recorded(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph"))
        assert {"hyde", "pagerank", "hybrid_fusion", "synthesis"} <= set(result.metadata.stage_timings_ms)

    def test_to_dict_uses_wire_names(self):
        pipeline = _pipeline(
            GraphRAGConfig(),
            [
                Document(id="a", title="A", content="alpha beta gamma"),
                Document(id="b", title="B", content="alpha beta delta"),
            ],
        )
        data = pipeline.query(RAGQuery(text="alpha")).to_dict()
        edge = data["edges"][0]
        assert {"from", "to", "relation", "weight"} <= set(edge)
        assert data["metadata"]["algorithms_used"][-1] == "synthesis"

    def test_title_is_used_when_content_is_empty(self):
        pipeline = _pipeline(GraphRAGConfig(), [Document(id="t", title="Only Title", content="")])
        result = pipeline.query(RAGQuery(text="title"))
        assert result.nodes[0].content == "Only Title"
        assert result.scores == [pytest.approx(1.0)]


# ============================================================================
# Degenerate inputs
# ============================================================================

class TestDegenerateInputs:

    def test_empty_corpus(self, pipeline):
        result = pipeline.query(RAGQuery(text="anything"))
        assert result.nodes == []
        assert result.scores == []
        assert result.edges == []
        assert "tfidf" in result.metadata.algorithms_used
        assert result.metadata.processing_time_ms > 0
        assert result.metadata.summary is None

    def test_empty_query_scores_zero(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(hybrid_enabled=False), sample_documents)
        result = pipeline.query(RAGQuery(text=""))
        assert len(result.nodes) == 3
        assert result.scores == [0.0, 0.0, 0.0]
        assert all(n.score_proxy == 0.0 for n in result.nodes)

    def test_unreadable_store_degrades_to_empty_corpus(self, tmp_path, context):
        (tmp_path / "documents.json").write_text("{corrupt", encoding="utf-8")
        retriever = Retriever(context, IndexStore(tmp_path))
        result = retriever.search(RAGQuery(text="graph"))
        assert result.nodes == []
        assert "tfidf" in result.metadata.algorithms_used
        sample = context.metrics.registry.get_sample_value(
            "graphrag_errors_total", {"stage": "query", "code": "STORE_READ_FAILED"}
        )
        assert sample == 1.0

    def test_document_record_without_id_degrades_to_empty_corpus(self, tmp_path, context):
        (tmp_path / "documents.json").write_text(json.dumps([{"title": "no id"}]), encoding="utf-8")
        result = Retriever(context, IndexStore(tmp_path)).search(RAGQuery(text="graph"))
        assert result.nodes == []
        sample = context.metrics.registry.get_sample_value(
            "graphrag_errors_total", {"stage": "query", "code": "STORE_READ_FAILED"}
        )
        assert sample == 1.0

    def test_graph_node_without_id_degrades_to_empty_corpus(self, tmp_path, context):
        docs = [Document(id="d1", title="A", content="graph"), Document(id="d2", title="B", content="rag")]
        (tmp_path / "documents.json").write_text(json.dumps([d.to_dict() for d in docs]), encoding="utf-8")
        (tmp_path / "graph_store.json").write_text(
            json.dumps({"version": 1, "nodes": [{"label": "orphan"}], "edges": []}), encoding="utf-8"
        )
        result = Retriever(context, IndexStore(tmp_path)).search(RAGQuery(text="graph"))
        assert result.nodes == []
        sample = context.metrics.registry.get_sample_value(
            "graphrag_errors_total", {"stage": "query", "code": "STORE_READ_FAILED"}
        )
        assert sample == 1.0

    def test_similarity_threshold_is_echoed(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph", config=QueryConfig(similarity_threshold=0.4)))
        assert result.metadata.similarity_threshold == 0.4
        assert result.to_dict()["metadata"]["similarity_threshold"] == 0.4
        assert len(result.nodes) == 3

    def test_single_result_skips_pairwise_stages(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph", config=QueryConfig(max_results=1)))
        assert len(result.nodes) == 1
        algos = result.metadata.algorithms_used
        assert "pagerank_weighting" not in algos
        assert "community_boost" not in algos
        assert "cooccurrence_edges" not in algos

    def test_max_results_has_floor_of_one(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph", config=QueryConfig(max_results=0)))
        assert len(result.nodes) == 1


# ============================================================================
# Optional stages and flags
# ============================================================================

class TestStageFlags:

    def test_query_reranking_sets_reranked(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph", config=QueryConfig(use_reranking=True)))
        assert result.metadata.reranked is True
        assert "advanced_rerank" in result.metadata.algorithms_used

    def test_no_reranking_by_default(self, indexed_pipeline):
        result = indexed_pipeline.query(RAGQuery(text="graph"))
        assert result.metadata.reranked is False
        assert "advanced_rerank" not in result.metadata.algorithms_used

    def test_config_reranking_also_reranks(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(reranking_enabled=True), sample_documents)
        assert pipeline.query(RAGQuery(text="graph")).metadata.reranked is True

    def test_synthesis_disabled_has_no_summary(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(synthesis_enabled=False), sample_documents)
        result = pipeline.query(RAGQuery(text="graph"))
        assert result.metadata.summary is None
        assert "synthesis" not in result.metadata.algorithms_used

    def test_synthesis_enabled_summarizes_top_documents(self, indexed_pipeline):
        summary = indexed_pipeline.query(RAGQuery(text="graph communities")).metadata.summary
        assert summary is not None
        assert len(summary) <= 512
        assert summary.startswith("Label propagation finds communities in a graph.")

    def test_hyde_flags(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(hyde_enabled=False), sample_documents)
        off = pipeline.query(RAGQuery(text="graph", config=QueryConfig(use_hyde=False)))
        on = pipeline.query(RAGQuery(text="graph", config=QueryConfig(use_hyde=True)))
        assert off.metadata.hyde_enhanced is False and "hyde" not in off.metadata.algorithms_used
        assert on.metadata.hyde_enhanced is True

    def test_community_flag(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(community_detection_enabled=False), sample_documents)
        result = pipeline.query(RAGQuery(text="graph", config=QueryConfig(use_community_detection=False)))
        assert result.metadata.community_filtered is False
        assert "community_boost" not in result.metadata.algorithms_used

    def test_cooccurrence_edges(self):
        pipeline = _pipeline(
            GraphRAGConfig(),
            [
                Document(id="a", title="A", content="alpha beta gamma"),
                Document(id="b", title="B", content="alpha beta delta"),
                Document(id="c", title="C", content="zzz"),
            ],
        )
        result = pipeline.query(RAGQuery(text="alpha"))
        assert len(result.edges) == 1
        edge = result.edges[0]
        assert edge.id in {"a-rel-b", "b-rel-a"}
        assert edge.relation == "related_to"
        assert edge.weight == pytest.approx(0.5)
        assert edge.confidence == pytest.approx(0.5)

    def test_time_budget_skips_remaining_stages(self, indexed_pipeline, monkeypatch):
        monkeypatch.setattr(retriever_module, "_elapsed_ms", lambda t0: 10_000.0)
        result = indexed_pipeline.query(RAGQuery(text="graph"))
        algos = result.metadata.algorithms_used
        assert "budget_exceeded" in algos
        assert "pagerank_weighting" not in algos
        assert "hybrid_fusion" not in algos
        assert result.metadata.summary is None
        assert len(result.scores) == len(result.nodes)


# ============================================================================
# Strategy and telemetry
# ============================================================================

class TestStrategyAndTelemetry:

    def test_explicit_strategy_wins(self, indexed_pipeline):
        q = RAGQuery(text="graph", strategy=SearchStrategy.GLOBAL)
        algos = indexed_pipeline.query(q, SearchStrategy.LOCAL).metadata.algorithms_used
        assert algos[0] == "strategy:Local"
        assert "local" in algos

    def test_query_strategy_then_config_default(self, sample_documents):
        pipeline = _pipeline(GraphRAGConfig(search_strategy=SearchStrategy.COMBINED), sample_documents)
        assert pipeline.query(RAGQuery(text="x", strategy=SearchStrategy.GLOBAL)).metadata.strategy == "Global"
        result = pipeline.query(RAGQuery(text="x"))
        assert result.metadata.algorithms_used[0] == "strategy:Combined"
        assert "combined" in result.metadata.algorithms_used

    def test_metrics_are_updated(self, indexed_pipeline):
        indexed_pipeline.query(RAGQuery(text="graph"))
        metrics = indexed_pipeline.context.metrics
        assert metrics.query_metrics().queries_processed == 1
        assert metrics.performance_metrics().total_time_ms > 0
        assert metrics.registry.get_sample_value("graphrag_queries_total", {"strategy": "auto"}) == 1.0


# ============================================================================
# Stage helpers
# ============================================================================

def test_mentions_degree_counts_document_and_owned_nodes():
    docs = [Document(id="d1", title="t")]
    graph = GraphSnapshot(
        nodes=(
            GraphNode(id="doc:d1", node_type="document", source_document_id="d1"),
            GraphNode(id="c1", source_document_id="d1"),
        ),
        edges=(
            GraphEdge(id="1", from_id="doc:d1", to_id="e1", relation="mentions"),
            GraphEdge(id="2", from_id="c1", to_id="e2", relation="mentions"),
            GraphEdge(id="3", from_id="d1", to_id="e3", relation="mentions"),
            GraphEdge(id="4", from_id="doc:d1", to_id="e4", relation="is_a"),
        ),
    )
    assert mentions_degree(docs, graph) == {"d1": 3.0}


def test_fusion_normalizes_weights():
    config = GraphRAGConfig(fusion_text_weight=1.0, fusion_graph_weight=1.0)
    fused = apply_fusion([(0, 2.0), (1, 1.0)], [0.0, 4.0], config)
    assert fused == [(1, pytest.approx(0.75)), (0, pytest.approx(0.5))]
