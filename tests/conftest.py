"""
Shared fixtures for the graphrag_engine test suite.
"""

import os
import tempfile

# The service module builds its default app at import time; keep its files out of the repo.
_TMP = tempfile.mkdtemp(prefix="graphrag-tests-")
os.environ.setdefault("INDEX_DIR", os.path.join(_TMP, "index"))
os.environ.setdefault("JOBS_PATH", os.path.join(_TMP, "jobs.json"))

import pytest

from graphrag_engine.config import GraphRAGConfig
from graphrag_engine.context import EngineContext
from graphrag_engine.graph_store import GraphSnapshot
from graphrag_engine.index_store import IndexStore
from graphrag_engine.models import Document, GraphEdge, GraphNode
from graphrag_engine.pipeline import GraphRAGPipeline


@pytest.fixture
def sample_documents():
    """Three small documents: two about graphs, one unrelated."""
    return [
        Document(
            id="d1",
            title="Graph Theory",
            content="PageRank ranks nodes in a graph. Graph algorithms follow edges between nodes.",
        ),
        Document(
            id="d2",
            title="Communities",
            content="Label propagation finds communities in a graph. Alice works at Acme.",
        ),
        Document(
            id="d3",
            title="Cooking",
            content="Pasta needs boiling water and salt. Bob is a Chef.",
        ),
    ]


@pytest.fixture
def context():
    """Engine context with default configuration and its own metric registry."""
    return EngineContext.with_config(GraphRAGConfig())


@pytest.fixture
def pipeline(context):
    """In-memory pipeline with no documents."""
    return GraphRAGPipeline(context, IndexStore())


@pytest.fixture
def indexed_pipeline(pipeline, sample_documents):
    """In-memory pipeline with the sample documents indexed."""
    pipeline.index_documents(sample_documents)
    return pipeline


@pytest.fixture
def chain_graph():
    """A -r-> B -r-> C, plus C -s-> D."""
    nodes = tuple(GraphNode(id=i, label=i) for i in ("A", "B", "C", "D"))
    edges = (
        GraphEdge(id="e1", from_id="A", to_id="B", relation="r"),
        GraphEdge(id="e2", from_id="B", to_id="C", relation="r"),
        GraphEdge(id="e3", from_id="C", to_id="D", relation="s"),
    )
    return GraphSnapshot(nodes=nodes, edges=edges)
