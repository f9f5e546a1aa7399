"""Indexing, deletion and query facade over one index directory.

Writers (``index_documents`` / ``delete_documents``) are serialized by a
single lock; readers work on snapshots and never take it.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence

from .analytics import detect_communities, pagerank_scores
from .community import CommunityDetectionConfig
from .context import EngineContext
from .error_codes import classify_error
from .extractor import EntityExtractor
from .index_store import IndexMeta, IndexStore
from .models import Document, ProcessingStatus, RAGQuery, RAGResult, SearchStrategy, now_ms
from .pagerank import PageRankConfig
from .retriever import Retriever
from .traversal import TraversalFilters, TraversalResult, traverse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexReport:
    indexed: int
    nodes_added: int
    edges_added: int
    meta: IndexMeta


def _batches(docs: Sequence[Document], size: int) -> Iterable[Sequence[Document]]:
    size = max(1, int(size))
    for i in range(0, len(docs), size):
        yield docs[i : i + size]


class GraphRAGPipeline:
    def __init__(self, context: EngineContext | None = None, index_store: IndexStore | None = None) -> None:
        self.context = context or EngineContext()
        self.index_store = index_store or IndexStore()
        self.retriever = Retriever(self.context, self.index_store)
        self._write_lock = threading.Lock()

    def index_documents(self, docs: Iterable[Document]) -> IndexReport:
        """Upsert documents and rebuild their graph projection.

        Input records are copied; the stored copies carry ``indexed_at``,
        ``processing_status=completed`` and the extracted ``node_count``.
        """
        pending = [copy.deepcopy(d) for d in docs]
        with self._write_lock:
            try:
                return self._index_unlocked(pending)
            except Exception as e:
                coded = classify_error(e=e, stage="index")
                self.context.metrics.inc_error(stage=coded.stage, code=coded.code)
                logger.error("indexing failed", extra={"fields": {"error_code": coded.code, "error": coded.message}})
                raise

    def _index_unlocked(self, docs: List[Document]) -> IndexReport:
        graph = self.index_store.graph_store()
        batch_size = self.context.config.batch_size
        nodes_added = edges_added = 0

        for n, batch in enumerate(_batches(docs, batch_size), start=1):
            for doc in batch:
                graph.remove_document_cascade(doc.id)

            extractor = EntityExtractor(existing=graph.snapshot())
            for doc in batch:
                if not doc.size_bytes:
                    doc.size_bytes = len(doc.content.encode("utf-8"))
                doc.node_count = extractor.extract_document(doc)
                doc.indexed_at = now_ms()
                doc.processing_status = ProcessingStatus.completed()

            before_nodes, before_edges = len(graph.nodes), len(graph.edges)
            graph.merge(extractor.nodes, extractor.edges)
            nodes_added += len(graph.nodes) - before_nodes
            edges_added += len(graph.edges) - before_edges
            self.index_store.upsert(batch)
            logger.info(
                "indexed batch",
                extra={"fields": {"batch": n, "documents": len(batch), "total": len(docs)}},
            )

        meta = self.index_store.save()
        self.context.metrics.documents_indexed_total.inc(len(docs))
        self.context.metrics.corpus_documents.set(float(meta.document_count))
        return IndexReport(indexed=len(docs), nodes_added=nodes_added, edges_added=edges_added, meta=meta)

    def delete_documents(self, ids: Iterable[str]) -> List[str]:
        """Remove documents and cascade into the graph; returns the ids that existed."""
        ids = [str(i) for i in ids]
        if not ids:
            return []
        with self._write_lock:
            try:
                removed = self.index_store.delete(ids)
                graph = self.index_store.graph_store()
                cascaded = [graph.remove_document_cascade(doc_id) for doc_id in ids]
                if removed or any(c != (0, 0) for c in cascaded):
                    self.index_store.save()
            except Exception as e:
                coded = classify_error(e=e, stage="delete")
                self.context.metrics.inc_error(stage=coded.stage, code=coded.code)
                raise
        self.context.metrics.documents_deleted_total.inc(len(removed))
        logger.info("deleted documents", extra={"fields": {"requested": len(ids), "removed": len(removed)}})
        return removed

    def list_documents(self) -> List[Document]:
        return self.index_store.snapshot()

    def query(self, q: RAGQuery, strategy: SearchStrategy | None = None) -> RAGResult:
        return self.retriever.search(q, strategy)

    def traverse(
        self,
        start_id: str,
        filters: TraversalFilters | None = None,
        *,
        mode: str = "bfs",
    ) -> TraversalResult:
        snapshot = self.index_store.graph_store().snapshot()
        return traverse(snapshot, start_id, filters, mode=mode)

    def pagerank(
        self,
        config: PageRankConfig | None = None,
        *,
        personalization: Mapping[str, float] | None = None,
    ) -> Dict[str, float]:
        return pagerank_scores(self.index_store.graph_store().snapshot(), config, personalization=personalization)

    def communities(self, config: CommunityDetectionConfig | None = None) -> List[List[str]]:
        return detect_communities(self.index_store.graph_store().snapshot(), config)
