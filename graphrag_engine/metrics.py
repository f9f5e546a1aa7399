from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Iterable

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, Histogram, generate_latest
from prometheus_client import Counter

STAGES = ("hyde", "pagerank", "community_detection", "reranking", "hybrid_fusion", "synthesis")

_LATENCY_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


@dataclass(frozen=True)
class PerformanceMetrics:
    """Per-stage wall-clock timings of the most recent query, in milliseconds."""

    hyde_time_ms: float = 0.0
    community_detection_time_ms: float = 0.0
    pagerank_time_ms: float = 0.0
    reranking_time_ms: float = 0.0
    hybrid_fusion_time_ms: float = 0.0
    synthesis_time_ms: float = 0.0
    total_time_ms: float = 0.0

    @classmethod
    def from_stage_timings(cls, timings: dict[str, float], total_ms: float) -> "PerformanceMetrics":
        return cls(
            hyde_time_ms=timings.get("hyde", 0.0),
            community_detection_time_ms=timings.get("community_detection", 0.0),
            pagerank_time_ms=timings.get("pagerank", 0.0),
            reranking_time_ms=timings.get("reranking", 0.0),
            hybrid_fusion_time_ms=timings.get("hybrid_fusion", 0.0),
            synthesis_time_ms=timings.get("synthesis", 0.0),
            total_time_ms=total_ms,
        )


@dataclass(frozen=True)
class QueryMetrics:
    last_query_time_ms: float = 0.0
    memory_usage_mb: float = 0.0
    queries_processed: int = 0
    cache_hit_rate: float = 0.0
    active_features: tuple[str, ...] = ()
    performance_score: float = 0.0


def performance_score(time_ms: float, memory_mb: float, *, max_time_ms: float, max_memory_mb: float) -> float:
    """0-100 score: half for staying under the time budget, half for memory."""
    time_score = 0.0
    if max_time_ms > 0:
        time_score = max(0.0, max_time_ms - time_ms) / max_time_ms * 50.0
    memory_score = 0.0
    if max_memory_mb > 0:
        memory_score = (max_memory_mb - memory_mb) / max_memory_mb * 50.0
    return min(100.0, max(0.0, time_score + memory_score))


@dataclass
class Metrics:
    registry: CollectorRegistry
    queries_total: Counter
    query_seconds: Histogram
    stage_seconds: Histogram
    documents_indexed_total: Counter
    documents_deleted_total: Counter
    corpus_documents: Gauge
    errors_total: Counter
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _query: QueryMetrics = field(default_factory=QueryMetrics, repr=False)
    _performance: PerformanceMetrics = field(default_factory=PerformanceMetrics, repr=False)

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def record_query(
        self,
        *,
        strategy: str,
        performance: PerformanceMetrics,
        corpus_size: int,
        max_time_ms: float,
        max_memory_mb: float,
        active_features: Iterable[str] = (),
        memory_mb: float = 0.0,
    ) -> None:
        self.queries_total.labels(strategy=strategy).inc()
        self.query_seconds.observe(performance.total_time_ms / 1000.0)
        for stage in STAGES:
            ms = getattr(performance, f"{stage}_time_ms")
            if ms > 0:
                self.stage_seconds.labels(stage=stage).observe(ms / 1000.0)
        self.corpus_documents.set(float(corpus_size))
        with self._lock:
            self._performance = performance
            self._query = replace(
                self._query,
                last_query_time_ms=performance.total_time_ms,
                memory_usage_mb=memory_mb,
                queries_processed=self._query.queries_processed + 1,
                active_features=tuple(active_features),
                performance_score=performance_score(
                    performance.total_time_ms,
                    memory_mb,
                    max_time_ms=max_time_ms,
                    max_memory_mb=max_memory_mb,
                ),
            )

    def inc_error(self, *, stage: str, code: str) -> None:
        self.errors_total.labels(stage=str(stage), code=str(code)).inc()

    def query_metrics(self) -> QueryMetrics:
        with self._lock:
            return self._query

    def performance_metrics(self) -> PerformanceMetrics:
        with self._lock:
            return self._performance


def create_metrics() -> Metrics:
    # Use a dedicated registry so several engines (or test cases) never share collectors.
    registry = CollectorRegistry(auto_describe=True)

    queries_total = Counter(
        "graphrag_queries_total",
        "Total retrieval queries",
        ["strategy"],
        registry=registry,
    )
    query_seconds = Histogram(
        "graphrag_query_seconds",
        "End-to-end retrieval latency",
        buckets=_LATENCY_BUCKETS,
        registry=registry,
    )
    stage_seconds = Histogram(
        "graphrag_stage_seconds",
        "Retrieval latency per optional pipeline stage",
        ["stage"],
        buckets=_LATENCY_BUCKETS,
        registry=registry,
    )
    documents_indexed_total = Counter(
        "graphrag_documents_indexed_total",
        "Documents upserted into the index",
        registry=registry,
    )
    documents_deleted_total = Counter(
        "graphrag_documents_deleted_total",
        "Documents removed from the index",
        registry=registry,
    )
    corpus_documents = Gauge(
        "graphrag_corpus_documents",
        "Documents in the corpus snapshot of the last query",
        registry=registry,
    )
    errors_total = Counter(
        "graphrag_errors_total",
        "Total classified errors",
        ["stage", "code"],
        registry=registry,
    )

    return Metrics(
        registry=registry,
        queries_total=queries_total,
        query_seconds=query_seconds,
        stage_seconds=stage_seconds,
        documents_indexed_total=documents_indexed_total,
        documents_deleted_total=documents_deleted_total,
        corpus_documents=corpus_documents,
        errors_total=errors_total,
    )
