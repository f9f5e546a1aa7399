"""Domain records shared by the indexing and retrieval paths.

Documents and graph elements are plain dataclasses so they can be copied into
per-query snapshots and serialised to JSON by the stores without an ORM.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def now_ms() -> float:
    return time.time() * 1000.0


class SearchStrategy(str, Enum):
    AUTOMATIC = "Automatic"
    LOCAL = "Local"
    GLOBAL = "Global"
    COMBINED = "Combined"

    @classmethod
    def parse(cls, value: Any) -> "SearchStrategy":
        """Lenient parse; unknown or empty values fall back to Automatic."""
        if isinstance(value, SearchStrategy):
            return value
        raw = str(value or "").strip().lower()
        for member in cls:
            if raw in {member.value.lower(), member.tag}:
                return member
        return cls.AUTOMATIC

    @property
    def tag(self) -> str:
        return "auto" if self is SearchStrategy.AUTOMATIC else self.value.lower()


@dataclass(frozen=True)
class ProcessingStatus:
    """Indexing state of a document.

    ``state`` is one of ``pending``, ``processing``, ``completed`` or ``failed``.
    """

    state: str = "pending"
    progress_value: float | None = None
    error: str | None = None

    @classmethod
    def pending(cls) -> "ProcessingStatus":
        return cls(state="pending")

    @classmethod
    def processing(cls, progress: float) -> "ProcessingStatus":
        return cls(state="processing", progress_value=max(0.0, min(1.0, float(progress))))

    @classmethod
    def completed(cls) -> "ProcessingStatus":
        return cls(state="completed")

    @classmethod
    def failed(cls, error: str) -> "ProcessingStatus":
        return cls(state="failed", error=error)

    def is_completed(self) -> bool:
        return self.state == "completed"

    def is_failed(self) -> bool:
        return self.state == "failed"

    def progress(self) -> float | None:
        if self.state == "processing":
            return self.progress_value
        return None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"state": self.state}
        if self.state == "processing":
            out["progress"] = self.progress_value
        if self.state == "failed":
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: Any) -> "ProcessingStatus":
        if isinstance(data, str):
            return cls(state=data.strip().lower() or "pending")
        if not isinstance(data, dict):
            return cls.pending()
        state = str(data.get("state") or "pending").strip().lower()
        if state == "processing":
            return cls.processing(float(data.get("progress") or 0.0))
        if state == "failed":
            return cls.failed(str(data.get("error") or ""))
        return cls(state=state)


@dataclass
class Document:
    id: str
    title: str
    content: str = ""
    file_type: str = "text"
    size_bytes: int = 0
    created_at: float = field(default_factory=now_ms)
    indexed_at: float = 0.0
    node_count: int = 0
    embedding_model: str | None = None
    processing_status: ProcessingStatus = field(default_factory=ProcessingStatus.pending)

    @property
    def text(self) -> str:
        """Body used for scoring; falls back to the title when content is empty."""
        return self.content if self.content else self.title

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["processing_status"] = self.processing_status.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        content = str(data.get("content") or "")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            content=content,
            file_type=str(data.get("file_type") or "text"),
            size_bytes=int(data.get("size_bytes") or len(content.encode("utf-8"))),
            created_at=float(data.get("created_at") or now_ms()),
            indexed_at=float(data.get("indexed_at") or 0.0),
            node_count=int(data.get("node_count") or 0),
            embedding_model=data.get("embedding_model"),
            processing_status=ProcessingStatus.from_dict(data.get("processing_status")),
        )


@dataclass
class GraphNode:
    id: str
    label: str | None = None
    node_type: str = "entity"
    source_document_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphNode":
        return cls(
            id=str(data["id"]),
            label=data.get("label"),
            node_type=str(data.get("node_type") or "entity"),
            source_document_id=data.get("source_document_id"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class GraphEdge:
    id: str
    from_id: str
    to_id: str
    relation: str
    weight: float = 1.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        # "from" is a keyword, so the wire name differs from the attribute.
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "relation": self.relation,
            "weight": self.weight,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphEdge":
        return cls(
            id=str(data["id"]),
            from_id=str(data.get("from", data.get("from_id"))),
            to_id=str(data.get("to", data.get("to_id"))),
            relation=str(data.get("relation") or "related_to"),
            weight=float(data.get("weight", 1.0)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class QueryConfig:
    max_results: int = 10
    similarity_threshold: float = 0.7
    use_reranking: bool = False
    use_hyde: bool = True
    use_community_detection: bool = True


@dataclass
class RAGQuery:
    text: str
    strategy: SearchStrategy | None = None
    config: QueryConfig = field(default_factory=QueryConfig)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=now_ms)


@dataclass(frozen=True)
class ResultNode:
    id: str
    content: str
    score_proxy: float
    source: str | None = None
    node_type: str = "document"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResultEdge:
    id: str
    from_id: str
    to_id: str
    relation: str
    weight: float
    confidence: float
    created_at: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "relation": self.relation,
            "weight": self.weight,
            "confidence": self.confidence,
            "created_at": self.created_at,
        }


@dataclass
class ResultMetadata:
    processing_time_ms: float
    total_documents_searched: int
    reranked: bool
    hyde_enhanced: bool
    community_filtered: bool
    algorithms_used: list[str]
    strategy: str = SearchStrategy.AUTOMATIC.value
    summary: str | None = None
    stage_timings_ms: dict[str, float] = field(default_factory=dict)
    similarity_threshold: float | None = None


@dataclass
class RAGResult:
    query_id: str
    nodes: list[ResultNode]
    edges: list[ResultEdge]
    scores: list[float]
    metadata: ResultMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": self.query_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "scores": list(self.scores),
            "metadata": asdict(self.metadata),
        }
