"""GraphRAG engine service.

FastAPI wrapper around :class:`graphrag_engine.pipeline.GraphRAGPipeline`:
- Document indexing as background jobs (inline records or a dataset folder)
- Cascade delete by document id
- Retrieval queries, BFS/DFS traversal, PageRank and community analytics
- Live configuration (GET/PUT) persisted to CONFIG_PATH
- Prometheus metrics and JSON request logging
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from fastapi import BackgroundTasks, Body, FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from graphrag_engine.community import CommunityDetectionConfig
from graphrag_engine.config import ConfigManager, GraphRAGConfig
from graphrag_engine.context import EngineContext
from graphrag_engine.error_codes import ConfigurationError, StoreError, classify_error
from graphrag_engine.index_store import IndexStore
from graphrag_engine.ingest import load_documents
from graphrag_engine.job_store import JobStore
from graphrag_engine.logging_utils import (
    REQUEST_ID_HEADER,
    configure_json_logging,
    get_request_id,
    log_http_request,
    new_request_id,
    set_request_id,
)
from graphrag_engine.models import Document, QueryConfig, RAGQuery, SearchStrategy
from graphrag_engine.pagerank import PageRankConfig
from graphrag_engine.pipeline import GraphRAGPipeline
from graphrag_engine.traversal import TraversalFilters

INDEX_DIR = os.getenv("INDEX_DIR", str(Path(__file__).with_name("data") / "index"))
JOBS_PATH = os.getenv("JOBS_PATH", str(Path(__file__).with_name("data") / "jobs.json"))
CONFIG_PATH = os.getenv("CONFIG_PATH", "").strip()

logger = logging.getLogger("graphrag_engine.app")


class DocumentIn(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = ""
    content: str = ""
    file_type: str = "text"
    embedding_model: str | None = None


class IndexRequest(BaseModel):
    documents: List[DocumentIn] = Field(default_factory=list)
    dataset_path: str | None = None


class QueryRequest(BaseModel):
    text: str = ""
    strategy: str | None = None
    max_results: int = Field(10, ge=1, le=100)
    similarity_threshold: float = Field(0.7, ge=0.0, le=1.0)
    use_reranking: bool = False
    use_hyde: bool = True
    use_community_detection: bool = True


class TraverseRequest(BaseModel):
    start_id: str = Field(..., min_length=1)
    mode: str = Field("bfs", pattern="^(bfs|dfs)$")
    allowed_relations: List[str] | None = None
    max_depth: int | None = Field(None, ge=0)
    max_nodes: int | None = Field(None, ge=0)
    max_edges: int | None = Field(None, ge=0)


@dataclass
class JobState:
    job_id: str
    kind: str
    state: str
    created_at: str
    updated_at: str
    detail: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "state": self.state,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "detail": self.detail,
        }


class JobManager:
    def __init__(self, *, store: JobStore) -> None:
        self._lock = threading.Lock()
        self._store = store
        self._jobs: dict[str, JobState] = {}
        for record in store.load_all():
            job = JobState(
                job_id=str(record.get("job_id")),
                kind=str(record.get("kind")),
                state=str(record.get("state")),
                created_at=str(record.get("created_at")),
                updated_at=str(record.get("updated_at")),
                detail=dict(record.get("detail") or {}),
            )
            # A job that was running when the process died will never finish.
            if job.state == "running":
                job.state = "interrupted"
            self._jobs[job.job_id] = job

    def create(self, kind: str, detail: dict[str, Any] | None = None) -> str:
        now = datetime.now(timezone.utc)
        job_id = now.strftime("%Y%m%dT%H%M%S%fZ") + "-" + uuid.uuid4().hex[:6]
        with self._lock:
            job = JobState(
                job_id=job_id,
                kind=kind,
                state="running",
                created_at=now.isoformat(),
                updated_at=now.isoformat(),
                detail=detail or {},
            )
            self._jobs[job_id] = job
            self._store.upsert(job.to_dict())
        return job_id

    def update(self, job_id: str, *, state: str | None = None, detail: dict[str, Any] | None = None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return
            if state is not None:
                job.state = state
            if detail is not None:
                job.detail = detail
            job.updated_at = now
            self._store.upsert(job.to_dict())

    def get(self, job_id: str) -> JobState | None:
        with self._lock:
            return self._jobs.get(job_id)


def _http_error(e: BaseException, *, stage: str, status_code: int, ctx: EngineContext) -> HTTPException:
    coded = classify_error(e=e, stage=stage)  # type: ignore[arg-type]
    ctx.metrics.inc_error(stage=coded.stage, code=coded.code)
    return HTTPException(status_code=status_code, detail={"error_code": coded.code, "message": coded.message})


def create_app(
    *,
    index_dir: str | Path | None = INDEX_DIR,
    jobs_path: str | Path | None = JOBS_PATH,
    config_path: str | Path | None = CONFIG_PATH or None,
) -> FastAPI:
    """Build the service; ``None`` paths keep that store in memory."""

    if config_path:
        config_manager = ConfigManager(path=Path(config_path))
    else:
        config_manager = ConfigManager(GraphRAGConfig.from_env())
    ctx = EngineContext(config_manager=config_manager)
    pipeline = GraphRAGPipeline(ctx, IndexStore(Path(index_dir) if index_dir else None))
    jobs = JobManager(store=JobStore(Path(jobs_path) if jobs_path else None))

    app = FastAPI(title="GraphRAG Engine", version="0.1.0")
    app.state.context = ctx
    app.state.pipeline = pipeline
    app.state.jobs = jobs

    @app.on_event("startup")
    def _startup() -> None:
        configure_json_logging(level=logging.INFO)

    @app.middleware("http")
    async def request_id_middleware(request, call_next):  # type: ignore[no-untyped-def]
        rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        set_request_id(rid)
        start = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            logger.exception(
                "http_exception",
                extra={
                    "fields": {
                        "method": request.method,
                        "path": request.url.path,
                    }
                },
            )
            raise
        finally:
            client = request.client.host if request.client is not None else None
            log_http_request(
                logger=logger,
                method=str(request.method),
                path=str(request.url.path),
                status_code=status_code,
                duration_ms=(time.time() - start) * 1000.0,
                client=client,
            )

        # echo back for clients & downstream logs
        response.headers[REQUEST_ID_HEADER] = get_request_id() or rid
        return response

    @app.get("/health")
    def health() -> dict[str, Any]:
        try:
            meta = pipeline.index_store.read_meta()
            documents = len(pipeline.index_store.list_documents())
        except StoreError as e:
            raise _http_error(e, stage="query", status_code=503, ctx=ctx)
        qm = ctx.metrics.query_metrics()
        return {
            "status": "ok",
            "documents": documents,
            "index_meta": meta.__dict__ if meta else None,
            "query_metrics": {
                "last_query_time_ms": qm.last_query_time_ms,
                "queries_processed": qm.queries_processed,
                "performance_score": qm.performance_score,
                "active_features": list(qm.active_features),
            },
        }

    @app.get("/metrics")
    def metrics() -> Response:
        body, content_type = ctx.metrics.render()
        # Raw exposition format, not JSON.
        return Response(content=body, media_type=content_type)

    @app.post("/documents")
    def index_documents(req: IndexRequest, background_tasks: BackgroundTasks) -> dict[str, Any]:
        if not req.documents and not req.dataset_path:
            raise HTTPException(
                status_code=400,
                detail={"error_code": "DOCUMENT_INVALID", "message": "Provide documents or dataset_path"},
            )
        docs = [
            Document(
                id=d.id,
                title=d.title,
                content=d.content,
                file_type=d.file_type,
                embedding_model=d.embedding_model,
            )
            for d in req.documents
        ]
        job_id = jobs.create("index", detail={"documents": len(docs), "dataset_path": req.dataset_path})

        def _run() -> None:
            try:
                warnings: list[str] = []
                if req.dataset_path:
                    loaded = load_documents(req.dataset_path)
                    docs.extend(loaded.documents)
                    warnings = loaded.warnings
                report = pipeline.index_documents(docs)
                jobs.update(
                    job_id,
                    state="succeeded",
                    detail={
                        "indexed": report.indexed,
                        "nodes_added": report.nodes_added,
                        "edges_added": report.edges_added,
                        "meta": report.meta.__dict__,
                        "warnings": warnings,
                    },
                )
            except Exception as e:
                coded = classify_error(e=e, stage="index")
                ctx.metrics.inc_error(stage=coded.stage, code=coded.code)
                logger.exception("index job failed", extra={"fields": {"job_id": job_id, "error_code": coded.code}})
                jobs.update(job_id, state="failed", detail={"error_code": coded.code, "error": coded.message})

        background_tasks.add_task(_run)
        return {"job_id": job_id}

    @app.get("/jobs/{job_id}")
    def job_status(job_id: str) -> dict[str, Any]:
        job = jobs.get(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        return job.to_dict()

    @app.get("/documents")
    def list_documents() -> dict[str, Any]:
        try:
            docs = pipeline.list_documents()
        except StoreError as e:
            raise _http_error(e, stage="query", status_code=503, ctx=ctx)
        items = []
        for d in docs:
            data = d.to_dict()
            data.pop("content", None)
            items.append(data)
        return {"documents": items, "count": len(items)}

    @app.delete("/documents")
    def delete_documents(ids: List[str] = Query(default=[])) -> dict[str, Any]:
        try:
            removed = pipeline.delete_documents(ids)
        except StoreError as e:
            raise _http_error(e, stage="delete", status_code=500, ctx=ctx)
        return {"removed": removed, "count": len(removed)}

    @app.post("/query")
    def query(req: QueryRequest) -> dict[str, Any]:
        q = RAGQuery(
            text=req.text,
            strategy=SearchStrategy.parse(req.strategy) if req.strategy else None,
            config=QueryConfig(
                max_results=req.max_results,
                similarity_threshold=req.similarity_threshold,
                use_reranking=req.use_reranking,
                use_hyde=req.use_hyde,
                use_community_detection=req.use_community_detection,
            ),
        )
        return pipeline.query(q).to_dict()

    @app.post("/traverse")
    def traverse(req: TraverseRequest) -> dict[str, Any]:
        filters = TraversalFilters(
            allowed_relations=req.allowed_relations,
            max_depth=req.max_depth,
            max_nodes=req.max_nodes,
            max_edges=req.max_edges,
        )
        try:
            result = pipeline.traverse(req.start_id, filters, mode=req.mode)
        except StoreError as e:
            raise _http_error(e, stage="traverse", status_code=503, ctx=ctx)
        return result.to_dict()

    @app.get("/graph/pagerank")
    def graph_pagerank(
        top: int = Query(20, ge=1, le=1000),
        damping: float = Query(0.85, gt=0.0, lt=1.0),
        iterations: int = Query(100, ge=1, le=1000),
    ) -> dict[str, Any]:
        try:
            scores = pipeline.pagerank(PageRankConfig(damping=damping, iterations=iterations))
        except StoreError as e:
            raise _http_error(e, stage="analytics", status_code=503, ctx=ctx)
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)[:top]
        return {
            "node_count": len(scores),
            "scores": [{"id": node_id, "score": score} for node_id, score in ranked],
        }

    @app.get("/graph/communities")
    def graph_communities(max_iterations: int = Query(50, ge=1, le=1000)) -> dict[str, Any]:
        try:
            groups = pipeline.communities(CommunityDetectionConfig(max_iterations=max_iterations))
        except StoreError as e:
            raise _http_error(e, stage="analytics", status_code=503, ctx=ctx)
        return {"count": len(groups), "communities": groups}

    @app.get("/config")
    def get_config() -> dict[str, Any]:
        return ctx.config.to_dict()

    @app.put("/config")
    def put_config(payload: dict[str, Any] = Body(...)) -> dict[str, Any]:
        try:
            merged = {**ctx.config.to_dict(), **payload}
            updated = config_manager.set(GraphRAGConfig.from_dict(merged))
        except ConfigurationError as e:
            raise _http_error(e, stage="config", status_code=400, ctx=ctx)
        except StoreError as e:
            raise _http_error(e, stage="config", status_code=500, ctx=ctx)
        logger.info("config updated", extra={"fields": {"keys": sorted(payload)}})
        return updated.to_dict()

    return app


app = create_app()
