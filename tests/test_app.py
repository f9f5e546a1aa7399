"""
HTTP-level tests for the FastAPI service.
"""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from graphrag_engine.logging_utils import REQUEST_ID_HEADER

DOCS = [
    {
        "id": "d1",
        "title": "Graph Theory",
        "content": "PageRank ranks nodes in a graph. Graph algorithms follow edges between nodes.",
    },
    {
        "id": "d2",
        "title": "Communities",
        "content": "Label propagation finds communities in a graph. Alice works at Acme.",
    },
    {"id": "d3", "title": "Cooking", "content": "Pasta needs boiling water and salt. Bob is a Chef."},
]


@pytest.fixture
def client(tmp_path):
    app = create_app(index_dir=tmp_path / "index", jobs_path=tmp_path / "jobs.json", config_path=None)
    return TestClient(app)


@pytest.fixture
def indexed_client(client):
    resp = client.post("/documents", json={"documents": DOCS})
    assert resp.status_code == 200
    return client


# ============================================================================
# Health, metrics and request ids
# ============================================================================

class TestOperational:

    def test_health_on_empty_index(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["documents"] == 0
        assert body["index_meta"] is None
        assert body["query_metrics"]["queries_processed"] == 0

    def test_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={REQUEST_ID_HEADER: "req-123"})
        assert resp.headers[REQUEST_ID_HEADER] == "req-123"

    def test_request_id_is_generated(self, client):
        assert client.get("/health").headers.get(REQUEST_ID_HEADER)

    def test_metrics_exposition(self, indexed_client):
        indexed_client.post("/query", json={"text": "graph"})
        resp = indexed_client.get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "graphrag_queries_total" in resp.text
        assert "graphrag_documents_indexed_total 3.0" in resp.text


# ============================================================================
# Documents and jobs
# ============================================================================

class TestDocuments:

    def test_index_job_succeeds(self, client):
        job_id = client.post("/documents", json={"documents": DOCS}).json()["job_id"]
        job = client.get(f"/jobs/{job_id}").json()
        assert job["kind"] == "index"
        assert job["state"] == "succeeded"
        assert job["detail"]["indexed"] == 3
        assert job["detail"]["meta"]["document_count"] == 3

    def test_empty_request_is_rejected(self, client):
        resp = client.post("/documents", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error_code"] == "DOCUMENT_INVALID"

    def test_missing_dataset_fails_the_job(self, client, tmp_path):
        job_id = client.post("/documents", json={"dataset_path": str(tmp_path / "nope")}).json()["job_id"]
        job = client.get(f"/jobs/{job_id}").json()
        assert job["state"] == "failed"
        assert job["detail"]["error_code"] == "DATASET_NOT_FOUND"

    def test_dataset_path(self, client, tmp_path):
        data = tmp_path / "dataset"
        data.mkdir()
        (data / "notes.txt").write_text("Alice works at Acme.", encoding="utf-8")
        job_id = client.post("/documents", json={"dataset_path": str(data)}).json()["job_id"]
        assert client.get(f"/jobs/{job_id}").json()["state"] == "succeeded"
        listed = client.get("/documents").json()
        assert [d["id"] for d in listed["documents"]] == ["notes.txt"]

    def test_unknown_job(self, client):
        resp = client.get("/jobs/missing")
        assert resp.status_code == 404

    def test_list_omits_content(self, indexed_client):
        body = indexed_client.get("/documents").json()
        assert body["count"] == 3
        assert all("content" not in d for d in body["documents"])
        assert {d["processing_status"]["state"] for d in body["documents"]} == {"completed"}

    def test_delete(self, indexed_client):
        body = indexed_client.delete("/documents", params={"ids": ["d1", "nope"]}).json()
        assert body == {"removed": ["d1"], "count": 1}
        assert indexed_client.get("/documents").json()["count"] == 2

    def test_delete_without_ids(self, indexed_client):
        assert indexed_client.delete("/documents").json() == {"removed": [], "count": 0}


# ============================================================================
# Query and graph endpoints
# ============================================================================

class TestRetrieval:

    def test_query(self, indexed_client):
        body = indexed_client.post("/query", json={"text": "graph communities", "strategy": "local"}).json()
        assert body["nodes"][0]["id"] == "d2"
        assert body["scores"][0] == pytest.approx(1.0)
        assert body["metadata"]["algorithms_used"][0] == "strategy:Local"
        assert body["metadata"]["strategy"] == "Local"

    def test_query_validation(self, indexed_client):
        assert indexed_client.post("/query", json={"text": "x", "max_results": 0}).status_code == 422

    def test_traverse(self, indexed_client):
        body = indexed_client.post(
            "/traverse",
            json={"start_id": "doc:d2", "mode": "dfs", "allowed_relations": ["mentions"], "max_depth": 1},
        ).json()
        assert body["visited_nodes"] == sorted(["doc:d2", "ent:Acme", "ent:Alice", "ent:Label"])

    def test_traverse_rejects_unknown_mode(self, indexed_client):
        assert indexed_client.post("/traverse", json={"start_id": "x", "mode": "walk"}).status_code == 422

    def test_pagerank(self, indexed_client):
        body = indexed_client.get("/graph/pagerank", params={"top": 2}).json()
        assert body["node_count"] > 3
        assert len(body["scores"]) == 2
        assert body["scores"][0]["score"] >= body["scores"][1]["score"]

    def test_communities(self, indexed_client):
        body = indexed_client.get("/graph/communities").json()
        assert body["count"] == len(body["communities"])
        assert body["count"] >= 1


# ============================================================================
# Configuration
# ============================================================================

class TestConfigEndpoints:

    def test_get_defaults(self, client):
        body = client.get("/config").json()
        assert body["hyde_enabled"] is True
        assert body["search_strategy"] == "Automatic"

    def test_put_merges(self, client):
        body = client.put("/config", json={"reranking_enabled": True}).json()
        assert body["reranking_enabled"] is True
        assert body["hyde_enabled"] is True
        assert client.get("/config").json()["reranking_enabled"] is True

    def test_put_applies_to_queries(self, indexed_client):
        indexed_client.put("/config", json={"synthesis_enabled": False})
        body = indexed_client.post("/query", json={"text": "graph"}).json()
        assert body["metadata"]["summary"] is None

    def test_put_invalid(self, client):
        resp = client.put("/config", json={"hyde_enabled": "yes"})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error_code"] == "CONFIG_INVALID"

    def test_put_write_failure_is_coded(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        app = create_app(index_dir=None, jobs_path=None, config_path=blocker / "config.json")
        client = TestClient(app)
        resp = client.put("/config", json={"reranking_enabled": True})
        assert resp.status_code == 500
        assert resp.json()["detail"]["error_code"] == "STORE_WRITE_FAILED"
        assert client.get("/config").json()["reranking_enabled"] is False
        sample = app.state.context.metrics.registry.get_sample_value(
            "graphrag_errors_total", {"stage": "config", "code": "STORE_WRITE_FAILED"}
        )
        assert sample == 1.0
