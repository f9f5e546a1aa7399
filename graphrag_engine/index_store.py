from __future__ import annotations

import copy
import hashlib
import json
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .error_codes import StoreError
from .graph_store import GraphStore
from .models import Document


@dataclass(frozen=True)
class IndexMeta:
    version: str
    updated_at: str
    document_count: int
    node_count: int
    edge_count: int


class IndexStore:
    """Document index plus graph store under one directory.

    ``root=None`` keeps everything in memory, which is what tests and the
    CLI's dry runs use.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self._lock = threading.RLock()
        self.root = Path(root) if root is not None else None
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
            self.meta_path: Path | None = self.root / "index_meta.json"
            self.documents_path: Path | None = self.root / "documents.json"
            graph_path: Path | None = self.root / "graph_store.json"
        else:
            self.meta_path = None
            self.documents_path = None
            graph_path = None
        self._documents: dict[str, Document] = {}
        self._loaded = False
        self.graph = GraphStore(path=graph_path)
        self._graph_loaded = graph_path is None

    def has_index(self) -> bool:
        if self.documents_path is None:
            return bool(self._documents)
        return self.documents_path.exists()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self.documents_path is None or not self.documents_path.exists():
            return
        try:
            raw = self.documents_path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else []
        except (OSError, json.JSONDecodeError) as e:
            self._loaded = False
            raise StoreError(f"Failed to read document index: {e}", path=str(self.documents_path)) from e
        try:
            docs = [Document.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self._loaded = False
            raise StoreError(
                f"Malformed document index record: {e!r}", path=str(self.documents_path)
            ) from e
        for doc in docs:
            self._documents[doc.id] = doc

    def graph_store(self) -> GraphStore:
        with self._lock:
            if not self._graph_loaded:
                self.graph = GraphStore.load(self.graph.path)
                self._graph_loaded = True
            return self.graph

    def read_meta(self) -> IndexMeta | None:
        if self.meta_path is None or not self.meta_path.exists():
            return None
        data = json.loads(self.meta_path.read_text(encoding="utf-8"))
        return IndexMeta(**data)

    def list_documents(self) -> list[Document]:
        with self._lock:
            self._ensure_loaded()
            return list(self._documents.values())

    def get(self, doc_id: str) -> Document | None:
        with self._lock:
            self._ensure_loaded()
            return self._documents.get(doc_id)

    def snapshot(self) -> list[Document]:
        """Owned copies of every document, in insertion order."""
        with self._lock:
            self._ensure_loaded()
            return copy.deepcopy(list(self._documents.values()))

    def upsert(self, docs: Iterable[Document]) -> int:
        count = 0
        with self._lock:
            self._ensure_loaded()
            for doc in docs:
                self._documents[doc.id] = doc
                count += 1
        return count

    def delete(self, ids: Iterable[str]) -> list[str]:
        removed: list[str] = []
        with self._lock:
            self._ensure_loaded()
            for doc_id in ids:
                if self._documents.pop(doc_id, None) is not None:
                    removed.append(doc_id)
        return removed

    def save(self) -> IndexMeta:
        with self._lock:
            docs = list(self._documents.values())
            graph = self.graph_store()
            meta = IndexMeta(
                version=compute_corpus_version(docs),
                updated_at=datetime.now(timezone.utc).isoformat(),
                document_count=len(docs),
                node_count=len(graph.nodes),
                edge_count=len(graph.edges),
            )
            if self.root is None:
                return meta
            assert self.documents_path is not None and self.meta_path is not None
            try:
                _write_atomic(self.documents_path, [d.to_dict() for d in docs])
                _write_atomic(self.meta_path, meta.__dict__)
            except OSError as e:
                raise StoreError(f"Failed to write document index: {e}", path=str(self.root), write=True) from e
            graph.save()
            return meta


def _write_atomic(path: Path, payload: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def compute_corpus_version(docs: list[Document]) -> str:
    """Fast fingerprint based on document id + size + indexed_at.

    Avoids hashing full document bodies.
    """

    h = hashlib.sha256()
    for d in sorted(docs, key=lambda x: x.id):
        h.update(d.id.encode("utf-8", errors="ignore"))
        h.update(b"\0")
        h.update(str(d.size_bytes).encode("utf-8"))
        h.update(b"\0")
        h.update(str(int(d.indexed_at)).encode("utf-8"))
        h.update(b"\n")
    return h.hexdigest()[:16]
