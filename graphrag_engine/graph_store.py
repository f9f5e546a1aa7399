"""Persisted node/edge store for the knowledge graph.

The store is a single JSON document (``{"version", "nodes", "edges"}``) on a
local volume, written atomically. Readers work on :meth:`GraphStore.snapshot`
copies so a query never observes a half-applied indexing batch.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .error_codes import StoreError
from .models import GraphEdge, GraphNode

logger = logging.getLogger(__name__)

GRAPH_STORE_VERSION = 1


@dataclass(frozen=True)
class GraphSnapshot:
    nodes: tuple[GraphNode, ...] = ()
    edges: tuple[GraphEdge, ...] = ()
    version: int = GRAPH_STORE_VERSION

    def has_node(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self.nodes)


@dataclass
class GraphStore:
    path: Path | None = None
    version: int = GRAPH_STORE_VERSION
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @classmethod
    def load(cls, path: Path | str | None) -> "GraphStore":
        """Load from ``path``; a missing file yields an empty store."""
        if path is None:
            return cls()
        p = Path(path)
        store = cls(path=p)
        if not p.exists():
            return store
        try:
            raw = p.read_text(encoding="utf-8")
            data: dict[str, Any] = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read graph store: {e}", path=str(p)) from e
        try:
            store.version = int(data.get("version") or GRAPH_STORE_VERSION)
            store.nodes = [GraphNode.from_dict(n) for n in data.get("nodes") or []]
            store.edges = [GraphEdge.from_dict(e) for e in data.get("edges") or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreError(f"Malformed graph store record: {e!r}", path=str(p)) from e
        return store

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            data = {
                "version": self.version,
                "nodes": [n.to_dict() for n in self.nodes],
                "edges": [e.to_dict() for e in self.edges],
            }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write graph store: {e}", path=str(self.path), write=True) from e

    def add_node(self, node: GraphNode) -> None:
        with self._lock:
            self.nodes.append(node)

    def add_edge(self, edge: GraphEdge) -> None:
        with self._lock:
            self.edges.append(edge)

    def merge(self, nodes: Iterable[GraphNode], edges: Iterable[GraphEdge]) -> None:
        """Append nodes whose id is new and all given edges."""
        with self._lock:
            known = {n.id: n for n in self.nodes}
            for node in nodes:
                existing = known.get(node.id)
                if existing is None:
                    self.nodes.append(node)
                    known[node.id] = node
                    continue
                backrefs = node.metadata.get("backrefs")
                if backrefs:
                    existing.metadata.setdefault("backrefs", []).extend(backrefs)
            self.edges.extend(edges)

    def node_ids(self) -> set[str]:
        with self._lock:
            return {n.id for n in self.nodes}

    def snapshot(self) -> GraphSnapshot:
        with self._lock:
            return GraphSnapshot(
                nodes=tuple(copy.deepcopy(self.nodes)),
                edges=tuple(copy.deepcopy(self.edges)),
                version=self.version,
            )

    def remove_document_cascade(self, document_id: str) -> tuple[int, int]:
        """Remove a document's projection from the graph.

        Drops nodes whose id or ``source_document_id`` equals ``document_id``,
        every edge touching a dropped node, every edge whose endpoint is the
        document id itself, and every edge extracted from the document
        (``metadata["doc_id"]``), which covers entity-to-entity relations.
        Returns ``(nodes_removed, edges_removed)``.
        """
        with self._lock:
            remove = {
                n.id
                for n in self.nodes
                if n.id == document_id or n.source_document_id == document_id
            }
            remove.add(document_id)
            before_nodes = len(self.nodes)
            before_edges = len(self.edges)
            self.nodes = [n for n in self.nodes if n.id not in remove]
            self.edges = [
                e
                for e in self.edges
                if e.from_id not in remove
                and e.to_id not in remove
                and e.metadata.get("doc_id") != document_id
            ]
            for node in self.nodes:
                backrefs = node.metadata.get("backrefs")
                if isinstance(backrefs, list):
                    node.metadata["backrefs"] = [
                        br for br in backrefs if not (isinstance(br, dict) and br.get("doc_id") == document_id)
                    ]
            removed = (before_nodes - len(self.nodes), before_edges - len(self.edges))
        if removed != (0, 0):
            logger.debug(
                "cascade delete",
                extra={"fields": {"document_id": document_id, "nodes": removed[0], "edges": removed[1]}},
            )
        return removed
