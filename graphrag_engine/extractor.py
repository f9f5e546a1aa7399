"""Heuristic entity and relationship extraction.

This is deliberately a deterministic stub rather than real NLP:

- every document becomes a ``document`` node (``doc:<id>``);
- each TitleCase token of three or more characters in a passage becomes an
  ``entity`` node (``ent:<label>``) with a ``mentions`` edge from the document;
- two sentence patterns, ``X is a Y`` and ``X works at Y``, produce ``is_a``
  and ``works_at`` edges between entities.

Entities are deduplicated by normalised label. Ids that would collide within
an extraction pass get a ``#2``, ``#3``, ... suffix.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple

from .chunker import MarkdownChunker
from .models import Document, GraphEdge, GraphNode
from .traversal import GraphView

_TOKEN_RE = re.compile(r"[^\W_]+")
_SENTENCE_RE = re.compile(r"[.!?]")

Triple = Tuple[str, str, str]


def normalize_label(label: str) -> str:
    return " ".join(label.split()).lower()


def simple_relation_extraction(passage: str) -> List[Triple]:
    triples: List[Triple] = []
    for sent in _SENTENCE_RE.split(passage):
        s = sent.strip()
        if not s:
            continue
        idx = s.find(" is a ")
        if idx >= 0:
            subj = _subject(s[:idx])
            obj = " ".join(s[idx + len(" is a ") :].split()[:4]).strip(",")
            if subj and obj:
                triples.append((subj, "is_a", obj))
                continue
        idx = s.find(" works at ")
        if idx >= 0:
            subj = _subject(s[:idx])
            obj = s[idx + len(" works at ") :].strip().strip(",").strip()
            if subj and obj:
                triples.append((subj, "works_at", obj))
    return triples


def _subject(left: str) -> str:
    # A sentence can start on the line after a heading; keep only the last line.
    lines = [ln for ln in left.splitlines() if ln.strip()]
    if not lines:
        return ""
    return lines[-1].strip().lstrip("#").strip()


def _is_title_case(token: str) -> bool:
    return len(token) >= 3 and token[0].isupper()


class EntityExtractor:
    """Extract document/entity nodes and edges for a batch of documents."""

    def __init__(self, existing: GraphView | None = None, chunker: MarkdownChunker | None = None) -> None:
        self.chunker = chunker or MarkdownChunker(max_len=500)
        self.entity_map: Dict[str, str] = {}
        self.existing_ids: Set[str] = set()
        self.nodes: List[GraphNode] = []
        self.edges: List[GraphEdge] = []
        self._entity_nodes: Dict[str, GraphNode] = {}
        if existing is not None:
            for node in existing.nodes:
                self.existing_ids.add(node.id)
                if node.node_type == "entity" and node.label:
                    self.entity_map.setdefault(normalize_label(node.label), node.id)
            for edge in existing.edges:
                self.existing_ids.add(edge.id)

    def _unique_id(self, base: str) -> str:
        if base not in self.existing_ids:
            self.existing_ids.add(base)
            return base
        i = 2
        while True:
            cand = f"{base}#{i}"
            if cand not in self.existing_ids:
                self.existing_ids.add(cand)
                return cand
            i += 1

    def _ensure_entity(self, label: str) -> str:
        key = normalize_label(label)
        eid = self.entity_map.get(key)
        if eid is not None:
            return eid
        eid = self._unique_id(f"ent:{label}")
        self.entity_map[key] = eid
        node = GraphNode(
            id=eid,
            label=label,
            node_type="entity",
            source_document_id=None,
            metadata={"aliases": [label], "backrefs": []},
        )
        self.nodes.append(node)
        self._entity_nodes[eid] = node
        return eid

    def _backref_target(self, eid: str) -> GraphNode:
        node = self._entity_nodes.get(eid)
        if node is None:
            # Entity already lives in the store; carry backrefs on a stub the store merges.
            node = GraphNode(id=eid, node_type="entity", metadata={"backrefs": []})
            self._entity_nodes[eid] = node
            self.nodes.append(node)
        return node

    def extract_document(self, doc: Document) -> int:
        """Extract one document; returns its node count (document + distinct entities)."""
        doc_node_id = self._unique_id(f"doc:{doc.id}")
        self.nodes.append(
            GraphNode(
                id=doc_node_id,
                label=doc.title,
                node_type="document",
                source_document_id=doc.id,
                metadata={
                    "file_type": doc.file_type,
                    "size_bytes": doc.size_bytes,
                    "created_at": doc.created_at,
                },
            )
        )

        backrefs: Dict[str, List[Dict[str, Any]]] = {}
        for pidx, passage in enumerate(self.chunker.chunk(doc.content)):
            seen: Set[str] = set()
            for token in _TOKEN_RE.findall(passage):
                if not _is_title_case(token) or token in seen:
                    continue
                seen.add(token)
                eid = self._ensure_entity(token)
                backrefs.setdefault(eid, []).append({"doc_id": doc.id, "passage_index": pidx})
                self.edges.append(
                    GraphEdge(
                        id=self._unique_id(f"e:{doc_node_id}->{eid}#p{pidx}"),
                        from_id=doc_node_id,
                        to_id=eid,
                        relation="mentions",
                        weight=1.0,
                        metadata={"source": "stub", "doc_id": doc.id, "passage_index": pidx},
                    )
                )

            for subj, pred, obj in simple_relation_extraction(passage):
                sid = self._ensure_entity(subj)
                oid = self._ensure_entity(obj)
                backrefs.setdefault(sid, []).append({"doc_id": doc.id, "passage_index": pidx})
                backrefs.setdefault(oid, []).append({"doc_id": doc.id, "passage_index": pidx})
                self.edges.append(
                    GraphEdge(
                        id=self._unique_id(f"e:{pred}:{sid}->{oid}#p{pidx}"),
                        from_id=sid,
                        to_id=oid,
                        relation=pred,
                        weight=1.0,
                        metadata={
                            "source": "stub_re",
                            "doc_id": doc.id,
                            "passage_index": pidx,
                            "triple": {"subject": subj, "predicate": pred, "object": obj},
                        },
                    )
                )

        for eid, refs in backrefs.items():
            self._backref_target(eid).metadata.setdefault("backrefs", []).extend(refs)
        return 1 + len(backrefs)

    def extract(self, docs: Iterable[Document]) -> Tuple[List[GraphNode], List[GraphEdge]]:
        for doc in docs:
            self.extract_document(doc)
        return self.nodes, self.edges


def extract_entities_relations(
    docs: Sequence[Document], existing: GraphView | None = None
) -> Tuple[List[GraphNode], List[GraphEdge]]:
    return EntityExtractor(existing=existing).extract(docs)
