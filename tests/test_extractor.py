"""
Tests for the heuristic entity/relation extractor.
"""

from graphrag_engine.extractor import (
    EntityExtractor,
    extract_entities_relations,
    normalize_label,
    simple_relation_extraction,
)
from graphrag_engine.graph_store import GraphSnapshot
from graphrag_engine.models import Document, GraphNode


def _doc(doc_id, content, title="t"):
    return Document(id=doc_id, title=title, content=content)


class TestRelationPatterns:

    def test_works_at_and_is_a(self):
        triples = simple_relation_extraction("Alice works at Acme. Bob is a Chef!")
        assert triples == [("Alice", "works_at", "Acme"), ("Bob", "is_a", "Chef")]

    def test_is_a_object_is_limited_to_four_words(self):
        triples = simple_relation_extraction("Rex is a very good old family dog")
        assert triples == [("Rex", "is_a", "very good old family")]

    def test_subject_skips_heading_line(self):
        assert simple_relation_extraction("# People\nAlice is a Person.") == [("Alice", "is_a", "Person")]

    def test_no_pattern(self):
        assert simple_relation_extraction("nothing to see here") == []


def test_normalize_label():
    assert normalize_label("  New   York ") == "new york"


class TestEntityExtractor:

    def test_single_document(self):
        extractor = EntityExtractor()
        count = extractor.extract_document(_doc("d1", "Alice works at Acme. Bob is a Engineer."))
        ids = [n.id for n in extractor.nodes]
        assert count == 5
        assert ids[0] == "doc:d1"
        assert set(ids[1:]) == {"ent:Alice", "ent:Acme", "ent:Bob", "ent:Engineer"}

        mentions = [e for e in extractor.edges if e.relation == "mentions"]
        assert len(mentions) == 4
        assert "e:doc:d1->ent:Alice#p0" in {e.id for e in mentions}
        rel = {(e.from_id, e.relation, e.to_id) for e in extractor.edges if e.relation != "mentions"}
        assert rel == {("ent:Alice", "works_at", "ent:Acme"), ("ent:Bob", "is_a", "ent:Engineer")}

    def test_document_node_metadata(self):
        nodes, _ = extract_entities_relations([Document(id="d1", title="T", content="x", size_bytes=1)])
        doc_node = nodes[0]
        assert doc_node.node_type == "document"
        assert doc_node.source_document_id == "d1"
        assert doc_node.metadata["size_bytes"] == 1
        assert doc_node.metadata["file_type"] == "text"

    def test_short_or_lowercase_tokens_are_not_entities(self):
        nodes, edges = extract_entities_relations([_doc("d1", "Al is ok, and alice too.")])
        assert [n.id for n in nodes] == ["doc:d1"]
        assert edges == []

    def test_entities_deduplicated_across_documents(self):
        nodes, _ = extract_entities_relations([_doc("d1", "Alice runs."), _doc("d2", "Alice sleeps.")])
        alice = [n for n in nodes if n.id == "ent:Alice"]
        assert len(alice) == 1
        assert [b["doc_id"] for b in alice[0].metadata["backrefs"]] == ["d1", "d2"]

    def test_one_mention_per_passage_and_entity(self):
        _, edges = extract_entities_relations([_doc("d1", "Alice met Alice.\n\nAlice left.")])
        assert sorted(e.id for e in edges) == ["e:doc:d1->ent:Alice#p0", "e:doc:d1->ent:Alice#p1"]

    def test_colliding_ids_get_numeric_suffix(self):
        existing = GraphSnapshot(nodes=(GraphNode(id="ent:Zed", node_type="document"),))
        extractor = EntityExtractor(existing=existing)
        extractor.extract_document(_doc("d1", "Zed waves."))
        assert "ent:Zed#2" in {n.id for n in extractor.nodes}

    def test_existing_entities_are_reused(self):
        existing = GraphSnapshot(
            nodes=(GraphNode(id="ent:Alice", label="Alice", node_type="entity", metadata={"backrefs": []}),)
        )
        extractor = EntityExtractor(existing=existing)
        extractor.extract_document(_doc("d9", "Alice returns."))
        stub = next(n for n in extractor.nodes if n.id == "ent:Alice")
        assert stub.metadata["backrefs"] == [{"doc_id": "d9", "passage_index": 0}]
        assert sum(1 for n in extractor.nodes if n.id.startswith("ent:Alice")) == 1
