import pytest

from graphrag_engine.ingest import load_documents
from graphrag_engine.loaders import MarkdownLoader, TextLoader, iter_supported_files


@pytest.fixture
def dataset(tmp_path):
    root = tmp_path / "dataset"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_text("  Alice works at Acme.  ", encoding="utf-8")
    (root / "sub" / "b.md").write_text("# Notes\nBob is a Chef.", encoding="utf-8")
    (root / "empty.txt").write_text("   ", encoding="utf-8")
    (root / "table.csv").write_text("a,b", encoding="utf-8")
    (root / ".hidden.txt").write_text("secret", encoding="utf-8")
    (root / "~$lock.txt").write_text("lock", encoding="utf-8")
    return root


class TestLoadDocuments:

    def test_directory(self, dataset):
        result = load_documents(dataset)
        docs = {d.id: d for d in result.documents}
        assert list(docs) == ["a.txt", "sub/b.md"]
        assert docs["a.txt"].content == "Alice works at Acme."
        assert docs["a.txt"].title == "a"
        assert docs["a.txt"].file_type == "text"
        assert docs["a.txt"].size_bytes == len("Alice works at Acme.")
        assert docs["sub/b.md"].file_type == "markdown"
        assert docs["a.txt"].created_at > 0

    def test_empty_files_warn(self, dataset):
        assert load_documents(dataset).warnings == ["Empty extracted text: empty.txt"]

    def test_single_file(self, dataset):
        result = load_documents(dataset / "sub" / "b.md")
        assert [d.id for d in result.documents] == ["b.md"]

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Dataset path does not exist"):
            load_documents(tmp_path / "missing")


class TestLoaders:

    def test_suffix_matching(self, tmp_path):
        assert TextLoader().can_load(tmp_path / "x.TXT")
        assert not TextLoader().can_load(tmp_path / "x.md")
        assert MarkdownLoader().can_load(tmp_path / "x.markdown")

    def test_iteration_skips_hidden_and_lock_files(self, dataset):
        names = {p.name for p in iter_supported_files(dataset)}
        assert names == {"a.txt", "empty.txt", "b.md", "table.csv"}
