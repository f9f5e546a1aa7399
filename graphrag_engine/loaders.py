from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol


class Loader(Protocol):
    file_type: str

    def can_load(self, path: Path) -> bool: ...

    def load_text(self, path: Path) -> str: ...


class TextLoader:
    file_type = "text"

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() == ".txt"

    def load_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="ignore").strip()


class MarkdownLoader(TextLoader):
    file_type = "markdown"

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() in {".md", ".markdown"}


class DocxLoader:
    file_type = "docx"

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() == ".docx"

    def load_text(self, path: Path) -> str:
        from docx import Document

        doc = Document(str(path))
        parts: list[str] = []
        for para in doc.paragraphs:
            t = (para.text or "").strip()
            if t:
                parts.append(t)
        return "\n".join(parts).strip()


class PdfLoader:
    file_type = "pdf"

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() == ".pdf"

    def load_text(self, path: Path) -> str:
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        parts: list[str] = []
        for page in reader.pages:
            t = (page.extract_text() or "").strip()
            if t:
                parts.append(t)
        return "\n".join(parts).strip()


def default_loaders() -> list[Loader]:
    return [TextLoader(), MarkdownLoader(), DocxLoader(), PdfLoader()]


def iter_supported_files(root: Path) -> Iterable[Path]:
    for p in sorted(root.rglob("*")):
        if not p.is_file():
            continue
        if p.name.startswith("~$") or p.name.startswith("."):
            continue
        yield p
