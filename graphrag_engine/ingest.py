"""Turn a directory of files into :class:`Document` records for indexing.

Document ids are the POSIX relative path of each file, so re-ingesting the
same tree upserts instead of duplicating.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .loaders import Loader, default_loaders, iter_supported_files
from .models import Document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadResult:
    documents: list[Document]
    warnings: list[str] = field(default_factory=list)


def load_documents(dataset_path: str | Path, *, loaders: list[Loader] | None = None) -> LoadResult:
    root = Path(dataset_path)
    if not root.exists():
        raise FileNotFoundError(f"Dataset path does not exist: {dataset_path}")

    loaders = loaders or default_loaders()

    def pick_loader(p: Path) -> Loader | None:
        for l in loaders:
            if l.can_load(p):
                return l
        return None

    docs: list[Document] = []
    warnings: list[str] = []
    paths = [root] if root.is_file() else list(iter_supported_files(root))
    base = root.parent if root.is_file() else root

    for p in paths:
        loader = pick_loader(p)
        if not loader:
            continue

        rel_path = p.relative_to(base).as_posix()
        try:
            text = (loader.load_text(p) or "").strip()
            stat = p.stat()
        except (OSError, ImportError, ValueError) as e:
            warnings.append(f"Failed to load {rel_path}: {e}")
            continue

        if not text:
            warnings.append(f"Empty extracted text: {rel_path}")
            continue

        docs.append(
            Document(
                id=rel_path,
                title=p.stem,
                content=text,
                file_type=loader.file_type,
                size_bytes=len(text.encode("utf-8")),
                created_at=stat.st_mtime * 1000.0,
            )
        )

    if warnings:
        logger.warning("ingest finished with warnings", extra={"fields": {"warnings": len(warnings)}})
    return LoadResult(documents=docs, warnings=warnings)
