"""Markdown passage chunker.

Used by the entity extractor to scope mentions to passages. Headings and
blank lines start a new passage; otherwise lines are packed until the
passage would exceed ``max_len`` characters.
"""

from __future__ import annotations

from typing import List


class MarkdownChunker:
    """Split markdown-ish text into passages."""

    def __init__(self, max_len: int = 500) -> None:
        self.max_len = max_len

    def chunk(self, text: str) -> List[str]:
        """Return the passages of ``text``.

        Args:
            text: The raw document body.

        Returns:
            Non-empty passages in document order. Text with no usable lines
            comes back as a single chunk equal to the input.
        """
        chunks: List[str] = []
        current = ""
        for line in (text or "").splitlines():
            is_heading = line.lstrip().startswith("#")
            is_blank = not line.strip()
            candidate_len = len(current) + len(line) + 1
            if (is_heading or is_blank or candidate_len > self.max_len) and current.strip():
                chunks.append(current.strip())
                current = ""
            if line.strip():
                if current:
                    current += "\n"
                current += line
        if current.strip():
            chunks.append(current.strip())
        if not chunks:
            chunks.append(text or "")
        return chunks
