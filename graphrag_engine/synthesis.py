"""Extractive synthesis of retrieved documents.

Two entry points: ``extractive_summary`` builds the short answer attached to a
retrieval result from the leading sentence of the best documents, and
``ResultSynthesizer`` joins arbitrary snippets under a character budget.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence

SUMMARY_MAX_CHARS = 512
SUMMARY_MAX_DOCS = 3

_SENTENCE_SPLIT = re.compile(r"[.!?]")


def first_sentence(text: str) -> str | None:
    for part in _SENTENCE_SPLIT.split(text or ""):
        part = part.strip()
        if part:
            return part
    return None


def extractive_summary(
    texts: Iterable[str],
    *,
    max_docs: int = SUMMARY_MAX_DOCS,
    max_chars: int = SUMMARY_MAX_CHARS,
) -> str | None:
    parts: List[str] = []
    for i, text in enumerate(texts):
        if i >= max_docs:
            break
        sentence = first_sentence(text)
        if sentence:
            parts.append(sentence)
    summary = ". ".join(parts)
    if not summary:
        return None
    summary += "."
    return summary[:max_chars]


@dataclass(frozen=True)
class SynthesisConfig:
    max_chars: int = 1000


class ResultSynthesizer:
    def __init__(self, config: SynthesisConfig | None = None) -> None:
        self.config = config or SynthesisConfig()

    def synthesize(self, snippets: Sequence[str]) -> str:
        joined = " ".join(s.strip() for s in snippets if s and s.strip())
        return joined[: max(0, self.config.max_chars)]
