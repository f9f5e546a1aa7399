"""HyDE-style query expansion.

No model is involved: "hypothetical documents" are templated restatements of
the query, and token expansion appends adjacent-token concatenations so a
query like ``graph rag`` also matches documents that write ``graphrag``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

_PREFIXES = ("Question: ", "Answer: ")
_FALLBACK_PREFIX = "Context: "


@dataclass(frozen=True)
class HyDEConfig:
    num_docs: int = 3
    max_length: int = 512
    similarity_threshold: float = 0.3


class HyDEEngine:
    def __init__(self, config: HyDEConfig | None = None) -> None:
        self.config = config or HyDEConfig()

    def generate_hypothetical_docs(self, query: str) -> List[str]:
        out: List[str] = []
        for i in range(max(0, self.config.num_docs)):
            prefix = _PREFIXES[i] if i < len(_PREFIXES) else _FALLBACK_PREFIX
            out.append(f"{prefix}{query}"[: self.config.max_length])
        return out

    @staticmethod
    def expand_tokens(tokens: Sequence[str]) -> List[str]:
        """Return ``tokens`` followed by each adjacent pair concatenated."""
        expanded = list(tokens)
        expanded.extend(f"{a}{b}" for a, b in zip(tokens, tokens[1:]))
        return expanded
