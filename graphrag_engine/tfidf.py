"""TF‑IDF scoring for the retrieval pipeline.

Documents are vectorised as raw term frequencies; the relevance of a query
is the sum, over query tokens present in a document, of
``tf * (ln((N + 1) / (df + 1)) + 1)``. Scores are not cosine-normalised so
longer documents that repeat query terms rank higher, matching the
behaviour the rest of the pipeline (centrality boosts, fusion) is tuned for.
"""

from __future__ import annotations

import math
import re
from typing import Dict, Iterable, List, Sequence, Set, Tuple

# Unicode letters and digits, excluding the underscore that \w admits.
_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Lower-case ``text`` and split it on non-alphanumeric boundaries."""
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower())


def term_frequencies(tokens: Iterable[str]) -> Dict[str, int]:
    tf: Dict[str, int] = {}
    for token in tokens:
        tf[token] = tf.get(token, 0) + 1
    return tf


def smoothed_idf(df: int, corpus_size: int) -> float:
    return math.log((corpus_size + 1) / (df + 1)) + 1


def score(
    query_tokens: Sequence[str],
    document_tf: Dict[str, int],
    doc_freq: Dict[str, int],
    corpus_size: int,
) -> float:
    """Score one document against ``query_tokens``.

    Repeated query tokens contribute once per occurrence. HyDE expansion
    only appends adjacent-pair concatenations, which score when a document
    contains the joined form (``pagerank`` for ``page rank``).
    """
    total = 0.0
    for token in query_tokens:
        freq = document_tf.get(token)
        if not freq:
            continue
        df = doc_freq.get(token, 0)
        if df <= 0:
            continue
        total += freq * smoothed_idf(df, corpus_size)
    return total


class TfidfScorer:
    """Corpus statistics for a fixed list of document bodies."""

    def __init__(self, documents: List[str]) -> None:
        self.documents = documents
        self.doc_freq: Dict[str, int] = {}
        self.term_freqs: List[Dict[str, int]] = []
        self.token_sets: List[Set[str]] = []
        for doc in documents:
            tf = term_frequencies(tokenize(doc))
            for token in tf.keys():
                self.doc_freq[token] = self.doc_freq.get(token, 0) + 1
            self.term_freqs.append(tf)
            self.token_sets.append(set(tf))

    @property
    def corpus_size(self) -> int:
        return len(self.documents)

    def idf(self, token: str) -> float:
        df = self.doc_freq.get(token, 0)
        if df <= 0:
            return 0.0
        return smoothed_idf(df, self.corpus_size)

    def score_all(self, query_tokens: Sequence[str]) -> List[Tuple[int, float]]:
        return [
            (idx, score(query_tokens, tf, self.doc_freq, self.corpus_size))
            for idx, tf in enumerate(self.term_freqs)
        ]

    def retrieve(self, query: str, top_n: int = 5) -> List[Tuple[int, float]]:
        scores = self.score_all(tokenize(query))
        scores.sort(key=lambda x: x[1], reverse=True)
        return scores[: max(1, top_n)]
