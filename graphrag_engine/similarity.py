from __future__ import annotations

from typing import AbstractSet, List, Sequence, Tuple


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets have similarity 0."""
    union = len(a | b)
    if union == 0:
        return 0.0
    return len(a & b) / union


def similarity_matrix(sets: Sequence[AbstractSet[str]]) -> List[List[float]]:
    n = len(sets)
    matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            w = jaccard(sets[i], sets[j])
            matrix[i][j] = w
            matrix[j][i] = w
    return matrix


def normalize_by_max(values: Sequence[float]) -> List[float]:
    """Divide by the maximum; returns the values unchanged when the max is not positive."""
    out = list(values)
    if not out:
        return out
    top = max(out)
    if top > 0:
        out = [v / top for v in out]
    return out


def centrality(sets: Sequence[AbstractSet[str]]) -> List[float]:
    """Sum of Jaccard weights to every other set, normalised to [0, 1]."""
    matrix = similarity_matrix(sets)
    return normalize_by_max([sum(row) for row in matrix])


def neighbor_counts(sets: Sequence[AbstractSet[str]], threshold: float = 0.25) -> List[int]:
    matrix = similarity_matrix(sets)
    counts: List[int] = []
    for i, row in enumerate(matrix):
        counts.append(sum(1 for j, w in enumerate(row) if j != i and w >= threshold))
    return counts


def cooccurrence_pairs(
    sets: Sequence[AbstractSet[str]], threshold: float = 0.2
) -> List[Tuple[int, int, float]]:
    """Pairs ``(i, j, similarity)`` with ``i < j`` and similarity at or above ``threshold``."""
    pairs: List[Tuple[int, int, float]] = []
    for i in range(len(sets)):
        for j in range(i + 1, len(sets)):
            w = jaccard(sets[i], sets[j])
            if w >= threshold:
                pairs.append((i, j, w))
    return pairs
