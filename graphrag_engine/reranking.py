from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

TIEBREAK_EPSILON = 1e-6


def stabilize(scored: Sequence[Tuple[int, float]]) -> List[Tuple[int, float]]:
    """Add ``i * 1e-6`` to the i-th entry and re-sort descending.

    Later entries gain slightly more, so exact ties resolve deterministically
    while materially different scores keep their order.
    """
    bumped = [(idx, s + i * TIEBREAK_EPSILON) for i, (idx, s) in enumerate(scored)]
    bumped.sort(key=lambda x: x[1], reverse=True)
    return bumped


@dataclass(frozen=True)
class RerankingConfig:
    """Weights for combining three score lists.

    Expected to sum to ~1.0, but code should be robust if they do not.
    """

    weight_primary: float = 0.4
    weight_secondary: float = 0.3
    weight_original: float = 0.3

    def normalized(self) -> "RerankingConfig":
        weights = [max(0.0, float(w)) for w in (self.weight_primary, self.weight_secondary, self.weight_original)]
        total = sum(weights)
        if total <= 0:
            return RerankingConfig(weight_primary=1 / 3, weight_secondary=1 / 3, weight_original=1 / 3)
        return RerankingConfig(
            weight_primary=weights[0] / total,
            weight_secondary=weights[1] / total,
            weight_original=weights[2] / total,
        )


class AdvancedReranker:
    def __init__(self, config: RerankingConfig | None = None) -> None:
        self.config = (config or RerankingConfig()).normalized()

    def rerank(
        self,
        primary: Sequence[float],
        secondary: Sequence[float],
        original: Sequence[float],
    ) -> List[float]:
        cfg = self.config
        n = min(len(primary), len(secondary), len(original))
        return [
            cfg.weight_primary * primary[i] + cfg.weight_secondary * secondary[i] + cfg.weight_original * original[i]
            for i in range(n)
        ]
