"""
Persona scorer: metric vector + reference statistics -> archetype scores.

For each metric: z-score against the population, percentile via the
standard normal CDF (one decimal), then a 0-5 sub-score. Each archetype
is a weighted mean of sub-scores rescaled to 0-10. The position label is
the two best archetypes, higher first, ties resolved in table order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from wallet_persona.analytics.features import METRIC_KEYS, MetricVector
from wallet_persona.analytics.reference_stats import ReferenceStats

MAX_SUB_SCORE = 5
MAX_ARCHETYPE_SCORE = 10

# Archetype -> metric -> integer weight. Dict order is the tie-break order.
POSITION_WEIGHTS: dict[str, dict[str, int]] = {
    "Explorer": {
        "distinct_contract_count": 4,
        "dex_platform_diversity": 2,
        "avg_token_holding_period": 0,
        "transaction_frequency": 1,
        "dex_volume_usd": 0,
        "nft_collections_diversity": 3,
    },
    "Diamond": {
        "distinct_contract_count": 1,
        "dex_platform_diversity": 1,
        "avg_token_holding_period": 5,
        "transaction_frequency": 0,
        "dex_volume_usd": 1,
        "nft_collections_diversity": 2,
    },
    "Whale": {
        "distinct_contract_count": 0,
        "dex_platform_diversity": 0,
        "avg_token_holding_period": 2,
        "transaction_frequency": 1,
        "dex_volume_usd": 5,
        "nft_collections_diversity": 2,
    },
    "Degen": {
        "distinct_contract_count": 1,
        "dex_platform_diversity": 4,
        "avg_token_holding_period": 0,
        "transaction_frequency": 3,
        "dex_volume_usd": 2,
        "nft_collections_diversity": 1,
    },
}

ARCHETYPES: tuple[str, ...] = tuple(POSITION_WEIGHTS)


def round_half_up(value: float, decimals: int = 1) -> float:
    """Round halves away from zero for non-negative values (0.25 -> 0.3)."""
    factor = 10**decimals
    return math.floor(value * factor + 0.5) / factor


def z_score(value: float, mean: float, std: float) -> float:
    """(value - mean) / std, defined as 0 when std is 0."""
    if std == 0:
        return 0.0
    return (value - mean) / std


def z_to_percentile(z: float) -> float:
    """Standard normal CDF of z as a percentage in [0, 100], one decimal."""
    cdf = 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))
    return min(100.0, max(0.0, round_half_up(cdf * 100.0, 1)))


def percentile_to_sub_score(percentile: float) -> float:
    return round_half_up((percentile / 100.0) * MAX_SUB_SCORE, 1)


@dataclass
class PersonaScore:
    """Archetype scores (0-10), metric percentiles (0-100) and the top-two position label."""

    scores: dict[str, float] = field(default_factory=dict)
    percentiles: dict[str, float] = field(default_factory=dict)
    position: str | None = None
    z_scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scores": dict(self.scores),
            "percentiles": dict(self.percentiles),
            "position": self.position,
        }

    @classmethod
    def empty(cls) -> "PersonaScore":
        """Zeroed scores and percentiles with no position; used when no baseline exists."""
        return cls(
            scores={a: 0.0 for a in ARCHETYPES},
            percentiles={k: 0.0 for k in METRIC_KEYS},
            position=None,
        )


def archetype_scores(sub_scores: dict[str, float]) -> dict[str, float]:
    """Weighted sub-scores per archetype, normalized to the 0-10 scale."""
    scores: dict[str, float] = {}
    for archetype, weights in POSITION_WEIGHTS.items():
        total_weight = sum(weights.values())
        weighted = sum(weights[key] * sub_scores.get(key, 0.0) for key in METRIC_KEYS)
        normalized = (weighted / (total_weight * MAX_SUB_SCORE)) * MAX_ARCHETYPE_SCORE if total_weight else 0.0
        scores[archetype] = round_half_up(normalized, 1)
    return scores


def top_two_position(scores: dict[str, float]) -> str:
    """Two highest-scoring archetypes joined by '_'; stable sort keeps table order on ties."""
    ranked = sorted(ARCHETYPES, key=lambda a: -scores.get(a, 0.0))
    return f"{ranked[0]}_{ranked[1]}"


def score_wallet(vector: MetricVector, stats: ReferenceStats) -> PersonaScore:
    """Score one wallet's metric vector against the reference statistics."""
    z_scores: dict[str, float] = {}
    percentiles: dict[str, float] = {}
    sub_scores: dict[str, float] = {}

    for key in METRIC_KEYS:
        metric = stats[key]
        z = z_score(vector.get(key), metric.mean, metric.std)
        percentile = z_to_percentile(z)
        z_scores[key] = z
        percentiles[key] = percentile
        sub_scores[key] = percentile_to_sub_score(percentile)

    scores = archetype_scores(sub_scores)
    return PersonaScore(
        scores=scores,
        percentiles=percentiles,
        position=top_two_position(scores),
        z_scores=z_scores,
    )
