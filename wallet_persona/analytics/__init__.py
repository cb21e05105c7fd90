"""
Wallet Persona analytics engine.

Aggregates on-chain activity, derives the six-metric vector and scores it
against the stored population. Modules: aggregator, features,
reference_stats, scorer, persona_contracts, pipeline (import the pipeline
from wallet_persona.analytics.pipeline; it depends on the database package).
"""

from wallet_persona.analytics.aggregator import Aggregator, RawActivityBundle
from wallet_persona.analytics.features import METRIC_KEYS, MetricVector, extract_metrics
from wallet_persona.analytics.reference_stats import (
    MetricStats,
    ReferenceStatsEngine,
    compute_reference_stats,
)
from wallet_persona.analytics.scorer import ARCHETYPES, PersonaScore, score_wallet

__all__ = [
    "ARCHETYPES",
    "METRIC_KEYS",
    "Aggregator",
    "MetricStats",
    "MetricVector",
    "PersonaScore",
    "RawActivityBundle",
    "ReferenceStatsEngine",
    "compute_reference_stats",
    "extract_metrics",
    "score_wallet",
]
