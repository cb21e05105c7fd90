"""
Domain models for the wallet cache.

WalletRecord is what callers read and upsert; the SQLAlchemy rows in
schema.py are an implementation detail of WalletStore.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from wallet_persona.analytics.features import METRIC_KEYS, MetricVector
from wallet_persona.analytics.scorer import ARCHETYPES, PersonaScore
from wallet_persona.utils.wallet_utils import to_checksum_wallet


class UpsertResult(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def score_column(archetype: str) -> str:
    return f"{archetype.lower()}_score"


def percentile_column(metric: str) -> str:
    return f"{metric}_percentile"


@dataclass
class WalletRecord:
    """Latest evaluation of one wallet: balance, metric vector and persona score."""

    address: str
    """Checksum address; unique across the store."""
    balance: int = 0
    """Native balance in wei."""
    metrics: MetricVector = field(default_factory=MetricVector)
    persona: PersonaScore = field(default_factory=PersonaScore.empty)
    created_at: datetime | None = None
    """Naive UTC; set by the store on first insert, never changed afterwards."""
    updated_at: datetime | None = None
    """Naive UTC; refreshed by the store on every upsert."""

    @property
    def position(self) -> str | None:
        return self.persona.position

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"address": self.address, "balance": self.balance}
        out.update(self.metrics.to_dict())
        for archetype in ARCHETYPES:
            out[score_column(archetype)] = self.persona.scores.get(archetype, 0.0)
        for metric in METRIC_KEYS:
            out[percentile_column(metric)] = self.persona.percentiles.get(metric, 0.0)
        out["position"] = self.persona.position
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        out["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return out

    @classmethod
    def from_parameters(cls, params: Mapping[str, Any]) -> "WalletRecord":
        """
        Build from a flat wallet-parameter object (bulk import format).

        Scores, percentiles and position are read when present; everything
        missing defaults to 0 / None. Raises InvalidAddressError for a bad address.
        """
        address = to_checksum_wallet(str(params.get("address") or params.get("wallet") or ""))
        try:
            balance = int(params.get("balance") or 0)
        except (TypeError, ValueError):
            balance = 0
        persona = PersonaScore(
            scores={a: _as_float(params.get(score_column(a))) for a in ARCHETYPES},
            percentiles={k: _as_float(params.get(percentile_column(k))) for k in METRIC_KEYS},
            position=params.get("position") or None,
        )
        return cls(
            address=address,
            balance=balance,
            metrics=MetricVector.from_mapping(params),
            persona=persona,
        )


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
