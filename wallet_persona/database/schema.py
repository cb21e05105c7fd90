"""
SQLAlchemy tables: wallets (one row per address) and persona_contracts.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Column, DateTime, Float, Integer, String
from sqlalchemy.orm import declarative_base

from wallet_persona.analytics.features import METRIC_KEYS, MetricVector
from wallet_persona.analytics.scorer import ARCHETYPES, PersonaScore
from wallet_persona.database.models import WalletRecord, percentile_column, score_column

Base = declarative_base()


class WalletRow(Base):
    """
    Latest evaluation per wallet. Scores and percentiles are flat columns so
    population queries (AVG, ORDER BY) can run in SQL.
    """

    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String(42), unique=True, nullable=False, index=True)
    balance = Column(String(78), nullable=False, default="0")  # wei; string avoids 64-bit overflow

    distinct_contract_count = Column(Float, nullable=False, default=0)
    dex_platform_diversity = Column(Float, nullable=False, default=0)
    avg_token_holding_period = Column(Float, nullable=False, default=0)
    transaction_frequency = Column(Float, nullable=False, default=0)
    dex_volume_usd = Column(Float, nullable=False, default=0)
    nft_collections_diversity = Column(Float, nullable=False, default=0)

    explorer_score = Column(Float, nullable=False, default=0)
    diamond_score = Column(Float, nullable=False, default=0)
    whale_score = Column(Float, nullable=False, default=0)
    degen_score = Column(Float, nullable=False, default=0)

    distinct_contract_count_percentile = Column(Float, nullable=False, default=0)
    dex_platform_diversity_percentile = Column(Float, nullable=False, default=0)
    avg_token_holding_period_percentile = Column(Float, nullable=False, default=0)
    transaction_frequency_percentile = Column(Float, nullable=False, default=0)
    dex_volume_usd_percentile = Column(Float, nullable=False, default=0)
    nft_collections_diversity_percentile = Column(Float, nullable=False, default=0)

    position = Column(String(32), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

    def _values(self, record: WalletRecord) -> dict[str, Any]:
        values: dict[str, Any] = {"balance": str(int(record.balance or 0))}
        values.update({key: float(record.metrics.get(key)) for key in METRIC_KEYS})
        values.update(
            {score_column(a): float(record.persona.scores.get(a, 0.0)) for a in ARCHETYPES}
        )
        values.update(
            {percentile_column(k): float(record.persona.percentiles.get(k, 0.0)) for k in METRIC_KEYS}
        )
        values["position"] = record.persona.position
        return values

    def matches(self, record: WalletRecord) -> bool:
        """True when every stored derived field already equals the record's."""
        return all(getattr(self, name) == value for name, value in self._values(record).items())

    def apply(self, record: WalletRecord) -> None:
        for name, value in self._values(record).items():
            setattr(self, name, value)

    def to_record(self) -> WalletRecord:
        return WalletRecord(
            address=self.address,
            balance=int(self.balance or 0),
            metrics=MetricVector.from_mapping({key: getattr(self, key) for key in METRIC_KEYS}),
            persona=PersonaScore(
                scores={a: getattr(self, score_column(a)) or 0.0 for a in ARCHETYPES},
                percentiles={k: getattr(self, percentile_column(k)) or 0.0 for k in METRIC_KEYS},
                position=self.position,
            ),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class PersonaContractRow(Base):
    """
    One (position label -> contract) association contributed by one wallet.
    Append-only; popularity is the row count per contract within a group.
    """

    __tablename__ = "persona_contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_group = Column(String(32), nullable=False, index=True)
    to_contract = Column(String(42), nullable=False)
    address = Column(String(42), nullable=True, index=True)
