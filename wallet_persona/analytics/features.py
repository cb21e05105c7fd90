"""
Feature extraction: RawActivityBundle -> six-metric vector.

Pure functions, no I/O. Missing or degraded inputs contribute 0, so every
field of the vector is always a finite non-negative number.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from wallet_persona.analytics.aggregator import RawActivityBundle
from wallet_persona.utils.wallet_utils import to_checksum_wallet

METRIC_KEYS: tuple[str, ...] = (
    "distinct_contract_count",
    "dex_platform_diversity",
    "avg_token_holding_period",
    "transaction_frequency",
    "dex_volume_usd",
    "nft_collections_diversity",
)


def _metric_value(value: Any) -> float:
    """Coerce a stored/parsed metric to a finite non-negative number; anything else is 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


@dataclass(frozen=True)
class MetricVector:
    """Six behavioral metrics for one wallet; all fields always present."""

    distinct_contract_count: float = 0
    dex_platform_diversity: float = 0
    avg_token_holding_period: float = 0.0
    """Mean days held across currently-held fungible tokens."""
    transaction_frequency: float = 0.0
    """All-time transaction count divided by the six-month count."""
    dex_volume_usd: float = 0.0
    nft_collections_diversity: float = 0

    def to_dict(self) -> dict[str, float]:
        return {key: getattr(self, key) for key in METRIC_KEYS}

    def get(self, key: str) -> float:
        return getattr(self, key)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MetricVector":
        """Build from any mapping; absent, null or invalid values default to 0."""
        data = data or {}
        return cls(**{key: _metric_value(data.get(key)) for key in METRIC_KEYS})


def extract_metrics(bundle: RawActivityBundle) -> MetricVector:
    """Derive the metric vector from one aggregation result."""
    contracts = {call.contract_address for call in bundle.transactions}

    held = bundle.ft.token_details
    avg_holding = sum(p.holding_period_days for p in held) / len(held) if held else 0.0

    total_tx = bundle.transaction.total_transactions
    recent_tx = bundle.recent_transactions_count
    frequency = total_tx / recent_tx if recent_tx > 0 else 0.0

    return MetricVector(
        distinct_contract_count=len(contracts),
        dex_platform_diversity=len(set(bundle.dex.dex_list)),
        avg_token_holding_period=_metric_value(avg_holding),
        transaction_frequency=_metric_value(frequency),
        dex_volume_usd=_metric_value(bundle.dex.dex_volume_usd),
        nft_collections_diversity=len(set(bundle.nft.owned_nft_collections)),
    )


def wallet_parameters(bundle: RawActivityBundle) -> dict[str, Any]:
    """
    Flatten a bundle into the wallet-parameter record used by bulk import:
    metric vector plus checksummed address, balance and the recent contract
    calls. Raises InvalidAddressError when the bundle address is malformed.
    """
    params: dict[str, Any] = extract_metrics(bundle).to_dict()
    params["address"] = to_checksum_wallet(bundle.wallet)
    params["balance"] = bundle.balance
    params["transactions"] = [c.to_dict() for c in bundle.transactions]
    return params
