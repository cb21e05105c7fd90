"""
Result models for upstream source clients.

Each source client returns one of these. A degraded result (retry budget
exhausted, or the provider had nothing to report) is still a well-formed
instance: zero counts, empty lists, and an ``error`` marker where the
capability has one. Consumers treat degraded results as valid-but-empty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class ContractCall:
    """One deduplicated (method selector, counterparty contract) pair from recent activity."""

    method: str
    """First 4 bytes of call input as hex, e.g. '0xa9059cbb'."""
    contract_address: str

    def to_dict(self) -> dict[str, str]:
        return {"method": self.method, "contract_address": self.contract_address}


@dataclass
class RecentTransactions:
    """Contract calls in the trailing six-month window plus the raw in-window count."""

    transactions: list[ContractCall] = field(default_factory=list)
    recent_tx_count: int = 0


@dataclass
class TokenActivity:
    """Stablecoin usage flag and distinct token symbol count from token transfers."""

    use_stable: bool = False
    token_count: int = 0


@dataclass
class TransactionAnalytics:
    """Gas and timing summary over the full transaction history."""

    total_transactions: int = 0
    average_gas_fee_eth: float = 0.0
    total_gas_fee_eth: float = 0.0
    max_gas_fee_eth: float = 0.0
    most_active_hour: int = 0
    average_transaction_interval_days: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "total_transactions": self.total_transactions,
            "average_gas_fee_eth": self.average_gas_fee_eth,
            "total_gas_fee_eth": self.total_gas_fee_eth,
            "max_gas_fee_eth": self.max_gas_fee_eth,
            "most_active_hour": self.most_active_hour,
            "average_transaction_interval_days": self.average_transaction_interval_days,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TransactionAnalytics":
        data = data or {}
        if "total_transactions" not in data:
            return cls(error=str(data.get("error") or "missing transaction analytics"))
        return cls(
            total_transactions=_as_int(data.get("total_transactions")),
            average_gas_fee_eth=_as_float(data.get("average_gas_fee_eth")),
            total_gas_fee_eth=_as_float(data.get("total_gas_fee_eth")),
            max_gas_fee_eth=_as_float(data.get("max_gas_fee_eth")),
            most_active_hour=_as_int(data.get("most_active_hour")),
            average_transaction_interval_days=_as_float(data.get("average_transaction_interval_days")),
            error=data.get("error"),
        )


@dataclass
class NftHoldings:
    """NFT ownership summary: total tokens held and distinct collection symbols."""

    owned_nfts_count: int = 0
    owned_nft_collections: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def owned_nft_collections_count(self) -> int:
        return len(self.owned_nft_collections)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "owned_nfts_count": self.owned_nfts_count,
            "owned_nft_collections_count": self.owned_nft_collections_count,
            "owned_nft_collections": list(self.owned_nft_collections),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NftHoldings":
        data = data or {}
        if "owned_nft_collections" not in data and "owned_nfts_count" not in data:
            return cls(error=str(data.get("error") or "missing NFT holdings"))
        return cls(
            owned_nfts_count=_as_int(data.get("owned_nfts_count")),
            owned_nft_collections=[str(s) for s in data.get("owned_nft_collections") or []],
            error=data.get("error"),
        )


@dataclass
class TokenPosition:
    """A fungible token currently held (positive running balance)."""

    token: str
    balance: float
    holding_period_days: float
    """Days since the first inbound transfer of this token."""
    net_flow: float
    """total_in - total_out, in whole-token units."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "balance": self.balance,
            "holding_period_days": self.holding_period_days,
            "net_flow": self.net_flow,
        }


@dataclass
class TokenHoldings:
    """Currently-held fungible tokens, longest holding period first."""

    token_details: list[TokenPosition] = field(default_factory=list)
    error: str | None = None

    @property
    def token_count(self) -> int:
        return len(self.token_details)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "token_count": self.token_count,
            "token_details": [p.to_dict() for p in self.token_details],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TokenHoldings":
        data = data or {}
        if "token_details" not in data:
            return cls(error=str(data.get("error") or "missing token holdings"))
        positions = [
            TokenPosition(
                token=str(d.get("token") or ""),
                balance=_as_float(d.get("balance")),
                holding_period_days=_as_float(d.get("holding_period_days")),
                net_flow=_as_float(d.get("net_flow")),
            )
            for d in data.get("token_details") or []
            if isinstance(d, dict)
        ]
        return cls(token_details=positions, error=data.get("error"))


@dataclass
class DexActivity:
    """DEX trade summary: USD notional and distinct exchanges traded on."""

    dex_volume_usd: float = 0.0
    dex_list: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def dex_count(self) -> int:
        return len(self.dex_list)

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {
            "dex_volume_usd": self.dex_volume_usd,
            "dex_count": self.dex_count,
            "dex_list": list(self.dex_list),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "DexActivity":
        data = data or {}
        if "dex_volume_usd" not in data and "dex_list" not in data:
            return cls(error=str(data.get("error") or "missing DEX activity"))
        return cls(
            dex_volume_usd=_as_float(data.get("dex_volume_usd")),
            dex_list=[str(s) for s in data.get("dex_list") or []],
            error=data.get("error"),
        )
