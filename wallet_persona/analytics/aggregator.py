"""
Aggregator: collect one wallet's activity from every source client.

Validates and checksums the address, then calls balance -> recent
transactions -> token activity in order, then transaction analytics, NFT
holdings, token holdings and DEX trades concurrently. Each concurrent task
writes its own slot of the bundle; a failure in one never aborts the others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import httpx

from wallet_persona.config import Settings, get_settings
from wallet_persona.core.exceptions import (
    AggregationError,
    ConfigurationError,
    InvalidAddressError,
)
from wallet_persona.persona_logging import get_logger
from wallet_persona.sources import (
    BalanceClient,
    ContractCall,
    DexActivity,
    DexTradesClient,
    KeyRotationPool,
    NftHoldings,
    NftHoldingsClient,
    RecentTransactionsClient,
    SourceClient,
    TokenActivityClient,
    TokenHoldings,
    TokenHoldingsClient,
    TransactionAnalytics,
    TransactionAnalyticsClient,
)
from wallet_persona.sources.base import utc_now
from wallet_persona.utils.wallet_utils import to_checksum_wallet

logger = get_logger(__name__)


@dataclass
class RawActivityBundle:
    """
    Everything the sources reported for one wallet in one evaluation pass.

    Ephemeral: consumed by the feature extractor and returned by the
    read-only analysis endpoint, never persisted directly.
    """

    wallet: str
    balance: int = 0
    """Native balance in wei."""
    use_stable: bool = False
    tokens_count: int = 0
    recent_transactions_count: int = 0
    transactions: list[ContractCall] = field(default_factory=list)
    """Deduplicated contract calls from the last six months."""
    transaction: TransactionAnalytics = field(default_factory=TransactionAnalytics)
    nft: NftHoldings = field(default_factory=NftHoldings)
    ft: TokenHoldings = field(default_factory=TokenHoldings)
    dex: DexActivity = field(default_factory=DexActivity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet,
            "balance": self.balance,
            "use_stable": self.use_stable,
            "tokens_count": self.tokens_count,
            "recent_transactions_count": self.recent_transactions_count,
            "transactions": [c.to_dict() for c in self.transactions],
            "transaction": self.transaction.to_dict(),
            "nft": self.nft.to_dict(),
            "ft": self.ft.to_dict(),
            "dex": self.dex.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawActivityBundle":
        """Rebuild from to_dict() output; also accepts the legacy capitalized section keys."""

        def section(key: str) -> dict[str, Any] | None:
            value = data.get(key, data.get(key.upper(), data.get(key.capitalize())))
            return value if isinstance(value, dict) else None

        calls = [
            ContractCall(method=str(t.get("method") or ""), contract_address=str(t.get("contract_address") or ""))
            for t in data.get("transactions") or []
            if isinstance(t, dict)
        ]
        return cls(
            wallet=str(data.get("wallet") or data.get("address") or ""),
            balance=int(data.get("balance") or 0),
            use_stable=bool(data.get("use_stable")),
            tokens_count=int(data.get("tokens_count") or 0),
            recent_transactions_count=int(data.get("recent_transactions_count") or 0),
            transactions=calls,
            transaction=TransactionAnalytics.from_dict(section("transaction")),
            nft=NftHoldings.from_dict(section("nft")),
            ft=TokenHoldings.from_dict(section("ft")),
            dex=DexActivity.from_dict(section("dex")),
        )


class Aggregator:
    """
    Fan-out over all source clients for one wallet.

    Owns its httpx.AsyncClient unless one is supplied. Use as an async
    context manager or call aclose() when done.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        key_pool: KeyRotationPool | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        settings = settings or get_settings()
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout_sec))
        self._owns_http = http is None
        self.key_pool = key_pool or KeyRotationPool(
            {
                "etherscan": settings.etherscan_api_keys,
                "alchemy": settings.alchemy_api_keys,
                "bitquery": settings.bitquery_api_keys,
            }
        )
        common: dict[str, Any] = {
            "max_retries": settings.source_max_retries,
            "timeout_sec": settings.request_timeout_sec,
            "retry_delay_sec": settings.source_retry_delay_sec,
            "clock": clock,
        }
        etherscan = {"base_url": settings.etherscan_api_url, **common}
        self.balance = BalanceClient(self._http, self.key_pool, **etherscan)
        self.recent_transactions = RecentTransactionsClient(self._http, self.key_pool, **etherscan)
        self.token_activity = TokenActivityClient(self._http, self.key_pool, **etherscan)
        self.transaction_analytics = TransactionAnalyticsClient(self._http, self.key_pool, **etherscan)
        self.token_holdings = TokenHoldingsClient(self._http, self.key_pool, **etherscan)
        self.nft_holdings = NftHoldingsClient(
            self._http, self.key_pool, base_url=settings.alchemy_nft_url, **common
        )
        self.dex_trades = DexTradesClient(
            self._http, self.key_pool, base_url=settings.bitquery_api_url, **common
        )

    async def __aenter__(self) -> "Aggregator":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def aggregate(self, address: str) -> RawActivityBundle:
        """
        Build the RawActivityBundle for one wallet.

        Raises InvalidAddressError for a malformed address and
        AggregationError when the sequential stage fails as a whole.
        """
        wallet = to_checksum_wallet(address)
        logger.info("aggregate_start", wallet=wallet)

        try:
            balance = await self.balance.fetch(wallet)
            recent = await self.recent_transactions.fetch(wallet)
            activity = await self.token_activity.fetch(wallet)
        except InvalidAddressError:
            raise
        except ConfigurationError as e:
            logger.error("aggregate_config_error", wallet=wallet, error=str(e))
            raise AggregationError(f"Wallet aggregation misconfigured: {e}") from e
        except Exception as e:
            logger.exception("aggregate_failed", wallet=wallet, error=str(e))
            raise AggregationError(f"Wallet aggregation failed: {e}") from e

        transaction, nft, ft, dex = await asyncio.gather(
            self._guarded(self.transaction_analytics, wallet),
            self._guarded(self.nft_holdings, wallet),
            self._guarded(self.token_holdings, wallet),
            self._guarded(self.dex_trades, wallet),
        )

        bundle = RawActivityBundle(
            wallet=wallet,
            balance=balance,
            use_stable=activity.use_stable,
            tokens_count=activity.token_count,
            recent_transactions_count=recent.recent_tx_count,
            transactions=recent.transactions,
            transaction=transaction,
            nft=nft,
            ft=ft,
            dex=dex,
        )
        logger.info(
            "aggregate_done",
            wallet=wallet,
            recent_transactions=recent.recent_tx_count,
            degraded=[
                name
                for name, part in (("transaction", transaction), ("nft", nft), ("ft", ft), ("dex", dex))
                if part.error is not None
            ],
        )
        return bundle

    async def _guarded(self, client: SourceClient, wallet: str) -> Any:
        """Run one concurrent-group client; any failure becomes that client's degraded default."""
        try:
            return await client.fetch(wallet)
        except Exception as e:
            logger.error("aggregate_module_failed", source=client.name, wallet=wallet, error=str(e))
            return client.degraded(e)
