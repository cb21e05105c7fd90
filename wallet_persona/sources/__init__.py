"""
Upstream source clients.

One client per capability, each with bounded retry and a degraded default,
sharing a single KeyRotationPool and httpx.AsyncClient.
"""

from wallet_persona.sources.alchemy import NftHoldingsClient
from wallet_persona.sources.base import SourceClient
from wallet_persona.sources.bitquery import DexTradesClient
from wallet_persona.sources.etherscan import (
    BalanceClient,
    RecentTransactionsClient,
    TokenActivityClient,
    TokenHoldingsClient,
    TransactionAnalyticsClient,
)
from wallet_persona.sources.key_pool import KeyRotationPool
from wallet_persona.sources.models import (
    ContractCall,
    DexActivity,
    NftHoldings,
    RecentTransactions,
    TokenActivity,
    TokenHoldings,
    TokenPosition,
    TransactionAnalytics,
)

__all__ = [
    "SourceClient",
    "KeyRotationPool",
    "BalanceClient",
    "RecentTransactionsClient",
    "TokenActivityClient",
    "TransactionAnalyticsClient",
    "TokenHoldingsClient",
    "NftHoldingsClient",
    "DexTradesClient",
    "ContractCall",
    "DexActivity",
    "NftHoldings",
    "RecentTransactions",
    "TokenActivity",
    "TokenHoldings",
    "TokenPosition",
    "TransactionAnalytics",
]
