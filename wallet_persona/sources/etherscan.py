"""
Etherscan-backed source clients: balance, recent transactions, token activity,
transaction analytics and fungible token holdings.

All calls are key-authenticated GETs against the account module. Etherscan
reports failures in-band (status "0" with a string result such as a rate
limit message); those are raised as UpstreamError so the base retry loop
picks them up.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any

from dateutil.relativedelta import relativedelta

from wallet_persona.core.exceptions import UpstreamError
from wallet_persona.sources.base import SourceClient
from wallet_persona.sources.models import (
    ContractCall,
    RecentTransactions,
    TokenActivity,
    TokenHoldings,
    TokenPosition,
    TransactionAnalytics,
)

SECONDS_PER_DAY = 86400
WEI_PER_ETH = 10**18
DEFAULT_TOKEN_DECIMALS = 18
RECENT_WINDOW = relativedelta(months=6)
# "0x" + 8 hex chars
METHOD_SELECTOR_LEN = 10

STABLECOIN_SYMBOLS = frozenset({"USDT", "USDC", "DAI", "BUSD", "TUSD", "USDP", "GUSD"})


class EtherscanClient(SourceClient):
    """Shared request plumbing for Etherscan account-module calls."""

    provider = "etherscan"

    async def _account_call(self, api_key: str, **params: Any) -> Any:
        query = {"module": "account", **params, "apikey": api_key}
        data = await self._get_json(self._base_url, params=query)
        if not isinstance(data, dict):
            raise UpstreamError(f"{self.name}: unexpected payload type {type(data).__name__}")
        result = data.get("result")
        if str(data.get("status")) == "0" and not isinstance(result, list):
            raise UpstreamError(f"{self.name}: {data.get('message')}: {result}")
        return result

    async def _list_call(self, api_key: str, **params: Any) -> list[dict[str, Any]]:
        result = await self._account_call(api_key, **params)
        if result is None:
            return []
        if not isinstance(result, list):
            raise UpstreamError(f"{self.name}: expected list result, got {type(result).__name__}")
        return [r for r in result if isinstance(r, dict)]


class BalanceClient(EtherscanClient):
    """Native balance in wei. Degraded default: 0."""

    name = "balance"

    async def _attempt(self, address: str, api_key: str) -> int:
        result = await self._account_call(api_key, action="balance", address=address, tag="latest")
        return int(result or 0)

    def degraded(self, error: Exception | None) -> int:
        return 0


class RecentTransactionsClient(EtherscanClient):
    """
    Contract calls from the trailing six months.

    Keeps transactions strictly newer than now - 6 months, deduplicates by
    (method selector, recipient) for calls with non-empty input and a
    recipient, and reports the raw in-window count.
    """

    name = "recent_transactions"

    async def _attempt(self, address: str, api_key: str) -> RecentTransactions:
        txs = await self._list_call(
            api_key,
            action="txlist",
            address=address,
            startblock=0,
            endblock=99999999,
            sort="desc",
        )
        return summarize_recent_transactions(txs, self._clock())

    def degraded(self, error: Exception | None) -> RecentTransactions:
        return RecentTransactions()


def summarize_recent_transactions(txs: list[dict[str, Any]], now: datetime) -> RecentTransactions:
    cutoff = (now - RECENT_WINDOW).timestamp()
    recent = [tx for tx in txs if int(tx.get("timeStamp") or 0) > cutoff]

    calls: dict[tuple[str, str], ContractCall] = {}
    for tx in recent:
        data = tx.get("input") or ""
        to = tx.get("to") or ""
        if data in ("", "0x") or not to:
            continue
        call = ContractCall(method=data[:METHOD_SELECTOR_LEN], contract_address=to)
        calls.setdefault((call.method, call.contract_address), call)

    return RecentTransactions(transactions=list(calls.values()), recent_tx_count=len(recent))


class TokenActivityClient(EtherscanClient):
    """Stablecoin usage and distinct token symbols from ERC-20 transfers."""

    name = "token_activity"

    async def _attempt(self, address: str, api_key: str) -> TokenActivity:
        txs = await self._list_call(api_key, action="tokentx", address=address, sort="asc")
        symbols = {tx.get("tokenSymbol") for tx in txs}
        return TokenActivity(
            use_stable=any(s in STABLECOIN_SYMBOLS for s in symbols),
            token_count=len(symbols),
        )

    def degraded(self, error: Exception | None) -> TokenActivity:
        return TokenActivity()


class TransactionAnalyticsClient(EtherscanClient):
    """Gas fee and timing analytics over the full ascending transaction list."""

    name = "transaction_analytics"

    async def _attempt(self, address: str, api_key: str) -> TransactionAnalytics:
        txs = await self._list_call(api_key, action="txlist", address=address, sort="asc")
        return analyze_transactions(txs)

    def degraded(self, error: Exception | None) -> TransactionAnalytics:
        return TransactionAnalytics(error=f"transaction analytics unavailable: {error}")


def analyze_transactions(txs: list[dict[str, Any]]) -> TransactionAnalytics:
    if not txs:
        return TransactionAnalytics(error="no transactions")

    timestamps = [int(tx.get("timeStamp") or 0) for tx in txs]
    gas_fees = [int(tx.get("gasUsed") or 0) * int(tx.get("gasPrice") or 0) / WEI_PER_ETH for tx in txs]
    hours = Counter(datetime.fromtimestamp(ts, tz=timezone.utc).hour for ts in timestamps)
    # Ties go to the earliest hour of the day
    most_active_hour = min(hours, key=lambda h: (-hours[h], h))
    intervals = [b - a for a, b in zip(timestamps, timestamps[1:])]
    avg_interval_days = (sum(intervals) / len(intervals)) / SECONDS_PER_DAY if intervals else 0.0

    return TransactionAnalytics(
        total_transactions=len(txs),
        average_gas_fee_eth=round(sum(gas_fees) / len(gas_fees), 6),
        total_gas_fee_eth=round(sum(gas_fees), 6),
        max_gas_fee_eth=round(max(gas_fees), 6),
        most_active_hour=most_active_hour,
        average_transaction_interval_days=round(avg_interval_days, 2),
    )


class TokenHoldingsClient(EtherscanClient):
    """Currently-held ERC-20 tokens with holding period and net flow."""

    name = "token_holdings"

    async def _attempt(self, address: str, api_key: str) -> TokenHoldings:
        txs = await self._list_call(api_key, action="tokentx", address=address, sort="asc")
        if not txs:
            return TokenHoldings(error="no token transfers")
        return build_token_holdings(txs, address, self._now_ts())

    def degraded(self, error: Exception | None) -> TokenHoldings:
        return TokenHoldings(error=f"token holdings unavailable: {error}")


def build_token_holdings(txs: list[dict[str, Any]], address: str, now_ts: float) -> TokenHoldings:
    """
    Replay transfer events into a per-(symbol, contract) ledger.

    Values are scaled by tokenDecimal (default 18). Only entries with a
    strictly positive final balance are reported, longest holding first.
    """
    me = address.lower()
    ledger: dict[tuple[str, str], dict[str, Any]] = {}

    for tx in txs:
        symbol = tx.get("tokenSymbol") or ""
        contract = tx.get("contractAddress") or ""
        timestamp = int(tx.get("timeStamp") or 0)
        decimals = int(tx.get("tokenDecimal") or DEFAULT_TOKEN_DECIMALS)
        value = int(tx.get("value") or 0) / 10**decimals

        entry = ledger.setdefault(
            (symbol, contract),
            {"first_in": None, "last_in": None, "total_in": 0.0, "total_out": 0.0, "balance": 0.0},
        )
        if (tx.get("to") or "").lower() == me:
            entry["total_in"] += value
            entry["balance"] += value
            if entry["first_in"] is None or timestamp < entry["first_in"]:
                entry["first_in"] = timestamp
            if entry["last_in"] is None or timestamp > entry["last_in"]:
                entry["last_in"] = timestamp
        if (tx.get("from") or "").lower() == me:
            entry["total_out"] += value
            entry["balance"] -= value

    positions: list[TokenPosition] = []
    for (symbol, _contract), entry in ledger.items():
        if entry["balance"] <= 0:
            continue
        first_in = entry["first_in"] if entry["first_in"] is not None else now_ts
        positions.append(
            TokenPosition(
                token=symbol,
                balance=round(entry["balance"], 6),
                holding_period_days=round((now_ts - first_in) / SECONDS_PER_DAY, 2),
                net_flow=round(entry["total_in"] - entry["total_out"], 6),
            )
        )
    positions.sort(key=lambda p: p.holding_period_days, reverse=True)
    return TokenHoldings(token_details=positions)
