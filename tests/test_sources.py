"""
Tests for the upstream source clients: parsing, bounded retry, key rotation
and degraded defaults. Providers are faked with httpx.MockTransport.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from dateutil.relativedelta import relativedelta

from tests.conftest import (
    CONTRACT_A,
    CONTRACT_B,
    FIXED_NOW,
    NOW_TS,
    WALLET,
    fixed_clock,
    sample_tokentx,
    sample_txlist,
)
from wallet_persona.core.exceptions import ConfigurationError, InvalidAddressError
from wallet_persona.sources import (
    BalanceClient,
    DexTradesClient,
    KeyRotationPool,
    NftHoldingsClient,
    RecentTransactionsClient,
    TokenActivityClient,
    TokenHoldingsClient,
    TransactionAnalyticsClient,
)
from wallet_persona.sources.bitquery import DEX_TRADES_LIMIT, build_dex_trades_request
from wallet_persona.sources.etherscan import (
    analyze_transactions,
    build_token_holdings,
    summarize_recent_transactions,
)

ETHERSCAN_URL = "https://etherscan.test/api"
KEYS = {"etherscan": ["ek1", "ek2", "ek3"], "alchemy": ["ak1", "ak2"], "bitquery": ["bk1"]}


def _client(cls, handler, base_url=ETHERSCAN_URL, keys=None, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pool = KeyRotationPool(KEYS if keys is None else keys)
    return cls(http, pool, base_url=base_url, retry_delay_sec=0.0, clock=fixed_clock, **kwargs)


# -----------------------------------------------------------------------------
# Pure helpers
# -----------------------------------------------------------------------------


def test_recent_transactions_window_and_dedup():
    result = summarize_recent_transactions(sample_txlist(), FIXED_NOW)
    assert result.recent_tx_count == 4
    pairs = {(c.method, c.contract_address) for c in result.transactions}
    assert pairs == {("0xa9059cbb", CONTRACT_A), ("0x38ed1739", CONTRACT_B)}
    assert len(result.transactions) == 2


def test_recent_transactions_repeated_pair_collapses_to_one():
    txs = [
        {"timeStamp": str(NOW_TS - i * 3600), "to": CONTRACT_A, "input": "0xa9059cbb" + f"{i:04x}"}
        for i in range(25)
    ]
    result = summarize_recent_transactions(txs, FIXED_NOW)
    assert result.recent_tx_count == 25
    assert len(result.transactions) == 1
    assert result.transactions[0].method == "0xa9059cbb"


def test_recent_transactions_cutoff_is_strict():
    cutoff = int((FIXED_NOW - relativedelta(months=6)).timestamp())
    txs = [
        {"timeStamp": str(cutoff), "to": CONTRACT_A, "input": "0x11111111"},
        {"timeStamp": str(cutoff + 1), "to": CONTRACT_B, "input": "0x22222222"},
    ]
    result = summarize_recent_transactions(txs, FIXED_NOW)
    assert result.recent_tx_count == 1
    assert [c.contract_address for c in result.transactions] == [CONTRACT_B]


def test_recent_transactions_skip_empty_input_and_missing_recipient():
    txs = [
        {"timeStamp": str(NOW_TS - 10), "to": CONTRACT_A, "input": ""},
        {"timeStamp": str(NOW_TS - 10), "to": CONTRACT_A, "input": "0x"},
        {"timeStamp": str(NOW_TS - 10), "to": "", "input": "0x60806040"},
    ]
    result = summarize_recent_transactions(txs, FIXED_NOW)
    assert result.recent_tx_count == 3
    assert result.transactions == []


def test_token_holdings_balance_and_net_flow():
    """100 in, 30 out at 18 decimals -> balance 70, net flow 70."""
    holdings = build_token_holdings(sample_tokentx(), WALLET, NOW_TS)
    assert holdings.error is None
    assert [p.token for p in holdings.token_details] == ["UNI", "USDC"]
    uni, usdc = holdings.token_details
    assert uni.balance == 70
    assert uni.net_flow == 70
    assert uni.holding_period_days == 100
    assert usdc.balance == 50
    assert usdc.holding_period_days == 10


def test_token_holdings_fully_sold_not_reported():
    me = WALLET.lower()
    other = "0x" + "99" * 20
    txs = [
        {"timeStamp": str(NOW_TS - 5 * 86400), "from": other, "to": me, "value": str(10**18), "tokenSymbol": "AAA", "contractAddress": CONTRACT_A},
        {"timeStamp": str(NOW_TS - 4 * 86400), "from": me, "to": other, "value": str(10**18), "tokenSymbol": "AAA", "contractAddress": CONTRACT_A},
    ]
    assert build_token_holdings(txs, WALLET, NOW_TS).token_details == []


def test_transaction_analytics_summary():
    result = analyze_transactions(sample_txlist())
    assert result.error is None
    assert result.total_transactions == 5
    assert result.most_active_hour == 0
    assert result.max_gas_fee_eth == pytest.approx(0.0003)
    assert result.total_gas_fee_eth == pytest.approx(0.000442)
    # gaps: 360, 10, 10, 10 days
    assert result.average_transaction_interval_days == 97.5


def test_transaction_analytics_single_transaction_has_zero_interval():
    result = analyze_transactions([{"timeStamp": str(NOW_TS), "gasUsed": "21000", "gasPrice": "10"}])
    assert result.total_transactions == 1
    assert result.average_transaction_interval_days == 0


def test_transaction_analytics_busiest_hour_ties_go_to_earliest():
    base = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp())
    txs = [{"timeStamp": str(base + h * 3600)} for h in (5, 3, 5, 3, 9)]
    assert analyze_transactions(txs).most_active_hour == 3


def test_transaction_analytics_empty_list_is_error_marker():
    result = analyze_transactions([])
    assert result.error == "no transactions"
    assert result.to_dict() == {"error": "no transactions"}


def test_dex_request_template_carries_limit():
    body = build_dex_trades_request(WALLET)
    assert body["variables"] == {"address": WALLET, "limit": DEX_TRADES_LIMIT}
    assert DEX_TRADES_LIMIT == 200
    assert "dexTrades" in body["query"]


# -----------------------------------------------------------------------------
# Clients over the fake upstream
# -----------------------------------------------------------------------------


def test_balance_client_parses_wei(upstream):
    client = _client(BalanceClient, upstream)
    assert asyncio.run(client.fetch(WALLET)) == 1500000000000000000


def test_balance_retry_exhaustion_returns_zero_and_rotates_keys(upstream):
    upstream.failing.add("balance")
    client = _client(BalanceClient, upstream, max_retries=2)
    assert asyncio.run(client.fetch(WALLET)) == 0
    assert upstream.calls["balance"] == 3
    assert [k for _, k in upstream.keys] == ["ek2", "ek3", "ek1"]


def test_attempts_remaining_overrides_budget(upstream):
    upstream.failing.add("balance")
    client = _client(BalanceClient, upstream, max_retries=5)
    assert asyncio.run(client.fetch(WALLET, attempts_remaining=0)) == 0
    assert upstream.calls["balance"] == 1


def test_in_band_etherscan_error_is_retried():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})
        return httpx.Response(200, json={"status": "1", "message": "OK", "result": "42"})

    client = _client(BalanceClient, handler)
    assert asyncio.run(client.fetch(WALLET)) == 42
    assert calls["n"] == 2


def test_empty_result_list_with_status_zero_is_not_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "0", "message": "No transactions found", "result": []})

    client = _client(RecentTransactionsClient, handler)
    result = asyncio.run(client.fetch(WALLET))
    assert result.recent_tx_count == 0
    assert result.transactions == []


def test_recent_transactions_client(upstream):
    client = _client(RecentTransactionsClient, upstream)
    result = asyncio.run(client.fetch(WALLET))
    assert result.recent_tx_count == 4
    assert len(result.transactions) == 2


def test_token_activity_client_flags_stablecoins(upstream):
    client = _client(TokenActivityClient, upstream)
    result = asyncio.run(client.fetch(WALLET))
    assert result.use_stable is True
    assert result.token_count == 2


def test_transaction_analytics_client_degrades_with_error_marker(upstream):
    upstream.failing.add("txlist")
    client = _client(TransactionAnalyticsClient, upstream, max_retries=1)
    result = asyncio.run(client.fetch(WALLET))
    assert result.total_transactions == 0
    assert result.error is not None
    assert upstream.calls["txlist"] == 2


def test_token_holdings_client_no_transfers_is_error_marker():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "0", "message": "No transactions found", "result": []})

    client = _client(TokenHoldingsClient, handler)
    result = asyncio.run(client.fetch(WALLET))
    assert result.error == "no token transfers"
    assert result.token_count == 0


def test_nft_client_rotates_before_first_attempt(upstream):
    client = _client(NftHoldingsClient, upstream, base_url="https://alchemy.test/nft/v2")
    result = asyncio.run(client.fetch(WALLET))
    assert result.owned_nfts_count == 4
    assert result.owned_nft_collections == ["BAYC", "PUNK"]
    assert upstream.keys == [("nft", "ak2")]


def test_nft_client_degraded_after_failures(upstream):
    upstream.failing.add("nft")
    client = _client(NftHoldingsClient, upstream, base_url="https://alchemy.test/nft/v2", max_retries=3)
    result = asyncio.run(client.fetch(WALLET))
    assert result.error is not None
    assert result.owned_nft_collections_count == 0
    assert [k for _, k in upstream.keys] == ["ak2", "ak1", "ak2", "ak1"]


def test_dex_client_sums_volume_and_exchanges(upstream):
    client = _client(DexTradesClient, upstream, base_url="https://bitquery.test/graphql")
    result = asyncio.run(client.fetch(WALLET))
    assert result.dex_volume_usd == 1350.75
    assert result.dex_list == ["Uniswap", "SushiSwap"]
    assert result.dex_count == 2


def test_dex_client_graphql_errors_degrade():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"errors": [{"message": "quota exceeded"}]})

    client = _client(DexTradesClient, handler, base_url="https://bitquery.test/graphql", max_retries=1)
    result = asyncio.run(client.fetch(WALLET))
    assert result.error is not None
    assert result.dex_volume_usd == 0


def test_missing_address_raises_immediately(upstream):
    client = _client(BalanceClient, upstream)
    with pytest.raises(InvalidAddressError):
        asyncio.run(client.fetch(""))
    assert upstream.calls == {}


def test_missing_keys_raise_configuration_error(upstream):
    client = _client(BalanceClient, upstream, keys={})
    with pytest.raises(ConfigurationError):
        asyncio.run(client.fetch(WALLET))


def test_empty_base_url_rejected(upstream):
    with pytest.raises(ConfigurationError):
        _client(BalanceClient, upstream, base_url="")
