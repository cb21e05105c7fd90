"""
Pytest fixtures for Wallet Persona tests.

Upstream providers are served by httpx.MockTransport (no network); the
wallet store is a temporary SQLite file per test.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from wallet_persona.config import Settings
from wallet_persona.utils.wallet_utils import to_checksum_wallet

FIXED_NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)
NOW_TS = int(FIXED_NOW.timestamp())
DAY = 86400

WALLET = to_checksum_wallet("0xd8da6bf26964af9d7eed9e03e53415d37aa96045")
WALLET_2 = to_checksum_wallet("0xab5801a7d398351b8be11c439e05c5b3259aec9b")

CONTRACT_A = "0x" + "11" * 20
CONTRACT_B = "0x" + "22" * 20
CONTRACT_C = "0x" + "33" * 20
CONTRACT_OLD = "0x" + "44" * 20
UNI_CONTRACT = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
USDC_CONTRACT = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"


def fixed_clock() -> datetime:
    return FIXED_NOW


def sample_txlist(wallet: str = WALLET) -> list[dict[str, Any]]:
    """Five transactions: four inside the six-month window, two sharing a (selector, contract) pair."""
    me = wallet.lower()
    return [
        {"timeStamp": str(NOW_TS - 400 * DAY), "from": me, "to": CONTRACT_OLD, "input": "0x12345678", "gasUsed": "21000", "gasPrice": "1000000000"},
        {"timeStamp": str(NOW_TS - 40 * DAY), "from": me, "to": CONTRACT_C, "input": "0x", "gasUsed": "21000", "gasPrice": "1000000000"},
        {"timeStamp": str(NOW_TS - 30 * DAY), "from": me, "to": CONTRACT_B, "input": "0x38ed1739abcdef", "gasUsed": "150000", "gasPrice": "2000000000"},
        {"timeStamp": str(NOW_TS - 20 * DAY), "from": me, "to": CONTRACT_A, "input": "0xa9059cbb0000aa", "gasUsed": "50000", "gasPrice": "1000000000"},
        {"timeStamp": str(NOW_TS - 10 * DAY), "from": me, "to": CONTRACT_A, "input": "0xa9059cbb0000bb", "gasUsed": "50000", "gasPrice": "1000000000"},
    ]


def sample_tokentx(wallet: str = WALLET) -> list[dict[str, Any]]:
    """UNI: 100 in, 30 out (18 decimals). USDC: 50 in (6 decimals)."""
    me = wallet.lower()
    other = "0x" + "99" * 20
    return [
        {"timeStamp": str(NOW_TS - 100 * DAY), "from": other, "to": me, "value": str(100 * 10**18), "tokenSymbol": "UNI", "tokenDecimal": "18", "contractAddress": UNI_CONTRACT},
        {"timeStamp": str(NOW_TS - 50 * DAY), "from": me, "to": other, "value": str(30 * 10**18), "tokenSymbol": "UNI", "tokenDecimal": "18", "contractAddress": UNI_CONTRACT},
        {"timeStamp": str(NOW_TS - 10 * DAY), "from": other, "to": me, "value": str(50 * 10**6), "tokenSymbol": "USDC", "tokenDecimal": "6", "contractAddress": USDC_CONTRACT},
    ]


SAMPLE_NFTS = {
    "ownedNfts": [
        {"balance": "1", "contractMetadata": {"symbol": "BAYC"}},
        {"balance": "2", "contractMetadata": {"symbol": "PUNK"}},
        {"balance": "1", "contractMetadata": {"symbol": "BAYC"}},
    ]
}

SAMPLE_DEX_TRADES = {
    "data": {
        "ethereum": {
            "dexTrades": [
                {"exchange": {"name": "Uniswap"}, "tradeAmount": 1000.5},
                {"exchange": {"name": "SushiSwap"}, "tradeAmount": 250.25},
                {"exchange": {"name": "Uniswap"}, "tradeAmount": 100},
            ]
        }
    }
}


class FakeUpstream:
    """
    MockTransport handler serving Etherscan, Alchemy and Bitquery.

    failing: set of capability names ("balance", "txlist", "tokentx", "nft", "dex")
    that answer with HTTP 500. calls counts requests per capability;
    keys records the API key each request carried.
    """

    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.calls: dict[str, int] = {}
        self.keys: list[tuple[str, str]] = []

    def _record(self, capability: str, key: str) -> bool:
        self.calls[capability] = self.calls.get(capability, 0) + 1
        self.keys.append((capability, key))
        return capability in self.failing

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = request.url
        if url.host == "etherscan.test":
            action = url.params.get("action")
            address = url.params.get("address")
            if self._record(action, url.params.get("apikey")):
                return httpx.Response(500, text="upstream down")
            if action == "balance":
                return httpx.Response(200, json={"status": "1", "message": "OK", "result": "1500000000000000000"})
            if action == "txlist":
                txs = sample_txlist(address)
                if url.params.get("sort") == "desc":
                    txs = list(reversed(txs))
                return httpx.Response(200, json={"status": "1", "message": "OK", "result": txs})
            if action == "tokentx":
                return httpx.Response(200, json={"status": "1", "message": "OK", "result": sample_tokentx(address)})
        if url.host == "alchemy.test":
            key = url.path.split("/")[-2]
            if self._record("nft", key):
                return httpx.Response(500, text="upstream down")
            return httpx.Response(200, json=SAMPLE_NFTS)
        if url.host == "bitquery.test":
            key = request.headers.get("Authorization", "").removeprefix("Bearer ")
            if self._record("dex", key):
                return httpx.Response(500, text="upstream down")
            return httpx.Response(200, json=SAMPLE_DEX_TRADES)
        return httpx.Response(404, json={"error": f"unexpected request {url}"})


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'wallet_data.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        etherscan_api_keys=("ek1", "ek2", "ek3"),
        etherscan_api_url="https://etherscan.test/api",
        alchemy_api_keys=("ak1", "ak2"),
        alchemy_nft_url="https://alchemy.test/nft/v2",
        bitquery_api_keys=("bk1",),
        bitquery_api_url="https://bitquery.test/graphql",
        database_url=database_url,
        source_max_retries=2,
        source_retry_delay_sec=0.0,
    )


@pytest.fixture
def make_aggregator(settings, upstream):
    """Factory: Aggregator wired to the fake upstream (new AsyncClient per call)."""
    from wallet_persona.analytics.aggregator import Aggregator

    def _make(**overrides: Any) -> Aggregator:
        http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        return Aggregator(overrides.pop("settings", settings), http=http, clock=fixed_clock, **overrides)

    return _make


@pytest.fixture
def store(database_url):
    """Fresh WalletStore on a temporary SQLite file, tables created."""
    from wallet_persona.database import WalletStore

    s = WalletStore(database_url)
    s.init_db()
    yield s
    s.dispose()


@pytest.fixture
def pipeline(make_aggregator, store):
    from wallet_persona.analytics.pipeline import PersonaPipeline

    return PersonaPipeline(make_aggregator(), store)


@pytest.fixture
def client(pipeline):
    """FastAPI TestClient over an app with the test pipeline injected."""
    from fastapi.testclient import TestClient

    from wallet_persona.api_server.server import create_app

    with TestClient(create_app(pipeline)) as c:
        yield c
