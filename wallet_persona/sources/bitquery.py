"""
Bitquery GraphQL client for DEX trade history.

Posts a templated dexTrades query (sender address, result cap of 200)
with a rotated bearer key per attempt.
"""

from __future__ import annotations

from typing import Any

from wallet_persona.core.exceptions import UpstreamError
from wallet_persona.sources.base import SourceClient
from wallet_persona.sources.models import DexActivity

DEX_TRADES_LIMIT = 200

DEX_TRADES_QUERY = """
query DexTrades($address: String!, $limit: Int!) {
  ethereum(network: ethereum) {
    dexTrades(txSender: {is: $address}, options: {limit: $limit}) {
      transaction {
        hash
      }
      exchange {
        name
      }
      tradeAmount(in: USD)
      block {
        timestamp {
          time
        }
      }
    }
  }
}
"""


def build_dex_trades_request(address: str, limit: int = DEX_TRADES_LIMIT) -> dict[str, Any]:
    return {"query": DEX_TRADES_QUERY, "variables": {"address": address, "limit": limit}}


class DexTradesClient(SourceClient):
    """Total USD notional and distinct exchanges from the wallet's DEX trades."""

    name = "dex_trades"
    provider = "bitquery"

    async def _attempt(self, address: str, api_key: str) -> DexActivity:
        payload = await self._post_json(
            self._base_url,
            build_dex_trades_request(address),
            headers={"Authorization": f"Bearer {api_key}"},
        )
        if not isinstance(payload, dict):
            raise UpstreamError(f"{self.name}: unexpected payload type {type(payload).__name__}")
        if payload.get("errors") and not payload.get("data"):
            raise UpstreamError(f"{self.name}: {payload['errors']}")
        trades = ((payload.get("data") or {}).get("ethereum") or {}).get("dexTrades") or []
        return summarize_dex_trades(trades)

    def degraded(self, error: Exception | None) -> DexActivity:
        return DexActivity(error=f"DEX activity unavailable: {error}")


def summarize_dex_trades(trades: list[dict[str, Any]]) -> DexActivity:
    total = 0.0
    exchanges: list[str] = []
    for trade in trades:
        total += float(trade.get("tradeAmount") or 0)
        name = (trade.get("exchange") or {}).get("name")
        if name and name not in exchanges:
            exchanges.append(name)
    return DexActivity(dex_volume_usd=round(total, 2), dex_list=exchanges)
