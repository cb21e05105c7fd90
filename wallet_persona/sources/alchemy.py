"""
Alchemy NFT ownership client.

GET {base}/{api_key}/getNFTs?owner=<address>. The key is part of the URL
path, so every attempt draws a new key from the rotation pool before the
request (including the first).
"""

from __future__ import annotations

from wallet_persona.core.exceptions import UpstreamError
from wallet_persona.sources.base import SourceClient
from wallet_persona.sources.models import NftHoldings


class NftHoldingsClient(SourceClient):
    """Total NFTs held and distinct collection symbols."""

    name = "nft_holdings"
    provider = "alchemy"

    async def _attempt(self, address: str, api_key: str) -> NftHoldings:
        url = f"{self._base_url.rstrip('/')}/{api_key}/getNFTs"
        data = await self._get_json(url, params={"owner": address})
        if not isinstance(data, dict):
            raise UpstreamError(f"{self.name}: unexpected payload type {type(data).__name__}")

        total = 0
        collections: list[str] = []
        for nft in data.get("ownedNfts") or []:
            total += int(nft.get("balance") or 0)
            symbol = (nft.get("contractMetadata") or {}).get("symbol")
            if symbol and symbol not in collections:
                collections.append(symbol)
        return NftHoldings(owned_nfts_count=total, owned_nft_collections=collections)

    def degraded(self, error: Exception | None) -> NftHoldings:
        return NftHoldings(error=f"NFT holdings unavailable: {error}")
