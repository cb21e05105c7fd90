"""
Persona-contract associations: which contracts wallets of each position label use.

A position label ("group") is two distinct archetypes joined by "_",
e.g. "Whale_Diamond". Token transfers and stable / wrapped-asset contracts
are skipped since nearly every wallet touches them.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from wallet_persona.analytics.scorer import ARCHETYPES
from wallet_persona.persona_logging import get_logger

logger = get_logger(__name__)

# USDT, USDC, WETH on mainnet
EXCLUDED_CONTRACTS = frozenset(
    {
        "0xdac17f958d2ee523a2206206994597c13d831ec7",
        "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
        "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
    }
)
# ERC-20 transfer(address,uint256)
TRANSFER_METHODS = frozenset({"transfer", "0xa9059cbb"})


def parse_group(group: str) -> tuple[str, str]:
    """Split a position label into its two archetypes. Raises ValueError if malformed."""
    parts = (group or "").split("_")
    if len(parts) != 2 or parts[0] == parts[1] or not all(p in ARCHETYPES for p in parts):
        raise ValueError(
            f"Invalid persona group {group!r}: expected two distinct archetypes from "
            f"{', '.join(ARCHETYPES)} joined by '_'"
        )
    return parts[0], parts[1]


def _call_fields(call: Any) -> tuple[str, str]:
    if isinstance(call, Mapping):
        return str(call.get("method") or ""), str(call.get("contract_address") or "")
    return call.method, call.contract_address


def persona_contracts(transactions: Iterable[Any]) -> list[str]:
    """Distinct counterparty contracts worth associating, in first-seen order."""
    contracts: dict[str, None] = {}
    for call in transactions or []:
        method, contract = _call_fields(call)
        if not contract or method.lower() in TRANSFER_METHODS:
            continue
        if contract.lower() in EXCLUDED_CONTRACTS:
            continue
        contracts.setdefault(contract, None)
    return list(contracts)


def record_persona_contracts(store: Any, position: str, transactions: Iterable[Any], address: str) -> int:
    """
    Record one (position -> contract) row per distinct eligible contract the
    wallet called, plus one row for the wallet itself. Returns rows written.
    """
    contracts = persona_contracts(transactions)
    written = store.add_persona_contracts(position, [*contracts, address], address=address)
    logger.info("persona_contracts_recorded", wallet=address, group=position, contracts=len(contracts))
    return written
