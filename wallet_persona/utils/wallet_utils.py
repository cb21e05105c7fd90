"""Wallet address validation utilities."""

from __future__ import annotations

from web3 import Web3

from wallet_persona.core.exceptions import InvalidAddressError


def is_valid_wallet(w: str) -> bool:
    """Return True if w is a well-formed Ethereum address (any case)."""
    try:
        return bool(w) and Web3.is_address(w.strip().lower())
    except (TypeError, ValueError):
        return False


def to_checksum_wallet(w: str | None) -> str:
    """
    Validate and checksum-normalize an Ethereum address.

    Raises InvalidAddressError for a missing or malformed address.
    """
    w = (w or "").strip()
    if not w:
        raise InvalidAddressError("wallet address is required")
    if not is_valid_wallet(w):
        raise InvalidAddressError(f"Invalid Ethereum wallet address: {w}")
    return Web3.to_checksum_address(w.lower())
