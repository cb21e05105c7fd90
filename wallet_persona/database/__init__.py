"""
Wallet cache: one WalletRecord per checksum address, plus the persona-contract table.

SQLite via SQLAlchemy by default; any SQLAlchemy URL works through DATABASE_URL.
"""

from wallet_persona.database.models import UpsertResult, WalletRecord
from wallet_persona.database.store import WalletStore

__all__ = ["UpsertResult", "WalletRecord", "WalletStore"]
