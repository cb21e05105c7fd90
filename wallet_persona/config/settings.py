"""
Environment variable loading for Wallet Persona.

- ETHERSCAN_API_KEYS / ALCHEMY_API_KEYS / BITQUERY_API_KEYS: comma-separated key lists (rotated)
- ETHERSCAN_API_URL / ALCHEMY_NFT_URL / BITQUERY_API_URL: provider base URLs
- DATABASE_URL: SQLAlchemy URL (default sqlite:///wallet_data.db)
- API_HOST / API_PORT: listening address for the FastAPI server
- REQUEST_TIMEOUT_SEC, SOURCE_MAX_RETRIES, SOURCE_RETRY_DELAY_SEC, REFERENCE_STATS_TTL_SEC
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is wallet_persona/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_ETHERSCAN_API_URL = "https://api.etherscan.io/api"
DEFAULT_ALCHEMY_NFT_URL = "https://eth-mainnet.g.alchemy.com/nft/v2"
DEFAULT_BITQUERY_API_URL = "https://graphql.bitquery.io"
DEFAULT_DATABASE_URL = "sqlite:///wallet_data.db"


@dataclass(frozen=True)
class Settings:
    """Typed view of the environment; build with get_settings()."""

    etherscan_api_keys: tuple[str, ...] = ()
    etherscan_api_url: str = DEFAULT_ETHERSCAN_API_URL
    alchemy_api_keys: tuple[str, ...] = ()
    alchemy_nft_url: str = DEFAULT_ALCHEMY_NFT_URL
    bitquery_api_keys: tuple[str, ...] = ()
    bitquery_api_url: str = DEFAULT_BITQUERY_API_URL
    database_url: str = DEFAULT_DATABASE_URL
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    request_timeout_sec: float = 30.0
    source_max_retries: int = 3
    source_retry_delay_sec: float = 0.5
    reference_stats_ttl_sec: float = 0.0


def load_persona_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def _split_keys(*names: str) -> tuple[str, ...]:
    """First non-empty env var among names, split on commas."""
    for name in names:
        raw = (os.getenv(name) or "").strip()
        if raw:
            return tuple(k.strip() for k in raw.split(",") if k.strip())
    return ()


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name) or "").strip() or default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw else default


def get_settings() -> Settings:
    """
    Return the current application settings read from the environment.

    Not cached: tests monkeypatch env vars and call again.
    """
    load_persona_env()
    return Settings(
        etherscan_api_keys=_split_keys("ETHERSCAN_API_KEYS", "ETHERSCAN_API_KEY"),
        etherscan_api_url=_env_str("ETHERSCAN_API_URL", DEFAULT_ETHERSCAN_API_URL),
        alchemy_api_keys=_split_keys("ALCHEMY_API_KEYS", "ALCHEMY_API_KEY"),
        alchemy_nft_url=_env_str("ALCHEMY_NFT_URL", DEFAULT_ALCHEMY_NFT_URL).rstrip("/"),
        bitquery_api_keys=_split_keys("BITQUERY_API_KEYS", "BITQUERY_API_KEY"),
        bitquery_api_url=_env_str("BITQUERY_API_URL", DEFAULT_BITQUERY_API_URL),
        database_url=_env_str("DATABASE_URL", DEFAULT_DATABASE_URL),
        api_host=_env_str("API_HOST", "0.0.0.0"),
        api_port=_env_int("API_PORT", _env_int("PORT", 3000)),
        request_timeout_sec=_env_float("REQUEST_TIMEOUT_SEC", 30.0),
        source_max_retries=_env_int("SOURCE_MAX_RETRIES", 3),
        source_retry_delay_sec=_env_float("SOURCE_RETRY_DELAY_SEC", 0.5),
        reference_stats_ttl_sec=_env_float("REFERENCE_STATS_TTL_SEC", 0.0),
    )
