"""
Base class for upstream source clients with bounded retry.

A source client wraps one provider call. fetch() runs up to
1 + max_retries attempts in a loop; each attempt takes a fresh key from the
rotation pool. Transient failures (transport errors, non-200, malformed
payloads) are logged and retried. When the budget is exhausted the client
returns its capability-specific degraded default instead of raising.
Only configuration problems (missing address, missing keys) raise.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

import httpx

from wallet_persona.core.exceptions import (
    ConfigurationError,
    InvalidAddressError,
    UpstreamError,
)
from wallet_persona.persona_logging import get_logger
from wallet_persona.sources.key_pool import KeyRotationPool

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_RETRY_DELAY_SEC = 0.5
MAX_RETRY_DELAY_SEC = 8.0

# Errors that mean "try again": anything raised by httpx plus our own upstream/payload errors
TRANSIENT_ERRORS = (httpx.HTTPError, UpstreamError, ValueError, KeyError, TypeError)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceClient(ABC, Generic[T]):
    """
    One upstream capability (balance, NFT holdings, DEX trades, ...).

    Subclasses implement _attempt() (one provider call, raising on failure)
    and degraded() (the well-formed empty result used after retries run out).
    """

    name: str = "source"
    provider: str = ""

    def __init__(
        self,
        http: httpx.AsyncClient,
        key_pool: KeyRotationPool,
        *,
        base_url: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        retry_delay_sec: float = DEFAULT_RETRY_DELAY_SEC,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not (base_url or "").strip():
            raise ConfigurationError(f"{self.name}: base_url must be non-empty")
        self._http = http
        self._key_pool = key_pool
        self._base_url = base_url.strip()
        self._max_retries = max_retries
        self._timeout = timeout_sec
        self._retry_delay = retry_delay_sec
        self._clock = clock

    @abstractmethod
    async def _attempt(self, address: str, api_key: str) -> T:
        """Perform one provider call; raise on any transient failure."""
        ...

    @abstractmethod
    def degraded(self, error: Exception | None) -> T:
        """Well-formed empty result returned once the retry budget is spent."""
        ...

    async def fetch(self, address: str, attempts_remaining: int | None = None) -> T:
        """
        Fetch this capability for one address with bounded retry.

        attempts_remaining is the retry budget (default: max_retries); the
        total number of attempts is attempts_remaining + 1. Never raises for
        transient causes.
        """
        if not (address or "").strip():
            raise InvalidAddressError(f"{self.name}: address is required")
        retries = self._max_retries if attempts_remaining is None else max(attempts_remaining, 0)
        delay = self._retry_delay
        last_error: Exception | None = None

        for attempt in range(retries + 1):
            # Rotation happens before every attempt, including the first
            api_key = self._key_pool.next(self.provider)
            try:
                return await self._attempt(address, api_key)
            except TRANSIENT_ERRORS as e:
                last_error = e
                remaining = retries - attempt
                if remaining > 0:
                    logger.warning(
                        "source_retry",
                        source=self.name,
                        wallet=address,
                        attempt=attempt + 1,
                        remaining=remaining,
                        error=str(e),
                    )
                    if delay > 0:
                        await asyncio.sleep(delay)
                        delay = min(delay * 2, MAX_RETRY_DELAY_SEC)

        logger.error(
            "source_give_up",
            source=self.name,
            wallet=address,
            attempts=retries + 1,
            error=str(last_error),
        )
        return self.degraded(last_error)

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self._http.get(url, params=params, timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    async def _post_json(
        self,
        url: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> Any:
        resp = await self._http.post(url, json=body, headers=headers, timeout=self._timeout)
        resp.raise_for_status()
        return resp.json()

    def _now_ts(self) -> float:
        return self._clock().timestamp()
