"""
API key rotation pool shared by all source clients.

Holds an ordered sequence of credentials per provider. Every call to next()
rotates that provider's sequence left by one and returns the new head, so
consecutive attempts (including retries) use different keys.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable, Mapping

from wallet_persona.core.exceptions import ConfigurationError


class KeyRotationPool:
    """
    Round-robin credential pool keyed by provider name.

    State is process-lifetime only. Rotation is guarded by a lock so that
    concurrent clients always observe a single consistent sequence.
    """

    def __init__(self, keys: Mapping[str, Iterable[str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._keys: dict[str, deque[str]] = {}
        for provider, provider_keys in (keys or {}).items():
            self.register(provider, provider_keys)

    def register(self, provider: str, keys: Iterable[str]) -> None:
        """Set (or replace) the ordered credentials for a provider. Blank keys are dropped."""
        cleaned = [k.strip() for k in keys if k and k.strip()]
        with self._lock:
            self._keys[provider] = deque(cleaned)

    def next(self, provider: str) -> str:
        """Rotate the provider's keys left by one and return the new head."""
        with self._lock:
            ring = self._keys.get(provider)
            if not ring:
                raise ConfigurationError(f"No API keys configured for provider '{provider}'")
            ring.rotate(-1)
            return ring[0]

    def size(self, provider: str) -> int:
        with self._lock:
            return len(self._keys.get(provider) or ())

    def providers(self) -> list[str]:
        with self._lock:
            return [p for p, ring in self._keys.items() if ring]
