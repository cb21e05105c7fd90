"""
Application-level exceptions.

Validation and configuration errors surface to callers; upstream errors
stay inside source clients and become degraded defaults at their boundary.
"""

from __future__ import annotations


class PersonaError(Exception):
    """Base class for all Wallet Persona errors."""


class InvalidAddressError(PersonaError, ValueError):
    """Missing or malformed account address. Terminal; never retried."""


class ConfigurationError(PersonaError):
    """Missing provider credentials or URLs."""


class UpstreamError(PersonaError):
    """Transient provider failure: transport error, non-200, malformed payload."""


class EmptyPopulationError(PersonaError):
    """Reference statistics requested over a store with zero wallets."""


class AggregationError(PersonaError):
    """Aggregation failed as a whole (not a single degraded source)."""


class StorageError(PersonaError):
    """Read or write against the wallet store failed."""
