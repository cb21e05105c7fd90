"""
Configuration management for Wallet Persona.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for all service configuration.
"""

from wallet_persona.config.settings import Settings, get_settings, load_persona_env

__all__ = ["Settings", "get_settings", "load_persona_env"]
