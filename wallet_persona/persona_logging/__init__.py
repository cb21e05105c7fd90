"""
Structured logging for Wallet Persona.

JSON logs with event_type, level, timestamp and the wallet / source /
attempt context. Use get_logger() in all modules.
"""

from wallet_persona.persona_logging.logger import bind_wallet, configure_logging, get_logger

__all__ = ["bind_wallet", "configure_logging", "get_logger"]
