"""
structlog configuration for Wallet Persona.

Every record carries event_type, level, timestamp and logger, followed by
the evaluation context the code emits (wallet, source, attempt) and then
anything else. JSON by default; LOG_FORMAT=console for local runs. Logs go
to stderr so stdout stays free for CLI output.

No wallet_persona imports here; every other module imports this one.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

# Keys placed right after the envelope, in this order, when present
CONTEXT_KEYS: tuple[str, ...] = ("wallet", "source", "attempt")
_ENVELOPE_KEYS: tuple[str, ...] = ("event_type", "level", "timestamp", "logger")


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog's positional event becomes event_type."""
    if "event" in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _context_first(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    ordered = {k: event_dict.pop(k) for k in (*_ENVELOPE_KEYS, *CONTEXT_KEYS) if k in event_dict}
    ordered.update(event_dict)
    return ordered


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """(Re)configure structlog; defaults come from LOG_LEVEL and LOG_FORMAT."""
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    fmt = (fmt or os.getenv("LOG_FORMAT") or "json").strip().lower()

    renderer: Any
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
            structlog.processors.format_exc_info,
            _event_type,
            _context_first,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Module logger; pass the event name first and context as keywords.

        logger = get_logger(__name__)
        logger.warning("source_retry", source="dex_trades", wallet=addr, attempt=2)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_wallet(wallet: str) -> structlog.BoundLogger:
    """Logger for one wallet evaluation; every call carries wallet=."""
    return get_logger("wallet_persona").bind(wallet=wallet)
