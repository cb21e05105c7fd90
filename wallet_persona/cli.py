"""
Command-line entrypoint.

    python -m wallet_persona.cli analyze <address> [--output PATH]
    python -m wallet_persona.cli import <wallet_parameters.json>
    python -m wallet_persona.cli convert <wallets.json> <wallet_parameters.json>
    python -m wallet_persona.cli build-personas <wallet_parameters.json> [--clear]
    python -m wallet_persona.cli serve [--host HOST] [--port PORT]

Wallet-parameter files are either a JSON object keyed by address or a list
of objects; each object holds the six metrics plus address, balance and
optionally the recent contract calls.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from wallet_persona.analytics.aggregator import Aggregator, RawActivityBundle
from wallet_persona.analytics.features import wallet_parameters
from wallet_persona.analytics.pipeline import build_persona_contracts
from wallet_persona.config import Settings, get_settings
from wallet_persona.core.exceptions import (
    AggregationError,
    EmptyPopulationError,
    InvalidAddressError,
    StorageError,
)
from wallet_persona.database import UpsertResult, WalletRecord, WalletStore
from wallet_persona.persona_logging import bind_wallet, get_logger

logger = get_logger(__name__)


def _load_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _parameter_objects(data: Any) -> list[dict[str, Any]]:
    """Accept {address: params} or [params]; non-object entries are dropped."""
    items = data.values() if isinstance(data, dict) else data or []
    return [item for item in items if isinstance(item, dict)]


def _open_store(settings: Settings) -> WalletStore:
    store = WalletStore(settings.database_url)
    store.init_db()
    return store


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


async def _aggregate(settings: Settings, address: str) -> RawActivityBundle:
    async with Aggregator(settings) as aggregator:
        return await aggregator.aggregate(address)


def cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    log = bind_wallet(args.address)
    try:
        bundle = asyncio.run(_aggregate(settings, args.address))
    except (InvalidAddressError, AggregationError) as e:
        log.error("cli_analyze_failed", error=str(e))
        print("ERROR:", e, file=sys.stderr)
        return 1

    output = args.output or Path(f"{bundle.wallet}_wallet_data.json")
    _write_json(output, bundle.to_dict())
    log.info("cli_analyze_done", output=str(output))
    print(f"Analysis written to {output}")
    return 0


def cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    params = _parameter_objects(_load_json(args.input))
    records: list[WalletRecord] = []
    failed = 0
    for item in params:
        try:
            records.append(WalletRecord.from_parameters(item))
        except InvalidAddressError as e:
            failed += 1
            logger.warning("cli_import_skip", error=str(e))

    store = _open_store(settings)
    try:
        results = store.bulk_upsert(records) if records else {}
    except StorageError as e:
        print("ERROR:", e, file=sys.stderr)
        return 1
    finally:
        store.dispose()

    inserted = results.get(UpsertResult.INSERTED, 0)
    updated = results.get(UpsertResult.UPDATED, 0) + results.get(UpsertResult.UNCHANGED, 0)
    print(f"SUMMARY: inserted {inserted} | updated {updated} | failed {failed}")
    return 0


def cmd_convert(args: argparse.Namespace, settings: Settings) -> int:
    data = _load_json(args.input)
    wallets = data.get("wallets", data) if isinstance(data, dict) else data
    entries = list(wallets.items()) if isinstance(wallets, dict) else list(enumerate(wallets or []))

    converted: dict[str, dict[str, Any]] = {}
    for key, raw in entries:
        try:
            if not isinstance(raw, dict):
                raise ValueError(f"expected an object, got {type(raw).__name__}")
            bundle = RawActivityBundle.from_dict(raw)
            if not bundle.wallet and isinstance(key, str):
                bundle.wallet = key
            if not bundle.wallet:
                raise ValueError("missing wallet address")
            params = wallet_parameters(bundle)
        except (InvalidAddressError, ValueError, TypeError, KeyError) as e:
            logger.error("cli_convert_skip", wallet=str(key), error=str(e))
            continue
        converted[params["address"]] = params
        if len(converted) % 100 == 0:
            logger.info("cli_convert_progress", done=len(converted), total=len(entries))

    _write_json(args.output, converted)
    print(f"SUMMARY: converted {len(converted)} | skipped {len(entries) - len(converted)}")
    return 0


def cmd_build_personas(args: argparse.Namespace, settings: Settings) -> int:
    params = _parameter_objects(_load_json(args.input))
    store = _open_store(settings)
    try:
        if args.clear:
            store.clear_persona_contracts()
        groups = build_persona_contracts(store, params)
    except EmptyPopulationError as e:
        print("ERROR:", e, "(import wallets first)", file=sys.stderr)
        return 1
    except StorageError as e:
        print("ERROR:", e, file=sys.stderr)
        return 1
    finally:
        store.dispose()

    for group, count in sorted(groups.items(), key=lambda kv: -kv[1]):
        print(f"{group}: {count}")
    print(f"SUMMARY: wallets {sum(groups.values())} | groups {len(groups)}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info("cli_serve", host=host, port=port)
    uvicorn.run("wallet_persona.api_server.app:app", host=host, port=port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wallet_persona",
        description="Ethereum wallet persona scoring: aggregate, convert, import, score, serve.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("analyze", help="Aggregate one wallet and write the activity bundle as JSON")
    p.add_argument("address", help="Ethereum wallet address")
    p.add_argument("--output", type=Path, default=None, help="Output path (default: <checksum>_wallet_data.json)")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("import", help="Bulk upsert wallet-parameter objects into the wallet store")
    p.add_argument("input", type=Path, help="wallet_parameters.json")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("convert", help="Turn raw activity bundles into wallet-parameter objects")
    p.add_argument("input", type=Path, help='wallets.json ({"wallets": {...}} or a list of bundles)')
    p.add_argument("output", type=Path, help="Output wallet_parameters.json")
    p.set_defaults(func=cmd_convert)

    p = sub.add_parser("build-personas", help="Score wallet parameters and record persona-contract associations")
    p.add_argument("input", type=Path, help="wallet_parameters.json")
    p.add_argument("--clear", action="store_true", help="Delete existing persona-contract rows first")
    p.set_defaults(func=cmd_build_personas)

    p = sub.add_parser("serve", help="Run the HTTP API under uvicorn")
    p.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    p.add_argument("--port", type=int, default=None, help="Port (default: API_PORT)")
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    try:
        return args.func(args, settings)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        print("ERROR:", e, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
