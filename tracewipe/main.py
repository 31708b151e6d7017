"""
Command-line entry point for TraceWipe.

Usage (from project root)::

    tracewipe --config config/tracewipe.yaml serve
    tracewipe import rules.yaml
    tracewipe test-url https://www.example.com/page

Every subcommand works against the durable store named by
``database_url``. ``serve`` runs the HTTP command surface with in-process
history, site-data and alarm adapters.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Optional

import uvicorn
import yaml
from dotenv import load_dotenv

from .api import create_app
from .constants import STORAGE_KEY_RULES
from .core.config import Settings, load_settings
from .host import HostCapabilities, MemoryAlarms, MemoryHistory, MemoryKeyValueStore, MemorySiteData
from .logging_config import setup_logging
from .rules.transfer import export_rules, import_rules, load_rules_document
from .runtime.context import EngineContext
from .service import Service, pump_alarms
from .storage.sql_store import SqlKeyValueStore


def build_service(settings: Settings, database_url: Optional[str] = None) -> Service:
    """Wire a service over the SQL durable store and in-process host adapters."""
    alarms = MemoryAlarms()
    host = HostCapabilities(
        local=SqlKeyValueStore(database_url or settings.database_url),
        session=MemoryKeyValueStore(),
        history=MemoryHistory(),
        site_data=MemorySiteData(),
        alarms=alarms,
    )
    return Service(EngineContext.create(host, settings=settings))


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tracewipe", description="TraceWipe retention policy engine")
    parser.add_argument(
        "--config",
        type=str,
        default=os.getenv("TRACEWIPE_CONFIG_PATH"),
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Override the durable store URL",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write log records to this file",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP command surface")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    validate = sub.add_parser("validate", help="Validate a JSON or YAML rules file")
    validate.add_argument("path", type=str)

    imp = sub.add_parser("import", help="Import rules, replacing rules with the same id")
    imp.add_argument("path", type=str)

    exp = sub.add_parser("export", help="Export the stored rules as JSON")
    exp.add_argument("--output", "-o", type=str, default=None)

    test_url = sub.add_parser("test-url", help="Show which rules match a URL")
    test_url.add_argument("url", type=str)

    sub.add_parser("status", help="Show pause state, buffer stats and rule counts")
    sub.add_parser("flush", help="Trim and flush the retry buffer")
    return parser.parse_args(argv)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


def run_serve(service: Service, settings: Settings, host: Optional[str], port: Optional[int]) -> int:
    app = create_app(service)
    alarms = service.context.host.alarms
    stop = asyncio.Event()
    state = {}

    @app.on_event("startup")
    async def _startup() -> None:
        await service.bootstrap()
        if isinstance(alarms, MemoryAlarms):
            state["pump"] = asyncio.create_task(
                pump_alarms(service, alarms, stop, settings.alarm_poll_interval_sec)
            )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        stop.set()
        pump = state.get("pump")
        if pump is not None:
            await pump

    uvicorn.run(app, host=host or settings.http_host, port=port or settings.http_port, log_level=settings.log_level.lower())
    return 0


async def run_validate(path: str, settings: Settings) -> int:
    document = load_rules_document(path)
    _, report = import_rules(document, [], settings)
    _print_json(asdict(report))
    return 0 if report.skipped == 0 else 1


async def run_import(service: Service, path: str) -> int:
    document = load_rules_document(path)
    existing = await service.context.storage.get_local(STORAGE_KEY_RULES, [])
    rules, report = import_rules(document, existing, service.context.settings)
    if report.imported:
        await service.save_rules(rules)
    _print_json(asdict(report))
    return 0


async def run_export(service: Service, output: Optional[str]) -> int:
    text = export_rules(await service.context.storage.get_local(STORAGE_KEY_RULES, []))
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


async def run_flush(service: Service) -> int:
    buffer = service.context.buffer
    trimmed = await buffer.trim_expired()
    summary = await buffer.flush()
    _print_json({"trimmed": trimmed, **asdict(summary), "stats": await buffer.get_stats()})
    return 0


def main(argv: List[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logger = logging.getLogger("main")
    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as exc:
        setup_logging(args.log_level, log_file=args.log_file)
        logger.error("Failed to load configuration: %s", exc)
        return 1
    setup_logging(args.log_level or settings.log_level, log_file=args.log_file or settings.log_file)

    if args.command == "validate":
        try:
            return asyncio.run(run_validate(args.path, settings))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("Cannot read rules file %s: %s", args.path, exc)
            return 1

    service = build_service(settings, args.database_url)
    if args.command == "serve":
        return run_serve(service, settings, args.host, args.port)
    if args.command == "import":
        try:
            return asyncio.run(run_import(service, args.path))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("Import failed: %s", exc)
            return 1
    if args.command == "export":
        return asyncio.run(run_export(service, args.output))
    if args.command == "test-url":
        _print_json(asyncio.run(service.handle_message({"type": "TEST_URL", "url": args.url})))
        return 0
    if args.command == "status":
        _print_json(asyncio.run(service.handle_message({"type": "GET_STATUS"})))
        return 0
    if args.command == "flush":
        return asyncio.run(run_flush(service))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
