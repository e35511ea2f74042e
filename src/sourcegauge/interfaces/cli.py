from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from sourcegauge.domain.entities.health import MaintenanceReport
from sourcegauge.infrastructure.config import AppConfig, load_config
from sourcegauge.infrastructure.logging.setup import configure_logging
from sourcegauge.interfaces.composition import build_services

log = structlog.get_logger(__name__)


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sourcegauge")
    commands = parser.add_subparsers(dest="command", required=True)

    maintain = commands.add_parser(
        "maintain",
        help="Run one maintenance pass (discovery, quality check, auto-update).",
    )

    maintain.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    maintain.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    maintain.add_argument(
        "--sources",
        default=None,
        help="Override the YAML source list path.",
    )
    maintain.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    maintain.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    return parser.parse_args(list(argv) if argv is not None else None)


async def _maintain(config: AppConfig) -> MaintenanceReport:
    async with build_services(config) as services:
        return await services.monitor.run_maintenance()


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Config is loaded exactly once here; the summary goes to stdout as JSON,
    logs go to stderr.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    config_path = Path(args.config) if args.config else None
    dotenv_path = Path(args.dotenv) if args.dotenv else None

    cli_overrides: dict[str, Any] = {}
    if args.sources:
        cli_overrides["sources_file"] = args.sources
    if args.log_level:
        cli_overrides["log_level"] = args.log_level
    if args.log_format:
        cli_overrides["log_format"] = args.log_format

    config = load_config(
        config_path=config_path,
        dotenv_path=dotenv_path,
        cli_overrides=cli_overrides,
    )

    configure_logging(config)

    report = asyncio.run(_maintain(config))
    print(json.dumps(report.summary(), ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
