"""Command-line interface for checkin-printer."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, Optional

from . import constants
from .app import CheckinPrinterApp
from .config import PrinterAppConfig, load_config
from .jobs import PrintJobError
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Badge printing companion for attendance check-in",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "serve", help="Keep a printer session open and expose the status endpoint"
    )
    subparsers.add_parser("status", help="Bring the printer session up and print its status")
    subparsers.add_parser("list-devices", help="List printers attached to the print daemon")
    subparsers.add_parser("test-print", help="Print a sample badge on the selected printer")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def _status(app: CheckinPrinterApp) -> int:
    status = await app.session.initialize()
    print(json.dumps(status.as_dict(), indent=2, ensure_ascii=False))
    return 0 if status.ready else 1


async def _list_devices(app: CheckinPrinterApp) -> int:
    status = await app.session.initialize()
    if not status.sdk_initialized:
        LOGGER.error("%s", status.initialization_error or "Printer SDK not ready")
        return 1

    devices = await app.session.list_devices()
    if not devices:
        print("No printers found.")
        return 0
    for device in devices:
        marker = "*" if device.name == app.session.selected_printer else " "
        print(f"{marker} {device.name} (port {device.port})")
    return 0


async def _test_print(app: CheckinPrinterApp) -> int:
    status = await app.session.initialize()
    if not status.ready:
        LOGGER.error("%s", status.initialization_error or "No printer selected")
        return 1

    try:
        result = await app.printer.test_print()
    except PrintJobError as exc:
        LOGGER.error("Test print failed: %s", exc)
        return 1

    print(result.message)
    return 0 if result.completed else 1


def _run_once(
    config: PrinterAppConfig, action: Callable[[CheckinPrinterApp], Awaitable[int]]
) -> int:
    async def _runner() -> int:
        app = CheckinPrinterApp(config)
        try:
            return await action(app)
        finally:
            await app.session.disconnect()

    return asyncio.run(_runner())


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "serve":
        CheckinPrinterApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    actions = {
        "status": _status,
        "list-devices": _list_devices,
        "test-print": _test_print,
    }
    action = actions.get(args.command)
    if action is None:
        LOGGER.error("Unknown command: %s", args.command)
        return 1
    return _run_once(config, action)


if __name__ == "__main__":
    sys.exit(main())
