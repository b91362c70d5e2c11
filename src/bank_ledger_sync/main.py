"""Entrypoint for syncing bank transactions into budgeting ledgers."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from bank_ledger_sync import __version__
from bank_ledger_sync.config import Settings, load_settings
from bank_ledger_sync.errors import BankSyncError, ConfigError
from bank_ledger_sync.orchestrator import Orchestrator
from bank_ledger_sync.registry import build_sinks, build_sources
from bank_ledger_sync.server import SyncService, serve

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT, force=True)
    # Keep third-party request logging out of the way unless it is a warning.
    for noisy in ("urllib3", "googleapiclient", "google.auth"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to the JSON config file (defaults to $SYNC_CONFIG or config/config.json)",
    )
    parser.add_argument(
        "--bank-id",
        help="Bank id to sync, overriding the configured default",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single sync in-process and exit instead of serving the trigger endpoint",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_service(settings: Settings) -> SyncService:
    """Wire sources and sinks from ``settings``; unknown names fail here."""

    orchestrator = Orchestrator(build_sources(settings), build_sinks(settings))
    return SyncService(
        orchestrator,
        default_bank_id=settings.nordigen.bank_id,
        mode=settings.mode,
        interval=settings.interval,
        detach=settings.detach,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        setup_logging(args.debug)
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    setup_logging(args.debug or settings.debug)
    LOGGER.info("starting bank-ledger-sync %s", __version__)
    try:
        service = build_service(settings)
    except ConfigError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if args.run_once:
        try:
            service.trigger(args.bank_id)
        except BankSyncError as exc:
            LOGGER.error("Run failed: %s", exc)
            return 1
        return 0

    if args.bank_id:
        service.default_bank_id = args.bank_id
    serve(service, host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
