"""msgstore-gc process entry point."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import yaml
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncEngine

from msgstore_gc import __version__
from msgstore_gc.config import Settings, load_settings
from msgstore_gc.db import close_store, open_store
from msgstore_gc.errors import StoreConnectionError
from msgstore_gc.log import configure_logging
from msgstore_gc.services.gc import Collector, GCScheduler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(settings: Settings) -> AsyncIterator[AsyncEngine]:
    """Process lifespan: open the store on entry, close it on exit.

    Raises:
        StoreConnectionError: store cannot be reached (no cycle runs)
    """
    # Startup
    logger.info("msgstore_gc.startup", version=__version__)
    engine = await open_store(settings.database)

    try:
        yield engine
    finally:
        # Shutdown
        logger.info("msgstore_gc.shutdown")
        await close_store(engine)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Turn SIGINT/SIGTERM into a stop request for the scheduler loop."""
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("msgstore_gc.signal_received", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop, sig)


async def run(
    settings: Settings,
    *,
    once: bool = False,
    dry_run: bool = False,
    stop_event: asyncio.Event | None = None,
) -> int:
    """Run the collector and return the process exit code.

    Modes:
    - dry_run: report what one cycle would reclaim, delete nothing
    - once: run a single cycle and exit
    - default: run cycles every gc.interval_seconds until stopped
    """
    async with lifespan(settings) as engine:
        collector = Collector(engine, settings.gc)

        if dry_run:
            pending = await collector.pending()
            logger.info(
                "gc.dry_run",
                closed_requests=pending.closed_requests,
                waste_responses=pending.waste_responses,
            )
            return 0

        scheduler = GCScheduler(collector, config=settings.gc)

        if once:
            result = await scheduler.run_once()
            return 0 if result.success else 1

        if not settings.gc.enabled:
            logger.info("gc.background_disabled", reason="gc.enabled=false")
            return 0

        if stop_event is None:
            stop_event = asyncio.Event()
            _install_signal_handlers(stop_event)

        await scheduler.run(stop_event, wait_first=not settings.gc.run_on_startup)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="msgstore-gc",
        description="Delete finished conversations from the message-exchange store.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help=(
            "YAML config file "
            "(default: $MSGGC_CONFIG_FILE, ./config.yaml, /etc/msgstore-gc/config.yaml)"
        ),
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single collection cycle and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="report what would be deleted and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load settings and run. Returns the exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.error("msgstore_gc.config_invalid", error=str(e))
        return 1

    configure_logging(settings.logging)

    try:
        return asyncio.run(run(settings, once=args.once, dry_run=args.dry_run))
    except StoreConnectionError as e:
        logger.error("msgstore_gc.store_unavailable", **e.to_dict())
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
