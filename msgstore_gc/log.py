"""structlog setup for the collector process."""

from __future__ import annotations

import logging

import structlog

from msgstore_gc.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog rendering and level filtering.

    Console output for interactive runs, one JSON object per line for
    log collectors.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.dev.set_exc_info,
            structlog.dev.ConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level)
        ),
        cache_logger_on_first_use=False,
    )
