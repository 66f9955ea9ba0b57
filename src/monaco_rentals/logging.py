"""Structured logging configuration."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from monaco_rentals.models import ParsedListing

# Third-party stdlib loggers that are noisy at DEBUG.
_QUIET_LOGGERS = ("aiosqlite", "asyncio")


def configure_logging(*, json_output: bool = False, level: int = logging.INFO) -> None:
    """Configure structlog for ingestion runs and maintenance commands.

    Args:
        json_output: Emit one JSON object per event (for cron jobs feeding a log
            collector). Otherwise a human-readable console renderer is used.
        level: Minimum level for monaco-rentals events.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if json_output:
        renderer: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


@contextmanager
def record_context(record: "ParsedListing") -> Iterator[None]:
    """Bind the record's source identity to every event logged while it is processed."""
    with structlog.contextvars.bound_contextvars(
        source=record.source_website_code,
        source_listing_id=record.source_listing_id,
    ):
        yield
