"""structlog setup shared by library users and tests."""

from __future__ import annotations

import logging

import structlog

from inbox_watch.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog from application settings.

    Args:
        settings: Application settings; ``log_level`` filters events and
            ``debug`` switches from JSON lines to a colored console renderer.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    renderer: structlog.types.Processor
    if settings.debug:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
