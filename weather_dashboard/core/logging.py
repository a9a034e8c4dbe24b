"""Structured logging configuration."""

import logging
import sys

import structlog

from weather_dashboard.core.config import settings


def configure_logging(log_level: str | None = None, log_json: bool | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        log_level: Level name, defaults to ``settings.log_level``
        log_json: Render JSON lines instead of console output,
            defaults to ``settings.log_json``
    """
    level_name = (log_level or settings.log_level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    render_json = settings.log_json if log_json is None else log_json

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if render_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger bound to a module name."""
    return structlog.get_logger(name)
