"""Logging configuration for UploadFlow."""

from __future__ import annotations

import logging
import os

import structlog

QUIET_LOGGERS = ("httpx", "httpcore", "PIL")


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName((level or os.getenv("UPLOADFLOW_LOG_LEVEL", "INFO")).upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: int | str | None = None) -> None:
    """Route stdlib records and structlog events to stderr; structlog renders JSON."""
    resolved = _resolve_level(level)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
