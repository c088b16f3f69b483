"""structlog setup shared by the resolver modules and scripts.

Modules obtain a bound logger with :func:`get_logger` and emit event-name
style records, e.g. ``logger.warning("entry_path_missing", path=...)``.
"""

import logging
import os
import sys

import structlog

# Resolved-plan log levels → stdlib levels.
_LEVELS: dict[str, int] = {
    "silent": logging.CRITICAL,
    "info": logging.INFO,
    "verbose": logging.INFO,
    "debug": logging.DEBUG,
}

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog to render to stderr at *level*.

    *level* is one of ``silent``, ``info``, ``verbose`` or ``debug``; when
    omitted the ``BOOKPLAN_LOG_LEVEL`` env var is consulted, then ``info``.
    """
    global _configured
    name = level or os.environ.get("BOOKPLAN_LOG_LEVEL") or "info"
    threshold = _LEVELS.get(name, logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    _configured = True


def get_logger(name: str):
    """Return a structlog logger bound to *name*."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
