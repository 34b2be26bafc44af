"""Structured logging configuration using structlog.

- JSON output in production mode (filterable, parseable)
- Colored console output in development mode (human-readable)
- Correlation IDs for tracing a sync job across store, cache and API calls

Usage:
    from fpl_sync.monitoring import configure_logging, get_logger

    configure_logging("production")

    log = get_logger()
    log.info("sync_completed", kind="events", count=38)
    log.warning("cache_write_degraded", kind="fixtures", scope=12)
"""

import logging
import sys

import structlog

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def configure_logging(mode: str = "development", level: str | int = logging.INFO) -> None:
    """Configure structlog for the application.

    Safe to call more than once; the last call wins.

    Args:
        mode: "production" for JSON output, anything else for colored console
        level: Minimum stdlib level, e.g. "WARNING" to keep CLI output quiet
    """
    if mode == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (defaults to caller's module name)
    """
    return structlog.get_logger(name)


def bind_correlation_id(correlation_id: str) -> None:
    """Bind a correlation ID to the current context.

    Job workers bind the job id so every store, cache and API event of one job
    can be grouped.
    """
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def unbind_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars("correlation_id")
