"""Structured logging configuration using structlog.

JSON output for production log aggregation, a console renderer for
development. The background dispatcher and the orchestrator both log through
here, so failures in fire-and-forget work stay visible.

Usage::

    from provenance.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("verification_submitted", verification_id="ver_…", model="claude")
    # Output: {"event": "verification_submitted", "verification_id": "ver_…", ...}
"""

import logging
import sys
from typing import Any

import structlog


def setup_logging(json_logs: bool = False, log_level: str = "INFO") -> None:
    """Configure structured logging for the service.

    Args:
        json_logs: If True, output JSON format. If False, use human-readable format.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    logging.getLogger().setLevel(level)
    # httpx logs every request at INFO; keep it out of the event stream
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the module.

    Returns:
        Structured logger instance with bound context.
    """
    return structlog.get_logger(name)
