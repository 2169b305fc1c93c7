"""Structured logging for the kubediag agent.

Every record is a single JSON line on stderr carrying the log level, an ISO
UTC timestamp under ``ts`` and, once ``setup_logging`` has run, the name of
the node the agent serves under ``node``.  Modules bind their own
``component`` through ``get_logger`` or ``structlog.get_logger``.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "info", node_name: str = "") -> None:
    """Configure structlog for JSON output to stderr.

    Args:
        level:     Minimum level name (``debug``, ``info``, ...).  Unknown
                   names fall back to ``info``.
        node_name: Bound to every record as ``node`` when non-empty.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if node_name:
        structlog.contextvars.bind_contextvars(node=node_name)


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
