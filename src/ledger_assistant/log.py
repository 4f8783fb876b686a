"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog for console or JSON-lines output.

    ``fmt="json"`` is meant for server deployments where log lines are shipped
    to an aggregator; the console renderer is the default for the CLI.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: structlog.typing.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info if fmt == "json" else _passthrough,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _passthrough(logger, method_name, event_dict):
    return event_dict


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance."""
    return structlog.get_logger(name)


def bind_exchange(tenant_id: int, session_id: str) -> None:
    """Attach tenant/session ids to every log line emitted by the current task."""
    structlog.contextvars.bind_contextvars(tenant_id=tenant_id, session_id=session_id)


def clear_exchange() -> None:
    structlog.contextvars.unbind_contextvars("tenant_id", "session_id")
