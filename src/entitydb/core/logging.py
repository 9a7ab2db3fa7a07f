"""
Structured logging for entitydb.

Every module logs through ``get_logger(__name__)`` with event-style
messages and keyword fields::

    logger.warning("rollback_failed", data_source=ds.name, error=str(e))

Applications call ``configure_logging()`` once at startup; libraries
embedding entitydb may skip it and let structlog's defaults apply.

Manifesto:
    - **Structured:** key/value fields instead of interpolated strings
    - **Flexible output:** JSON when piped, coloured console on a tty
    - **Correlated:** ``bind_context`` propagates request / job ids

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="entitydb")
            │
            ▼
        structlog processor chain:
            merge_contextvars → add_log_level
            → TimeStamper(iso) → service metadata
            → JSONRenderer | ConsoleRenderer

Examples:
    >>> from entitydb.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=True)
    >>> get_logger(__name__).info("connection_opened", data_source="main")

Tags:
    logging, structlog, observability, entitydb

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from entitydb.core.settings import DbSettings, load_settings

_SERVICE_NAME = "entitydb"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp every event with the configured service name."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "entitydb",
    add_timestamp: bool = True,
) -> None:
    """Install the structlog processor chain.

    Args:
        level: minimum level name; lower events are dropped
        json_format: JSON lines, console output, or ``None`` to pick JSON
            whenever stdout is not a tty
        service: value of the ``service`` field
        add_timestamp: prepend an ISO ``timestamp`` field
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``).

    The name goes to the logger factory and into the ``logger_name`` field.
    The returned proxy resolves its configuration on each call, so loggers
    created at import time still pick up a later ``configure_logging()``.
    """
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name, logger_name=name)


def configure_logging_from_settings(settings: DbSettings | None = None) -> None:
    """``configure_logging`` driven by ``DbSettings.log_level`` and ``json_logs``."""
    settings = settings or load_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


def bind_context(**kwargs: Any) -> None:
    """Add fields to every event logged from this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Drop fields added by ``bind_context``."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Drop every bound field."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` block.

    Example:
        with LogContext(job="nightly_import"):
            db.insert(record)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "configure_logging_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
