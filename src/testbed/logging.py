"""
Structured logging for the testbed.

Configures structlog once per test run.  Reset steps, connection lifecycle
and suite setup all log event-style messages with keyword fields, so a CI log
can be filtered by ``dialect`` or ``step`` without parsing free text.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="testbed")
            │
            ▼
        processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars     (dialect / test bound by LogContext)
          3. add_log_level, add_logger_name
          4. add_service_metadata
          5. JSONRenderer (CI) or ConsoleRenderer (tty)

Examples:
    >>> from testbed.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.info("reset_completed", dialect="sqlite", failed=0)

Guardrails:
    - Call configure_logging() once, from the runner (pytest plugin or CLI)
    - Library modules only call get_logger()
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "testbed"


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


class _NamedPrintLogger(structlog.PrintLogger):
    """PrintLogger writing to the current ``sys.stderr``, carrying a ``name`` for add_logger_name."""

    def __init__(self, name: str | None = None) -> None:
        super().__init__(file=sys.stderr)
        self.name = name or _SERVICE_NAME


def _stderr_logger_factory(*args: Any) -> structlog.PrintLogger:
    return _NamedPrintLogger(args[0] if args else None)


def configure_logging(
    level: str = "WARNING",
    json_format: bool | None = None,
    service: str = "testbed",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
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
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )

    # SQLAlchemy and drivers log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(dialect="postgres", test="test_insert"):
            logger.info("reset_started")
        # Previous values of dialect/test restored here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._bound: Any = None

    def __enter__(self) -> LogContext:
        self._bound = structlog.contextvars.bound_contextvars(**self._context)
        self._bound.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        self._bound.__exit__(*args)


__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
]
