"""
Structured error types for the testbed.

Every failure raised by the testbed is a :class:`TestbedError` carrying a
category, optional structured context and an optional chained cause.  The
hierarchy is small: configuration problems are fatal and surface
immediately, database problems are collected into reset reports and only
raised when the runner asks for it.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                      TestbedError                         │
        │          (category, context, cause, to_dict())           │
        ├──────────────────────────────────────────────────────────┤
        │  ConfigError            DatabaseError     HandleStateError│
        │  (CONFIG)               (DATABASE)        (STATE)         │
        │     │                       │                             │
        │  UnsupportedDialectError  ResetError                      │
        │  MissingConfigError                                       │
        │  InvalidConfigError                                       │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = MissingConfigError("postgres.username")
    >>> err.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> err.to_dict()["key"]
    'postgres.username'

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` for a bad ``DIALECT`` value
    ✅ DO: Raise :class:`UnsupportedDialectError` so the suite stops early

    ❌ DON'T: Swallow the driver exception when wrapping it
    ✅ DO: Pass it as ``cause=`` for error chaining

Tags:
    error-handling, exception-hierarchy, configuration, testbed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from testbed.reset import ResetReport


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    CONFIG = "CONFIG"  # Unknown dialect, missing credentials
    DATABASE = "DATABASE"  # Failed DDL, connection refused
    STATE = "STATE"  # Illegal handle lifecycle transition
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging."""

    dialect: str | None = None
    step: str | None = None
    target: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["dialect", "step", "target"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TestbedError(Exception):
    """Base exception for all testbed errors.

    Subclasses set ``default_category`` so callers can route errors without
    inspecting the concrete type.
    """

    __test__ = False  # not a pytest test class

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TestbedError:
        """Add context to this error (fluent API).

        Usage:
            raise DatabaseError("drop failed").with_context(
                dialect="postgres", step="drop_schemas"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(TestbedError):
    """Configuration error: unsupported dialect, missing credentials.

    Fatal; the test run cannot proceed.
    """

    default_category = ErrorCategory.CONFIG


class UnsupportedDialectError(ConfigError):
    """The requested dialect is unknown or its SQLAlchemy backend is missing."""

    def __init__(self, dialect: str, supported: tuple[str, ...] = ()):
        self.dialect = dialect
        self.supported = supported
        super().__init__(f"The dialect you have passed is unknown. Did you really mean: {dialect}")
        self.with_context(dialect=dialect, supported=list(supported))


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"Missing required configuration: {key}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["key"] = self.key
        return result


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(TestbedError):
    """Database-level failure (connect, DDL, query)."""

    default_category = ErrorCategory.DATABASE


class ResetError(DatabaseError):
    """One or more reset steps failed.

    Raised only when the runner asks for it (``ResetReport.raise_for_errors``
    or the ``fail_fast`` reset policy).
    """

    def __init__(self, report: ResetReport, message: str | None = None):
        self.report = report
        failed = ", ".join(step.label for step in report.errors)
        super().__init__(message or f"Database reset failed: {failed}")
        self.with_context(dialect=report.dialect, failed_steps=[s.label for s in report.errors])
        first = report.first_error()
        if first is not None:
            self.cause = first
            self.__cause__ = first


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================


class HandleStateError(TestbedError):
    """A connection handle was asked for an illegal state transition."""

    default_category = ErrorCategory.STATE

    def __init__(self, current: str, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a connection handle in state '{current}'")


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TestbedError",
    "ConfigError",
    "UnsupportedDialectError",
    "MissingConfigError",
    "InvalidConfigError",
    "DatabaseError",
    "ResetError",
    "HandleStateError",
]
