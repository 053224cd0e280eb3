"""
Result envelope for reset step outcomes.

A reset is a sequence of independent DDL steps.  Instead of letting the first
failure abort the sequence (or silently swallowing it), every step produces
an ``Ok`` or ``Err`` value that the caller inspects afterwards.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     Result[T]                                │
        ├─────────────────┬─────────────────┬─────────────────────────┤
        │     Ok[T]       │     Err[T]      │     Utilities           │
        ├─────────────────┼─────────────────┼─────────────────────────┤
        │ • value: T      │ • error: Exc    │ • try_result_with()     │
        │ • unwrap()      │ • unwrap()      │                         │
        │ • to_dict()     │ • to_dict()     │                         │
        └─────────────────┴─────────────────┴─────────────────────────┘

Examples:
    >>> from testbed.result import Ok, Err
    >>> Ok(3).unwrap()
    3
    >>> Err(ValueError("boom")).is_err()
    True

Guardrails:
    ❌ DON'T: Call unwrap() on an Err you have not checked
    ✅ DO: Use is_err() or pattern matching on Ok/Err
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from testbed.errors import TestbedError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """Failed result containing an error."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, TestbedError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result_with(
    f: Callable[[], T],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    """Execute ``f`` and wrap its outcome, optionally mapping the exception.

    Args:
        f: Zero-argument callable that may raise exceptions
        error_mapper: Converts the raised exception (e.g. a SQLAlchemy
            ``DBAPIError``) into a domain error

    Returns:
        Ok[T] if f() succeeds, Err with the mapped exception if it raises
    """
    try:
        return Ok(f())
    except Exception as e:
        if error_mapper is not None:
            return Err(error_mapper(e))
        return Err(e)


__all__ = [
    "Result",
    "Ok",
    "Err",
    "try_result_with",
]
