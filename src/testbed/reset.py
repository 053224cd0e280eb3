"""
Dialect-aware database reset.

Manifesto:
    Every test starts from an empty database.  Reset drops whatever the
    previous test created and reports, step by step, what it did.  It never
    raises for a failed DDL statement: the outcome goes into a
    :class:`ResetReport` and the runner decides whether that fails the suite.

Architecture::

    reset_database(handle)
        │  handle.begin_reset()            connected|ready → resetting
        │
        ├─ PostgreSQL only ──────────────────────────────────────────────┐
        │   list_schemas   (non-default: not public/information_schema/pg_*)
        │   for schema in schemas, one at a time:                         │
        │       drop_schema  (DROP SCHEMA … CASCADE)                      │
        │       create_schema                                             │
        ├────────────────────────────────────────────────────────────────┘
        ├─ drop_tables   list default schema, drop in dependency order
        │                (SQLite foreign_keys / MySQL FOREIGN_KEY_CHECKS off,
        │                 PostgreSQL DROP TABLE … CASCADE)
        ├─ drop_enums    PostgreSQL: DROP TYPE per enum; others: skipped
        │
        │  handle.finish_reset()           resetting → ready
        ▼
    ResetReport  [ResetStep(name, target, Ok|Err), ...]

    Each step runs in its own transaction, strictly in sequence.

Examples:
    >>> report = reset_database(handle)
    >>> report.ok
    True
    >>> [s.label for s in report.steps]
    ['drop_tables', 'drop_enums']

Guardrails:
    ❌ DON'T: Run schema drops concurrently; dependent DDL is not isolated
    ✅ DO: Keep steps sequential

    ❌ DON'T: Ignore ``report.ok``
    ✅ DO: Call ``report.raise_for_errors()`` or apply a ResetPolicy

Tags:
    reset, ddl, schema, postgres, sqlite, mysql, result-pattern, testbed
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.schema import CreateSchema, DropSchema

from testbed.dialects import DialectName, dialect_supports_schemas
from testbed.errors import DatabaseError, ResetError
from testbed.logging import LogContext, get_logger
from testbed.result import Err, Ok, Result, try_result_with

if TYPE_CHECKING:
    from testbed.connection import ConnectionHandle

logger = get_logger(__name__)

# Schemas PostgreSQL manages itself; never dropped by a reset.
SYSTEM_SCHEMAS = frozenset({"public", "information_schema"})
SYSTEM_SCHEMA_PREFIX = "pg_"

# (disable, enable) statements for dialects that can switch off foreign key checks.
FOREIGN_KEY_TOGGLES = {
    DialectName.SQLITE: ("PRAGMA foreign_keys = OFF", "PRAGMA foreign_keys = ON"),
    DialectName.MYSQL: ("SET FOREIGN_KEY_CHECKS = 0", "SET FOREIGN_KEY_CHECKS = 1"),
    DialectName.MARIADB: ("SET FOREIGN_KEY_CHECKS = 0", "SET FOREIGN_KEY_CHECKS = 1"),
}


# =========================================================================
# Report
# =========================================================================


@dataclass(frozen=True, slots=True)
class ResetStep:
    """Outcome of one reset statement group."""

    name: str
    outcome: Result[Any]
    target: str | None = None

    @property
    def label(self) -> str:
        return f"{self.name}:{self.target}" if self.target else self.name

    @property
    def ok(self) -> bool:
        return self.outcome.is_ok()

    def to_dict(self) -> dict[str, Any]:
        return {"step": self.name, "target": self.target, **self.outcome.to_dict()}


@dataclass
class ResetReport:
    """Ordered record of a reset (or extension setup) run."""

    dialect: str
    steps: list[ResetStep] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def errors(self) -> list[ResetStep]:
        return [step for step in self.steps if not step.ok]

    def first_error(self) -> Exception | None:
        for step in self.steps:
            if isinstance(step.outcome, Err):
                return step.outcome.error
        return None

    def raise_for_errors(self) -> ResetReport:
        """Raise :class:`ResetError` if any step failed, else return self."""
        if not self.ok:
            raise ResetError(self)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "dialect": self.dialect,
            "ok": self.ok,
            "steps": [step.to_dict() for step in self.steps],
            "skipped": list(self.skipped),
        }


class _StepRunner:
    """Runs steps in order, recording outcomes and honouring ``stop_on_error``."""

    def __init__(self, handle: ConnectionHandle, report: ResetReport, stop_on_error: bool) -> None:
        self._handle = handle
        self._report = report
        self._stop_on_error = stop_on_error
        self.halted = False

    def run(self, name: str, fn: Callable[[Connection], Any], target: str | None = None) -> Result[Any] | None:
        label = f"{name}:{target}" if target else name
        if self.halted:
            self._report.skipped.append(label)
            return None

        def _execute() -> Any:
            with self._handle.engine.begin() as conn:
                return fn(conn)

        def _wrap(exc: Exception) -> Exception:
            return DatabaseError(f"{label} failed: {exc}", cause=exc).with_context(
                dialect=self._report.dialect, step=name, target=target
            )

        outcome = try_result_with(_execute, _wrap)
        self._report.steps.append(ResetStep(name=name, outcome=outcome, target=target))

        if isinstance(outcome, Err):
            logger.error("reset_step_failed", step=name, target=target, error=str(outcome.error.__cause__ or outcome.error))
            if self._stop_on_error:
                self.halted = True
        else:
            logger.debug("reset_step_completed", step=name, target=target)
        return outcome

    def skip(self, label: str) -> None:
        self._report.skipped.append(label)


# =========================================================================
# Statements
# =========================================================================


def list_non_default_schemas(conn: Connection) -> list[str]:
    """Schemas other than the default and the PostgreSQL system schemas."""
    insp = inspect(conn)
    default = insp.default_schema_name
    return [
        schema
        for schema in insp.get_schema_names()
        if schema != default and schema not in SYSTEM_SCHEMAS and not schema.startswith(SYSTEM_SCHEMA_PREFIX)
    ]


def drop_schema(conn: Connection, schema: str) -> str:
    conn.execute(DropSchema(schema, cascade=True))
    return schema


def create_schema(conn: Connection, schema: str) -> str:
    conn.execute(CreateSchema(schema))
    return schema


def drop_all_tables(conn: Connection, dialect: DialectName) -> int:
    """Drop every table in the default schema; returns the number dropped.

    Tables are listed by name rather than reflected, so a foreign key that
    points at a table which no longer exists does not block the drop.
    """
    ordered = inspect(conn).get_sorted_table_and_fkc_names()
    names = [name for name, _fkcs in reversed(ordered) if name is not None]
    if not names:
        return 0

    preparer = conn.dialect.identifier_preparer
    toggle = FOREIGN_KEY_TOGGLES.get(dialect)
    if toggle is not None:
        conn.exec_driver_sql(toggle[0])
    try:
        if toggle is None and dialect is not DialectName.POSTGRES:
            # Constraints in a dependency cycle have no safe drop order.
            for table, constraint in ordered[-1][1]:
                if constraint:
                    conn.execute(text(f"ALTER TABLE {preparer.quote(table)} DROP CONSTRAINT {preparer.quote(constraint)}"))
        suffix = " CASCADE" if dialect is DialectName.POSTGRES else ""
        for name in names:
            conn.execute(text(f"DROP TABLE {preparer.quote(name)}{suffix}"))
    finally:
        if toggle is not None:
            conn.exec_driver_sql(toggle[1])
    return len(names)


def drop_all_enums(conn: Connection) -> int:
    """Drop PostgreSQL enum types visible in the default schema."""
    preparer = conn.dialect.identifier_preparer
    enums = inspect(conn).get_enums()
    for enum in enums:
        name = preparer.quote(enum["name"])
        if enum.get("schema"):
            name = f"{preparer.quote_schema(enum['schema'])}.{name}"
        conn.execute(text(f"DROP TYPE IF EXISTS {name}"))
    return len(enums)


def create_extension(conn: Connection, extension: str) -> str:
    preparer = conn.dialect.identifier_preparer
    conn.execute(text(f"CREATE EXTENSION IF NOT EXISTS {preparer.quote(extension)}"))
    return extension


# =========================================================================
# Operations
# =========================================================================


def reset_database(handle: ConnectionHandle, *, stop_on_error: bool = False) -> ResetReport:
    """Return the target database to an empty baseline.

    Args:
        handle: connected handle; moves through ``resetting`` back to ``ready``
        stop_on_error: skip the remaining steps after the first failure

    Returns:
        The step-by-step report.  Failed steps are ``Err`` outcomes; nothing
        is raised for DDL failures.

    Raises:
        HandleStateError: the handle is not connected, or a reset is already
            in progress on it.
    """
    dialect = handle.dialect
    report = ResetReport(dialect=dialect.value)
    handle.begin_reset()
    try:
        with LogContext(dialect=dialect.value):
            runner = _StepRunner(handle, report, stop_on_error)

            if dialect_supports_schemas(dialect):
                listed = runner.run("list_schemas", list_non_default_schemas)
                schemas: list[str] = listed.unwrap() if isinstance(listed, Ok) else []
                for schema in schemas:
                    dropped = runner.run("drop_schema", lambda conn, s=schema: drop_schema(conn, s), target=schema)
                    if isinstance(dropped, Ok):
                        runner.run("create_schema", lambda conn, s=schema: create_schema(conn, s), target=schema)
                    else:
                        # Recreating a schema that was never dropped only adds a second error.
                        runner.skip(f"create_schema:{schema}")

            runner.run("drop_tables", lambda conn: drop_all_tables(conn, dialect))

            if dialect is DialectName.POSTGRES:
                runner.run("drop_enums", drop_all_enums)
            else:
                runner.skip("drop_enums")

        handle.metadata.clear()
    finally:
        handle.finish_reset()

    log = logger.info if report.ok else logger.warning
    log("reset_completed", dialect=dialect.value, steps=len(report.steps), failed=len(report.errors))
    return report


def ensure_extensions(handle: ConnectionHandle, extensions: Iterable[str]) -> ResetReport:
    """Create the configured extensions once per suite (PostgreSQL only)."""
    report = ResetReport(dialect=handle.dialect.value)
    wanted = list(extensions)
    if handle.dialect is not DialectName.POSTGRES:
        report.skipped.extend(f"create_extension:{ext}" for ext in wanted)
        return report

    runner = _StepRunner(handle, report, stop_on_error=False)
    for ext in wanted:
        runner.run("create_extension", lambda conn, e=ext: create_extension(conn, e), target=ext)
    return report


__all__ = [
    "SYSTEM_SCHEMAS",
    "ResetStep",
    "ResetReport",
    "list_non_default_schemas",
    "drop_all_tables",
    "drop_all_enums",
    "reset_database",
    "ensure_extensions",
]
