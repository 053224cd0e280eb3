"""
Dialect selection and dialect-aware test helpers.

The target dialect for a test run comes from the ``DIALECT`` environment
variable.  It defaults to the embedded file dialect (SQLite), and the vendor
variant ``postgres-native`` collapses onto ``postgres`` everywhere except in
display strings.  A dialect is *supported* only when the SQLAlchemy backend
package that implements it is importable.

Architecture:
    ::

        DIALECT env ──► raw_dialect() ──► normalize ──► supported? ──► DialectName
                              │           (postgres-native      │
                              │            → postgres)          └─► UnsupportedDialectError
                              ▼
                   get_test_dialect_teaser()
                   "[POSTGRES-NATIVE] lib/sqlalchemy Model"

    Supported-set discovery:

        pkgutil.iter_modules(sqlalchemy.dialects)  ┐
        entry_points(group="sqlalchemy.dialects")  ┴─► installed backends
            → {"sqlite", "mysql", "postgresql", "mssql", "oracle", ...}
            → DialectName members whose backend is installed

Examples:
    >>> resolve_dialect("postgres-native")
    <DialectName.POSTGRES: 'postgres'>
    >>> get_test_dialect_teaser("Model", "postgres-native")
    '[POSTGRES-NATIVE] lib/sqlalchemy Model'
    >>> dialect_is_mysql(value="mariadb")
    True
    >>> dialect_is_mysql(strict=True, value="mariadb")
    False

Tags:
    dialect, configuration, environment, sqlalchemy, testbed
"""

from __future__ import annotations

import os
import pkgutil
import re
from collections.abc import Mapping
from enum import Enum
from functools import lru_cache
from importlib.metadata import entry_points
from re import Pattern

from testbed.errors import UnsupportedDialectError

DIALECT_ENV_VAR = "DIALECT"
DEFAULT_DIALECT = "sqlite"
DEFAULT_TEASER_SUBJECT = "lib/sqlalchemy"


class DialectName(str, Enum):
    """Dialects a test run can target."""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRES = "postgres"
    MSSQL = "mssql"

    @property
    def backend(self) -> str:
        """SQLAlchemy backend package implementing this dialect."""
        return DIALECT_BACKENDS[self]

    @property
    def is_file_based(self) -> bool:
        return self is DialectName.SQLITE


# Vendor variants accepted in DIALECT and the dialect they run as.
NATIVE_VARIANTS: dict[str, DialectName] = {
    "postgres-native": DialectName.POSTGRES,
}

DIALECT_BACKENDS: dict[DialectName, str] = {
    DialectName.SQLITE: "sqlite",
    DialectName.MYSQL: "mysql",
    DialectName.MARIADB: "mysql",
    DialectName.POSTGRES: "postgresql",
    DialectName.MSSQL: "mssql",
}

# Default DBAPI drivers; the native variant swaps in the libpq binding.
DEFAULT_DRIVERS: dict[DialectName, str] = {
    DialectName.SQLITE: "sqlite+pysqlite",
    DialectName.MYSQL: "mysql+pymysql",
    DialectName.MARIADB: "mariadb+pymysql",
    DialectName.POSTGRES: "postgresql+pg8000",
    DialectName.MSSQL: "mssql+pymssql",
}
NATIVE_DRIVERS: dict[DialectName, str] = {
    DialectName.POSTGRES: "postgresql+psycopg2",
}


# =========================================================================
# Discovery
# =========================================================================


@lru_cache(maxsize=1)
def installed_backends() -> frozenset[str]:
    """Names of the SQLAlchemy dialect backends available in this environment.

    Lists the bundled ``sqlalchemy.dialects`` sub-packages and any third-party
    dialect registered under the ``sqlalchemy.dialects`` entry-point group
    (entry-point names look like ``"backend.driver"``).
    """
    import sqlalchemy.dialects as bundled

    names = {module.name for module in pkgutil.iter_modules(bundled.__path__) if not module.name.startswith("_")}
    for ep in entry_points(group="sqlalchemy.dialects"):
        names.add(ep.name.split(".", 1)[0])
    return frozenset(names)


def get_supported_dialects() -> tuple[DialectName, ...]:
    """Dialects whose SQLAlchemy backend is installed, in declaration order."""
    backends = installed_backends()
    return tuple(dialect for dialect in DialectName if dialect.backend in backends)


# =========================================================================
# Resolution
# =========================================================================


def raw_dialect(value: str | None = None) -> str:
    """Return the dialect name as given, before normalization.

    ``value`` wins over the ``DIALECT`` environment variable; an empty value
    falls back to the default dialect.
    """
    if value is None:
        value = os.environ.get(DIALECT_ENV_VAR)
    return (value or DEFAULT_DIALECT).strip().lower()


def is_native_variant(value: str | None = None) -> bool:
    return raw_dialect(value) in NATIVE_VARIANTS


def resolve_dialect(value: str | None = None) -> DialectName:
    """Resolve the dialect for this test run.

    Raises:
        UnsupportedDialectError: the name is unknown or its backend is not
            installed.
    """
    name = raw_dialect(value)
    if name in NATIVE_VARIANTS:
        name = NATIVE_VARIANTS[name].value

    supported = get_supported_dialects()
    for dialect in supported:
        if dialect.value == name:
            return dialect
    raise UnsupportedDialectError(name, tuple(d.value for d in supported))


def driver_for(dialect: DialectName, *, native: bool = False) -> str:
    """SQLAlchemy ``drivername`` for ``dialect``."""
    if native and dialect in NATIVE_DRIVERS:
        return NATIVE_DRIVERS[dialect]
    return DEFAULT_DRIVERS[dialect]


# =========================================================================
# Predicates
# =========================================================================


def dialect_is_mysql(strict: bool = False, value: str | None = None) -> bool:
    """True for MySQL, or for MySQL and MariaDB unless ``strict``."""
    dialect = resolve_dialect(value)
    if strict:
        return dialect is DialectName.MYSQL
    return dialect in (DialectName.MYSQL, DialectName.MARIADB)


def dialect_is_postgres(value: str | None = None) -> bool:
    return resolve_dialect(value) is DialectName.POSTGRES


def dialect_supports_schemas(dialect: DialectName) -> bool:
    """Whether reset has to clear non-default schemas for ``dialect``."""
    return dialect is DialectName.POSTGRES


def get_test_dialect_teaser(
    module_name: str,
    value: str | None = None,
    subject: str = DEFAULT_TEASER_SUBJECT,
) -> str:
    """Heading used to label test groups with the dialect they run against.

    The native variant keeps its own name here so CI logs show which driver
    ran.
    """
    dialect = resolve_dialect(value).value
    if is_native_variant(value):
        dialect = raw_dialect(value)
    return f"[{dialect.upper()}] {subject} {module_name}"


# =========================================================================
# Expectations
# =========================================================================


def check_match_for_dialects(
    dialect: DialectName | str,
    value: str,
    expectations: Mapping[str, str | Pattern[str]],
) -> None:
    """Assert that ``value`` matches the expectation for ``dialect``.

    Used for generated SQL and error messages that differ per backend::

        check_match_for_dialects(dialect, str(exc), {
            "sqlite": r"UNIQUE constraint failed",
            "postgres": r"duplicate key value",
        })
    """
    key = dialect.value if isinstance(dialect, DialectName) else str(dialect)
    expected = expectations.get(key)
    if not expected:
        raise ValueError(f"Undefined expectation for '{key}'!")
    pattern = expected if isinstance(expected, Pattern) else re.compile(expected)
    if pattern.search(value) is None:
        raise AssertionError(f"expected {value!r} to match {pattern.pattern!r} for dialect '{key}'")


__all__ = [
    "DIALECT_ENV_VAR",
    "DEFAULT_DIALECT",
    "DialectName",
    "NATIVE_VARIANTS",
    "installed_backends",
    "get_supported_dialects",
    "raw_dialect",
    "is_native_variant",
    "resolve_dialect",
    "driver_for",
    "dialect_is_mysql",
    "dialect_is_postgres",
    "dialect_supports_schemas",
    "get_test_dialect_teaser",
    "check_match_for_dialects",
]
