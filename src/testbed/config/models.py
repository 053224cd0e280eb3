"""
Per-dialect connection configuration.

One :class:`DialectConfig` per dialect, shaped like the config file tables::

    [postgres]
    host = "127.0.0.1"
    port = 5432
    username = "postgres"
    password = "postgres"
    database = "testbed_test"
    extensions = ["hstore"]

    [postgres.pool]
    size = 5

Models are frozen.  Overrides produce new instances via ``merged()``, so a
config loaded at the start of a run cannot be changed by a test holding a
reference to it.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from testbed.dialects import DialectName


class PoolConfig(BaseModel):
    """Connection pool settings, passed to ``create_engine`` (ignored for SQLite)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    size: int = 5
    max_overflow: int = 0
    timeout: float = 30.0
    recycle: int = -1

    def engine_kwargs(self) -> dict[str, Any]:
        return {
            "pool_size": self.size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.timeout,
            "pool_recycle": self.recycle,
        }


class DialectConfig(BaseModel):
    """Connection parameters for one dialect."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    storage: str | None = None
    pool: PoolConfig = Field(default_factory=PoolConfig)
    extensions: tuple[str, ...] = ()
    dialect_options: dict[str, Any] = Field(default_factory=dict)

    def merged(self, overrides: Mapping[str, Any]) -> DialectConfig:
        """Return a copy with ``overrides`` applied (``pool`` merges key-wise)."""
        data = self.model_dump()
        for key, value in overrides.items():
            if key == "pool" and isinstance(value, Mapping):
                data["pool"] = {**data["pool"], **value}
            elif key == "dialect_options" and isinstance(value, Mapping):
                data["dialect_options"] = {**data["dialect_options"], **value}
            else:
                data[key] = value
        return DialectConfig.model_validate(data)

    def redacted(self) -> dict[str, Any]:
        """Dump for display with the password masked."""
        data = self.model_dump(mode="json")
        if data.get("password"):
            data["password"] = "***"
        return data


def default_dialect_configs() -> dict[DialectName, DialectConfig]:
    """Built-in configs matching the stock CI database containers."""
    return {
        DialectName.SQLITE: DialectConfig(),
        DialectName.MYSQL: DialectConfig(
            host="127.0.0.1",
            port=3306,
            username="root",
            database="testbed_test",
            pool=PoolConfig(size=5, recycle=3600),
        ),
        DialectName.MARIADB: DialectConfig(
            host="127.0.0.1",
            port=3306,
            username="root",
            database="testbed_test",
            pool=PoolConfig(size=5, recycle=3600),
        ),
        DialectName.POSTGRES: DialectConfig(
            host="127.0.0.1",
            port=5432,
            username="postgres",
            password="postgres",
            database="testbed_test",
            extensions=("hstore",),
        ),
        DialectName.MSSQL: DialectConfig(
            host="127.0.0.1",
            port=1433,
            username="sa",
            database="testbed_test",
        ),
    }


__all__ = ["PoolConfig", "DialectConfig", "default_dialect_configs"]
