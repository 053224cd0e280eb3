"""
Config-file discovery and per-dialect config loading.

Per-dialect configs resolve in a strict order, later layers winning::

    built-in defaults  →  TOML config file  →  TESTBED_<DIALECT>_<FIELD> env vars

The config file is ``TESTBED_CONFIG_FILE`` when set, otherwise the first of
``testbed.toml`` / ``.testbed.toml`` found at the project root.  A missing
file is not an error; a malformed one is.

Tags:
    configuration, toml, env-vars, cascading, loader, testbed
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from testbed.config.models import DialectConfig, default_dialect_configs
from testbed.dialects import DialectName
from testbed.errors import InvalidConfigError

CONFIG_FILE_NAMES = ("testbed.toml", ".testbed.toml")
ENV_OVERRIDE_PREFIX = "TESTBED_"

# Scalar fields that can be overridden from the environment.
_ENV_FIELDS = ("host", "port", "username", "password", "database", "storage")


def find_project_root(start: Path | None = None) -> Path:
    """Walk upward from *start* to find the project root.

    Recognised root markers (checked in order):

    * ``pyproject.toml``
    * ``.git`` directory
    * ``setup.py``

    Falls back to *start* (or cwd) when no marker is found.
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / "pyproject.toml").exists():
            return directory
        if (directory / ".git").exists():
            return directory
        if (directory / "setup.py").exists():
            return directory
    return current


def discover_config_file(project_root: Path | None = None, explicit: Path | None = None) -> Path | None:
    """Return the config file to load, or ``None`` when there is none.

    An explicit path is returned even if it does not exist, so the loader can
    report it.  A relative explicit path is taken from the project root, as
    ``TESTBED_SUPPORT_DIR`` is.
    """
    root = (project_root or find_project_root()).resolve()
    if explicit is not None:
        return (root / explicit).resolve()
    for name in CONFIG_FILE_NAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> dict[str, dict[str, Any]]:
    """Parse a config file into ``{dialect: table}``.

    Raises:
        InvalidConfigError: unreadable TOML, unknown dialect table, or a
            dialect entry that is not a table.
    """
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise InvalidConfigError("config_file", str(path), f"Cannot read config file {path}: {exc}") from exc

    known = {d.value for d in DialectName}
    tables: dict[str, dict[str, Any]] = {}
    for key, value in raw.items():
        if key not in known:
            raise InvalidConfigError(key, value, f"Unknown dialect table [{key}] in {path}")
        if not isinstance(value, dict):
            raise InvalidConfigError(key, value, f"[{key}] in {path} must be a table")
        tables[key] = value
    return tables


def env_overrides(dialect: DialectName, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``TESTBED_<DIALECT>_<FIELD>`` overrides for one dialect.

    Example::

        TESTBED_POSTGRES_PASSWORD=secret   →   {"password": "secret"}
        TESTBED_MYSQL_POOL_SIZE=10         →   {"pool": {"size": 10}}
    """
    env = os.environ if environ is None else environ
    prefix = f"{ENV_OVERRIDE_PREFIX}{dialect.name}_"
    overrides: dict[str, Any] = {}
    pool: dict[str, Any] = {}
    for key, value in env.items():
        upper = key.upper()
        if not upper.startswith(prefix):
            continue
        name = upper[len(prefix):].lower()
        if name in _ENV_FIELDS:
            overrides[name] = value
        elif name.startswith("pool_"):
            pool[name[len("pool_"):]] = value
    if pool:
        overrides["pool"] = pool
    return overrides


def load_dialect_configs(
    config_file: Path | None = None,
    *,
    project_root: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[DialectName, DialectConfig]:
    """Build the per-dialect configs for a run.

    Parameters
    ----------
    config_file:
        Explicit TOML file.  When ``None`` the project root is searched.
    project_root:
        Directory searched for ``testbed.toml`` / ``.testbed.toml``.
    environ:
        Environment used for overrides (defaults to ``os.environ``).
    """
    configs = default_dialect_configs()

    path = discover_config_file(project_root, config_file)
    file_tables = read_config_file(path) if path is not None else {}

    for dialect, config in list(configs.items()):
        layers = [file_tables.get(dialect.value, {}), env_overrides(dialect, environ)]
        for layer in layers:
            if not layer:
                continue
            try:
                config = config.merged(layer)
            except ValidationError as exc:
                raise InvalidConfigError(dialect.value, layer, f"Invalid config for {dialect.value}: {exc}") from exc
        configs[dialect] = config
    return configs


__all__ = [
    "CONFIG_FILE_NAMES",
    "find_project_root",
    "discover_config_file",
    "read_config_file",
    "env_overrides",
    "load_dialect_configs",
]
