"""
Support-directory and CLI path resolution.

Tests that shell out to the ``testbed`` CLI need an absolute command line,
and file-backed SQLite databases live under the support directory's ``tmp``
folder.  Both are resolved here so no test hard-codes a path.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from testbed.config.settings import TestbedSettings, get_settings

# File behind ``python -m testbed``.  It must be run as a module: run as a
# script, ``testbed/logging.py`` would shadow the standard library.
DEFAULT_CLI_ENTRY = Path(__file__).resolve().parent / "__main__.py"
DEFAULT_CLI_MODULE = "testbed"


def get_support_directory_path(settings: TestbedSettings | None = None) -> Path:
    """Absolute support directory.

    ``TESTBED_SUPPORT_DIR`` when set (relative values are taken from the
    project root), otherwise ``<project root>/tests/support``.
    """
    settings = settings or get_settings()
    root = (settings.project_root or Path.cwd()).resolve()
    if settings.support_dir is None:
        return root / "tests" / "support"
    return (root / settings.support_dir).resolve()


def resolve_support_path(*parts: str | os.PathLike[str], settings: TestbedSettings | None = None) -> Path:
    """Join ``parts`` onto the support directory.

    >>> resolve_support_path("tmp", "test.sqlite")  # doctest: +SKIP
    PosixPath('/repo/tests/support/tmp/test.sqlite')
    """
    return get_support_directory_path(settings).joinpath(*parts).resolve()


def get_cli_path(cwd: str | os.PathLike[str], entry: str | os.PathLike[str] | None = None) -> Path:
    """Absolute path of the CLI entry point, resolved against ``cwd``.

    A relative ``entry`` is taken from ``cwd``; an absolute one is returned
    as is, whatever ``cwd`` is.
    """
    target = Path(entry) if entry is not None else DEFAULT_CLI_ENTRY
    return (Path(cwd) / target).resolve()


def get_cli_command(cwd: str | os.PathLike[str], flags: str, entry: str | os.PathLike[str] | None = None) -> str:
    """Command line invoking the CLI with ``flags``, for ``subprocess`` with ``shell=True``.

    Without ``entry`` the package runs as ``python -m testbed``; an explicit
    ``entry`` script is run by path, resolved against ``cwd``.
    """
    if entry is None:
        return f"{sys.executable} -m {DEFAULT_CLI_MODULE} {flags}".rstrip()
    return f"{sys.executable} {get_cli_path(cwd, entry)} {flags}".rstrip()


__all__ = [
    "DEFAULT_CLI_ENTRY",
    "DEFAULT_CLI_MODULE",
    "get_support_directory_path",
    "resolve_support_path",
    "get_cli_path",
    "get_cli_command",
]
