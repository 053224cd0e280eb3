"""
Shared pytest fixtures and configuration for testbed tests.

This module provides:
- The testbed pytest plugin (``testbed``, ``testbed_handle`` ... fixtures)
- Environment isolation for settings tests
- Temporary project roots and SQLite handles

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(clean_env, tmp_project):
            settings = TestbedSettings(project_root=tmp_project)
"""

import os
import sys
from pathlib import Path
from typing import Iterator

import pytest

# Ensure testbed package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from testbed.config import TestbedSettings, clear_settings_cache
from testbed.connection import ConnectionHandle, ConnectionOptions
from testbed.dialects import DialectName

pytest_plugins = ["testbed.pytest_plugin"]


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Tests that use the live database fixtures are integration tests."""
    live = {"testbed", "testbed_handle", "transaction_handle", "testbed_environment"}
    for item in items:
        fixtures = set(getattr(item, "fixturenames", ()))
        if fixtures & live:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> Iterator[None]:
    """Cached settings never leak between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every variable the testbed reads from the environment."""
    for key in list(os.environ):
        if key in ("DIALECT", "SEQ_PORT") or key.startswith("TESTBED_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def tmp_project(tmp_path: Path, clean_env: pytest.MonkeyPatch) -> Path:
    """An empty project root (has a pyproject.toml) used as cwd."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "pyproject.toml").write_text("[project]\nname = 'demo'\n")
    clean_env.chdir(root)
    return root


@pytest.fixture
def settings(tmp_project: Path) -> TestbedSettings:
    return TestbedSettings(project_root=tmp_project)


# =============================================================================
# Handle Fixtures
# =============================================================================


@pytest.fixture
def sqlite_handle() -> Iterator[ConnectionHandle]:
    """Connected in-memory SQLite handle."""
    handle = ConnectionHandle(ConnectionOptions(dialect=DialectName.SQLITE)).connect()
    yield handle
    handle.dispose()
