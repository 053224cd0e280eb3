"""
pytest integration.

Enable with ``pytest_plugins = ["testbed.pytest_plugin"]`` in a conftest, or
``-p testbed.pytest_plugin`` on the command line.

Fixtures:
    testbed_settings      session   validated TestbedSettings
    testbed_dialect       session   resolved DialectName
    testbed_environment   session   SuiteEnvironment, extensions created
    testbed               function  CaseContext on a freshly reset database
    testbed_handle        function  the CaseContext's ConnectionHandle
    transaction_handle    function  handle safe for concurrent transactions

Marker:
    @pytest.mark.dialect("postgres", "mysql")   run only on these dialects
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from testbed.config.settings import TestbedSettings, get_settings
from testbed.connection import ConnectionHandle, prepare_transaction_test
from testbed.dialects import DialectName, resolve_dialect
from testbed.environment import CaseContext, SuiteEnvironment
from testbed.errors import UnsupportedDialectError
from testbed.logging import LogContext, configure_logging


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "dialect(*names): run only when the target dialect is one of names",
    )


def pytest_report_header(config: pytest.Config) -> str:
    settings = get_settings()
    try:
        resolved = resolve_dialect(settings.dialect).value
    except UnsupportedDialectError:
        resolved = "unsupported"
    return f"testbed: dialect={settings.dialect} resolved={resolved}"


def pytest_runtest_setup(item: pytest.Item) -> None:
    marker = item.get_closest_marker("dialect")
    if marker is None:
        return
    settings = get_settings()
    wanted = {str(name).lower() for name in marker.args}
    current = {settings.dialect.lower(), settings.resolved_dialect.value}
    if not wanted & current:
        pytest.skip(f"requires dialect {', '.join(sorted(wanted))}; running {settings.dialect}")


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture(scope="session")
def testbed_settings() -> TestbedSettings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return settings


@pytest.fixture(scope="session")
def testbed_dialect(testbed_settings: TestbedSettings) -> DialectName:
    return testbed_settings.resolved_dialect


@pytest.fixture(scope="session")
def testbed_environment(testbed_settings: TestbedSettings) -> Iterator[SuiteEnvironment]:
    env = SuiteEnvironment(testbed_settings)
    env.setup_suite()
    yield env
    env.close()


@pytest.fixture
def testbed(testbed_environment: SuiteEnvironment, request: pytest.FixtureRequest) -> Iterator[CaseContext]:
    """A freshly reset database for one test."""
    with LogContext(dialect=testbed_environment.dialect.value, test=request.node.name):
        ctx = testbed_environment.begin_case(request.node.name)
        yield ctx
        testbed_environment.end_case(ctx)


@pytest.fixture
def testbed_handle(testbed: CaseContext) -> ConnectionHandle:
    return testbed.handle


@pytest.fixture
def transaction_handle(testbed: CaseContext) -> Iterator[ConnectionHandle]:
    """Handle for tests that open several transactions at once.

    It shares ``testbed.handle.metadata``; tables declared after setup are
    created with ``handle.metadata.create_all(handle.engine)``.
    """
    handle = prepare_transaction_test(testbed.handle, settings=testbed.settings)
    yield handle
    if handle is not testbed.handle:
        handle.dispose()
