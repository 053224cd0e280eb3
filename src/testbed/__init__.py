"""
testbed - run SQLAlchemy test suites against any supported dialect.

The target dialect comes from ``DIALECT`` (sqlite, mysql, mariadb, postgres,
postgres-native, mssql).  Each test gets a freshly reset database through the
pytest plugin, or through :class:`SuiteEnvironment` directly.

Quick start::

    # conftest.py
    pytest_plugins = ["testbed.pytest_plugin"]

    # test_users.py
    def test_insert(testbed):
        users = Table("users", testbed.handle.metadata, Column("id", Integer, primary_key=True))
        testbed.handle.metadata.create_all(testbed.handle.engine)
"""

from testbed.config import ResetPolicy, TestbedSettings, get_settings, load_dialect_configs
from testbed.connection import (
    ConnectionHandle,
    ConnectionOptions,
    HandleState,
    create_connection,
    get_connection_instance,
    prepare_transaction_test,
)
from testbed.dialects import (
    DialectName,
    check_match_for_dialects,
    dialect_is_mysql,
    dialect_is_postgres,
    get_supported_dialects,
    get_test_dialect_teaser,
    resolve_dialect,
)
from testbed.environment import CaseContext, SuiteEnvironment
from testbed.errors import (
    ConfigError,
    DatabaseError,
    HandleStateError,
    ResetError,
    TestbedError,
    UnsupportedDialectError,
)
from testbed.paths import get_cli_command, get_cli_path, get_support_directory_path
from testbed.reset import ResetReport, ensure_extensions, reset_database
from testbed.urls import build_connection_url

__version__ = "0.1.0"

__all__ = [
    # Dialects
    "DialectName",
    "get_supported_dialects",
    "resolve_dialect",
    "dialect_is_mysql",
    "dialect_is_postgres",
    "get_test_dialect_teaser",
    "check_match_for_dialects",
    # Config
    "ResetPolicy",
    "TestbedSettings",
    "get_settings",
    "load_dialect_configs",
    # Connections
    "HandleState",
    "ConnectionOptions",
    "ConnectionHandle",
    "create_connection",
    "get_connection_instance",
    "prepare_transaction_test",
    "build_connection_url",
    # Reset
    "ResetReport",
    "reset_database",
    "ensure_extensions",
    # Lifecycle
    "SuiteEnvironment",
    "CaseContext",
    # Paths
    "get_support_directory_path",
    "get_cli_path",
    "get_cli_command",
    # Errors
    "TestbedError",
    "ConfigError",
    "UnsupportedDialectError",
    "DatabaseError",
    "ResetError",
    "HandleStateError",
]
