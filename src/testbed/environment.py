"""
Suite and per-test lifecycle.

A :class:`SuiteEnvironment` is created once per test session.  It owns the
primary connection handle and hands each test a fresh, immutable
:class:`CaseContext` built after the database has been reset.

Architecture::

    SuiteEnvironment(settings, configs)
        │ setup_suite()      ensure_extensions(primary)      once
        │
        │ begin_case()  ──►  reset_database(primary)
        │                    apply ResetPolicy
        │                    SQLite: unlink tmp/test.sqlite, new file handle
        │                ◄── CaseContext(dialect, handle, report, settings)
        │
        │ end_case(ctx)      dispose ctx.handle unless it is the primary
        │ close()            dispose primary
        ▼

Guardrails:
    ❌ DON'T: Stash state on the CaseContext between tests
    ✅ DO: Build everything a test needs from ``begin_case()``

Tags:
    environment, lifecycle, fixtures, reset-policy, testbed
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace

from testbed.config.loader import load_dialect_configs
from testbed.config.models import DialectConfig
from testbed.config.settings import ResetPolicy, TestbedSettings, get_settings
from testbed.connection import ConnectionHandle, ConnectionOptions, create_connection
from testbed.dialects import DialectName, get_test_dialect_teaser
from testbed.errors import ResetError
from testbed.logging import get_logger
from testbed.paths import resolve_support_path
from testbed.reset import ResetReport, ensure_extensions, reset_database

logger = get_logger(__name__)

CASE_DATABASE_FILE = "test.sqlite"


@dataclass(frozen=True, slots=True)
class CaseContext:
    """Everything one test gets: a clean handle and the reset that produced it."""

    dialect: DialectName
    handle: ConnectionHandle
    report: ResetReport
    settings: TestbedSettings

    def teaser(self, module_name: str) -> str:
        return get_test_dialect_teaser(module_name, self.settings.dialect, subject=self.settings.teaser_subject)


class SuiteEnvironment:
    """Primary handle plus per-test reset for one test session."""

    def __init__(
        self,
        settings: TestbedSettings | None = None,
        configs: Mapping[DialectName, DialectConfig] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.dialect = self.settings.resolved_dialect
        if configs is None:
            configs = load_dialect_configs(self.settings.config_file, project_root=self.settings.project_root)
        self.configs: Mapping[DialectName, DialectConfig] = configs
        self._primary: ConnectionHandle | None = None

    @property
    def config(self) -> DialectConfig:
        return self.configs[self.dialect]

    @property
    def primary(self) -> ConnectionHandle:
        """The suite's connected primary handle (created on first use)."""
        if self._primary is None:
            handle = create_connection(ConnectionOptions(dialect=self.dialect), settings=self.settings, configs=self.configs)
            self._primary = handle.connect()
        return self._primary

    def setup_suite(self) -> ResetReport:
        report = ensure_extensions(self.primary, self.config.extensions)
        if not report.ok:
            self._apply_policy(report)
        return report

    def begin_case(self, test_name: str | None = None) -> CaseContext:
        """Reset the database and build the context for the next test."""
        report = reset_database(self.primary, stop_on_error=self.settings.fail_fast)
        if not report.ok:
            self._apply_policy(report, test_name)

        handle = self.primary
        if self.dialect.is_file_based:
            handle = self._fresh_sqlite_handle()

        return CaseContext(dialect=self.dialect, handle=handle, report=report, settings=self.settings)

    def end_case(self, ctx: CaseContext) -> None:
        if ctx.handle is not self._primary:
            ctx.handle.dispose()

    def close(self) -> None:
        if self._primary is not None:
            self._primary.dispose()
            self._primary = None

    def _fresh_sqlite_handle(self) -> ConnectionHandle:
        storage = resolve_support_path("tmp", CASE_DATABASE_FILE, settings=self.settings)
        storage.parent.mkdir(parents=True, exist_ok=True)
        storage.unlink(missing_ok=True)
        return ConnectionHandle(replace(self.primary.options, storage=str(storage))).connect()

    def _apply_policy(self, report: ResetReport, test_name: str | None = None) -> None:
        if self.settings.reset_policy is ResetPolicy.FAIL_FAST:
            raise ResetError(report)
        logger.warning(
            "reset_incomplete",
            dialect=report.dialect,
            test=test_name,
            failed=[step.label for step in report.errors],
        )

    def __enter__(self) -> SuiteEnvironment:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["CASE_DATABASE_FILE", "CaseContext", "SuiteEnvironment"]
