"""Tests for testbed.errors and testbed.result."""

from __future__ import annotations

import pytest

from testbed.errors import (
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    HandleStateError,
    InvalidConfigError,
    MissingConfigError,
    TestbedError,
    UnsupportedDialectError,
)
from testbed.result import Err, Ok, try_result_with


# ── Error hierarchy ──────────────────────────────────────────────────────


class TestErrorHierarchy:
    def test_config_errors(self):
        for err in (
            UnsupportedDialectError("x"),
            MissingConfigError("postgres.username"),
            InvalidConfigError("port", "abc"),
        ):
            assert isinstance(err, ConfigError)
            assert err.category == ErrorCategory.CONFIG

    def test_categories(self):
        assert DatabaseError("x").category == ErrorCategory.DATABASE
        assert HandleStateError("closed", "reset").category == ErrorCategory.STATE
        assert TestbedError("x").category == ErrorCategory.INTERNAL

    def test_category_override(self):
        assert TestbedError("x", category=ErrorCategory.DATABASE).category == ErrorCategory.DATABASE

    def test_handle_state_message(self):
        assert str(HandleStateError("closed", "reset")) == "Cannot reset a connection handle in state 'closed'"

    def test_invalid_config_message(self):
        assert str(InvalidConfigError("port", "abc")) == "Invalid configuration for port: 'abc'"


class TestErrorContext:
    def test_with_context_known_and_extra_keys(self):
        err = DatabaseError("drop failed").with_context(dialect="postgres", step="drop_schema", schema_count=3)
        assert err.context.dialect == "postgres"
        assert err.context.step == "drop_schema"
        assert err.context.metadata == {"schema_count": 3}

    def test_context_to_dict_skips_none(self):
        assert ErrorContext(dialect="mysql").to_dict() == {"dialect": "mysql"}

    def test_cause_chained(self):
        cause = RuntimeError("driver")
        err = DatabaseError("wrapped", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_to_dict(self):
        err = MissingConfigError("mssql.database").with_context(dialect="mssql")
        assert err.to_dict() == {
            "error_type": "MissingConfigError",
            "message": "Missing required configuration: mssql.database",
            "category": "CONFIG",
            "context": {"dialect": "mssql"},
            "key": "mssql.database",
        }

    def test_unsupported_dialect_context(self):
        err = UnsupportedDialectError("db2", ("sqlite", "postgres"))
        assert err.context.dialect == "db2"
        assert err.context.metadata["supported"] == ["sqlite", "postgres"]


# ── Result ───────────────────────────────────────────────────────────────


class TestResult:
    def test_ok(self):
        result = Ok(3)
        assert result.is_ok() and not result.is_err()
        assert result.unwrap() == 3
        assert result.to_dict() == {"ok": True, "value": 3}

    def test_err(self):
        error = DatabaseError("boom")
        result = Err(error)
        assert result.is_err()
        with pytest.raises(DatabaseError):
            result.unwrap()

    def test_err_to_dict_plain_exception(self):
        assert Err(ValueError("bad")).to_dict() == {
            "ok": False,
            "error": {"error_type": "ValueError", "message": "bad"},
        }

    def test_err_to_dict_testbed_error(self):
        assert Err(DatabaseError("boom")).to_dict()["error"]["category"] == "DATABASE"

    def test_try_result_with(self):
        assert try_result_with(lambda: 1) == Ok(1)

        def fail():
            raise KeyError("k")

        result = try_result_with(fail, lambda e: DatabaseError("mapped", cause=e))
        assert isinstance(result, Err)
        assert isinstance(result.error.__cause__, KeyError)
