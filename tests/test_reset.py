"""Tests for testbed.reset - real SQLite resets plus mocked PostgreSQL/MySQL DDL."""

from __future__ import annotations

from unittest.mock import MagicMock, call

import pytest
from sqlalchemy import Column, ForeignKey, Integer, Table
from sqlalchemy.dialects import mssql, mysql, postgresql
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.schema import CreateSchema, DropSchema
from sqlalchemy.sql.elements import TextClause

from testbed import reset as reset_module
from testbed.connection import ConnectionHandle, ConnectionOptions, HandleState
from testbed.dialects import DialectName
from testbed.errors import DatabaseError, HandleStateError, ResetError
from testbed.reset import (
    ResetReport,
    ResetStep,
    drop_all_enums,
    drop_all_tables,
    ensure_extensions,
    list_non_default_schemas,
    reset_database,
)
from testbed.result import Err, Ok


# =============================================================================
# Helpers
# =============================================================================


def _mock_handle(dialect: DialectName) -> tuple[ConnectionHandle, MagicMock]:
    """A connected handle whose engine yields one mocked connection."""
    handle = ConnectionHandle(ConnectionOptions(dialect=dialect, host="h", username="u", database="d"))
    conn = MagicMock(name="connection")
    conn.dialect = postgresql.dialect()
    engine = MagicMock(name="engine")
    engine.begin.return_value.__enter__.return_value = conn
    engine.begin.return_value.__exit__.return_value = False
    handle._engine = engine
    handle._state = HandleState.CONNECTED
    return handle, conn


def _inspector(schemas=("public",), enums=()) -> MagicMock:
    insp = MagicMock(name="inspector")
    insp.default_schema_name = "public"
    insp.get_schema_names.return_value = list(schemas)
    insp.get_enums.return_value = list(enums)
    return insp


def _executed(conn: MagicMock) -> list:
    return [c.args[0] for c in conn.execute.call_args_list]


# =============================================================================
# Report
# =============================================================================


class TestResetReport:
    def test_empty_report_is_ok(self):
        report = ResetReport(dialect="sqlite")
        assert report.ok
        assert report.errors == []
        assert report.first_error() is None
        assert report.raise_for_errors() is report

    def test_errors_and_first_error(self):
        boom = DatabaseError("boom")
        report = ResetReport(
            dialect="postgres",
            steps=[
                ResetStep("drop_tables", Ok(2)),
                ResetStep("drop_schema", Err(boom), target="archive"),
                ResetStep("drop_enums", Err(DatabaseError("later"))),
            ],
        )
        assert not report.ok
        assert [s.label for s in report.errors] == ["drop_schema:archive", "drop_enums"]
        assert report.first_error() is boom

    def test_raise_for_errors(self):
        report = ResetReport(dialect="mysql", steps=[ResetStep("drop_tables", Err(DatabaseError("x")))])
        with pytest.raises(ResetError, match="drop_tables") as exc_info:
            report.raise_for_errors()
        assert exc_info.value.report is report
        assert exc_info.value.context.dialect == "mysql"

    def test_to_dict(self):
        report = ResetReport(dialect="sqlite", steps=[ResetStep("drop_tables", Ok(3))], skipped=["drop_enums"])
        assert report.to_dict() == {
            "dialect": "sqlite",
            "ok": True,
            "steps": [{"step": "drop_tables", "target": None, "ok": True, "value": 3}],
            "skipped": ["drop_enums"],
        }


# =============================================================================
# SQLite (real database)
# =============================================================================


class TestResetSqlite:
    def _create_schema(self, handle: ConnectionHandle) -> None:
        Table("authors", handle.metadata, Column("id", Integer, primary_key=True))
        Table(
            "books",
            handle.metadata,
            Column("id", Integer, primary_key=True),
            Column("author_id", ForeignKey("authors.id")),
        )
        handle.metadata.create_all(handle.engine)
        handle.execute("INSERT INTO authors (id) VALUES (1)")
        handle.execute("INSERT INTO books (id, author_id) VALUES (1, 1)")

    def test_drops_all_tables(self, sqlite_handle):
        self._create_schema(sqlite_handle)
        report = reset_database(sqlite_handle)

        assert report.ok
        assert sqlite_handle.table_names() == []
        assert [s.label for s in report.steps] == ["drop_tables"]
        assert report.steps[0].outcome == Ok(2)
        assert report.skipped == ["drop_enums"]

    def test_clears_metadata(self, sqlite_handle):
        self._create_schema(sqlite_handle)
        reset_database(sqlite_handle)
        assert sqlite_handle.metadata.tables == {}

    def test_handle_ready_after_reset(self, sqlite_handle):
        reset_database(sqlite_handle)
        assert sqlite_handle.state is HandleState.READY
        reset_database(sqlite_handle)
        assert sqlite_handle.state is HandleState.READY

    def test_foreign_keys_restored(self, sqlite_handle):
        self._create_schema(sqlite_handle)
        reset_database(sqlite_handle)
        assert sqlite_handle.execute("PRAGMA foreign_keys")[0][0] == 1

    def test_dangling_foreign_key_does_not_block_drop(self, sqlite_handle):
        sqlite_handle.execute("CREATE TABLE orphans (id INTEGER PRIMARY KEY, gone_id INTEGER REFERENCES gone(id))")
        sqlite_handle.execute("CREATE TABLE bystanders (id INTEGER PRIMARY KEY)")

        report = reset_database(sqlite_handle)

        assert report.ok
        assert report.steps[0].outcome == Ok(2)
        assert sqlite_handle.table_names() == []

    def test_self_referencing_table(self, sqlite_handle):
        sqlite_handle.execute("CREATE TABLE nodes (id INTEGER PRIMARY KEY, parent_id INTEGER REFERENCES nodes(id))")
        sqlite_handle.execute("INSERT INTO nodes (id, parent_id) VALUES (1, NULL), (2, 1)")

        assert reset_database(sqlite_handle).ok
        assert sqlite_handle.table_names() == []

    def test_empty_database(self, sqlite_handle):
        report = reset_database(sqlite_handle)
        assert report.steps[0].outcome == Ok(0)

    def test_reentrant_reset_raises(self, sqlite_handle):
        sqlite_handle.begin_reset()
        with pytest.raises(HandleStateError):
            reset_database(sqlite_handle)

    def test_closed_handle_raises(self, sqlite_handle):
        sqlite_handle.dispose()
        with pytest.raises(HandleStateError):
            reset_database(sqlite_handle)

    def test_failed_step_is_recorded_not_raised(self, sqlite_handle, monkeypatch):
        def boom(conn, dialect):
            raise OperationalError("DROP TABLE books", {}, Exception("database is locked"))

        monkeypatch.setattr(reset_module, "drop_all_tables", boom)
        report = reset_database(sqlite_handle)

        assert not report.ok
        err = report.first_error()
        assert isinstance(err, DatabaseError)
        assert isinstance(err.__cause__, OperationalError)
        assert err.context.step == "drop_tables"
        assert err.context.dialect == "sqlite"
        assert sqlite_handle.state is HandleState.READY


# =============================================================================
# PostgreSQL (mocked connection)
# =============================================================================


class TestResetPostgres:
    SCHEMAS = ("public", "information_schema", "pg_catalog", "pg_toast", "archive", "audit")

    @pytest.fixture
    def pg(self, monkeypatch):
        handle, conn = _mock_handle(DialectName.POSTGRES)
        insp = _inspector(self.SCHEMAS, enums=[{"name": "enum_status", "schema": None}])
        monkeypatch.setattr(reset_module, "inspect", lambda bind: insp)
        monkeypatch.setattr(reset_module, "drop_all_tables", lambda conn, dialect: 0)
        return handle, conn

    def test_step_order(self, pg):
        handle, _conn = pg
        report = reset_database(handle)
        assert report.ok
        assert [s.label for s in report.steps] == [
            "list_schemas",
            "drop_schema:archive",
            "create_schema:archive",
            "drop_schema:audit",
            "create_schema:audit",
            "drop_tables",
            "drop_enums",
        ]
        assert report.steps[0].outcome == Ok(["archive", "audit"])

    def test_schema_statements(self, pg):
        handle, conn = pg
        reset_database(handle)
        ddl = [s for s in _executed(conn) if isinstance(s, (DropSchema, CreateSchema))]
        assert [(type(s).__name__, s.element) for s in ddl] == [
            ("DropSchema", "archive"),
            ("CreateSchema", "archive"),
            ("DropSchema", "audit"),
            ("CreateSchema", "audit"),
        ]
        assert all(s.cascade for s in ddl if isinstance(s, DropSchema))

    def test_each_step_in_own_transaction(self, pg):
        handle, _conn = pg
        report = reset_database(handle)
        assert handle.engine.begin.call_count == len(report.steps)

    def test_failed_drop_skips_recreate_and_continues(self, pg):
        handle, conn = pg

        def execute(stmt, *args):
            if isinstance(stmt, DropSchema) and stmt.element == "archive":
                raise ProgrammingError("DROP SCHEMA archive", {}, Exception("permission denied"))

        conn.execute.side_effect = execute
        report = reset_database(handle)

        assert [s.label for s in report.errors] == ["drop_schema:archive"]
        assert "create_schema:archive" in report.skipped
        assert "create_schema:audit" in [s.label for s in report.steps]
        assert handle.state is HandleState.READY

    def test_stop_on_error_skips_remaining(self, pg):
        handle, conn = pg

        def execute(stmt, *args):
            if isinstance(stmt, DropSchema):
                raise ProgrammingError("DROP SCHEMA", {}, Exception("permission denied"))

        conn.execute.side_effect = execute
        report = reset_database(handle, stop_on_error=True)

        assert [s.label for s in report.steps] == ["list_schemas", "drop_schema:archive"]
        assert report.skipped == [
            "create_schema:archive",
            "drop_schema:audit",
            "create_schema:audit",
            "drop_tables",
            "drop_enums",
        ]

    def test_no_extra_schemas(self, monkeypatch):
        handle, _conn = _mock_handle(DialectName.POSTGRES)
        monkeypatch.setattr(reset_module, "inspect", lambda bind: _inspector())
        monkeypatch.setattr(reset_module, "drop_all_tables", lambda conn, dialect: 0)
        report = reset_database(handle)
        assert [s.label for s in report.steps] == ["list_schemas", "drop_tables", "drop_enums"]


class TestPostgresStatements:
    def test_list_non_default_schemas(self, monkeypatch):
        insp = _inspector(["public", "information_schema", "pg_temp_1", "tenant_a", "tenant_b"])
        monkeypatch.setattr(reset_module, "inspect", lambda bind: insp)
        assert list_non_default_schemas(MagicMock()) == ["tenant_a", "tenant_b"]

    def test_drop_all_enums(self, monkeypatch):
        conn = MagicMock()
        conn.dialect = postgresql.dialect()
        insp = _inspector(enums=[{"name": "status", "schema": None}, {"name": "Mood", "schema": "other"}])
        monkeypatch.setattr(reset_module, "inspect", lambda bind: insp)

        assert drop_all_enums(conn) == 2
        statements = [str(s) for s in _executed(conn)]
        assert statements == ['DROP TYPE IF EXISTS status', 'DROP TYPE IF EXISTS other."Mood"']
        assert all(isinstance(s, TextClause) for s in _executed(conn))


# =============================================================================
# drop_all_tables statements (mocked connection)
# =============================================================================


class TestDropAllTablesStatements:
    # Inspector order is creation order; the trailing entry holds cyclic constraints.
    SORTED = [("authors", []), ("books", [("books", "fk_books_author")]), (None, [])]

    @pytest.fixture
    def insp(self, monkeypatch):
        insp = MagicMock(name="inspector")
        insp.get_sorted_table_and_fkc_names.return_value = list(self.SORTED)
        monkeypatch.setattr(reset_module, "inspect", lambda bind: insp)
        return insp

    @staticmethod
    def _conn(dialect_module) -> MagicMock:
        conn = MagicMock(name="connection")
        conn.dialect = dialect_module.dialect()
        return conn

    def test_mysql_drops_dependents_first_with_checks_off(self, insp):
        conn = self._conn(mysql)
        assert drop_all_tables(conn, DialectName.MYSQL) == 2
        assert [str(s) for s in _executed(conn)] == ["DROP TABLE books", "DROP TABLE authors"]
        assert conn.exec_driver_sql.call_args_list == [
            call("SET FOREIGN_KEY_CHECKS = 0"),
            call("SET FOREIGN_KEY_CHECKS = 1"),
        ]

    def test_checks_restored_on_failure(self, insp):
        conn = self._conn(mysql)
        conn.execute.side_effect = OperationalError("DROP TABLE books", {}, Exception("lock wait timeout"))
        with pytest.raises(OperationalError):
            drop_all_tables(conn, DialectName.MARIADB)
        assert conn.exec_driver_sql.call_args_list[-1] == call("SET FOREIGN_KEY_CHECKS = 1")

    def test_postgres_cascades_without_toggle(self, insp):
        conn = self._conn(postgresql)
        drop_all_tables(conn, DialectName.POSTGRES)
        assert [str(s) for s in _executed(conn)] == ["DROP TABLE books CASCADE", "DROP TABLE authors CASCADE"]
        conn.exec_driver_sql.assert_not_called()

    def test_mssql_drops_cyclic_constraints_first(self, insp):
        insp.get_sorted_table_and_fkc_names.return_value = [
            ("a", []),
            ("b", []),
            (None, [("a", "fk_a_b"), ("b", "fk_b_a")]),
        ]
        conn = self._conn(mssql)
        assert drop_all_tables(conn, DialectName.MSSQL) == 2
        assert [str(s) for s in _executed(conn)] == [
            "ALTER TABLE a DROP CONSTRAINT fk_a_b",
            "ALTER TABLE b DROP CONSTRAINT fk_b_a",
            "DROP TABLE b",
            "DROP TABLE a",
        ]
        conn.exec_driver_sql.assert_not_called()

    def test_quotes_identifiers(self, insp):
        insp.get_sorted_table_and_fkc_names.return_value = [("Order Items", []), (None, [])]
        conn = self._conn(postgresql)
        drop_all_tables(conn, DialectName.POSTGRES)
        assert [str(s) for s in _executed(conn)] == ['DROP TABLE "Order Items" CASCADE']

    def test_nothing_to_drop(self, insp):
        insp.get_sorted_table_and_fkc_names.return_value = [(None, [])]
        conn = self._conn(mysql)
        assert drop_all_tables(conn, DialectName.MYSQL) == 0
        conn.execute.assert_not_called()
        conn.exec_driver_sql.assert_not_called()


# =============================================================================
# Extensions
# =============================================================================


class TestEnsureExtensions:
    def test_postgres(self):
        handle, conn = _mock_handle(DialectName.POSTGRES)
        report = ensure_extensions(handle, ["hstore", "uuid-ossp"])
        assert report.ok
        assert [s.label for s in report.steps] == ["create_extension:hstore", "create_extension:uuid-ossp"]
        assert [str(s) for s in _executed(conn)] == [
            "CREATE EXTENSION IF NOT EXISTS hstore",
            'CREATE EXTENSION IF NOT EXISTS "uuid-ossp"',
        ]

    def test_failure_recorded(self):
        handle, conn = _mock_handle(DialectName.POSTGRES)
        conn.execute.side_effect = ProgrammingError("CREATE EXTENSION", {}, Exception("not available"))
        report = ensure_extensions(handle, ["postgis"])
        assert not report.ok
        assert report.errors[0].target == "postgis"

    def test_other_dialects_skip(self, sqlite_handle):
        report = ensure_extensions(sqlite_handle, ["hstore"])
        assert report.ok
        assert report.steps == []
        assert report.skipped == ["create_extension:hstore"]
