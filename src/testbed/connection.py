"""
Connection handles for the target test database.

Manifesto:
    A test run owns exactly one primary connection handle, plus short-lived
    handles for tests that need their own database file (SQLite) or their
    own transaction scope.  Handles are built from frozen options merged with
    the dialect config, so nothing a test does can leak into the next
    test's connection settings.

Architecture::

    ConnectionOptions (caller)      DialectConfig (defaults/file/env)
              │                                │
              └──────────► create_connection ◄─┘
                                  │   port: option → SEQ_PORT → config
                                  │   credentials required (server dialects)
                                  ▼
                          ConnectionHandle  (uninitialized)
                                  │ connect()
                                  ▼
        ┌──────────── connected ──► resetting ──► ready ──┐
        │                              ▲                   │
        │                              └───────────────────┘
        └──────────────────────── dispose() ──► closed

Guardrails:
    ❌ DON'T: Mutate ``handle.options`` between tests
    ✅ DO: Build a new handle from ``dataclasses.replace(handle.options, ...)``

    ❌ DON'T: Reset the same handle from two places at once
    ✅ DO: Let ``begin_reset()`` reject a re-entrant reset

Tags:
    connection, sqlalchemy, engine, lifecycle, state-machine, testbed
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from sqlalchemy import MetaData, create_engine, event, inspect, text
from sqlalchemy.engine import URL, Engine, Row, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from testbed.config.loader import load_dialect_configs
from testbed.config.models import DialectConfig, PoolConfig
from testbed.config.settings import TestbedSettings, get_settings
from testbed.dialects import DialectName
from testbed.errors import DatabaseError, HandleStateError, MissingConfigError
from testbed.logging import get_logger
from testbed.paths import resolve_support_path
from testbed.urls import MEMORY_STORAGE, build_sqlalchemy_url

logger = get_logger(__name__)

# Server dialects refuse to build a handle without these.
REQUIRED_CREDENTIALS = ("username", "database")


class HandleState(str, Enum):
    """Lifecycle states of a :class:`ConnectionHandle`."""

    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    RESETTING = "resetting"
    READY = "ready"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ConnectionOptions:
    """Caller-supplied connection options; unset fields fall back to config."""

    dialect: DialectName | None = None
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    storage: str | None = None
    pool: PoolConfig | None = None
    dialect_options: Mapping[str, Any] = field(default_factory=dict)
    native: bool = False
    driver: str | None = None
    echo: bool = False


# =========================================================================
# Engine factory
# =========================================================================


def create_testbed_engine(
    url: URL | str,
    *,
    echo: bool = False,
    pool: PoolConfig | None = None,
    connect_args: Mapping[str, Any] | None = None,
) -> Engine:
    """Create a SQLAlchemy engine with test-friendly defaults.

    SQLite gets ``foreign_keys=ON`` on every connection and, for in-memory
    databases, a single shared connection so every checkout sees the same
    schema.  Server dialects get the pool settings from ``pool``.
    """
    url = make_url(url)
    args = dict(connect_args or {})

    if url.get_backend_name() == "sqlite":
        args.setdefault("check_same_thread", False)
        kwargs: dict[str, Any] = {"connect_args": args}
        if not url.database or url.database == MEMORY_STORAGE:
            kwargs["poolclass"] = StaticPool

        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs = (pool or PoolConfig()).engine_kwargs()
    return create_engine(url, echo=echo, connect_args=args, **pool_kwargs)


# =========================================================================
# Handle
# =========================================================================


class ConnectionHandle:
    """A live (or about to be live) session with the target database.

    ``metadata`` is where tests declare their tables; a reset clears it so
    models declared by one test are forgotten by the next.
    """

    def __init__(self, options: ConnectionOptions, *, metadata: MetaData | None = None) -> None:
        if options.dialect is None:
            raise ValueError("ConnectionHandle requires merged options with a dialect")
        self._options = options
        self.metadata = metadata if metadata is not None else MetaData()
        self._engine: Engine | None = None
        self._state = HandleState.UNINITIALIZED

    # --- properties ---

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def dialect(self) -> DialectName:
        assert self._options.dialect is not None
        return self._options.dialect

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def url(self) -> URL:
        return build_sqlalchemy_url(self._options)

    @property
    def engine(self) -> Engine:
        if self._engine is None or self._state in (HandleState.UNINITIALIZED, HandleState.CLOSED):
            raise HandleStateError(self._state.value, "use the engine of")
        return self._engine

    # --- lifecycle ---

    def connect(self) -> ConnectionHandle:
        """Create the engine and verify connectivity with ``SELECT 1``."""
        if self._state is HandleState.CLOSED:
            raise HandleStateError(self._state.value, "connect")
        if self._state is not HandleState.UNINITIALIZED:
            return self

        engine = create_testbed_engine(
            self.url,
            echo=self._options.echo,
            pool=self._options.pool,
            connect_args=self._options.dialect_options,
        )
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            engine.dispose()
            raise DatabaseError(
                f"Cannot connect to {self.dialect.value} database: {exc}", cause=exc
            ).with_context(dialect=self.dialect.value, target=self.url.render_as_string(hide_password=True)) from exc

        self._engine = engine
        self._state = HandleState.CONNECTED
        logger.debug("handle_connected", dialect=self.dialect.value, url=self.url.render_as_string(hide_password=True))
        return self

    def begin_reset(self) -> None:
        if self._state not in (HandleState.CONNECTED, HandleState.READY):
            raise HandleStateError(self._state.value, "reset")
        self._state = HandleState.RESETTING

    def finish_reset(self) -> None:
        if self._state is not HandleState.RESETTING:
            raise HandleStateError(self._state.value, "finish resetting")
        self._state = HandleState.READY

    def dispose(self) -> None:
        """Release pooled connections; the handle cannot be reused."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        if self._state is not HandleState.CLOSED:
            logger.debug("handle_disposed", dialect=self.dialect.value)
        self._state = HandleState.CLOSED

    # --- queries ---

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> Sequence[Row[Any]]:
        """Run raw SQL in its own transaction and return any rows."""
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), dict(params or {}))
            return result.fetchall() if result.returns_rows else []

    def table_names(self, schema: str | None = None) -> list[str]:
        """Tables currently present in ``schema`` (default schema when ``None``)."""
        return inspect(self.engine).get_table_names(schema=schema)

    def __enter__(self) -> ConnectionHandle:
        return self.connect()

    def __exit__(self, *args: Any) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"ConnectionHandle(dialect={self.dialect.value!r}, state={self._state.value!r})"


# =========================================================================
# Factories
# =========================================================================


def merge_options(
    options: ConnectionOptions,
    config: DialectConfig,
    settings: TestbedSettings,
) -> ConnectionOptions:
    """Fill unset ``options`` fields from ``config`` and run-level settings.

    Port precedence is caller option, then ``SEQ_PORT``, then config.
    """
    dialect = options.dialect or settings.resolved_dialect

    def pick(name: str) -> Any:
        value = getattr(options, name)
        return value if value is not None else getattr(config, name)

    if dialect.is_file_based:
        return replace(
            options,
            dialect=dialect,
            storage=options.storage or config.storage,
            dialect_options={**config.dialect_options, **options.dialect_options},
        )

    return replace(
        options,
        dialect=dialect,
        host=pick("host"),
        port=options.port or settings.port_override or config.port,
        username=pick("username"),
        password=pick("password"),
        database=pick("database"),
        pool=options.pool or config.pool,
        dialect_options={**config.dialect_options, **options.dialect_options},
        native=options.native or (settings.native and dialect is DialectName.POSTGRES),
    )


def create_connection(
    options: ConnectionOptions | None = None,
    *,
    settings: TestbedSettings | None = None,
    configs: Mapping[DialectName, DialectConfig] | None = None,
) -> ConnectionHandle:
    """Build an (unconnected) handle from options merged with dialect defaults.

    Raises:
        UnsupportedDialectError: no dialect given and ``DIALECT`` is unknown.
        MissingConfigError: a server dialect lacks a username or database.
    """
    settings = settings or get_settings()
    options = options or ConnectionOptions()
    if configs is None:
        configs = load_dialect_configs(settings.config_file, project_root=settings.project_root)

    dialect = options.dialect or settings.resolved_dialect
    merged = merge_options(replace(options, dialect=dialect), configs[dialect], settings)

    if not dialect.is_file_based:
        for key in REQUIRED_CREDENTIALS:
            if not getattr(merged, key):
                raise MissingConfigError(
                    f"{dialect.value}.{key}",
                    f"Missing required configuration for {dialect.value}: {key}",
                ).with_context(dialect=dialect.value)

    return ConnectionHandle(merged)


def get_connection_instance(
    database: str | None,
    username: str | None,
    password: str | None,
    options: ConnectionOptions | None = None,
    *,
    settings: TestbedSettings | None = None,
    configs: Mapping[DialectName, DialectConfig] | None = None,
) -> ConnectionHandle:
    """Handle with explicit credentials; the dialect defaults to the test dialect."""
    options = replace(options or ConnectionOptions(), database=database, username=username, password=password)
    return create_connection(options, settings=settings, configs=configs)


def prepare_transaction_test(handle: ConnectionHandle, *, settings: TestbedSettings | None = None) -> ConnectionHandle:
    """Handle suitable for tests that open concurrent transactions.

    In-memory SQLite shares one connection, so transaction tests get a
    fresh file-backed database at ``<support>/tmp/db.sqlite`` with the
    caller's tables created on it.  Other dialects reuse ``handle``.  The
    caller disposes the returned handle when it differs from ``handle``.
    """
    if not handle.dialect.is_file_based:
        return handle

    storage = resolve_support_path("tmp", "db.sqlite", settings=settings)
    storage.parent.mkdir(parents=True, exist_ok=True)
    storage.unlink(missing_ok=True)

    transactional = ConnectionHandle(replace(handle.options, storage=str(storage)), metadata=handle.metadata)
    transactional.connect()
    handle.metadata.create_all(transactional.engine)
    logger.debug("transaction_handle_prepared", storage=str(storage))
    return transactional


__all__ = [
    "HandleState",
    "ConnectionOptions",
    "ConnectionHandle",
    "create_testbed_engine",
    "merge_options",
    "create_connection",
    "get_connection_instance",
    "prepare_transaction_test",
]
