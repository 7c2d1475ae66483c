"""Database engine + session management.

``Store`` owns the engine and runs the migration engine exactly once, on
first use. It is built by the app factory and kept in
``app.extensions``; request handlers reach it through ``get_store()``.
"""

from __future__ import annotations

import logging
import threading

from flask import current_app
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from .errors import MigrationFailure
from .migrations import MigrationEngine, MigrationReport, MigrationSettings

log = logging.getLogger(__name__)

EXTENSION_KEY = "coupongen.store"


def _normalize_url(url: str) -> str:
    # Normalize postgres schemes to ensure SQLAlchemy uses psycopg v3
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    return url


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections get transactional DDL and FK enforcement."""
    url = make_url(_normalize_url(database_url))
    engine = create_engine(url, future=True, echo=False)
    if engine.dialect.name != "sqlite":
        return engine
    file_backed = url.database not in (None, "", ":memory:")

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        # Hand transaction control to SQLAlchemy so DDL participates in BEGIN/COMMIT
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            if file_backed:
                cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")

    return engine


class Store:
    """Lazily initialized engine plus migrated schema.

    The first ``ready()`` caller builds the engine and runs migrations while
    holding the init lock; concurrent callers block on the same lock and then
    see the finished store. A failed strict initialization leaves the store
    uninitialized so a later call retries.
    """

    def __init__(
        self,
        database_url: str,
        settings: MigrationSettings | None = None,
        *,
        strict: bool = False,
    ) -> None:
        self.database_url = database_url
        self.settings = settings or MigrationSettings()
        self.strict = strict
        self.init_count = 0
        self.migration_report: MigrationReport | None = None
        self.migration_error: MigrationFailure | None = None
        self._state: tuple[Engine, sessionmaker[Session]] | None = None
        self._lock = threading.Lock()

    def _initialize(self) -> tuple[Engine, sessionmaker[Session]]:
        engine = build_engine(self.database_url)
        self.init_count += 1
        try:
            self.migration_report = MigrationEngine(engine, self.settings).apply()
        except MigrationFailure as exc:
            self.migration_error = exc
            if self.strict:
                engine.dispose()
                raise
            log.error("Schema migration failed (%s); serving on a partially migrated schema", exc)
        state = (engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))
        # Publish last: other threads test _state without the lock
        self._state = state
        return state

    def _ready_state(self) -> tuple[Engine, sessionmaker[Session]]:
        state = self._state
        if state is None:
            with self._lock:
                state = self._state
                if state is None:
                    state = self._initialize()
        return state

    def ready(self) -> Engine:
        return self._ready_state()[0]

    @property
    def engine(self) -> Engine:
        return self.ready()

    def session(self) -> Session:
        factory = self._ready_state()[1]
        return factory()

    def ping(self) -> bool:
        try:
            with self.ready().connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            log.warning("Store ping failed", exc_info=True)
            return False

    def dispose(self) -> None:
        with self._lock:
            if self._state is not None:
                self._state[0].dispose()
            self._state = None


def get_store() -> Store:
    return current_app.extensions[EXTENSION_KEY]


def get_session() -> Session:
    return get_store().session()


__all__ = ["Store", "build_engine", "get_store", "get_session", "EXTENSION_KEY"]
