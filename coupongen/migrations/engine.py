"""Startup schema evolution.

``MigrationEngine.apply()`` is safe to call on every process start. A
prelude (bookkeeping table, create-if-absent base tables, default tenant)
runs every time; afterwards each ``Migration`` of the ordered list runs in
its own transaction, and its version is recorded inside that same
transaction so a version exists only if all of its steps succeeded.

Foreign-key enforcement is switched off for the whole run (table rewrites
drop and recreate referenced tables) and switched back on in a ``finally``
block, whatever happened.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import insert, select
from sqlalchemy.engine import Connection, Engine

from ..config import Config
from ..errors import MigrationFailure
from ..models import Base, SchemaMigration, Tenant
from .catalog import is_sqlite

log = logging.getLogger(__name__)

_migrations_table = SchemaMigration.__table__
_tenants_table = Tenant.__table__


@dataclass(frozen=True)
class MigrationSettings:
    default_tenant_slug: str = "default"
    default_tenant_name: str = "Default Tenant"
    superadmin_username: str = "admin"
    superadmin_password: str | None = None
    store_password: str | None = None

    @classmethod
    def from_config(cls, cfg: Config) -> MigrationSettings:
        return cls(
            default_tenant_slug=cfg.default_tenant_slug,
            default_tenant_name=cfg.default_tenant_name,
            superadmin_username=cfg.superadmin_username,
            superadmin_password=cfg.superadmin_password,
            store_password=cfg.store_password,
        )


@dataclass
class MigrationState:
    settings: MigrationSettings
    default_tenant_id: int


class Migration:
    """One step of schema evolution.

    Subclasses set ``version`` and implement ``apply``, which must be
    idempotent: running it against a store it already migrated changes
    nothing. ``repeatable`` steps run on every start (they re-check the live
    catalog) and are recorded once; the others are skipped once recorded.
    """

    version: str = ""
    repeatable: bool = False

    def apply(self, conn: Connection, state: MigrationState) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    @staticmethod
    def operations(conn: Connection) -> Operations:
        return Operations(MigrationContext.configure(connection=conn))

    def __repr__(self) -> str:
        return f"<Migration {self.version}>"


@dataclass
class MigrationReport:
    default_tenant_id: int
    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _set_foreign_keys(conn: Connection, enabled: bool) -> None:
    # PRAGMA foreign_keys is a no-op inside a transaction: go through the raw
    # DBAPI cursor while the connection has none open.
    cursor = conn.connection.cursor()
    try:
        cursor.execute(f"PRAGMA foreign_keys={'ON' if enabled else 'OFF'}")
    finally:
        cursor.close()


@contextmanager
def foreign_keys_disabled(conn: Connection) -> Iterator[None]:
    if not is_sqlite(conn):
        yield
        return
    if conn.in_transaction():
        conn.commit()
    _set_foreign_keys(conn, False)
    try:
        yield
    finally:
        if conn.in_transaction():
            conn.rollback()
        _set_foreign_keys(conn, True)


def ensure_default_tenant(conn: Connection, settings: MigrationSettings) -> int:
    tid = conn.execute(
        select(_tenants_table.c.id).where(_tenants_table.c.slug == settings.default_tenant_slug)
    ).scalar()
    if tid is not None:
        return int(tid)
    result = conn.execute(
        insert(_tenants_table).values(slug=settings.default_tenant_slug, name=settings.default_tenant_name)
    )
    log.info("Created default tenant %s", settings.default_tenant_slug)
    return int(result.inserted_primary_key[0])


def applied_versions(conn: Connection) -> set[str]:
    return set(conn.execute(select(_migrations_table.c.version)).scalars())


class MigrationEngine:
    def __init__(
        self,
        engine: Engine,
        settings: MigrationSettings | None = None,
        migrations: Sequence[Migration] | None = None,
    ) -> None:
        if migrations is None:
            from .versions import MIGRATIONS

            migrations = MIGRATIONS
        self.engine = engine
        self.settings = settings or MigrationSettings()
        self.migrations = list(migrations)

    def _prelude(self, conn: Connection) -> MigrationState:
        with conn.begin():
            _migrations_table.create(conn, checkfirst=True)
            Base.metadata.create_all(conn, checkfirst=True)
            default_tenant_id = ensure_default_tenant(conn, self.settings)
        return MigrationState(settings=self.settings, default_tenant_id=default_tenant_id)

    def _run_one(self, conn: Connection, migration: Migration, state: MigrationState, recorded: bool) -> None:
        with conn.begin():
            migration.apply(conn, state)
            if not recorded:
                conn.execute(insert(_migrations_table).values(version=migration.version))

    def apply(self) -> MigrationReport:
        with self.engine.connect() as conn, foreign_keys_disabled(conn):
            try:
                state = self._prelude(conn)
            except Exception as exc:
                log.exception("Migration prelude failed")
                raise MigrationFailure("prelude", exc) from exc
            report = MigrationReport(default_tenant_id=state.default_tenant_id)
            with conn.begin():
                done = applied_versions(conn)
            for migration in self.migrations:
                recorded = migration.version in done
                if recorded and not migration.repeatable:
                    report.skipped.append(migration.version)
                    continue
                try:
                    self._run_one(conn, migration, state, recorded)
                except Exception as exc:
                    log.exception("Migration %s failed", migration.version)
                    raise MigrationFailure(migration.version, exc) from exc
                if recorded:
                    log.debug("Re-checked repeatable migration %s", migration.version)
                else:
                    log.info("Applied migration %s", migration.version)
                    report.applied.append(migration.version)
            if is_sqlite(conn):
                with conn.begin():
                    violations = conn.exec_driver_sql("PRAGMA foreign_key_check").fetchall()
                if violations:
                    log.warning("Foreign key check reported %d violation(s) after migration", len(violations))
        return report


__all__ = [
    "Migration",
    "MigrationSettings",
    "MigrationState",
    "MigrationReport",
    "MigrationEngine",
    "foreign_keys_disabled",
    "ensure_default_tenant",
    "applied_versions",
]
