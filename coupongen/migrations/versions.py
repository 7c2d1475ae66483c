"""Ordered migration list.

Each step re-reads the live catalog before changing anything, so every one
of them is a no-op against a store that already has the target shape.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Column, Table, func, insert, select, text, update
from sqlalchemy.engine import Connection

from ..codes import generate_id, generate_password
from ..models import (
    DEFAULT_FORM_CONFIG,
    TENANT_SCOPED_TABLES,
    AuthUser,
    Base,
    Campaign,
    Coupon,
    Product,
)
from ..passwords import hash_password
from .catalog import column_names, has_table, index_names, unique_sets
from .engine import Migration, MigrationState
from .rewrite import RewriteTable

log = logging.getLogger(__name__)


def _model_table(name: str) -> Table:
    return Base.metadata.tables[name]


def _add_missing_column(conn: Connection, migration: Migration, table: str, column: str, default: str | None = None) -> bool:
    if not has_table(conn, table) or column in column_names(conn, table):
        return False
    model_col = _model_table(table).c[column]
    server_default = default
    if server_default is None and model_col.server_default is not None:
        arg = getattr(model_col.server_default, "arg", None)
        # ADD COLUMN only accepts constant defaults
        if isinstance(arg, str):
            server_default = arg
    migration.operations(conn).add_column(
        table, Column(column, model_col.type, nullable=True, server_default=server_default)
    )
    log.info("Added column %s.%s", table, column)
    return True


def _has_duplicates(conn: Connection, table: str, columns: tuple[str, ...]) -> bool:
    q = conn.dialect.identifier_preparer.quote
    cols = ", ".join(q(c) for c in columns)
    not_null = " AND ".join(f"{q(c)} IS NOT NULL" for c in columns)
    row = conn.execute(
        text(f"SELECT 1 FROM {q(table)} WHERE {not_null} GROUP BY {cols} HAVING COUNT(*) > 1 LIMIT 1")
    ).first()
    return row is not None


def ensure_model_indexes(conn: Connection, migration: Migration, table: Table) -> list[str]:
    """Create every index the model declares for ``table`` that the store lacks."""
    if not has_table(conn, table.name):
        return []
    existing = index_names(conn, table.name)
    live_cols = set(column_names(conn, table.name))
    created: list[str] = []
    for index in sorted(table.indexes, key=lambda i: i.name or ""):
        if index.name in existing:
            continue
        cols = tuple(c.name for c in index.columns)
        if not set(cols) <= live_cols:
            log.debug("Skipping index %s: columns %s not present yet", index.name, cols)
            continue
        if index.unique and _has_duplicates(conn, table.name, cols):
            log.warning("Not creating unique index %s: duplicate rows on %s", index.name, cols)
            continue
        migration.operations(conn).create_index(index.name, table.name, list(cols), unique=bool(index.unique))
        log.info("Created index %s on %s%s", index.name, table.name, cols)
        created.append(index.name)
    return created


class LegacyColumns(Migration):
    """Columns later releases added to tables that pre-date them."""

    version = "2025-10-01-legacy-columns"
    repeatable = True

    COLUMNS: dict[str, tuple[str, ...]] = {
        "tenants": ("email_from_name", "email_from_address", "custom_domain"),
        "auth_users": ("first_name", "last_name", "email"),
        "coupons": ("campaign_id", "discount_type", "discount_value"),
        "campaigns": ("campaign_code", "form_config", "expiry_date"),
        "users": ("phone", "address", "allergies"),
        "products": ("sku",),
    }
    # Legacy coupons defaulted to a 10% discount
    DEFAULTS = {("coupons", "discount_value"): "10"}

    def apply(self, conn: Connection, state: MigrationState) -> None:
        for table, columns in self.COLUMNS.items():
            for column in columns:
                _add_missing_column(conn, self, table, column, self.DEFAULTS.get((table, column)))
        self._fill_campaign_codes(conn)
        self._upgrade_form_configs(conn)

    def _fill_campaign_codes(self, conn: Connection) -> None:
        if "campaign_code" not in column_names(conn, "campaigns"):
            return
        campaigns = Campaign.__table__
        ids = conn.execute(select(campaigns.c.id).where(campaigns.c.campaign_code.is_(None))).scalars().all()
        for cid in ids:
            conn.execute(update(campaigns).where(campaigns.c.id == cid).values(campaign_code=generate_id(12)))
        if ids:
            log.info("Generated campaign_code for %d campaign(s)", len(ids))

    def _upgrade_form_configs(self, conn: Connection) -> None:
        if "form_config" not in column_names(conn, "campaigns"):
            return
        campaigns = Campaign.__table__
        conn.execute(
            update(campaigns).where(campaigns.c.form_config.is_(None)).values(form_config=DEFAULT_FORM_CONFIG)
        )
        rows = conn.execute(select(campaigns.c.id, campaigns.c.form_config)).all()
        for cid, raw in rows:
            try:
                current = json.loads(raw)
            except (TypeError, ValueError):
                log.warning("Skipping form_config upgrade for campaign %s: not JSON", cid)
                continue
            if not isinstance(current, dict) or not isinstance(current.get("email"), bool):
                continue
            # Old format stored plain booleans per field
            upgraded = {
                "email": {"visible": True, "required": True},
                "firstName": {"visible": bool(current.get("firstName")), "required": bool(current.get("firstName"))},
                "lastName": {"visible": bool(current.get("lastName")), "required": bool(current.get("lastName"))},
                "phone": {"visible": False, "required": False},
                "address": {"visible": False, "required": False},
                "allergies": {"visible": False, "required": False},
                "customFields": [],
            }
            conn.execute(update(campaigns).where(campaigns.c.id == cid).values(form_config=json.dumps(upgraded)))
            log.debug("Upgraded form_config for campaign %s", cid)


class TenantColumns(Migration):
    version = "2025-10-02-tenant-columns"
    repeatable = True

    def apply(self, conn: Connection, state: MigrationState) -> None:
        for table in (*TENANT_SCOPED_TABLES, "system_logs"):
            _add_missing_column(conn, self, table, "tenant_id")


class BackfillTenant(Migration):
    """Assign orphaned rows to the default tenant.

    Only NULL values are touched, so a row that already belongs to a tenant
    keeps it across any number of runs. Superadmin principals stay global.
    """

    version = "2025-10-03-backfill-tenant"
    repeatable = True

    def apply(self, conn: Connection, state: MigrationState) -> None:
        for table in TENANT_SCOPED_TABLES:
            if "tenant_id" not in column_names(conn, table):
                continue
            sql = f'UPDATE "{table}" SET tenant_id = COALESCE(tenant_id, :tid) WHERE tenant_id IS NULL'
            if table == "auth_users":
                sql += " AND user_type != 'superadmin'"
            result = conn.execute(text(sql), {"tid": state.default_tenant_id})
            if result.rowcount:
                log.info("Backfilled tenant_id on %d row(s) of %s", result.rowcount, table)


class DropDiscountPercent(Migration):
    """Replace ``coupons.discount_percent`` with the textual ``discount_value``."""

    version = "2025-10-04-drop-discount-percent"

    def apply(self, conn: Connection, state: MigrationState) -> None:
        if "discount_percent" not in column_names(conn, "coupons"):
            log.debug("coupons.discount_percent already gone")
            return
        RewriteTable(
            Coupon.__table__,
            column_map={
                "discount_value": (
                    "COALESCE(CASE WHEN discount_value IS NULL OR discount_value = '10' "
                    "THEN CAST(discount_percent AS TEXT) END, discount_value, '10')"
                ),
                "discount_type": "COALESCE(discount_type, 'percent')",
            },
        ).run(conn)


class TenantScopedUnique(Migration):
    """Replace global uniqueness on natural keys with per-tenant uniqueness.

    Any unique index or inline constraint covering exactly one of the
    ``GLOBAL_KEYS`` is removed: indexes with ``DROP INDEX``, inline
    constraints by rewriting the table from the model. The per-tenant unique
    indexes the model declares are then created.
    """

    version = "2025-10-05-tenant-scoped-unique"
    repeatable = True

    GLOBAL_KEYS: dict[str, tuple[tuple[str, ...], ...]] = {
        "campaigns": (("campaign_code",), ("name",), ("name", "tenant_id")),
        "products": (("sku",),),
    }
    MODELS: dict[str, Table] = {
        "campaigns": Campaign.__table__,
        "products": Product.__table__,
    }

    def apply(self, conn: Connection, state: MigrationState) -> None:
        for table, keys in self.GLOBAL_KEYS.items():
            if not has_table(conn, table):
                continue
            offending = [u for u in unique_sets(conn, table) if u.columns in keys]
            if any(u.inline for u in offending):
                log.info("Rewriting %s to drop inline global unique constraint(s)", table)
                RewriteTable(self.MODELS[table]).run(conn)
            else:
                for u in offending:
                    self.operations(conn).drop_index(u.name, table_name=table)
                    log.info("Dropped global unique index %s on %s%s", u.name, table, u.columns)
            ensure_model_indexes(conn, self, self.MODELS[table])


class TenantIndexes(Migration):
    version = "2025-10-06-tenant-indexes"
    repeatable = True

    def apply(self, conn: Connection, state: MigrationState) -> None:
        for table in Base.metadata.sorted_tables:
            ensure_model_indexes(conn, self, table)


class BootstrapPrincipals(Migration):
    """Seed a superadmin and a store user into an empty principal table.

    Missing passwords are generated; only the fact that one was generated is
    logged, never the value.
    """

    version = "2025-10-07-bootstrap-principals"
    repeatable = True

    STORE_USERNAME = "store"

    def apply(self, conn: Connection, state: MigrationState) -> None:
        users = AuthUser.__table__
        if conn.execute(select(func.count()).select_from(users)).scalar_one():
            return
        settings = state.settings
        admin_password = settings.superadmin_password
        if not admin_password:
            admin_password = generate_password()
            log.warning(
                "SUPERADMIN_PASSWORD not set: generated a random password for %s; set it and restart to choose one",
                settings.superadmin_username,
            )
        store_password = settings.store_password
        if not store_password:
            store_password = generate_password()
            log.warning("STORE_PASSWORD not set: generated a random password for %s", self.STORE_USERNAME)
        conn.execute(
            insert(users),
            [
                {
                    "username": settings.superadmin_username,
                    "password_hash": hash_password(admin_password),
                    "user_type": "superadmin",
                    "is_active": True,
                    "tenant_id": None,
                },
                {
                    "username": self.STORE_USERNAME,
                    "password_hash": hash_password(store_password),
                    "user_type": "store",
                    "is_active": True,
                    "tenant_id": state.default_tenant_id,
                },
            ],
        )
        log.info("Created default principals %s and %s", settings.superadmin_username, self.STORE_USERNAME)


MIGRATIONS: tuple[Migration, ...] = (
    LegacyColumns(),
    TenantColumns(),
    BackfillTenant(),
    DropDiscountPercent(),
    TenantScopedUnique(),
    TenantIndexes(),
    BootstrapPrincipals(),
)


__all__ = [
    "MIGRATIONS",
    "LegacyColumns",
    "TenantColumns",
    "BackfillTenant",
    "DropDiscountPercent",
    "TenantScopedUnique",
    "TenantIndexes",
    "BootstrapPrincipals",
    "ensure_model_indexes",
]
