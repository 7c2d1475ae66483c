"""Live-schema introspection used by the migration steps.

Every helper builds a fresh inspector so results reflect DDL issued earlier
in the same transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.engine import Connection


@dataclass(frozen=True)
class UniqueSet:
    """A uniqueness guarantee found in the catalog.

    ``inline`` marks guarantees declared inside ``CREATE TABLE`` (column or
    table constraint). Those cannot be dropped with ``DROP INDEX`` and need a
    table rewrite.
    """

    name: str | None
    columns: tuple[str, ...]
    inline: bool


def is_sqlite(conn: Connection) -> bool:
    return conn.dialect.name == "sqlite"


def has_table(conn: Connection, table: str) -> bool:
    return inspect(conn).has_table(table)


def column_names(conn: Connection, table: str) -> list[str]:
    if not has_table(conn, table):
        return []
    return [c["name"] for c in inspect(conn).get_columns(table)]


def index_names(conn: Connection, table: str) -> set[str]:
    if not has_table(conn, table):
        return set()
    return {ix["name"] for ix in inspect(conn).get_indexes(table) if ix.get("name")}


def unique_sets(conn: Connection, table: str) -> list[UniqueSet]:
    if not has_table(conn, table):
        return []
    if is_sqlite(conn):
        return _sqlite_unique_sets(conn, table)
    insp = inspect(conn)
    out = [
        UniqueSet(ix.get("name"), tuple(ix["column_names"]), inline=False)
        for ix in insp.get_indexes(table)
        if ix.get("unique")
    ]
    out.extend(
        UniqueSet(uc.get("name"), tuple(uc["column_names"]), inline=True)
        for uc in insp.get_unique_constraints(table)
    )
    return out


def _sqlite_unique_sets(conn: Connection, table: str) -> list[UniqueSet]:
    # index_list origin: 'c' = CREATE INDEX, 'u' = UNIQUE constraint, 'pk' = primary key
    out: list[UniqueSet] = []
    rows = conn.exec_driver_sql(f'PRAGMA index_list("{table}")').fetchall()
    for row in rows:
        name, unique, origin = row[1], bool(row[2]), row[3]
        if not unique or origin == "pk":
            continue
        cols = conn.exec_driver_sql(f'PRAGMA index_info("{name}")').fetchall()
        out.append(UniqueSet(name, tuple(c[2] for c in cols), inline=origin == "u"))
    return out


def schema_snapshot(conn: Connection) -> list[tuple[str, str, str]]:
    """Return ``(type, name, sql)`` for every schema object, sorted.

    Used to prove a second migration run leaves the schema untouched.
    """
    if is_sqlite(conn):
        rows = conn.exec_driver_sql(
            "SELECT type, name, COALESCE(sql, '') FROM sqlite_master "
            "WHERE name NOT LIKE 'sqlite_%' ORDER BY type, name"
        ).fetchall()
        return [(str(r[0]), str(r[1]), str(r[2])) for r in rows]
    insp = inspect(conn)
    out: list[tuple[str, str, str]] = []
    for t in sorted(insp.get_table_names()):
        cols = ",".join(f"{c['name']}:{c['type']}" for c in insp.get_columns(t))
        out.append(("table", t, cols))
        for ix in sorted(insp.get_indexes(t), key=lambda i: i.get("name") or ""):
            out.append(("index", ix.get("name") or "", ",".join(ix["column_names"])))
    return out


__all__ = [
    "UniqueSet",
    "is_sqlite",
    "has_table",
    "column_names",
    "index_names",
    "unique_sets",
    "schema_snapshot",
]
