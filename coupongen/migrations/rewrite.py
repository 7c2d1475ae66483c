"""Shadow-table rewrite primitive.

Used for structural changes the store's ALTER dialect cannot express
(dropping a column, dropping an inline UNIQUE constraint). The sequence is
create shadow, copy with ``INSERT ... SELECT``, drop original, rename shadow,
recreate indexes. It runs in one transaction (a SAVEPOINT when the caller
already holds one).

Foreign-key enforcement must be off on the connection while this runs; the
migration engine takes care of that.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from sqlalchemy import MetaData, Table, text
from sqlalchemy.engine import Connection
from sqlalchemy.schema import CreateTable

from .catalog import column_names, has_table

log = logging.getLogger(__name__)


class RewriteError(Exception):
    """Raised when a rewrite would lose rows or cannot map a required column."""


@dataclass
class RewriteTable:
    """Rebuild ``table`` in place with the shape declared by the model.

    ``table`` is the desired final ``Table``. Columns present in both the
    live table and the model are copied by name; ``column_map`` supplies SQL
    expressions (evaluated against the old table) for target columns that
    need a conversion or do not exist in the old table. Old columns absent
    from the model are dropped.
    """

    table: Table
    column_map: Mapping[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def shadow_name(self) -> str:
        return f"{self.table.name}__rewrite"

    def _shadow_table(self) -> Table:
        # Copy sibling tables so foreign keys in the shadow DDL resolve.
        scratch = MetaData()
        for t in self.table.metadata.sorted_tables:
            if t is not self.table:
                t.to_metadata(scratch)
        return self.table.to_metadata(scratch, name=self.shadow_name)

    def _copy_plan(self, conn: Connection) -> tuple[list[str], list[str]]:
        live = set(column_names(conn, self.name))
        targets: list[str] = []
        sources: list[str] = []
        q = conn.dialect.identifier_preparer.quote
        for col in self.table.columns:
            if col.name in self.column_map:
                targets.append(q(col.name))
                sources.append(self.column_map[col.name])
            elif col.name in live:
                targets.append(q(col.name))
                sources.append(q(col.name))
            elif not col.nullable and col.server_default is None and not col.primary_key:
                raise RewriteError(f"{self.name}.{col.name} is NOT NULL with no source column or default")
        return targets, sources

    def run(self, conn: Connection) -> int:
        """Perform the rewrite and return the number of rows carried over."""
        # Decided before any catalog read: inspection autobegins on a fresh connection.
        tx = conn.begin_nested() if conn.in_transaction() else conn.begin()
        q = conn.dialect.identifier_preparer.quote
        with tx:
            if not has_table(conn, self.name):
                raise RewriteError(f"table {self.name} does not exist")
            conn.execute(text(f"DROP TABLE IF EXISTS {q(self.shadow_name)}"))
            conn.execute(CreateTable(self._shadow_table()))
            targets, sources = self._copy_plan(conn)
            before = conn.execute(text(f"SELECT COUNT(*) FROM {q(self.name)}")).scalar_one()
            conn.execute(
                text(
                    f"INSERT INTO {q(self.shadow_name)} ({', '.join(targets)}) "
                    f"SELECT {', '.join(sources)} FROM {q(self.name)}"
                )
            )
            after = conn.execute(text(f"SELECT COUNT(*) FROM {q(self.shadow_name)}")).scalar_one()
            if after != before:
                raise RewriteError(f"{self.name}: copied {after} of {before} rows")
            conn.execute(text(f"DROP TABLE {q(self.name)}"))
            conn.execute(text(f"ALTER TABLE {q(self.shadow_name)} RENAME TO {q(self.name)}"))
            for index in self.table.indexes:
                index.create(conn)
        log.info("Rewrote table %s (%d rows)", self.name, after)
        return int(after)


__all__ = ["RewriteTable", "RewriteError"]
