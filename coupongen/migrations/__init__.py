from .engine import (
    Migration,
    MigrationEngine,
    MigrationReport,
    MigrationSettings,
    MigrationState,
    foreign_keys_disabled,
)
from .rewrite import RewriteError, RewriteTable
from .versions import MIGRATIONS

__all__ = [
    "MIGRATIONS",
    "Migration",
    "MigrationEngine",
    "MigrationReport",
    "MigrationSettings",
    "MigrationState",
    "RewriteError",
    "RewriteTable",
    "foreign_keys_disabled",
]
