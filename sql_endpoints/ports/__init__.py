"""Store adapters implementing the core store port."""

from .db_api import Database, Dialect, PostgresDialect, SQLiteDialect, SQLServerDialect

__all__ = [
    "Database",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "SQLServerDialect",
]
