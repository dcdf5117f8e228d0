"""DB-API adapter and dialect exports."""

from .database import Database
from .dialects import Dialect, PostgresDialect, SQLiteDialect, SQLServerDialect

__all__ = [
    "Database",
    "Dialect",
    "PostgresDialect",
    "SQLiteDialect",
    "SQLServerDialect",
]
