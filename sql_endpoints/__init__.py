"""Declarative SQL endpoints: JSON requests in, parameterized SQL out."""

from .core import *  # noqa: F401,F403
from .core import __all__ as _core_all
from .logging import configure_logging
from .ports import Database, Dialect, PostgresDialect, SQLiteDialect, SQLServerDialect

__all__ = [
    *_core_all,
    "configure_logging",
    "Database",
    "Dialect",
    "PostgresDialect",
    "SQLiteDialect",
    "SQLServerDialect",
]

__version__ = "0.1.0"
