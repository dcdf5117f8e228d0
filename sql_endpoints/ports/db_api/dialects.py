"""Concrete SQL dialect implementations for DB-API adapters."""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence

from ...core.types import NamedParams, QueryParams

# String literals are matched first so `:name` inside quotes is left alone;
# `::` casts are not parameters.
_PARAM_RE = re.compile(r"('(?:[^']|'')*')|(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)|(%)")


class Dialect:
    """Base dialect: named `:name` parameters, no native JSON rendering."""

    name: str = "generic"
    paramstyle: str = "named"
    supports_native_json: bool = False
    native_json_needs_columns: bool = False

    def placeholder(self, key: str) -> str:
        """Return parameter placeholder for current param style."""

        if self.paramstyle == "named":
            return f":{key}"
        if self.paramstyle == "qmark":
            return "?"
        if self.paramstyle == "format":
            return "%s"
        if self.paramstyle == "pyformat":
            return f"%({key})s"
        raise ValueError(f"Unsupported paramstyle: {self.paramstyle}")

    def bind(self, sql: str, params: Optional[NamedParams]) -> tuple[str, QueryParams]:
        """Translate `:name` parameters to this dialect's paramstyle.

        Returns SQL and parameters ready for `cursor.execute`.

        Raises:
            KeyError: If the SQL references a parameter missing from `params`.
        """

        if self.paramstyle == "named":
            return sql, params
        values = params or {}
        percent_escaped = self.paramstyle in ("format", "pyformat")
        named: NamedParams = {}
        positional: List[Any] = []

        def substitute(match: re.Match[str]) -> str:
            literal, key, percent = match.groups()
            if literal is not None:
                return literal.replace("%", "%%") if percent_escaped else literal
            if percent is not None:
                return "%%" if percent_escaped else percent
            if self.paramstyle == "pyformat":
                named[key] = values[key]
            else:
                positional.append(values[key])
            return self.placeholder(key)

        rendered = _PARAM_RE.sub(substitute, sql)
        return rendered, named if self.paramstyle == "pyformat" else positional

    def native_json_sql(self, sql: str, columns: Optional[Sequence[str]] = None) -> str:
        """Wrap `sql` so the store returns the rowset as one JSON array."""

        raise NotImplementedError(f"{self.name} dialect has no native JSON rendering.")


class SQLiteDialect(Dialect):
    """SQLite dialect (`:name` parameters, JSON1 aggregation)."""

    name = "sqlite"
    paramstyle = "named"
    supports_native_json = True
    native_json_needs_columns = True

    def native_json_sql(self, sql: str, columns: Optional[Sequence[str]] = None) -> str:
        if not columns:
            raise ValueError("SQLite native JSON needs the result column names.")
        pairs = ", ".join(
            "'{key}', \"{col}\"".format(
                key=column.replace("'", "''"), col=column.replace('"', '""')
            )
            for column in columns
        )
        return (
            f"SELECT COALESCE(json_group_array(json_object({pairs})), '[]') "
            f"FROM ({sql.rstrip().rstrip(';')})"
        )


class PostgresDialect(Dialect):
    """PostgreSQL dialect (`%(name)s` parameters, `json_agg`)."""

    name = "postgres"
    paramstyle = "pyformat"
    supports_native_json = True

    def native_json_sql(self, sql: str, columns: Optional[Sequence[str]] = None) -> str:
        return (
            "SELECT COALESCE(json_agg(_rows), '[]'::json) "
            f"FROM ({sql.rstrip().rstrip(';')}) AS _rows"
        )


class SQLServerDialect(Dialect):
    """SQL Server dialect (`?` parameters, `FOR JSON PATH`)."""

    name = "sqlserver"
    paramstyle = "qmark"
    supports_native_json = True

    def native_json_sql(self, sql: str, columns: Optional[Sequence[str]] = None) -> str:
        return f"{sql.rstrip().rstrip(';')} FOR JSON PATH, INCLUDE_NULL_VALUES"
