"""DB-API adapter implementation for the store port."""

from __future__ import annotations

import contextlib
import json
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Set

import structlog

from ...core.errors import StatementError, StoreConnectionError
from ...core.query_builder import build_bulk_existence_sql
from ...core.types import KeyTuple, MaybeRow, NamedParams, RowMapping, Rows
from .dialects import Dialect

logger = structlog.get_logger(__name__)


class Database:
    """Thin DB-API wrapper that normalizes execution, rows and failures.

    Statements use `:name` parameters and are translated through the dialect.
    Driver exceptions are re-raised as `StatementError` when the connection
    is still usable, and as `StoreConnectionError` when it is not.
    """

    def __init__(self, conn: Any, dialect: Dialect):
        """Create database adapter.

        Args:
            conn: DB-API connection object.
            dialect: Concrete SQL dialect instance.
        """

        self._closed = False
        self.conn: Any | None = conn
        self.dialect = dialect

    def _require_open_connection(self) -> Any:
        if self._closed or self.conn is None:
            raise StoreConnectionError("connection is closed")
        return self.conn

    def _should_begin_sqlite_transaction(self, conn: Any) -> bool:
        if getattr(self.dialect, "name", "").lower() != "sqlite":
            return False
        if getattr(conn, "isolation_level", None) is not None:
            return False
        return not bool(getattr(conn, "in_transaction", False))

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Provide commit/rollback transaction scope."""

        conn = self._require_open_connection()
        try:
            if self._should_begin_sqlite_transaction(conn):
                conn.execute("BEGIN")
            yield
            conn.commit()
        except BaseException:
            conn.rollback()
            raise

    def execute(self, sql: str, params: Optional[NamedParams] = None) -> Any:
        """Execute SQL with optional `:name` parameters and return the cursor."""

        conn = self._require_open_connection()
        try:
            bound_sql, bound_params = self.dialect.bind(sql, params)
        except KeyError as exc:
            raise StatementError(f"Missing value for parameter {exc.args[0]!r}.", sql=sql) from exc
        try:
            cur = conn.cursor()
            if bound_params is None:
                cur.execute(bound_sql)
            else:
                cur.execute(bound_sql, bound_params)
        except Exception as exc:
            raise self._translate(exc, sql) from exc
        return cur

    def _translate(self, exc: Exception, sql: str) -> Exception:
        if self._is_connection_failure():
            logger.error("store_connection_failed", error=str(exc), dialect=self.dialect.name)
            return StoreConnectionError(f"Store connection failed: {type(exc).__name__}")
        return StatementError(str(exc), sql=sql)

    def _is_connection_failure(self) -> bool:
        """Return whether the connection can no longer open a cursor."""

        conn = self.conn
        if conn is None:
            return True
        try:
            cursor = conn.cursor()
        except Exception:
            return True
        close = getattr(cursor, "close", None)
        if callable(close):
            close()
        return False

    def _row_to_mapping(self, cursor: Any, row: Any) -> RowMapping:
        """Normalize row object to mapping.

        Supports mapping rows directly and tuple/list rows via
        `cursor.description`.
        """

        if isinstance(row, Mapping):
            return row

        desc = getattr(cursor, "description", None)
        if isinstance(row, (tuple, list)):
            if not desc:
                raise TypeError(
                    "Cursor has no description; cannot map tuple rows to dict."
                )
            cols = [d[0] for d in desc]
            return dict(zip(cols, row))

        keys = getattr(row, "keys", None)
        if callable(keys):
            return {key: row[key] for key in keys()}

        raise TypeError(f"Unsupported row type: {type(row)}")

    def _fetch(self, cursor: Any, sql: str, many: bool) -> Any:
        try:
            return cursor.fetchall() if many else cursor.fetchone()
        except Exception as exc:
            raise self._translate(exc, sql) from exc

    def fetchone(self, sql: str, params: Optional[NamedParams] = None) -> MaybeRow:
        """Execute query and return one normalized row mapping."""

        cur = self.execute(sql, params)
        row = self._fetch(cur, sql, many=False)
        if row is None:
            return None
        return self._row_to_mapping(cur, row)

    def fetchall(self, sql: str, params: Optional[NamedParams] = None) -> Rows:
        """Execute query and return all rows as normalized mappings."""

        cur = self.execute(sql, params)
        rows = self._fetch(cur, sql, many=True)
        return [self._row_to_mapping(cur, r) for r in rows]

    def column_names(self, sql: str, params: Optional[NamedParams] = None) -> List[str]:
        """Return the result column names of `sql` without reading its rows."""

        shape_sql = f"SELECT * FROM ({sql.rstrip().rstrip(';')}) AS _shape LIMIT 0"
        cur = self.execute(shape_sql, params)
        self._fetch(cur, shape_sql, many=True)
        return [d[0] for d in cur.description or ()]

    def fetch_json(self, sql: str, params: Optional[NamedParams] = None) -> Any:
        """Let the store render the rowset of `sql` as a JSON array.

        Returns:
            The decoded JSON document (normally a list of objects).

        Raises:
            NotImplementedError: If the dialect has no native JSON rendering.
            StatementError: If the store rejects the wrapped statement.
            ValueError: If the store output is not valid JSON.
        """

        if not self.dialect.supports_native_json:
            raise NotImplementedError(f"{self.dialect.name} has no native JSON rendering.")
        columns = (
            self.column_names(sql, params) if self.dialect.native_json_needs_columns else None
        )
        wrapped = self.dialect.native_json_sql(sql, columns)
        cur = self.execute(wrapped, params)
        rows = self._fetch(cur, wrapped, many=True)

        chunks = []
        for row in rows:
            value = next(iter(row.values())) if isinstance(row, Mapping) else row[0]
            if value is None:
                continue
            if not isinstance(value, (str, bytes)):
                return value
            chunks.append(value.decode("utf-8") if isinstance(value, bytes) else value)
        return json.loads("".join(chunks)) if chunks else []

    def existing_key_indexes(
        self,
        table: str,
        key_columns: Sequence[str],
        key_tuples: Sequence[KeyTuple],
    ) -> Set[int]:
        """Return the positions in `key_tuples` whose key exists in `table`.

        Matching is done by the store, so column collation and type coercion
        decide equality exactly as they do for a single-row lookup.
        """

        if not key_tuples:
            return set()
        sql, params = build_bulk_existence_sql(table, key_columns, key_tuples)
        return {int(row["idx"]) for row in self.fetchall(sql, params)}

    def close(self) -> None:
        """Close the underlying connection once."""

        if self._closed:
            return
        conn = self.conn
        self._closed = True
        self.conn = None
        close = getattr(conn, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()
