from __future__ import annotations

import sqlite3
import unittest

from sql_endpoints.core.errors import StatementError, StoreConnectionError
from sql_endpoints.ports.db_api.database import Database
from sql_endpoints.ports.db_api.dialects import (
    Dialect,
    PostgresDialect,
    SQLiteDialect,
    SQLServerDialect,
)


class _DummyCursor:
    def __init__(self, description=None):
        self.description = description


class _FormatDialect(Dialect):
    paramstyle = "format"


class _InvalidDialect(Dialect):
    paramstyle = "invalid"


class _FakeBrokenConn:
    """Connection whose cursors can no longer be opened."""

    def cursor(self):  # noqa: ANN201
        raise RuntimeError("server closed the connection unexpectedly")


class DialectBindTests(unittest.TestCase):
    def test_named_dialect_passes_sql_through(self) -> None:
        sql = "SELECT * FROM t WHERE id = :id"
        self.assertEqual(SQLiteDialect().bind(sql, {"id": 1}), (sql, {"id": 1}))

    def test_pyformat_skips_literals_and_casts_and_escapes_percent(self) -> None:
        sql, params = PostgresDialect().bind(
            "SELECT * FROM t WHERE a = :a AND b LIKE '50%:x' AND c::text = :c",
            {"a": 1, "c": "z", "unused": 0},
        )
        self.assertEqual(
            sql, "SELECT * FROM t WHERE a = %(a)s AND b LIKE '50%%:x' AND c::text = %(c)s"
        )
        self.assertEqual(params, {"a": 1, "c": "z"})

    def test_qmark_binds_positionally_and_repeats_values(self) -> None:
        sql, params = SQLServerDialect().bind(
            "SELECT * FROM t WHERE a = :a OR b = :b OR c = :a", {"a": 1, "b": 2}
        )
        self.assertEqual(sql, "SELECT * FROM t WHERE a = ? OR b = ? OR c = ?")
        self.assertEqual(params, [1, 2, 1])

    def test_format_style_escapes_bare_percent(self) -> None:
        sql, params = _FormatDialect().bind("SELECT a % 2 FROM t WHERE a = :a", {"a": 5})
        self.assertEqual(sql, "SELECT a %% 2 FROM t WHERE a = %s")
        self.assertEqual(params, [5])

    def test_missing_parameter_raises_key_error(self) -> None:
        with self.assertRaises(KeyError):
            SQLServerDialect().bind("SELECT :a", {})

    def test_placeholder_rejects_unknown_paramstyle(self) -> None:
        with self.assertRaises(ValueError):
            _InvalidDialect().placeholder("x")


class NativeJsonSqlTests(unittest.TestCase):
    def test_sqlite_aggregates_named_columns(self) -> None:
        sql = SQLiteDialect().native_json_sql("SELECT id, name FROM t;", ["id", "name"])
        self.assertEqual(
            sql,
            "SELECT COALESCE(json_group_array(json_object('id', \"id\", 'name', \"name\")), '[]') "
            "FROM (SELECT id, name FROM t)",
        )
        with self.assertRaises(ValueError):
            SQLiteDialect().native_json_sql("SELECT 1", None)

    def test_postgres_and_sqlserver_wrappers(self) -> None:
        self.assertEqual(
            PostgresDialect().native_json_sql("SELECT * FROM t"),
            "SELECT COALESCE(json_agg(_rows), '[]'::json) FROM (SELECT * FROM t) AS _rows",
        )
        self.assertEqual(
            SQLServerDialect().native_json_sql("SELECT * FROM t"),
            "SELECT * FROM t FOR JSON PATH, INCLUDE_NULL_VALUES",
        )

    def test_generic_dialect_has_no_native_json(self) -> None:
        self.assertFalse(Dialect.supports_native_json)
        with self.assertRaises(NotImplementedError):
            Dialect().native_json_sql("SELECT 1")


class DatabaseAdapterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT, region TEXT)")
        self.conn.executemany(
            "INSERT INTO items (id, name, region) VALUES (?, ?, ?)",
            [(1, "one", "EU"), (2, "two", "US"), (3, None, "EU")],
        )
        self.conn.commit()
        self.db = Database(self.conn, SQLiteDialect())

    def tearDown(self) -> None:
        self.db.close()

    def test_fetch_rows_as_mappings(self) -> None:
        row = self.db.fetchone("SELECT id, name FROM items WHERE id = :id", {"id": 2})
        self.assertEqual(row, {"id": 2, "name": "two"})
        self.assertIsNone(self.db.fetchone("SELECT id FROM items WHERE id = :id", {"id": 9}))
        rows = self.db.fetchall("SELECT id FROM items WHERE region = :r ORDER BY id", {"r": "EU"})
        self.assertEqual(rows, [{"id": 1}, {"id": 3}])

    def test_row_to_mapping_requires_description_for_tuples(self) -> None:
        with self.assertRaises(TypeError):
            self.db._row_to_mapping(_DummyCursor(), (1,))
        self.assertEqual(
            self.db._row_to_mapping(_DummyCursor([("a",), ("b",)]), (1, 2)), {"a": 1, "b": 2}
        )

    def test_statement_failures_keep_the_sql(self) -> None:
        with self.assertRaises(StatementError) as ctx:
            self.db.fetchall("SELECT * FROM missing_table")
        self.assertEqual(ctx.exception.sql, "SELECT * FROM missing_table")
        self.assertNotIsInstance(ctx.exception, StoreConnectionError)

    def test_missing_parameter_is_a_statement_error(self) -> None:
        with self.assertRaises(StatementError):
            self.db.fetchall("SELECT * FROM items WHERE id = :id", {})

    def test_unusable_connection_is_a_connection_error(self) -> None:
        self.conn.close()
        with self.assertRaises(StoreConnectionError):
            self.db.fetchall("SELECT * FROM items")

        broken = Database(_FakeBrokenConn(), SQLiteDialect())
        with self.assertRaises(StoreConnectionError):
            broken.execute("SELECT 1")

    def test_closed_adapter_raises_connection_error(self) -> None:
        self.db.close()
        self.db.close()
        with self.assertRaises(StoreConnectionError):
            self.db.execute("SELECT 1")

    def test_transaction_rolls_back_on_error(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.db.execute("DELETE FROM items")
                raise RuntimeError("boom")
        self.assertEqual(self.db.fetchone("SELECT COUNT(*) AS n FROM items")["n"], 3)

        with self.db.transaction():
            self.db.execute("DELETE FROM items WHERE id = :id", {"id": 1})
        self.assertEqual(self.db.fetchone("SELECT COUNT(*) AS n FROM items")["n"], 2)

    def test_column_names_reads_no_rows(self) -> None:
        self.assertEqual(
            self.db.column_names("SELECT id, name AS label FROM items WHERE id > :id", {"id": 0}),
            ["id", "label"],
        )

    def test_fetch_json_renders_rows_in_the_store(self) -> None:
        document = self.db.fetch_json(
            "SELECT id, name FROM items WHERE region = :r ORDER BY id", {"r": "EU"}
        )
        self.assertEqual(document, [{"id": 1, "name": "one"}, {"id": 3, "name": None}])
        self.assertEqual(self.db.fetch_json("SELECT id FROM items WHERE id > 100"), [])

    def test_fetch_json_needs_dialect_support(self) -> None:
        db = Database(self.conn, Dialect())
        with self.assertRaises(NotImplementedError):
            db.fetch_json("SELECT * FROM items")

    def test_existing_key_indexes_single_and_composite(self) -> None:
        self.assertEqual(
            self.db.existing_key_indexes("items", ["id"], [(1,), (7,), (3,)]), {0, 2}
        )
        self.assertEqual(
            self.db.existing_key_indexes("items", ["id", "region"], [(1, "EU"), (2, "EU")]),
            {0},
        )
        self.assertEqual(self.db.existing_key_indexes("items", ["id"], []), set())

    def test_existing_key_indexes_use_store_comparison_rules(self) -> None:
        self.conn.execute("CREATE TABLE codes (code TEXT COLLATE NOCASE PRIMARY KEY)")
        self.conn.execute("INSERT INTO codes (code) VALUES ('ABC')")
        self.assertEqual(
            self.db.existing_key_indexes("codes", ["code"], [("abc",), ("xyz",)]), {0}
        )
        self.assertEqual(self.db.existing_key_indexes("items", ["id"], [("3",)]), {0})

    def test_existing_key_indexes_over_many_candidates(self) -> None:
        keys = [(i,) for i in range(450)]
        self.assertEqual(self.db.existing_key_indexes("items", ["id"], keys), {1, 2, 3})

    def test_context_manager_closes_connection(self) -> None:
        conn = sqlite3.connect(":memory:")
        with Database(conn, SQLiteDialect()) as db:
            db.execute("SELECT 1")
        self.assertIsNone(db.conn)
        with self.assertRaises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")


if __name__ == "__main__":
    unittest.main()
