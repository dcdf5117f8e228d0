from __future__ import annotations

import sqlite3
import unittest

from structlog.testing import capture_logs

from sql_endpoints.core.batch import BatchUpsertEngine
from sql_endpoints.core.errors import ExecutionError, StoreConnectionError
from sql_endpoints.core.property_cache import PropertyCache
from sql_endpoints.core.settings import EngineLimits
from sql_endpoints.core.specs import WriteSpecBuilder
from sql_endpoints.core.types import RecordAction, ResultCode
from sql_endpoints.core.writer import RecordWriter
from sql_endpoints.ports.db_api.database import Database
from sql_endpoints.ports.db_api.dialects import SQLiteDialect


class _CountingStore:
    """Store double that only counts calls."""

    def __init__(self):
        self.calls = 0

    def __getattr__(self, name):  # noqa: ANN001,ANN204
        def call(*_args, **_kwargs):  # noqa: ANN002,ANN003,ANN202
            self.calls += 1
            raise AssertionError(f"unexpected store call: {name}")

        return call


class _SpyDatabase(Database):
    def __init__(self, conn, dialect):  # noqa: ANN001
        super().__init__(conn, dialect)
        self.bulk_checks = 0
        self.existence_checks = 0

    def existing_key_indexes(self, table, key_columns, key_tuples):  # noqa: ANN001,ANN201
        self.bulk_checks += 1
        return super().existing_key_indexes(table, key_columns, key_tuples)

    def fetchone(self, sql, params=None):  # noqa: ANN001,ANN201
        self.existence_checks += 1
        return super().fetchone(sql, params)


class BatchSizeGuardTests(unittest.TestCase):
    def test_oversized_batch_is_rejected_without_store_calls(self) -> None:
        spec = WriteSpecBuilder("users").field("id", primary_key=True).build_batch()
        store = _CountingStore()
        engine = BatchUpsertEngine(spec, PropertyCache())

        with capture_logs() as logs:
            result = engine.process(store, [{"id": 1}] * 1001)

        self.assertEqual(store.calls, 0)
        self.assertTrue(result.rejected)
        self.assertIs(result.result_code, ResultCode.KO)
        self.assertIn("exceeds maximum allowed size of 1000", result.message)
        self.assertEqual(logs[0]["event"], "batch_rejected")
        self.assertEqual(logs[0]["log_level"], "warning")

    def test_batch_at_the_limit_is_processed(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY)")
        spec = WriteSpecBuilder(
            "users", limits=EngineLimits(max_batch_size=3)
        ).field("id", primary_key=True).build_batch()
        engine = BatchUpsertEngine(spec, PropertyCache())

        with Database(conn, SQLiteDialect()) as db:
            self.assertEqual(engine.process(db, [{"id": i} for i in range(3)]).inserted, 3)
            self.assertTrue(engine.process(db, [{"id": i} for i in range(4)]).rejected)


class BatchUpsertSQLiteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        self.db = _SpyDatabase(self.conn, SQLiteDialect())
        self.cache = PropertyCache()

    def tearDown(self) -> None:
        self.db.close()

    def _engine(self, *, allow_updates: bool = True) -> BatchUpsertEngine:
        spec = (
            WriteSpecBuilder("users")
            .field("id", required=True, primary_key=True)
            .field("name")
            .allow_updates(allow_updates)
            .build_batch()
        )
        return BatchUpsertEngine(spec, self.cache)

    def _names(self) -> dict:
        return dict(self.conn.execute("SELECT id, name FROM users ORDER BY id").fetchall())

    def test_duplicate_key_in_batch_updates_the_row_just_written(self) -> None:
        self.conn.execute("INSERT INTO users (id, name) VALUES (1, 'old')")
        records = [{"id": 1, "name": "A"}, {"id": 1, "name": "A2"}, {"id": 2, "name": "B"}]

        result = self._engine().process(self.db, records)

        self.assertEqual((result.inserted, result.updated, result.errors), (1, 2, 0))
        self.assertIs(result.result_code, ResultCode.OK)
        self.assertEqual(self._names(), {1: "A2", 2: "B"})
        self.assertEqual(self.db.bulk_checks, 1)
        self.assertEqual(self.db.existence_checks, 0)

    def test_duplicate_key_without_updates_is_a_record_error(self) -> None:
        records = [{"id": 7, "name": "first"}, {"id": 7, "name": "second"}]

        result = self._engine(allow_updates=False).process(self.db, records)

        self.assertEqual((result.inserted, result.updated, result.errors), (1, 0, 1))
        self.assertIs(result.result_code, ResultCode.PARTIAL)
        self.assertEqual(result.error_details[0].index, 1)
        self.assertEqual(
            result.error_details[0].message,
            "7 - Record already exists and updates are not allowed",
        )
        self.assertEqual(self._names(), {7: "first"})

    def test_upsert_is_idempotent(self) -> None:
        records = [{"id": i, "name": f"n{i}"} for i in range(1, 6)]
        engine = self._engine()

        first = engine.process(self.db, records)
        second = engine.process(self.db, records)

        self.assertEqual((first.inserted, first.updated), (5, 0))
        self.assertEqual((second.inserted, second.updated), (0, 5))
        self.assertEqual(len(self._names()), 5)

    def test_partial_success_accounting(self) -> None:
        records = [
            {"id": 1, "name": "ok"},
            {"name": "no key"},
            "not an object",
            {"id": 4},
            {"ID": 5, "NAME": "case"},
        ]

        with capture_logs() as logs:
            result = self._engine().process(self.db, records)

        self.assertEqual(result.total, 5)
        self.assertEqual(result.inserted + result.updated + result.errors, result.total)
        self.assertEqual((result.inserted, result.errors), (2, 3))
        self.assertIs(result.result_code, ResultCode.PARTIAL)
        self.assertEqual([d.index for d in result.error_details], [1, 2, 3])
        self.assertEqual(
            result.error_details[0].message, "Record skipped - Missing required fields: id"
        )
        self.assertEqual(result.error_details[1].message, "Record skipped - record is not an object")
        self.assertTrue(result.error_details[2].message.startswith("4 - Insert error: "))
        self.assertEqual(
            result.message, "Processed 5 records: 2 inserted, 0 updated, 3 errors."
        )
        processed = [entry for entry in logs if entry["event"] == "batch_processed"]
        self.assertEqual(processed[0]["result"], "PARTIAL")

    def test_null_key_is_skipped_and_reruns_insert_nothing(self) -> None:
        records = [{"id": None, "name": "nobody"}, {"id": 3, "name": "c"}]
        engine = self._engine()

        first = engine.process(self.db, records)
        second = engine.process(self.db, records)

        self.assertEqual((first.inserted, first.errors), (1, 1))
        self.assertEqual(
            first.error_details[0].message, "Record skipped - Missing required fields: id"
        )
        self.assertEqual((second.inserted, second.updated, second.errors), (0, 1, 1))
        self.assertEqual(self._names(), {3: "c"})

    def test_every_record_failing_is_ko(self) -> None:
        result = self._engine().process(self.db, [{"name": "a"}, {"name": "b"}])
        self.assertIs(result.result_code, ResultCode.KO)
        self.assertEqual(self.db.bulk_checks, 0)

    def test_empty_batch_is_ok(self) -> None:
        result = self._engine().process(self.db, [])
        self.assertIs(result.result_code, ResultCode.OK)
        self.assertEqual(result.message, "Processed 0 records: 0 inserted, 0 updated, 0 errors.")

    def test_connection_failure_aborts_the_batch(self) -> None:
        self.conn.close()
        with self.assertRaises(StoreConnectionError):
            self._engine().process(self.db, [{"id": 1, "name": "x"}])

    def test_bulk_check_statement_failure_is_fatal(self) -> None:
        spec = (
            WriteSpecBuilder("missing_table")
            .field("id", primary_key=True)
            .build_batch()
        )
        with self.assertRaises(ExecutionError) as ctx:
            BatchUpsertEngine(spec, self.cache).process(self.db, [{"id": 1}])
        self.assertEqual(str(ctx.exception), "Bulk existence check failed.")


class CollationAwareBatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute(
            "CREATE TABLE codes (code TEXT COLLATE NOCASE PRIMARY KEY, label TEXT)"
        )
        self.conn.execute("INSERT INTO codes (code, label) VALUES ('ABC', 'old')")
        self.db = Database(self.conn, SQLiteDialect())
        self.builder = (
            WriteSpecBuilder("codes")
            .field("code", primary_key=True)
            .field("label")
            .allow_updates()
        )

    def tearDown(self) -> None:
        self.db.close()

    def _labels(self) -> list:
        return self.conn.execute("SELECT code, label FROM codes").fetchall()

    def test_batch_matches_existing_rows_with_the_column_collation(self) -> None:
        engine = BatchUpsertEngine(self.builder.build_batch(), PropertyCache())

        result = engine.process(self.db, [{"code": "abc", "label": "new"}])

        self.assertEqual((result.inserted, result.updated, result.errors), (0, 1, 0))
        self.assertEqual(self._labels(), [("ABC", "new")])

    def test_batch_and_single_write_agree_on_existence(self) -> None:
        cache = PropertyCache()
        single = RecordWriter(self.builder.build(), cache).write(
            self.db, {"code": "aBc", "label": "single"}
        )
        batch = BatchUpsertEngine(self.builder.build_batch(), cache).process(
            self.db, [{"code": "abc", "label": "batch"}]
        )

        self.assertIs(single.action, RecordAction.UPDATE)
        self.assertEqual(batch.updated, 1)
        self.assertEqual(self._labels(), [("ABC", "batch")])


class CompositeKeyBatchTests(unittest.TestCase):
    def test_composite_keys_that_concatenate_alike_stay_distinct(self) -> None:
        conn = sqlite3.connect(":memory:")
        conn.execute(
            "CREATE TABLE parts (region TEXT, code TEXT, qty INTEGER, PRIMARY KEY (region, code))"
        )
        conn.execute("INSERT INTO parts VALUES ('12', '34', 1)")
        spec = (
            WriteSpecBuilder("parts")
            .field("region", primary_key=True)
            .field("code", primary_key=True)
            .field("qty")
            .allow_updates()
            .build_batch()
        )
        records = [
            {"region": "12", "code": "34", "qty": 2},
            {"region": "1", "code": "234", "qty": 3},
        ]

        with Database(conn, SQLiteDialect()) as db:
            result = BatchUpsertEngine(spec, PropertyCache()).process(db, records)
            rows = db.fetchall("SELECT region, code, qty FROM parts ORDER BY region")

        self.assertEqual((result.inserted, result.updated), (1, 1))
        self.assertEqual(
            rows,
            [
                {"region": "1", "code": "234", "qty": 3},
                {"region": "12", "code": "34", "qty": 2},
            ],
        )


if __name__ == "__main__":
    unittest.main()
