"""Read and single-record write endpoints over an in-memory SQLite store."""

from __future__ import annotations

import json
import sqlite3
import sys
from pathlib import Path

# Allow running this script directly from repository root.
PROJECT_ROOT = next(
    (parent for parent in Path(__file__).resolve().parents if (parent / "sql_endpoints").exists()),
    None,
)
if PROJECT_ROOT and str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sql_endpoints import (
    Database,
    PropertyCache,
    ReadOperation,
    ReadSpecBuilder,
    RequestContext,
    RequiredParameters,
    SQLiteDialect,
    WriteOperation,
    WriteSpecBuilder,
    configure_logging,
)


def main() -> None:
    configure_logging()

    # 1) Create DB adapter, table and the shared lookup cache.
    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL, "
        "city TEXT, active INTEGER NOT NULL DEFAULT 1)"
    )
    db = Database(conn, SQLiteDialect())
    cache = PropertyCache()

    try:
        # 2) Write endpoint: request fields map to columns, CustomerId is the key.
        writer = WriteOperation(
            WriteSpecBuilder("customers")
            .field("CustomerId", "id", required=True, primary_key=True)
            .field("Name", "name", required=True)
            .field("City", "city")
            .allow_updates()
            .build(),
            validator=RequiredParameters(["CustomerId"]),
        )
        for request in (
            {"customerId": 1, "name": "Ada", "city": "London"},
            {"CUSTOMERID": 2, "NAME": "Grace", "CITY": "Arlington"},
            {"CustomerId": 1, "Name": "Ada L.", "City": "London"},
            {"Name": "missing key"},
        ):
            envelope = writer.execute(RequestContext(db, request, cache))
            print("Write:", json.dumps(envelope))

        # 3) Read endpoint: optional filters, default clause when none is given.
        reader = ReadOperation(
            ReadSpecBuilder("SELECT id, name, city FROM customers {WHERE} ORDER BY id")
            .condition("City", "city = :City")
            .condition("NameLike", "name LIKE :NameLike")
            .default_where("active = 1")
            .native()
            .build()
        )
        for request in ({}, {"city": "London"}, {"namelike": "G%"}):
            envelope = reader.execute(RequestContext(db, request, cache))
            print("Read:", json.dumps(envelope))

        print("Cache:", cache.stats())
    finally:
        db.close()


if __name__ == "__main__":
    main()
