"""Batch upsert endpoint with partial-success reporting."""

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
    BatchWriteOperation,
    Database,
    PropertyCache,
    RequestContext,
    SQLiteDialect,
    WriteSpecBuilder,
    configure_logging,
)


def main() -> None:
    configure_logging()

    conn = sqlite3.connect(":memory:")
    conn.execute(
        "CREATE TABLE stock (warehouse TEXT, sku TEXT, qty INTEGER NOT NULL, "
        "PRIMARY KEY (warehouse, sku))"
    )
    conn.execute("INSERT INTO stock VALUES ('W1', 'A-1', 5)")
    db = Database(conn, SQLiteDialect())

    # Composite key (warehouse, sku); updates allowed so reruns are idempotent.
    operation = BatchWriteOperation(
        WriteSpecBuilder("stock")
        .field("Warehouse", "warehouse", primary_key=True)
        .field("Sku", "sku", primary_key=True)
        .field("Qty", "qty")
        .allow_updates()
        .build_batch(records_field="Items")
    )

    request = {
        "Items": [
            {"warehouse": "W1", "sku": "A-1", "qty": 7},
            {"warehouse": "W1", "sku": "B-2", "qty": 1},
            {"warehouse": "W2", "sku": "A-1"},
            {"sku": "C-3", "qty": 4},
        ]
    }

    try:
        with db.transaction():
            envelope = operation.execute(RequestContext(db, request, PropertyCache()))
        print("Batch:", json.dumps(envelope, indent=2))
        print("Rows:", db.fetchall("SELECT * FROM stock ORDER BY warehouse, sku"))
    finally:
        db.close()


if __name__ == "__main__":
    main()
