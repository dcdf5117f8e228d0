"""Batch upsert: one bulk existence check, sequential per-record writes.

Records are handled in input order on the caller's thread. A failing record
is recorded in the result and processing moves on; only store-level failures
(`ExecutionError`) abort the batch.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List, Sequence, Set

import structlog

from .contracts import StorePort
from .errors import ExecutionError, StatementError
from .property_cache import PropertyCache
from .query_builder import encode_key
from .settings import DEFAULT_LIMITS, EngineLimits
from .specs import BatchWriteSpec
from .types import BatchRecord, BatchResult, KeyTuple, RecordAction
from .writer import RecordWriter

logger = structlog.get_logger(__name__)


class BatchUpsertEngine:
    """Drive many records through a `RecordWriter` after one bulk existence check.

    A key written earlier in the same batch counts as existing for later
    records with that key: with updates allowed the later record updates the
    row (last write wins), otherwise it fails as already existing.
    """

    def __init__(
        self,
        spec: BatchWriteSpec,
        cache: PropertyCache,
        *,
        limits: EngineLimits = DEFAULT_LIMITS,
    ):
        self.spec = spec
        self.cache = cache
        self.writer = RecordWriter(spec.write, cache)
        self._delimiter = limits.composite_key_delimiter

    def encode(self, key: KeyTuple) -> str:
        return encode_key(key, self._delimiter)

    def process(self, store: StorePort, records: Sequence[Any]) -> BatchResult:
        """Insert or update every record and aggregate the outcome.

        Raises:
            ExecutionError: The bulk existence check or a write failed at the
                store level; no partial result is returned.
        """

        total = len(records)
        limit = self.spec.max_batch_size
        if total > limit:
            reason = (
                f"Batch of {total} records exceeds maximum allowed size of {limit}."
            )
            logger.warning(
                "batch_rejected", table=self.spec.write.table, records=total, limit=limit
            )
            return BatchResult(total=total, rejected=True, reason=reason)

        prepared = [self._prepare(index, raw) for index, raw in enumerate(records)]
        existing = self._existing(store, prepared)

        result = BatchResult(total=total)
        for record in prepared:
            if record.error is not None:
                result.record_failure(record.index, record.error)
                continue

            exists = record.encoded_key in existing
            record.action = RecordAction.UPDATE if exists else RecordAction.INSERT
            outcome = self.writer.write_values(store, record.values, exists=exists)
            if not outcome.ok:
                record.error = outcome.message
                result.record_failure(record.index, outcome.message)
                logger.debug(
                    "batch_record_failed", index=record.index, error=outcome.message
                )
                continue

            existing.add(record.encoded_key)
            if outcome.action is RecordAction.UPDATE:
                result.updated += 1
            else:
                result.inserted += 1

        logger.info(
            "batch_processed",
            table=self.spec.write.table,
            records=total,
            inserted=result.inserted,
            updated=result.updated,
            errors=result.errors,
            result=result.result_code.value,
        )
        return result

    def _prepare(self, index: int, raw: Any) -> BatchRecord:
        record = BatchRecord(index=index, raw=raw)
        if not isinstance(raw, Mapping):
            record.error = "Record skipped - record is not an object"
            return record

        resolved = self.writer.resolve(raw)
        if not resolved.ok:
            record.error = (
                "Record skipped - Missing required fields: "
                + ", ".join(resolved.missing_required)
            )
            return record

        record.values = resolved.values
        record.key = self.writer.key_of(resolved.values)
        record.encoded_key = self.encode(record.key)
        return record

    def _existing(self, store: StorePort, prepared: List[BatchRecord]) -> Set[str]:
        candidates: Dict[str, KeyTuple] = {}
        for record in prepared:
            if record.error is None and record.encoded_key not in candidates:
                candidates[record.encoded_key] = record.key
        if not candidates:
            return set()

        encoded = list(candidates)
        write = self.spec.write
        try:
            found = store.existing_key_indexes(
                write.table, write.key_columns, [candidates[name] for name in encoded]
            )
        except StatementError as exc:
            logger.error("store_execution_failed", step="bulk_existence_check", error=str(exc))
            raise ExecutionError("Bulk existence check failed.") from exc
        return {encoded[index] for index in found}
