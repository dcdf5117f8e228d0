"""Single-record existence-check / insert / update state machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from .contracts import StorePort
from .errors import StatementError, ValidationError
from .identifiers import bind_name
from .property_cache import PropertyCache
from .query_builder import (
    ResolvedFields,
    bind_params,
    build_existence_sql,
    build_insert_sql,
    build_update_sql,
    resolve_fields,
)
from .specs import WriteSpec
from .types import KeyTuple, MaybeRow, RecordAction

logger = structlog.get_logger(__name__)

ALREADY_EXISTS = "Record already exists and updates are not allowed"


class WriteState(str, Enum):
    CHECK_EXISTENCE = "CHECK_EXISTENCE"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class WriteOutcome:
    """Result of one record write; failures are values, not exceptions."""

    state: WriteState
    action: Optional[RecordAction]
    message: str

    @property
    def ok(self) -> bool:
        return self.state is WriteState.DONE

    @classmethod
    def done(cls, action: RecordAction, message: str) -> WriteOutcome:
        return cls(WriteState.DONE, action, message)

    @classmethod
    def failed(cls, message: str) -> WriteOutcome:
        return cls(WriteState.FAILED, None, message)


class RecordWriter:
    """Write one request object according to a `WriteSpec`.

    `CHECK_EXISTENCE -> INSERT | UPDATE -> DONE`, with `FAILED` reachable
    from every state. Callers that already know whether the row exists
    (the batch engine) pass `exists=` and skip the existence check.
    """

    def __init__(self, spec: WriteSpec, cache: PropertyCache):
        self.spec = spec
        self.cache = cache
        self._key_mappings = spec.key_mappings()

    def resolve(self, record: Mapping[str, Any]) -> ResolvedFields:
        """Resolve column values and report missing required or key fields."""

        resolved = resolve_fields(self.spec.mappings, record, self.cache)
        missing = list(resolved.missing_required)
        for mapping in self._key_mappings:
            if resolved.values.get(mapping.sql_column) is None and mapping.json_property not in missing:
                missing.append(mapping.json_property)
        return ResolvedFields(values=resolved.values, missing_required=missing)

    def key_of(self, values: Mapping[str, Any]) -> KeyTuple:
        return tuple(values[column] for column in self.spec.key_columns)

    def key_label(self, values: Mapping[str, Any]) -> str:
        return ",".join(
            "" if values.get(column) is None else str(values.get(column))
            for column in self.spec.key_columns
        )

    def write(
        self,
        store: StorePort,
        record: Mapping[str, Any],
        *,
        exists: Optional[bool] = None,
    ) -> WriteOutcome:
        """Run the state machine for one record.

        Raises:
            ValidationError: Required or key fields are missing; no SQL ran.
            ExecutionError: The store failed independently of this record.
        """

        resolved = self.resolve(record)
        if not resolved.ok:
            raise ValidationError.missing_fields(resolved.missing_required)
        return self.write_values(store, resolved.values, exists=exists)

    def write_values(
        self,
        store: StorePort,
        values: Dict[str, Any],
        *,
        exists: Optional[bool] = None,
    ) -> WriteOutcome:
        """Run the state machine for already-resolved column values."""

        state = WriteState.CHECK_EXISTENCE if exists is None else self._after_check(exists)
        label = self.key_label(values)

        while True:
            if state is WriteState.CHECK_EXISTENCE:
                try:
                    found = self._exists(store, values)
                except StatementError as exc:
                    return self._fail(label, "Existence check error", exc)
                state = self._after_check(found)
            elif state is WriteState.FAILED:
                return WriteOutcome.failed(f"{label} - {ALREADY_EXISTS}")
            elif state is WriteState.UPDATE:
                try:
                    self._update(store, values)
                except StatementError as exc:
                    return self._fail(label, "Update error", exc)
                return WriteOutcome.done(RecordAction.UPDATE, "Record updated successfully")
            else:
                try:
                    self._insert(store, values)
                except StatementError as exc:
                    return self._fail(label, "Insert error", exc)
                return WriteOutcome.done(RecordAction.INSERT, "Record inserted successfully")

    def _after_check(self, exists: bool) -> WriteState:
        if not exists:
            return WriteState.INSERT
        return WriteState.UPDATE if self.spec.allow_updates else WriteState.FAILED

    def _fail(self, label: str, what: str, exc: StatementError) -> WriteOutcome:
        logger.info("record_write_failed", table=self.spec.table, step=what, error=str(exc))
        return WriteOutcome.failed(f"{label} - {what}: {exc}")

    def _key_params(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return {bind_name(column): values[column] for column in self.spec.key_columns}

    def _exists(self, store: StorePort, values: Mapping[str, Any]) -> bool:
        sql = self.spec.custom_existence_sql or build_existence_sql(
            self.spec.table, self.spec.key_columns
        )
        return row_exists(store.fetchone(sql, self._key_params(values)))

    def _update(self, store: StorePort, values: Mapping[str, Any]) -> None:
        params = bind_params(values)
        if self.spec.custom_update_sql:
            store.execute(self.spec.custom_update_sql, params)
            return

        set_columns: List[str] = [c for c in values if not self.spec.is_key_column(c)]
        if not set_columns:
            return
        sql = build_update_sql(
            self.spec.table,
            set_columns,
            self.spec.key_columns,
            where=self.spec.custom_update_where,
        )
        store.execute(sql, params)

    def _insert(self, store: StorePort, values: Mapping[str, Any]) -> None:
        store.execute(build_insert_sql(self.spec.table, list(values)), bind_params(values))


def row_exists(row: MaybeRow) -> bool:
    """Interpret an existence check row (`COUNT(*)` or `SELECT 1` style)."""

    if row is None:
        return False
    values: Tuple[Any, ...] = tuple(row.values())
    if not values:
        return True
    first = values[0]
    return first is not None and first != 0
