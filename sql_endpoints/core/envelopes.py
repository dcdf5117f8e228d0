"""Response envelope builders."""

from __future__ import annotations

from typing import Any, Dict, Sequence

from .query_builder import QueryPlan
from .read_executor import ReadResult
from .types import BatchResult, RecordAction, ResultCode
from .writer import WriteOutcome

Envelope = Dict[str, Any]

GENERIC_STORE_FAILURE = "Database operation failed."

_ACTION_LABELS = {RecordAction.INSERT: "INSERTED", RecordAction.UPDATE: "UPDATED"}


def ko(reason: str) -> Envelope:
    return {"Result": ResultCode.KO.value, "Reason": reason}


def read_envelope(
    plan: QueryPlan,
    result: ReadResult,
    *,
    include_sql: bool,
    filter_columns: Sequence[str] = (),
) -> Envelope:
    envelope: Envelope = {"Result": ResultCode.OK.value}
    if filter_columns:
        envelope["ColumnsYouCanFilterBy"] = ",".join(filter_columns)
    envelope["ProvidedParameters"] = ",".join(plan.provided)
    if include_sql:
        envelope["ExecutedSQL"] = plan.sql
    envelope["Records"] = result.rows
    if result.fell_back:
        envelope["NativeFallback"] = True
        envelope["FallbackReason"] = result.fallback_reason
    return envelope


def write_envelope(outcome: WriteOutcome, *, required_params: Sequence[str] = ()) -> Envelope:
    if not outcome.ok or outcome.action is None:
        return ko(outcome.message)
    envelope: Envelope = {"Result": ResultCode.OK.value}
    if required_params:
        envelope["RequiredColumns"] = ",".join(required_params)
    envelope["Action"] = _ACTION_LABELS[outcome.action]
    envelope["Message"] = outcome.message
    return envelope


def batch_envelope(
    result: BatchResult,
    *,
    writable_params: Sequence[str] = (),
    required_params: Sequence[str] = (),
) -> Envelope:
    if result.rejected:
        return ko(result.message)
    envelope: Envelope = {"Result": result.result_code.value}
    if writable_params:
        envelope["ColumnsYouCanWriteTo"] = ",".join(writable_params)
    if required_params:
        envelope["RequiredColumns"] = ",".join(required_params)
    envelope["Inserted"] = result.inserted
    envelope["Updated"] = result.updated
    envelope["Errors"] = result.errors
    envelope["ErrorDetails"] = [detail.as_dict() for detail in result.error_details]
    envelope["Message"] = result.message
    return envelope
