"""Executable read, write and batch-write endpoint operations.

Each operation wraps one validated spec and exposes `execute(context)`,
returning the response envelope. Validation problems become `KO` envelopes
with their reason; store failures are logged and reported generically.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from .batch import BatchUpsertEngine
from .contracts import StorePort
from .envelopes import (
    GENERIC_STORE_FAILURE,
    Envelope,
    batch_envelope,
    ko,
    read_envelope,
    write_envelope,
)
from .errors import ExecutionError, StatementError, ValidationError
from .property_cache import PropertyCache
from .query_builder import compile_read
from .read_executor import ReadExecutor
from .settings import DEFAULT_LIMITS, EngineLimits
from .specs import BatchWriteSpec, ReadSpec, WriteSpec
from .validators import RequestValidator
from .writer import RecordWriter

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Everything one request needs: the store, the payload and the cache."""

    store: StorePort
    request: Mapping[str, Any]
    cache: PropertyCache


class _Operation:
    kind = "operation"

    def __init__(self, validator: Optional[RequestValidator] = None):
        self.validator = validator

    def execute(self, context: RequestContext) -> Envelope:
        if not isinstance(context.request, Mapping):
            return ko("Invalid or empty JSON payload")
        if self.validator is not None:
            rejection = self.validator.validate(context.request, context.cache)
            if rejection is not None:
                return rejection
        try:
            return self._run(context)
        except ValidationError as exc:
            return ko(str(exc))
        except ExecutionError as exc:
            logger.error("store_execution_failed", operation=self.kind, error=str(exc))
            return ko(GENERIC_STORE_FAILURE)

    def _run(self, context: RequestContext) -> Envelope:
        raise NotImplementedError


class ReadOperation(_Operation):
    """Compile the read spec against the request and return the rows."""

    kind = "read"

    def __init__(self, spec: ReadSpec, validator: Optional[RequestValidator] = None):
        super().__init__(validator)
        self.spec = spec

    def _run(self, context: RequestContext) -> Envelope:
        plan = compile_read(
            self.spec.template,
            self.spec.conditions,
            context.request,
            context.cache,
            default_where=self.spec.default_where,
            param_names=self.spec.param_names,
        )
        logger.debug("read_plan_compiled", sql=plan.sql, provided=list(plan.provided))
        try:
            result = ReadExecutor(context.store).execute(
                plan, self.spec.mode, self.spec.exclude_fields
            )
        except StatementError as exc:
            logger.error("store_execution_failed", operation=self.kind, error=str(exc))
            return ko("Error reading records.")
        return read_envelope(
            plan,
            result,
            include_sql=self.spec.include_executed_sql,
            filter_columns=self.spec.filter_columns,
        )


class WriteOperation(_Operation):
    """Insert or update the single record carried by the request."""

    kind = "write"

    def __init__(self, spec: WriteSpec, validator: Optional[RequestValidator] = None):
        super().__init__(validator)
        self.spec = spec

    def _run(self, context: RequestContext) -> Envelope:
        writer = RecordWriter(self.spec, context.cache)
        return write_envelope(
            writer.write(context.store, context.request),
            required_params=self.spec.required_params,
        )


class BatchWriteOperation(_Operation):
    """Upsert the array of records found under the spec's records field.

    When the field is absent and single-record fallback is enabled the whole
    payload is written as one record.
    """

    kind = "batch_write"

    def __init__(
        self,
        spec: BatchWriteSpec,
        validator: Optional[RequestValidator] = None,
        *,
        limits: EngineLimits = DEFAULT_LIMITS,
    ):
        super().__init__(validator)
        self.spec = spec
        self.limits = limits

    def _run(self, context: RequestContext) -> Envelope:
        field_name = self.spec.records_field
        found, records = context.cache.lookup(context.request, field_name)
        if not found:
            if not self.spec.single_record_fallback:
                return ko(f"Parameter {field_name} not specified")
            return WriteOperation(self.spec.write)._run(context)
        if not isinstance(records, list):
            return ko(f"Parameter {field_name} must be an array")

        engine = BatchUpsertEngine(self.spec, context.cache, limits=self.limits)
        write = self.spec.write
        return batch_envelope(
            engine.process(context.store, records),
            writable_params=write.writable_params,
            required_params=write.required_params,
        )
