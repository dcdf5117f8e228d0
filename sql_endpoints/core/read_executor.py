"""Run compiled read plans in structured or native serialization mode."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

import structlog

from .contracts import StorePort
from .errors import StatementError
from .query_builder import QueryPlan
from .types import ReadMode

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReadResult:
    """Rows returned by a read and how they were produced."""

    rows: List[Dict[str, Any]]
    mode: ReadMode
    fallback_reason: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.fallback_reason is not None


class ReadExecutor:
    """Execute read plans against a store.

    Native mode lets the store render the rowset as JSON. It is skipped when
    fields must be excluded, and any native failure falls back to structured
    mode with the reason recorded on the result.
    """

    def __init__(self, store: StorePort):
        self.store = store

    def execute(
        self,
        plan: QueryPlan,
        mode: ReadMode = ReadMode.STRUCTURED,
        exclude_fields: Iterable[str] = (),
    ) -> ReadResult:
        excluded = frozenset(name.lower() for name in exclude_fields)

        if mode is ReadMode.NATIVE:
            if excluded:
                return self._structured(plan, excluded, "field exclusion requires structured mode")
            try:
                rows = self._native(plan)
            except (StatementError, NotImplementedError, ValueError, TypeError) as exc:
                return self._structured(plan, excluded, f"native serialization failed: {exc}")
            return ReadResult(rows=rows, mode=ReadMode.NATIVE)

        return self._structured(plan, excluded, None)

    def _structured(
        self,
        plan: QueryPlan,
        excluded: FrozenSet[str],
        fallback_reason: Optional[str],
    ) -> ReadResult:
        if fallback_reason is not None:
            logger.warning("native_serialization_fallback", reason=fallback_reason)
        rows = self.store.fetchall(plan.sql, plan.params)
        return ReadResult(
            rows=[_project(row, excluded) for row in rows],
            mode=ReadMode.STRUCTURED,
            fallback_reason=fallback_reason,
        )

    def _native(self, plan: QueryPlan) -> List[Dict[str, Any]]:
        document = self.store.fetch_json(plan.sql, plan.params)
        if not isinstance(document, list):
            raise ValueError("store did not return a JSON array")
        rows = []
        for item in document:
            if not isinstance(item, Mapping):
                raise ValueError("store returned a non-object row")
            rows.append(dict(item))
        return rows


def _project(row: Mapping[str, Any], excluded: FrozenSet[str]) -> Dict[str, Any]:
    if not excluded:
        return dict(row)
    return {name: value for name, value in row.items() if name.lower() not in excluded}
