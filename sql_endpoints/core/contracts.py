"""Store port contracts used by the engine and implemented by adapters."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, List, Optional, Protocol, Sequence, Set

from .types import KeyTuple, MaybeRow, NamedParams, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required to run compiled plans."""

    name: str
    paramstyle: str
    supports_native_json: bool

    def bind(self, sql: str, params: Optional[NamedParams]) -> tuple[str, QueryParams]: ...

    def native_json_sql(self, sql: str, columns: Optional[Sequence[str]] = None) -> str: ...


class StorePort(Protocol):
    """Store client behavior required by the engine.

    Statements always use `:name` parameters; adapters translate them to the
    driver's paramstyle. Failures surface as `StatementError` (one statement)
    or `StoreConnectionError` (the store itself).
    """

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def execute(self, sql: str, params: Optional[NamedParams] = None) -> Any: ...

    def fetchone(self, sql: str, params: Optional[NamedParams] = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: Optional[NamedParams] = None) -> List[RowMapping]: ...

    def fetch_json(self, sql: str, params: Optional[NamedParams] = None) -> Any: ...

    def existing_key_indexes(
        self,
        table: str,
        key_columns: Sequence[str],
        key_tuples: Sequence[KeyTuple],
    ) -> Set[int]: ...
