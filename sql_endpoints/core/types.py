"""Shared type aliases and per-request value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

NamedParams = Dict[str, Any]
PositionalParams = List[Any]
QueryParams = Union[NamedParams, PositionalParams, None]

RowMapping = Mapping[str, Any]
Rows = List[RowMapping]
MaybeRow = Optional[RowMapping]

KeyTuple = Tuple[Any, ...]


class ReadMode(str, Enum):
    """How the read executor materializes rows."""

    STRUCTURED = "structured"
    NATIVE = "native"


class RecordAction(str, Enum):
    """Planned or performed action for one record."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    SKIP = "SKIP"


class ResultCode(str, Enum):
    OK = "OK"
    PARTIAL = "PARTIAL"
    KO = "KO"


@dataclass(frozen=True)
class RecordError:
    """One failed batch record, reported by its position in the input."""

    index: int
    message: str

    def as_dict(self) -> Dict[str, Any]:
        return {"Index": self.index, "Message": self.message}


@dataclass
class BatchRecord:
    """Working state for one batch input record."""

    index: int
    raw: Any
    values: Dict[str, Any] = field(default_factory=dict)
    key: KeyTuple = ()
    encoded_key: str = ""
    action: RecordAction = RecordAction.SKIP
    error: Optional[str] = None


@dataclass
class BatchResult:
    """Aggregated outcome of one batch call.

    Invariant: `inserted + updated + errors == total` unless the batch was
    rejected before any record was looked at.
    """

    total: int = 0
    inserted: int = 0
    updated: int = 0
    errors: int = 0
    error_details: List[RecordError] = field(default_factory=list)
    rejected: bool = False
    reason: Optional[str] = None

    @property
    def result_code(self) -> ResultCode:
        if self.rejected:
            return ResultCode.KO
        if self.errors == 0:
            return ResultCode.OK
        if self.errors >= self.total:
            return ResultCode.KO
        return ResultCode.PARTIAL

    @property
    def message(self) -> str:
        if self.rejected:
            return self.reason or "Batch rejected."
        return (
            f"Processed {self.total} records: {self.inserted} inserted, "
            f"{self.updated} updated, {self.errors} errors."
        )

    def record_failure(self, index: int, message: str) -> None:
        self.errors += 1
        self.error_details.append(RecordError(index=index, message=message))
