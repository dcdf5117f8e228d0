"""Immutable parameter-condition and field-mapping definitions."""

from __future__ import annotations

from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Tuple

from .errors import ConfigurationError


@dataclass(frozen=True)
class ParameterCondition:
    """SQL fragment chosen by whether a named request field is present.

    Attributes:
        name: Request field name, matched case-insensitively.
        sql_when_present: Fragment added when the field is present.
        sql_when_absent: Fragment added when the field is absent, if any.
        bind_value: Bind the field value as `:name` for the fragment.
        default: Value bound when the field is null, or absent.
    """

    name: str
    sql_when_present: str
    sql_when_absent: Optional[str] = None
    bind_value: bool = True
    default: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError("ParameterCondition.name must be a non-empty string.")
        if not isinstance(self.sql_when_present, str) or not self.sql_when_present.strip():
            raise ConfigurationError(
                f"ParameterCondition {self.name!r} needs a non-empty sql_when_present."
            )


@dataclass(frozen=True)
class FieldMapping:
    """Correspondence between one request field and one SQL column."""

    json_property: str
    sql_column: str
    required: bool = False
    primary_key: bool = False
    default: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.json_property, str) or not self.json_property:
            raise ConfigurationError("FieldMapping.json_property must be a non-empty string.")
        if not isinstance(self.sql_column, str) or not self.sql_column:
            raise ConfigurationError(
                f"FieldMapping {self.json_property!r} needs a non-empty sql_column."
            )


class ParameterConditions:
    """Ordered, read-only collection of conditions with unique names."""

    __slots__ = ("_items", "_by_name")

    def __init__(self, conditions: Iterable[ParameterCondition] = ()):
        items: list[ParameterCondition] = []
        by_name: Dict[str, ParameterCondition] = {}
        for condition in conditions:
            if not isinstance(condition, ParameterCondition):
                raise ConfigurationError("Expected ParameterCondition items.")
            lowered = condition.name.lower()
            if lowered in by_name:
                raise ConfigurationError(
                    f"Duplicate parameter condition {condition.name!r}."
                )
            by_name[lowered] = condition
            items.append(condition)
        self._items: Tuple[ParameterCondition, ...] = tuple(items)
        self._by_name = by_name

    def get(self, name: str) -> Optional[ParameterCondition]:
        return self._by_name.get(name.lower())

    def names(self) -> list[str]:
        return [item.name for item in self._items]

    def __iter__(self) -> Iterator[ParameterCondition]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._by_name

    def __repr__(self) -> str:
        return f"ParameterConditions({list(self._items)!r})"


class FieldMappings:
    """Ordered, read-only collection of field mappings.

    `json_property` values are unique case-insensitively and so are the target
    SQL columns.
    """

    __slots__ = ("_items", "_by_property", "_by_column")

    def __init__(self, mappings: Iterable[FieldMapping] = ()):
        items: list[FieldMapping] = []
        by_property: Dict[str, FieldMapping] = {}
        by_column: Dict[str, FieldMapping] = {}
        for mapping in mappings:
            if not isinstance(mapping, FieldMapping):
                raise ConfigurationError("Expected FieldMapping items.")
            prop = mapping.json_property.lower()
            column = mapping.sql_column.lower()
            if prop in by_property:
                raise ConfigurationError(
                    f"Duplicate field mapping for property {mapping.json_property!r}."
                )
            if column in by_column:
                raise ConfigurationError(
                    f"Column {mapping.sql_column!r} is mapped more than once."
                )
            by_property[prop] = mapping
            by_column[column] = mapping
            items.append(mapping)
        self._items: Tuple[FieldMapping, ...] = tuple(items)
        self._by_property = by_property
        self._by_column = by_column

    @property
    def key_mappings(self) -> Tuple[FieldMapping, ...]:
        return tuple(item for item in self._items if item.primary_key)

    def get(self, json_property: str) -> Optional[FieldMapping]:
        return self._by_property.get(json_property.lower())

    def by_column(self, sql_column: str) -> Optional[FieldMapping]:
        return self._by_column.get(sql_column.lower())

    def columns(self) -> list[str]:
        return [item.sql_column for item in self._items]

    def __iter__(self) -> Iterator[FieldMapping]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"FieldMappings({list(self._items)!r})"


def conditions_from_arrays(
    names: Sequence[str],
    sql_when_present: Sequence[str],
    sql_when_absent: Optional[Sequence[Optional[str]]] = None,
    bind_values: Optional[Sequence[bool]] = None,
    defaults: Optional[Sequence[Any]] = None,
) -> ParameterConditions:
    """Build conditions from parallel arrays.

    Optional arrays may be omitted; when given they must match `names` in
    length.
    """

    count = _check_lengths(
        names,
        sql_when_present=sql_when_present,
        sql_when_absent=sql_when_absent,
        bind_values=bind_values,
        defaults=defaults,
    )
    return ParameterConditions(
        ParameterCondition(
            name=names[i],
            sql_when_present=sql_when_present[i],
            sql_when_absent=sql_when_absent[i] if sql_when_absent is not None else None,
            bind_value=bool(bind_values[i]) if bind_values is not None else True,
            default=defaults[i] if defaults is not None else None,
        )
        for i in range(count)
    )


def mappings_from_arrays(
    json_properties: Sequence[str],
    sql_columns: Sequence[str],
    required: Optional[Sequence[bool]] = None,
    primary_keys: Optional[Sequence[bool]] = None,
    defaults: Optional[Sequence[Any]] = None,
) -> FieldMappings:
    """Build field mappings from parallel arrays."""

    count = _check_lengths(
        json_properties,
        sql_columns=sql_columns,
        required=required,
        primary_keys=primary_keys,
        defaults=defaults,
    )
    return FieldMappings(
        FieldMapping(
            json_property=json_properties[i],
            sql_column=sql_columns[i],
            required=bool(required[i]) if required is not None else False,
            primary_key=bool(primary_keys[i]) if primary_keys is not None else False,
            default=defaults[i] if defaults is not None else None,
        )
        for i in range(count)
    )


def _check_lengths(primary: Sequence[Any], **others: Optional[Sequence[Any]]) -> int:
    if isinstance(primary, (str, bytes)) or not isinstance(primary, SequenceABC):
        raise ConfigurationError("Parallel arrays must be sequences, not strings.")
    count = len(primary)
    for label, values in others.items():
        if values is None:
            continue
        if isinstance(values, (str, bytes)) or not isinstance(values, SequenceABC):
            raise ConfigurationError(f"{label} must be a sequence.")
        if len(values) != count:
            raise ConfigurationError(
                f"{label} has {len(values)} items, expected {count}."
            )
    return count
