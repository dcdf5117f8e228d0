"""Endpoint definitions for read, write and batch-write operations.

Specs are frozen and only produced by the builders, whose `build()` performs
every configuration check up front. A spec that exists can be executed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

import structlog

from .definitions import FieldMapping, FieldMappings, ParameterCondition, ParameterConditions
from .errors import ConfigurationError
from .identifiers import bind_name, is_bind_name, require_identifier
from .query_builder import ensure_single_placeholder
from .settings import DEFAULT_LIMITS, DEFAULT_RECORDS_FIELD, WHERE_PLACEHOLDER, EngineLimits
from .types import ReadMode

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReadSpec:
    """Validated read endpoint definition."""

    template: str
    conditions: ParameterConditions
    default_where: Optional[str] = None
    exclude_fields: FrozenSet[str] = frozenset()
    param_names: Dict[str, str] = field(default_factory=dict)
    mode: ReadMode = ReadMode.STRUCTURED
    include_executed_sql: bool = True
    filter_columns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WriteSpec:
    """Validated single-record write endpoint definition."""

    table: str
    mappings: FieldMappings
    key_columns: Tuple[str, ...]
    allow_updates: bool = False
    custom_existence_sql: Optional[str] = None
    custom_update_sql: Optional[str] = None
    custom_update_where: Optional[str] = None
    writable_params: Tuple[str, ...] = ()
    required_params: Tuple[str, ...] = ()

    @property
    def key_set(self) -> FrozenSet[str]:
        return frozenset(column.lower() for column in self.key_columns)

    def is_key_column(self, column: str) -> bool:
        return column.lower() in self.key_set

    def key_mappings(self) -> Tuple[FieldMapping, ...]:
        return tuple(
            mapping
            for mapping in (self.mappings.by_column(col) for col in self.key_columns)
            if mapping is not None
        )


@dataclass(frozen=True)
class BatchWriteSpec:
    """Validated batch upsert endpoint definition."""

    write: WriteSpec
    records_field: str = DEFAULT_RECORDS_FIELD
    max_batch_size: int = DEFAULT_LIMITS.max_batch_size
    single_record_fallback: bool = True


class ReadSpecBuilder:
    """Fluent builder for `ReadSpec`.

    Defaults: no default WHERE clause, no excluded fields, structured mode,
    executed SQL included in responses.
    """

    def __init__(self, template: str, *, limits: EngineLimits = DEFAULT_LIMITS):
        self._template = template
        self._limits = limits
        self._conditions: List[ParameterCondition] = []
        self._default_where: Optional[str] = None
        self._exclude: List[str] = []
        self._mappings: Optional[FieldMappings] = None
        self._mode = ReadMode.STRUCTURED
        self._include_sql = True
        self._filter_columns: Tuple[str, ...] = ()

    @classmethod
    def for_table(
        cls,
        table: str,
        filter_params: Sequence[str],
        *,
        exclude_fields: Sequence[str] = (),
        use_like: bool = True,
        limits: EngineLimits = DEFAULT_LIMITS,
    ) -> ReadSpecBuilder:
        """Start a `SELECT *` reader filtering on same-named columns.

        Responses list `filter_params` as the columns a caller can filter by.
        """

        require_identifier(table, True, max_length=limits.max_identifier_length)
        operator = "LIKE" if use_like else "="
        builder = cls(f"SELECT * FROM {table} {WHERE_PLACEHOLDER}", limits=limits)
        for param in filter_params:
            require_identifier(param, False, max_length=limits.max_identifier_length)
            builder.condition(param, f"{param} {operator} :{param}")
        builder.exclude(*exclude_fields)
        builder._filter_columns = tuple(filter_params)
        return builder

    def condition(
        self,
        name: str,
        sql_when_present: str,
        sql_when_absent: Optional[str] = None,
        *,
        bind_value: bool = True,
        default: Any = None,
    ) -> ReadSpecBuilder:
        self._conditions.append(
            ParameterCondition(name, sql_when_present, sql_when_absent, bind_value, default)
        )
        return self

    def conditions(self, items: Iterable[ParameterCondition]) -> ReadSpecBuilder:
        self._conditions.extend(items)
        return self

    def default_where(self, clause: Optional[str]) -> ReadSpecBuilder:
        self._default_where = clause
        return self

    def exclude(self, *fields: str) -> ReadSpecBuilder:
        self._exclude.extend(fields)
        return self

    def field_mappings(self, mappings: FieldMappings) -> ReadSpecBuilder:
        """Bind condition values under mapped SQL column names."""

        self._mappings = mappings
        return self

    def native(self, enabled: bool = True) -> ReadSpecBuilder:
        self._mode = ReadMode.NATIVE if enabled else ReadMode.STRUCTURED
        return self

    def include_executed_sql(self, enabled: bool = True) -> ReadSpecBuilder:
        self._include_sql = enabled
        return self

    def build(self) -> ReadSpec:
        ensure_single_placeholder(self._template)
        conditions = ParameterConditions(self._conditions)
        param_names = self._param_names(conditions)

        excluded = set()
        for name in self._exclude:
            if not isinstance(name, str) or not name.strip():
                raise ConfigurationError("Excluded field names must be non-empty strings.")
            excluded.add(name.lower())

        default_where = self._default_where.strip() if self._default_where else None
        spec = ReadSpec(
            template=self._template,
            conditions=conditions,
            default_where=default_where or None,
            exclude_fields=frozenset(excluded),
            param_names=param_names,
            mode=self._mode,
            include_executed_sql=self._include_sql,
            filter_columns=self._filter_columns,
        )
        logger.debug(
            "endpoint_definition_built",
            kind="read",
            conditions=len(conditions),
            mode=spec.mode.value,
        )
        return spec

    def _param_names(self, conditions: ParameterConditions) -> Dict[str, str]:
        names: Dict[str, str] = {}
        taken: Dict[str, str] = {}
        for condition in conditions:
            if not condition.bind_value:
                continue
            param = condition.name
            if self._mappings is not None:
                mapping = self._mappings.get(condition.name)
                if mapping is not None:
                    require_identifier(
                        mapping.sql_column, True, max_length=self._limits.max_identifier_length
                    )
                    param = bind_name(mapping.sql_column)
            if not is_bind_name(param):
                raise ConfigurationError(
                    f"Condition {condition.name!r} cannot be bound as parameter {param!r}."
                )
            lowered = param.lower()
            if lowered in taken:
                raise ConfigurationError(
                    f"Conditions {taken[lowered]!r} and {condition.name!r} "
                    f"both bind parameter {param!r}."
                )
            taken[lowered] = condition.name
            if param != condition.name:
                names[condition.name] = param
        return names


class WriteSpecBuilder:
    """Fluent builder for `WriteSpec` and `BatchWriteSpec`.

    Keys come either from mappings marked `primary_key` or from
    `key_columns(...)`, never both. Updates are disallowed unless
    `allow_updates()` is called.
    """

    def __init__(self, table: str, *, limits: EngineLimits = DEFAULT_LIMITS):
        self._table = table
        self._limits = limits
        self._mappings: List[FieldMapping] = []
        self._key_columns: Optional[List[str]] = None
        self._allow_updates = False
        self._existence_sql: Optional[str] = None
        self._update_sql: Optional[str] = None
        self._update_where: Optional[str] = None
        self._writable_params: Tuple[str, ...] = ()
        self._required_params: Tuple[str, ...] = ()

    @classmethod
    def for_table(
        cls,
        table: str,
        all_params: Sequence[str],
        key_params: Sequence[str],
        *,
        allow_updates: bool = False,
        limits: EngineLimits = DEFAULT_LIMITS,
    ) -> WriteSpecBuilder:
        """Start a writer whose request fields match column names.

        `key_params` are required and identify the row. Responses of the
        resulting endpoint list the writable and required request fields.
        """

        keys = {name.lower() for name in key_params}
        builder = cls(table, limits=limits)
        declared = {name.lower() for name in all_params}
        for name in key_params:
            if name.lower() not in declared:
                builder.field(name, name, required=True, primary_key=True)
        for name in all_params:
            is_key = name.lower() in keys
            builder.field(name, name, required=is_key, primary_key=is_key)
        builder._writable_params = tuple(mapping.json_property for mapping in builder._mappings)
        builder._required_params = tuple(key_params)
        return builder.allow_updates(allow_updates)

    def field(
        self,
        json_property: str,
        sql_column: Optional[str] = None,
        *,
        required: bool = False,
        primary_key: bool = False,
        default: Any = None,
    ) -> WriteSpecBuilder:
        self._mappings.append(
            FieldMapping(json_property, sql_column or json_property, required, primary_key, default)
        )
        return self

    def fields(self, mappings: Iterable[FieldMapping]) -> WriteSpecBuilder:
        self._mappings.extend(mappings)
        return self

    def key_columns(self, *columns: str) -> WriteSpecBuilder:
        self._key_columns = list(columns)
        return self

    def allow_updates(self, enabled: bool = True) -> WriteSpecBuilder:
        self._allow_updates = enabled
        return self

    def custom_existence_sql(self, sql: Optional[str]) -> WriteSpecBuilder:
        """Use `sql` verbatim as the existence check; key values bind by column name."""

        self._existence_sql = sql
        return self

    def custom_update_sql(self, sql: Optional[str]) -> WriteSpecBuilder:
        self._update_sql = sql
        return self

    def custom_update_where(self, clause: Optional[str]) -> WriteSpecBuilder:
        self._update_where = clause
        return self

    def build(self) -> WriteSpec:
        max_length = self._limits.max_identifier_length
        require_identifier(self._table, True, max_length=max_length)
        mappings = FieldMappings(self._mappings)
        if not len(mappings):
            raise ConfigurationError("A write endpoint needs at least one field mapping.")

        bind_names: Dict[str, str] = {}
        for mapping in mappings:
            require_identifier(mapping.sql_column, True, max_length=max_length)
            name = bind_name(mapping.sql_column).lower()
            if name in bind_names:
                raise ConfigurationError(
                    f"Columns {bind_names[name]!r} and {mapping.sql_column!r} "
                    "bind the same parameter name."
                )
            bind_names[name] = mapping.sql_column

        key_columns = self._resolve_keys(mappings)
        spec = WriteSpec(
            table=self._table,
            mappings=mappings,
            key_columns=key_columns,
            allow_updates=self._allow_updates,
            custom_existence_sql=_blank_to_none(self._existence_sql),
            custom_update_sql=_blank_to_none(self._update_sql),
            custom_update_where=_blank_to_none(self._update_where),
            writable_params=self._writable_params,
            required_params=self._required_params,
        )
        logger.debug(
            "endpoint_definition_built",
            kind="write",
            table=spec.table,
            key_columns=list(spec.key_columns),
            allow_updates=spec.allow_updates,
        )
        return spec

    def build_batch(
        self,
        *,
        records_field: str = DEFAULT_RECORDS_FIELD,
        max_batch_size: Optional[int] = None,
        single_record_fallback: bool = True,
    ) -> BatchWriteSpec:
        write = self.build()
        if not isinstance(records_field, str) or not records_field:
            raise ConfigurationError("records_field must be a non-empty string.")
        size = self._limits.max_batch_size if max_batch_size is None else max_batch_size
        if size < 1:
            raise ConfigurationError("max_batch_size must be >= 1.")
        return BatchWriteSpec(
            write=write,
            records_field=records_field,
            max_batch_size=size,
            single_record_fallback=single_record_fallback,
        )

    def _resolve_keys(self, mappings: FieldMappings) -> Tuple[str, ...]:
        from_mappings = [mapping.sql_column for mapping in mappings.key_mappings]
        explicit = self._key_columns

        if explicit and from_mappings:
            raise ConfigurationError(
                "Declare keys either with primary_key mappings or key_columns(), not both."
            )
        if not explicit and not from_mappings:
            raise ConfigurationError(
                "A write endpoint needs primary_key mappings or explicit key_columns()."
            )
        if from_mappings:
            return tuple(from_mappings)

        resolved = []
        seen = set()
        for column in explicit or ():
            require_identifier(column, True, max_length=self._limits.max_identifier_length)
            mapping = mappings.by_column(column)
            if mapping is None:
                raise ConfigurationError(f"Key column {column!r} has no field mapping.")
            if column.lower() in seen:
                raise ConfigurationError(f"Key column {column!r} is listed twice.")
            seen.add(column.lower())
            resolved.append(mapping.sql_column)
        return tuple(resolved)


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value
