"""SQL text and parameter compilation for endpoint definitions.

Request values only ever travel in the parameter maps produced here. SQL text
is assembled from configured fragments and validated identifiers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .definitions import FieldMappings, ParameterConditions
from .errors import ConfigurationError
from .identifiers import bind_name
from .property_cache import PropertyCache
from .settings import COMPOSITE_KEY_DELIMITER, COMPOSITE_KEY_ESCAPE, WHERE_PLACEHOLDER
from .types import KeyTuple, NamedParams

BULK_EXISTENCE_CHUNK = 200

_PLACEHOLDER_RE = re.compile(r"([ \t]*)" + re.escape(WHERE_PLACEHOLDER), re.IGNORECASE)


@dataclass(frozen=True)
class QueryPlan:
    """Compiled SQL with its named parameters, consumed once per request."""

    sql: str
    params: NamedParams = field(default_factory=dict)
    provided: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedFields:
    """Column values resolved from one request object."""

    values: Dict[str, Any]
    missing_required: List[str]

    @property
    def ok(self) -> bool:
        return not self.missing_required


def count_placeholders(template: str) -> int:
    """Count `{WHERE}` placeholders in any letter case."""

    return len(_PLACEHOLDER_RE.findall(template))


def ensure_single_placeholder(template: str) -> None:
    """Raise `ConfigurationError` unless `template` has exactly one placeholder."""

    if not isinstance(template, str) or not template.strip():
        raise ConfigurationError("Read SQL template must be a non-empty string.")
    found = count_placeholders(template)
    if found != 1:
        raise ConfigurationError(
            f"Read SQL template must contain {WHERE_PLACEHOLDER} exactly once, found {found}."
        )


def compile_read(
    template: str,
    conditions: ParameterConditions,
    request: Mapping[str, Any],
    cache: PropertyCache,
    *,
    default_where: Optional[str] = None,
    param_names: Optional[Mapping[str, str]] = None,
) -> QueryPlan:
    """Compile a read template and conditions against one request.

    Conditions contribute in declared order and are joined with `AND`. When
    none contributes, `default_where` is used; with no default the
    placeholder is removed and the query is unfiltered.

    Args:
        template: SQL with one `{WHERE}` placeholder.
        conditions: Declared parameter conditions.
        request: Request object the condition names are looked up in.
        cache: Property cache used for case-insensitive lookups.
        default_where: Clause used when no condition contributes.
        param_names: Optional condition-name to bind-name overrides.

    Returns:
        The final SQL, its parameters and the names of provided conditions.
    """

    clauses: List[str] = []
    params: NamedParams = {}
    provided: List[str] = []
    overrides = param_names or {}

    for condition in conditions:
        found, value = cache.lookup(request, condition.name)
        param = overrides.get(condition.name, condition.name)
        if found:
            provided.append(condition.name)
            clauses.append(condition.sql_when_present)
            if condition.bind_value:
                params[param] = condition.default if value is None else value
            continue

        if condition.sql_when_absent:
            clauses.append(condition.sql_when_absent)
        if condition.bind_value and condition.default is not None:
            params[param] = condition.default

    if clauses:
        where = " AND ".join(clauses)
    else:
        where = default_where.strip() if default_where else ""

    sql, replaced = _PLACEHOLDER_RE.subn(
        lambda match: _where_replacement(match.group(1), where), template, count=1
    )
    if replaced != 1:
        raise ConfigurationError(
            f"Read SQL template must contain {WHERE_PLACEHOLDER} exactly once."
        )
    return QueryPlan(sql=sql.strip(), params=params, provided=tuple(provided))


def _where_replacement(leading: str, where: str) -> str:
    if not where:
        return ""
    return f"{leading or ' '}WHERE {where}"


def resolve_fields(
    mappings: FieldMappings,
    request: Mapping[str, Any],
    cache: PropertyCache,
) -> ResolvedFields:
    """Resolve mapped column values from one request object.

    Present fields keep their raw value (including null). Absent optional
    fields take the mapping default, and are omitted when it is `None`.
    Every missing required field is reported, not only the first one.
    """

    values: Dict[str, Any] = {}
    missing: List[str] = []
    for mapping in mappings:
        found, value = cache.lookup(request, mapping.json_property)
        if found:
            values[mapping.sql_column] = value
        elif mapping.required:
            missing.append(mapping.json_property)
        elif mapping.default is not None:
            values[mapping.sql_column] = mapping.default
    return ResolvedFields(values=values, missing_required=missing)


def bind_params(values: Mapping[str, Any]) -> NamedParams:
    """Key column values by their bind names."""

    return {bind_name(column): value for column, value in values.items()}


def _equals(columns: Sequence[str]) -> str:
    return " AND ".join(f"{column} = :{bind_name(column)}" for column in columns)


def build_existence_sql(table: str, key_columns: Sequence[str]) -> str:
    """Build a single-record existence check over the key columns."""

    if not key_columns:
        raise ConfigurationError("Existence check needs at least one key column.")
    return f"SELECT COUNT(*) AS CNT FROM {table} WHERE {_equals(key_columns)}"


def build_insert_sql(table: str, columns: Sequence[str]) -> str:
    if not columns:
        raise ValueError("INSERT needs at least one column.")
    column_sql = ", ".join(columns)
    placeholders = ", ".join(f":{bind_name(column)}" for column in columns)
    return f"INSERT INTO {table} ({column_sql}) VALUES ({placeholders})"


def build_update_sql(
    table: str,
    set_columns: Sequence[str],
    key_columns: Sequence[str],
    *,
    where: Optional[str] = None,
) -> str:
    """Build `UPDATE ... SET <non-key> WHERE <keys or custom clause>`."""

    if not set_columns:
        raise ValueError("UPDATE needs at least one column to set.")
    set_clause = ", ".join(f"{column} = :{bind_name(column)}" for column in set_columns)
    where_clause = where if where else _equals(key_columns)
    if not where_clause:
        raise ConfigurationError("UPDATE needs key columns or a WHERE clause.")
    return f"UPDATE {table} SET {set_clause} WHERE {where_clause}"


def build_bulk_existence_sql(
    table: str,
    key_columns: Sequence[str],
    key_tuples: Sequence[KeyTuple],
) -> Tuple[str, NamedParams]:
    """Build one query returning the positions of candidate keys that exist.

    Each candidate becomes `SELECT <i> AS idx WHERE EXISTS (...)` so the store
    compares keys with its own collation and type rules; only the matching
    positions come back. Branches are grouped into derived tables of at most
    `BULK_EXISTENCE_CHUNK` to stay under compound-select limits.
    """

    if not key_columns:
        raise ConfigurationError("Bulk existence check needs at least one key column.")
    if not key_tuples:
        raise ValueError("Bulk existence check needs at least one key.")

    params: NamedParams = {}
    branches = []
    for i, key in enumerate(key_tuples):
        if len(key) != len(key_columns):
            raise ValueError("Key tuple length does not match key columns.")
        parts = []
        for j, column in enumerate(key_columns):
            name = f"k{j}_{i}"
            params[name] = key[j]
            parts.append(f"{column} = :{name}")
        branches.append(
            f"SELECT {i} AS idx WHERE EXISTS "
            f"(SELECT 1 FROM {table} WHERE {' AND '.join(parts)})"
        )

    if len(branches) <= BULK_EXISTENCE_CHUNK:
        return " UNION ALL ".join(branches), params

    chunks = [
        " UNION ALL ".join(branches[start:start + BULK_EXISTENCE_CHUNK])
        for start in range(0, len(branches), BULK_EXISTENCE_CHUNK)
    ]
    sql = " UNION ALL ".join(
        f"SELECT idx FROM ({chunk}) AS g{n}" for n, chunk in enumerate(chunks)
    )
    return sql, params


def canonical_key_value(value: Any) -> str:
    """Stringify one key component the same way for request and row values."""

    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return str(int(value))
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def encode_key(values: Sequence[Any], delimiter: str = COMPOSITE_KEY_DELIMITER) -> str:
    """Encode a key tuple as one string, injectively.

    Components are joined with `delimiter`. Occurrences of the escape or
    delimiter character inside a component are escaped, so `("12", "34")`
    and `("1", "234")` never share an encoding, even if a value contains the
    delimiter itself.
    """

    if delimiter == COMPOSITE_KEY_ESCAPE or len(delimiter) != 1:
        raise ValueError("delimiter must be one character other than the escape.")
    escapes = {
        COMPOSITE_KEY_ESCAPE: COMPOSITE_KEY_ESCAPE + "e",
        delimiter: COMPOSITE_KEY_ESCAPE + "d",
    }
    parts = [
        "".join(escapes.get(ch, ch) for ch in canonical_key_value(value))
        for value in values
    ]
    return delimiter.join(parts)
