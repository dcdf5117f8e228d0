"""Public core API for endpoint definitions, query compilation and execution."""

from .batch import BatchUpsertEngine
from .definitions import (
    FieldMapping,
    FieldMappings,
    ParameterCondition,
    ParameterConditions,
    conditions_from_arrays,
    mappings_from_arrays,
)
from .errors import (
    ConfigurationError,
    EndpointError,
    ExecutionError,
    SecurityError,
    StatementError,
    StoreConnectionError,
    ValidationError,
)
from .identifiers import bind_name, require_identifier, validate_identifier
from .operations import BatchWriteOperation, ReadOperation, RequestContext, WriteOperation
from .property_cache import CacheStats, PropertyCache
from .query_builder import QueryPlan, compile_read, encode_key
from .read_executor import ReadExecutor, ReadResult
from .settings import DEFAULT_LIMITS, EngineLimits
from .specs import (
    BatchWriteSpec,
    ReadSpec,
    ReadSpecBuilder,
    WriteSpec,
    WriteSpecBuilder,
)
from .types import BatchResult, ReadMode, RecordAction, RecordError, ResultCode
from .validators import RequiredArrays, RequiredParameters
from .writer import RecordWriter, WriteOutcome, WriteState

__all__ = [
    "BatchUpsertEngine",
    "FieldMapping",
    "FieldMappings",
    "ParameterCondition",
    "ParameterConditions",
    "conditions_from_arrays",
    "mappings_from_arrays",
    "ConfigurationError",
    "EndpointError",
    "ExecutionError",
    "SecurityError",
    "StatementError",
    "StoreConnectionError",
    "ValidationError",
    "bind_name",
    "require_identifier",
    "validate_identifier",
    "BatchWriteOperation",
    "ReadOperation",
    "RequestContext",
    "WriteOperation",
    "CacheStats",
    "PropertyCache",
    "QueryPlan",
    "compile_read",
    "encode_key",
    "ReadExecutor",
    "ReadResult",
    "DEFAULT_LIMITS",
    "EngineLimits",
    "BatchWriteSpec",
    "ReadSpec",
    "ReadSpecBuilder",
    "WriteSpec",
    "WriteSpecBuilder",
    "BatchResult",
    "ReadMode",
    "RecordAction",
    "RecordError",
    "ResultCode",
    "RequiredArrays",
    "RequiredParameters",
    "RecordWriter",
    "WriteOutcome",
    "WriteState",
]
