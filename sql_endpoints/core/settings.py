"""Engine limits and reserved tokens.

Values are fixed at import time. Components take an `EngineLimits` instance so
tests can inject smaller bounds without touching module state.
"""

from __future__ import annotations

from dataclasses import dataclass

MAX_BATCH_SIZE = 1000
MAX_SQL_IDENTIFIER_LENGTH = 128
MAX_CACHE_SIZE = 1000

# ASCII unit separator: never produced by ordinary JSON payload text.
COMPOSITE_KEY_DELIMITER = "\x1f"
COMPOSITE_KEY_ESCAPE = "\x1b"

WHERE_PLACEHOLDER = "{WHERE}"
DEFAULT_RECORDS_FIELD = "Records"


@dataclass(frozen=True)
class EngineLimits:
    """Bounds applied by the batch engine, identifier validator and cache."""

    max_batch_size: int = MAX_BATCH_SIZE
    max_identifier_length: int = MAX_SQL_IDENTIFIER_LENGTH
    max_cache_size: int = MAX_CACHE_SIZE
    composite_key_delimiter: str = COMPOSITE_KEY_DELIMITER

    def __post_init__(self) -> None:
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1.")
        if self.max_identifier_length < 1:
            raise ValueError("max_identifier_length must be >= 1.")
        if self.max_cache_size < 1:
            raise ValueError("max_cache_size must be >= 1.")
        if len(self.composite_key_delimiter) != 1:
            raise ValueError("composite_key_delimiter must be a single character.")
        if self.composite_key_delimiter == COMPOSITE_KEY_ESCAPE:
            raise ValueError("composite_key_delimiter must differ from the escape character.")


DEFAULT_LIMITS = EngineLimits()
