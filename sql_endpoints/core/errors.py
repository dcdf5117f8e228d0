"""Exception types raised by endpoint definitions and request handling."""

from __future__ import annotations

from typing import Iterable, Optional


class EndpointError(Exception):
    """Base class for all package errors."""


class ConfigurationError(EndpointError, ValueError):
    """Raised while building an endpoint definition that cannot be run."""


class SecurityError(ConfigurationError):
    """Raised when a configured SQL identifier fails validation."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Invalid SQL identifier {identifier!r}: {reason}.")


class ValidationError(EndpointError, ValueError):
    """Raised when one request (or one batch record) is not acceptable."""

    def __init__(self, message: str, missing: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing = list(missing or ())

    @classmethod
    def missing_fields(cls, names: Iterable[str]) -> ValidationError:
        missing = list(names)
        return cls(f"Missing required fields: {', '.join(missing)}", missing)


class StatementError(EndpointError):
    """One statement failed for a reason attributable to its values."""

    def __init__(self, message: str, *, sql: str = ""):
        super().__init__(message)
        self.sql = sql


class ExecutionError(EndpointError):
    """Store failure that is not attributable to a single record."""


class StoreConnectionError(ExecutionError):
    """The store connection is closed or no longer usable."""
