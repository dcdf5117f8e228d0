"""Request validators run before an operation touches the store."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from .envelopes import Envelope, ko
from .property_cache import PropertyCache


class RequestValidator(Protocol):
    def validate(self, request: Mapping[str, Any], cache: PropertyCache) -> Optional[Envelope]: ...


class RequiredParameters:
    """Reject requests missing any of the named parameters."""

    def __init__(self, names: Sequence[str]):
        self.names = tuple(names)

    def validate(self, request: Mapping[str, Any], cache: PropertyCache) -> Optional[Envelope]:
        for name in self.names:
            found, _ = cache.lookup(request, name)
            if not found:
                return ko(
                    f"Parameter {name} not specified. "
                    f"Required parameters: {','.join(self.names)}"
                )
        return None


class RequiredArrays:
    """Reject requests whose named parameters are missing or not arrays."""

    def __init__(self, names: Sequence[str]):
        self.names = tuple(names)

    def validate(self, request: Mapping[str, Any], cache: PropertyCache) -> Optional[Envelope]:
        for name in self.names:
            found, value = cache.lookup(request, name)
            if not found:
                return ko(f"Parameter {name} not specified")
            if not isinstance(value, list):
                return ko(f"Parameter {name} must be an array")
        return None
