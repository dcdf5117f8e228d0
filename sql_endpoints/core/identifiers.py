"""SQL identifier validation for configuration-supplied table/column names.

Only names coming from endpoint definitions pass through here. Request values
are always bound as parameters and never reach SQL text.
"""

from __future__ import annotations

import re

from .errors import SecurityError
from .settings import MAX_SQL_IDENTIFIER_LENGTH

_SEGMENT = r"[A-Za-z_][A-Za-z0-9_]*"
_PLAIN_RE = re.compile(rf"^{_SEGMENT}(?:\.{_SEGMENT})?$")
_BRACKETED_SEGMENT = rf"(?:{_SEGMENT}|\[{_SEGMENT}\])"
_BRACKETED_RE = re.compile(rf"^{_BRACKETED_SEGMENT}(?:\.{_BRACKETED_SEGMENT})?$")
_BIND_NAME_RE = re.compile(rf"^{_SEGMENT}$")

_FORBIDDEN_SEQUENCES = ("--", "/*", ";", "'", '"', "`")


def identifier_problem(
    identifier: str,
    allow_brackets: bool = False,
    *,
    max_length: int = MAX_SQL_IDENTIFIER_LENGTH,
) -> str | None:
    """Return why `identifier` is rejected, or `None` when it is valid."""

    if not isinstance(identifier, str) or not identifier:
        return "identifier must be a non-empty string"
    if len(identifier) > max_length:
        return f"identifier longer than {max_length} characters"
    for sequence in _FORBIDDEN_SEQUENCES:
        if sequence in identifier:
            return f"contains forbidden sequence {sequence!r}"
    pattern = _BRACKETED_RE if allow_brackets else _PLAIN_RE
    if not pattern.match(identifier):
        return "must be [schema.]name made of letters, digits and underscores"
    return None


def validate_identifier(
    identifier: str,
    allow_brackets: bool = False,
    *,
    max_length: int = MAX_SQL_IDENTIFIER_LENGTH,
) -> bool:
    """Return whether `identifier` is safe to place in SQL text."""

    return identifier_problem(identifier, allow_brackets, max_length=max_length) is None


def require_identifier(
    identifier: str,
    allow_brackets: bool = False,
    *,
    max_length: int = MAX_SQL_IDENTIFIER_LENGTH,
) -> str:
    """Validate `identifier` and return it unchanged.

    Raises:
        SecurityError: If the identifier is rejected.
    """

    problem = identifier_problem(identifier, allow_brackets, max_length=max_length)
    if problem is not None:
        raise SecurityError(str(identifier), problem)
    return identifier


def bind_name(identifier: str) -> str:
    """Return the parameter name used to bind values for a column identifier.

    `dbo.[Order_Id]` binds as `Order_Id`.
    """

    last = identifier.rsplit(".", 1)[-1]
    return last[1:-1] if last.startswith("[") and last.endswith("]") else last


def is_bind_name(name: str) -> bool:
    """Return whether `name` can be used as a `:name` parameter."""

    return isinstance(name, str) and bool(_BIND_NAME_RE.match(name))
