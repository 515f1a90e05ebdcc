"""
SQL identifier validation.

Every table, column, policy, bucket or secret name read from local data is
checked here before it is interpolated into a generated statement. Only
letters, digits and underscores are accepted; anything else is rejected,
never escaped.
"""

from __future__ import annotations

import re

from hostmigrate.exceptions import InvalidIdentifierError

_IDENTIFIER_RE = re.compile(r"[A-Za-z0-9_]+")
_SLUG_RE = re.compile(r"[A-Za-z0-9_-]+")


def is_valid_identifier(name: str) -> bool:
    """Return True if name is non-empty and uses only [A-Za-z0-9_]."""
    return bool(name) and _IDENTIFIER_RE.fullmatch(name) is not None


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Validate an identifier and return it unchanged.

    Args:
        name: The identifier to check.
        kind: What the identifier names, used in the error message.

    Raises:
        InvalidIdentifierError: If name contains any other character.
    """
    if not is_valid_identifier(name):
        raise InvalidIdentifierError(name, kind)
    return name


def quote_identifier(name: str, kind: str = "identifier") -> str:
    """
    Validate an identifier and return it double-quoted.

    Example:
        >>> quote_identifier("todos")
        '"todos"'
    """
    return f'"{validate_identifier(name, kind)}"'


def qualified_name(schema: str, name: str, kind: str = "table") -> str:
    """Return schema."name" with name validated and quoted."""
    return f"{schema}.{quote_identifier(name, kind)}"


def validate_slug(name: str, kind: str = "function") -> str:
    """
    Validate a URL slug such as a function name: identifier characters or "-".

    Raises:
        InvalidIdentifierError: If name is empty or contains any other character.
    """
    if not name or _SLUG_RE.fullmatch(name) is None:
        raise InvalidIdentifierError(name, kind)
    return name


__all__ = [
    "is_valid_identifier",
    "qualified_name",
    "quote_identifier",
    "validate_identifier",
    "validate_slug",
]
