"""
Cross-engine value normalization.

SQLite and Postgres return the same logical value in different Python
shapes: a boolean may be True or 1, a timestamp may be a datetime or an ISO
string, a blob may be bytes or text. Normalizing both sides before
comparison keeps those representation differences from being reported as
data mismatches.

Rules:
    - bytes / bytearray / memoryview -> str (UTF-8, undecodable bytes replaced)
    - bool -> 0 / 1
    - float or Decimal with an integral value -> int, other Decimal -> float
    - datetime -> UTC "YYYY-MM-DDTHH:MM:SS[.ffffff]Z"
    - str that parses as a timestamp -> same canonical form
    - str holding a plain decimal number -> the number, by the Decimal rule
    - dict / list, or str holding a JSON object or array -> sorted JSON text
    - UUID -> str
    - anything else unchanged

normalize_value is idempotent: normalizing a normalized value is a no-op.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

# Date followed by a time part; bare dates and numbers are left alone.
_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}(:?\d{2})?)?$"
)

# Plain decimal text as SQLite keeps NUMERIC values. Leading zeros mean an
# identifier such as a postal code, not a number.
_NUMERIC_RE = re.compile(r"^-?(0|[1-9]\d*)(\.\d+)?$")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as a canonical UTC instant."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    if value.microsecond:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime | None:
    """
    Parse an ISO-8601 / RFC 3339 style timestamp string.

    Naive timestamps are taken as UTC, which is how the local backend
    stores them.

    Returns:
        Aware datetime, or None if the string is not a timestamp.
    """
    text = value.strip()
    if not _TIMESTAMP_RE.match(text):
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    elif re.search(r"[+-]\d{2}$", text):
        text += ":00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _canonical_json(value: str) -> str:
    # jsonb comes back re-spaced by Postgres; compare documents, not text.
    if value[:1] not in ("{", "["):
        return value
    try:
        return json.dumps(json.loads(value), sort_keys=True, default=str)
    except ValueError:
        return value


def normalize_value(value: Any) -> Any:
    """Normalize one value for cross-engine comparison."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return normalize_value(bytes(value).decode("utf-8", errors="replace"))
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return format_timestamp(parsed)
        if _NUMERIC_RE.match(value):
            return normalize_value(Decimal(value))
        return _canonical_json(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return value


def normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize every value of a row."""
    return {column: normalize_value(value) for column, value in row.items()}


def row_key(row: Mapping[str, Any]) -> str:
    """
    Build a comparison key for an already-normalized row.

    Rows with the same normalized values produce the same key regardless
    of column order.
    """
    return json.dumps(row, sort_keys=True, default=str)


__all__ = [
    "format_timestamp",
    "normalize_row",
    "normalize_value",
    "parse_timestamp",
    "row_key",
]
