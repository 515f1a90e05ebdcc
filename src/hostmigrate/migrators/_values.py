"""
Conversion of local column values into the types the remote driver expects.

SQLite hands back loosely typed values (0/1 for booleans, ISO text for
timestamps, JSON as text). The remote driver binds parameters against the
declared Postgres column types, so each value is converted using the type
recorded for its column.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from hostmigrate.identifiers import quote_identifier
from hostmigrate.normalize import parse_timestamp

_TRUE_STRINGS = frozenset({"1", "t", "true", "y", "yes", "on"})


def to_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def to_timestamp(value: Any) -> datetime | None:
    """
    Convert a stored timestamp into an aware datetime.

    Raises:
        ValueError: If a non-empty value is not a recognizable timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = parse_timestamp(str(value))
    if parsed is None:
        # Bare dates and other ISO forms the strict pattern skips.
        parsed = datetime.fromisoformat(str(value))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
    return parsed


def to_json_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    if isinstance(value, str):
        return value
    return json.dumps(value)


def to_text_array(value: Any) -> list[str] | None:
    """Accept a JSON array or a comma-separated list."""
    if value is None or value == "":
        return None
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raw = str(value).strip()
    if raw.startswith("["):
        return [str(v) for v in json.loads(raw)]
    return [part.strip() for part in raw.split(",") if part.strip()]


def coerce_value(value: Any, pg_type: str | None) -> Any:
    """
    Convert one local value to the Python type for a Postgres column type.

    Args:
        value: Value as read from SQLite.
        pg_type: Declared type from the local column catalog; unknown or
            missing types are sent as text.
    """
    if value is None:
        return None
    kind = (pg_type or "text").lower()
    if kind == "integer":
        return int(value)
    if kind == "numeric":
        return value if isinstance(value, Decimal) else Decimal(str(value))
    if kind == "boolean":
        return to_bool(value)
    if kind == "timestamptz":
        return to_timestamp(value)
    if kind == "jsonb":
        return to_json_text(value)
    if kind == "bytea":
        return bytes(value) if isinstance(value, (bytes, bytearray)) else str(value).encode("utf-8")
    return value if isinstance(value, str) else str(value)


async def insert_row(conn: AsyncConnection, table_sql: str, row: Mapping[str, Any]) -> None:
    """
    Insert one row with one bound parameter per column.

    Args:
        conn: Remote connection, inside the caller's transaction.
        table_sql: Already validated, schema-qualified table name.
        row: Column -> converted value.

    Raises:
        InvalidIdentifierError: If a column name is unsafe.
    """
    columns = [quote_identifier(column, "column") for column in row]
    placeholders = [f":p{i}" for i in range(len(columns))]
    params = {f"p{i}": value for i, value in enumerate(row.values())}
    statement = (
        f"INSERT INTO {table_sql} ({', '.join(columns)}) "  # nosec B608
        f"VALUES ({', '.join(placeholders)})"
    )
    await conn.execute(text(statement), params)


__all__ = [
    "coerce_value",
    "insert_row",
    "to_bool",
    "to_json_text",
    "to_text_array",
    "to_timestamp",
]
