"""
Connection handling helpers for database operations.

Both the local SQLite database and the remote Postgres database are reached
through SQLAlchemy async engines. Components accept either an AsyncEngine or
an AsyncConnection; these helpers give them one way to run statements and
read rows as dictionaries regardless of which they were handed.
"""

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

Connectable = AsyncConnection | AsyncEngine


@asynccontextmanager
async def execute_with_connection(
    conn: Connectable,
    transactional: bool = True,
) -> AsyncIterator[AsyncConnection]:
    """
    Context manager yielding a connection ready for execute() calls.

    Args:
        conn: Database connection or engine
        transactional: With an engine, wrap the block in a transaction
            (begin) when True, or use a bare connection (connect) when
            False. Ignored for an existing connection, whose caller owns
            transaction management.

    Example:
        >>> async with execute_with_connection(self._conn) as conn:
        ...     await conn.execute(query, params)
    """
    if isinstance(conn, AsyncEngine):
        if transactional:
            async with conn.begin() as connection:
                yield connection
        else:
            async with conn.connect() as connection:
                yield connection
    else:
        yield conn


def _as_clause(query: str | TextClause) -> TextClause:
    return text(query) if isinstance(query, str) else query


async def fetch_all(
    conn: AsyncConnection,
    query: str | TextClause,
    params: Mapping[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """Run a query and return every row as a column -> value dictionary."""
    result = await conn.execute(_as_clause(query), dict(params or {}))
    return [dict(row) for row in result.mappings().all()]


async def fetch_scalar(
    conn: AsyncConnection,
    query: str | TextClause,
    params: Mapping[str, Any] | None = None,
) -> Any:
    """Run a query and return the first column of the first row (or None)."""
    result = await conn.execute(_as_clause(query), dict(params or {}))
    return result.scalar()


async def fetch_column(
    conn: AsyncConnection,
    query: str | TextClause,
    params: Mapping[str, Any] | None = None,
) -> list[Any]:
    """Run a query and return the first column of every row."""
    result = await conn.execute(_as_clause(query), dict(params or {}))
    return list(result.scalars().all())
