"""
RemoteCatalog - read-side queries against the remote database.

Used by the verification layers only. Catalog introspection (tables,
columns, row security, foreign keys) reads the Postgres system views;
counts, samples and orphan lookups are plain SQL against schema-qualified
tables in the public, auth and storage schemas.

Every identifier interpolated into a statement is validated first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncConnection

from hostmigrate.identifiers import qualified_name, quote_identifier
from hostmigrate.repositories._connection import fetch_all, fetch_column, fetch_scalar


@dataclass(frozen=True)
class ForeignKey:
    """One single-column foreign key constraint in the public schema."""

    constraint_name: str
    from_table: str
    from_column: str
    to_table: str
    to_column: str

    def to_dict(self) -> dict[str, str]:
        return {
            "constraint": self.constraint_name,
            "from_table": self.from_table,
            "from_column": self.from_column,
            "to_table": self.to_table,
            "to_column": self.to_column,
        }


class RemoteCatalog:
    """
    Queries one open remote connection.

    Args:
        conn: Connection to the remote database. The caller owns it.
    """

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    async def reset(self) -> None:
        """
        End the connection's open transaction, if any.

        After a failed statement Postgres refuses every further statement in
        the same transaction, so callers reset before the next query.
        """
        if self._conn.in_transaction():
            await self._conn.rollback()

    # =========================================================================
    # Introspection
    # =========================================================================

    async def list_tables(self) -> list[str]:
        return await fetch_column(
            self._conn,
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
            ORDER BY table_name
            """,
        )

    async def column_count(self, table: str) -> int:
        count = await fetch_scalar(
            self._conn,
            """
            SELECT COUNT(*)
            FROM information_schema.columns
            WHERE table_schema = 'public' AND table_name = :table
            """,
            {"table": table},
        )
        return int(count or 0)

    async def list_rls_tables(self) -> list[str]:
        """Public tables with row security enabled."""
        return await fetch_column(
            self._conn,
            """
            SELECT tablename
            FROM pg_tables
            WHERE schemaname = 'public' AND rowsecurity = true
            ORDER BY tablename
            """,
        )

    async def foreign_keys(self) -> list[ForeignKey]:
        rows = await fetch_all(
            self._conn,
            """
            SELECT tc.constraint_name,
                   tc.table_name AS from_table,
                   kcu.column_name AS from_column,
                   ccu.table_name AS to_table,
                   ccu.column_name AS to_column
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.table_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_schema = 'public'
            ORDER BY tc.constraint_name
            """,
        )
        return [ForeignKey(**row) for row in rows]

    # =========================================================================
    # Counts and samples
    # =========================================================================

    async def count_rows(self, table: str) -> int:
        query = f"SELECT COUNT(*) FROM {qualified_name('public', table)}"  # nosec B608
        return int(await fetch_scalar(self._conn, query) or 0)

    async def count_users(self) -> int:
        return int(await fetch_scalar(self._conn, "SELECT COUNT(*) FROM auth.users") or 0)

    async def count_objects(self, bucket_id: str) -> int:
        count = await fetch_scalar(
            self._conn,
            "SELECT COUNT(*) FROM storage.objects WHERE bucket_id = :bucket_id",
            {"bucket_id": bucket_id},
        )
        return int(count or 0)

    async def list_bucket_ids(self) -> list[str]:
        return await fetch_column(self._conn, "SELECT id FROM storage.buckets ORDER BY id")

    async def sample_rows(
        self,
        table: str,
        order_column: str,
        limit: int,
        *,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        order = quote_identifier(order_column, "column")
        direction = "DESC" if descending else "ASC"
        query = (
            f"SELECT * FROM {qualified_name('public', table)} "  # nosec B608
            f"ORDER BY {order} {direction} LIMIT :limit"
        )
        return await fetch_all(self._conn, query, {"limit": limit})

    async def rows_by_keys(
        self,
        table: str,
        key_column: str,
        keys: list[Any],
    ) -> list[dict[str, Any]]:
        """
        Rows whose key column takes one of the given values.

        Keys are bound as given and compared in the column's own type, so
        the caller converts them first (see coerce_value). None keys are
        dropped.
        """
        values = [key for key in keys if key is not None]
        if not values:
            return []
        key = quote_identifier(key_column, "column")
        query = text(
            f"SELECT * FROM {qualified_name('public', table)} "  # nosec B608
            f"WHERE {key} IN :keys"
        ).bindparams(bindparam("keys", expanding=True))
        return await fetch_all(self._conn, query, {"keys": values})

    async def probe_table(self, table: str, limit: int = 1) -> tuple[list[str], int]:
        """
        Run a bounded SELECT.

        Returns:
            The result's column names and the number of rows returned.
        """
        query = f"SELECT * FROM {qualified_name('public', table)} LIMIT :limit"  # nosec B608
        result = await self._conn.execute(text(query), {"limit": limit})
        columns = list(result.keys())
        return columns, len(result.fetchall())

    # =========================================================================
    # Foreign key orphans
    # =========================================================================

    def _orphan_clause(self, fk: ForeignKey) -> str:
        from_table = qualified_name("public", fk.from_table)
        to_table = qualified_name("public", fk.to_table)
        from_column = quote_identifier(fk.from_column, "column")
        to_column = quote_identifier(fk.to_column, "column")
        return (
            f"FROM {from_table} f WHERE f.{from_column} IS NOT NULL "  # nosec B608
            f"AND NOT EXISTS (SELECT 1 FROM {to_table} t WHERE t.{to_column} = f.{from_column})"
        )

    async def orphan_count(self, fk: ForeignKey) -> int:
        """Rows whose non-null reference has no matching parent row."""
        query = f"SELECT COUNT(*) {self._orphan_clause(fk)}"  # nosec B608
        return int(await fetch_scalar(self._conn, query) or 0)

    async def reference_count(self, fk: ForeignKey) -> int:
        """Rows with a non-null reference."""
        from_column = quote_identifier(fk.from_column, "column")
        query = (
            f"SELECT COUNT(*) FROM {qualified_name('public', fk.from_table)} "  # nosec B608
            f"WHERE {from_column} IS NOT NULL"
        )
        return int(await fetch_scalar(self._conn, query) or 0)

    async def orphan_samples(self, fk: ForeignKey, limit: int) -> list[Any]:
        """Up to `limit` distinct orphaned reference values."""
        from_column = quote_identifier(fk.from_column, "column")
        query = (
            f"SELECT DISTINCT f.{from_column} {self._orphan_clause(fk)} "  # nosec B608
            "LIMIT :limit"
        )
        return await fetch_column(self._conn, query, {"limit": limit})


__all__ = ["ForeignKey", "RemoteCatalog"]
