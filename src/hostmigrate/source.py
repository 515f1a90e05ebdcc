"""
LocalSource - read access to the self-hosted backend being migrated.

The local backend keeps everything in one SQLite database plus two
directories on disk:

    - user tables, described by the column catalog `_columns`
    - auth accounts and identities (`auth_users`, `auth_identities`)
    - row-level security policies (`_rls_policies`)
    - storage buckets and object metadata (`storage_buckets`, `storage_objects`)
      with object bytes under `<storage_dir>/<bucket>/<object name>`
    - edge function secrets and metadata (`_functions_secrets`,
      `_functions_metadata`) with sources under `<functions_dir>/<name>/`
    - dashboard settings as key/value pairs (`_dashboard`)

Both the item migrators and the verification layers read through this
class; nothing here writes to the local database.
"""

from __future__ import annotations

import io
import re
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from hostmigrate.exceptions import ItemMigrationError, ValidationError
from hostmigrate.identifiers import qualified_name, quote_identifier, validate_identifier
from hostmigrate.repositories._connection import (
    Connectable,
    execute_with_connection,
    fetch_all,
    fetch_column,
    fetch_scalar,
)

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")

DDL_HEADER = (
    "-- PostgreSQL DDL exported from the local backend\n"
    "-- Generated for migration to the hosted platform\n"
    "\n"
)


@dataclass(frozen=True)
class LocalColumn:
    """One column of a user table, as recorded in the column catalog."""

    table_name: str
    column_name: str
    pg_type: str
    is_nullable: bool = True
    default_value: str | None = None
    is_primary: bool = False


@dataclass(frozen=True)
class LocalPolicy:
    """One row-level security policy."""

    table_name: str
    policy_name: str
    command: str | None
    using_expr: str | None
    check_expr: str | None
    enabled: bool


@dataclass(frozen=True)
class LocalObject:
    """Metadata of one stored object."""

    bucket_id: str
    name: str
    mime_type: str | None


def map_default_to_postgres(default: str | None) -> str | None:
    """
    Translate a local column default into a Postgres default expression.

    gen_uuid() becomes gen_random_uuid(); now(), boolean and numeric
    literals are kept; anything else is emitted as a quoted string literal.
    """
    if not default:
        return None
    if default == "gen_uuid()":
        return "gen_random_uuid()"
    if default in ("now()", "true", "false") or _NUMERIC_RE.match(default):
        return default
    return "'" + default.replace("'", "''") + "'"


class LocalSource:
    """
    Reads tables, catalog metadata, object bytes and function sources.

    Args:
        conn: Engine or connection for the local SQLite database.
        storage_dir: Root directory of local object storage.
        functions_dir: Root directory of local edge functions.
    """

    def __init__(
        self,
        conn: Connectable,
        *,
        storage_dir: Path | str = "storage",
        functions_dir: Path | str = "functions",
    ) -> None:
        self._conn = conn
        self._storage_dir = Path(storage_dir)
        self._functions_dir = Path(functions_dir)

    @property
    def conn(self) -> Connectable:
        return self._conn

    # =========================================================================
    # Schema
    # =========================================================================

    async def list_tables(self) -> list[str]:
        """Names of all user tables registered in the column catalog."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_column(
                conn, "SELECT DISTINCT table_name FROM _columns ORDER BY table_name"
            )

    async def get_columns(self, table: str) -> list[LocalColumn]:
        """Columns of one table in declaration order."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            rows = await fetch_all(
                conn,
                """
                SELECT table_name, column_name, pg_type, is_nullable,
                       default_value, is_primary
                FROM _columns
                WHERE table_name = :table
                ORDER BY rowid
                """,
                {"table": table},
            )
        return [
            LocalColumn(
                table_name=row["table_name"],
                column_name=row["column_name"],
                pg_type=row["pg_type"],
                is_nullable=bool(row["is_nullable"]) if row["is_nullable"] is not None else True,
                default_value=row["default_value"],
                is_primary=bool(row["is_primary"]),
            )
            for row in rows
        ]

    async def column_types(self, table: str) -> dict[str, str]:
        """Map of column name to declared Postgres type for one table."""
        return {column.column_name: column.pg_type for column in await self.get_columns(table)}

    async def export_ddl(self) -> str:
        """
        Generate a Postgres DDL script for every user table.

        Raises:
            InvalidIdentifierError: If a table or column name is unsafe.
        """
        statements = [statement for _, statement in await self.table_ddl()]
        return DDL_HEADER + "\n".join(f"{statement};\n" for statement in statements)

    async def table_ddl(self) -> list[tuple[str, str]]:
        """
        One CREATE TABLE statement per user table, in the public schema.

        Columns are emitted primary keys first, then alphabetically, with
        NOT NULL and mapped defaults, followed by a PRIMARY KEY clause.

        Returns:
            (table name, statement) pairs, without trailing semicolons.

        Raises:
            InvalidIdentifierError: If a table or column name is unsafe.
        """
        statements = []
        for table in await self.list_tables():
            columns = await self.get_columns(table)
            if columns:
                statements.append((table, self._create_table(table, columns)))
        return statements

    def _create_table(self, table: str, columns: list[LocalColumn]) -> str:
        ordered = sorted(columns, key=lambda c: (not c.is_primary, c.column_name))
        lines = []
        for column in ordered:
            line = f"    {quote_identifier(column.column_name, 'column')} {column.pg_type.upper()}"
            if not column.is_nullable:
                line += " NOT NULL"
            default = map_default_to_postgres(column.default_value)
            if default:
                line += f" DEFAULT {default}"
            lines.append(line)

        primary_keys = [quote_identifier(c.column_name, "column") for c in ordered if c.is_primary]
        if primary_keys:
            lines.append(f"    PRIMARY KEY ({', '.join(primary_keys)})")

        body = ",\n".join(lines)
        return f"CREATE TABLE {qualified_name('public', table)} (\n{body}\n)"

    # =========================================================================
    # Table data
    # =========================================================================

    async def fetch_rows(self, table: str) -> list[dict[str, Any]]:
        """All rows of one user table."""
        quoted = quote_identifier(table, "table")
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(conn, f"SELECT * FROM {quoted}")  # nosec B608

    async def count_rows(self, table: str) -> int:
        quoted = quote_identifier(table, "table")
        async with execute_with_connection(self._conn, transactional=False) as conn:
            count = await fetch_scalar(conn, f"SELECT COUNT(*) FROM {quoted}")  # nosec B608
        return int(count or 0)

    async def order_column(self, table: str) -> str:
        """
        Discover the column a table's samples are ordered by.

        Primary key first, else the first declared catalog column, else the
        first column SQLite reports for the table.

        Raises:
            ValidationError: If the table has no discoverable columns.
        """
        async with execute_with_connection(self._conn, transactional=False) as conn:
            column = await fetch_scalar(
                conn,
                """
                SELECT column_name FROM _columns
                WHERE table_name = :table AND is_primary = 1
                ORDER BY rowid LIMIT 1
                """,
                {"table": table},
            )
            if column is None:
                column = await fetch_scalar(
                    conn,
                    "SELECT column_name FROM _columns WHERE table_name = :table "
                    "ORDER BY rowid LIMIT 1",
                    {"table": table},
                )
            if column is None:
                quoted = quote_identifier(table, "table")
                info = await fetch_all(conn, f"PRAGMA table_info({quoted})")
                if info:
                    column = info[0]["name"]
        if column is None:
            raise ValidationError(f"no columns found for table {table}")
        return validate_identifier(column, "column")

    async def sample_rows(
        self,
        table: str,
        order_column: str,
        limit: int,
        *,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """First (or last) rows of a table by the given order column."""
        quoted = quote_identifier(table, "table")
        order = quote_identifier(order_column, "column")
        direction = "DESC" if descending else "ASC"
        query = f"SELECT * FROM {quoted} ORDER BY {order} {direction} LIMIT :limit"  # nosec B608
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(conn, query, {"limit": limit})

    async def random_rows(self, table: str, limit: int) -> list[dict[str, Any]]:
        """Rows chosen by SQLite's RANDOM() ordering."""
        quoted = quote_identifier(table, "table")
        query = f"SELECT * FROM {quoted} ORDER BY RANDOM() LIMIT :limit"  # nosec B608
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(conn, query, {"limit": limit})

    # =========================================================================
    # Auth
    # =========================================================================

    async def fetch_users(self) -> list[dict[str, Any]]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(
                conn,
                """
                SELECT id, email, encrypted_password, email_confirmed_at,
                       confirmation_token, recovery_token, email_change,
                       last_sign_in_at, raw_app_meta_data, raw_user_meta_data,
                       is_super_admin, is_anonymous, role, created_at, updated_at
                FROM auth_users
                ORDER BY created_at, id
                """,
            )

    async def count_users(self) -> int:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return int(await fetch_scalar(conn, "SELECT COUNT(*) FROM auth_users") or 0)

    async def fetch_identities(self) -> list[dict[str, Any]]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(
                conn,
                """
                SELECT id, user_id, identity_data, provider, provider_id,
                       last_sign_in_at, created_at, updated_at
                FROM auth_identities
                ORDER BY created_at, id
                """,
            )

    # =========================================================================
    # Row-level security
    # =========================================================================

    async def list_policies(self) -> list[LocalPolicy]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            rows = await fetch_all(
                conn,
                """
                SELECT table_name, policy_name, command, using_expr, check_expr, enabled
                FROM _rls_policies
                ORDER BY table_name, policy_name
                """,
            )
        return [
            LocalPolicy(
                table_name=row["table_name"],
                policy_name=row["policy_name"],
                command=row["command"],
                using_expr=row["using_expr"],
                check_expr=row["check_expr"],
                enabled=bool(row["enabled"]),
            )
            for row in rows
        ]

    async def list_rls_tables(self) -> list[str]:
        """Tables with at least one enabled policy."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_column(
                conn,
                "SELECT DISTINCT table_name FROM _rls_policies WHERE enabled = 1 "
                "ORDER BY table_name",
            )

    # =========================================================================
    # Storage
    # =========================================================================

    async def fetch_buckets(self) -> list[dict[str, Any]]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(
                conn,
                """
                SELECT id, name, public, file_size_limit, allowed_mime_types,
                       created_at, updated_at
                FROM storage_buckets
                ORDER BY id
                """,
            )

    async def list_bucket_ids(self) -> list[str]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_column(conn, "SELECT id FROM storage_buckets ORDER BY id")

    async def fetch_objects(self, bucket_id: str) -> list[LocalObject]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            rows = await fetch_all(
                conn,
                """
                SELECT bucket_id, name, mime_type
                FROM storage_objects
                WHERE bucket_id = :bucket_id
                ORDER BY name
                """,
                {"bucket_id": bucket_id},
            )
        return [
            LocalObject(bucket_id=row["bucket_id"], name=row["name"], mime_type=row["mime_type"])
            for row in rows
        ]

    async def count_objects(self, bucket_id: str) -> int:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            count = await fetch_scalar(
                conn,
                "SELECT COUNT(*) FROM storage_objects WHERE bucket_id = :bucket_id",
                {"bucket_id": bucket_id},
            )
        return int(count or 0)

    def read_object(self, bucket_id: str, name: str) -> bytes:
        """
        Read one object's bytes from local storage.

        Raises:
            ItemMigrationError: If the path escapes the bucket directory or
                the file cannot be read.
        """
        bucket_dir = (self._storage_dir / bucket_id).resolve()
        path = (bucket_dir / name).resolve()
        if not path.is_relative_to(bucket_dir):
            raise ItemMigrationError(f"object path escapes bucket directory: {name}")
        try:
            return path.read_bytes()
        except OSError as e:
            raise ItemMigrationError(f"read file {name}: {e}") from e

    # =========================================================================
    # Functions
    # =========================================================================

    async def fetch_secrets(self) -> list[dict[str, str]]:
        """Function secrets as stored: name plus encrypted base64 value."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_all(
                conn, "SELECT name, value FROM _functions_secrets ORDER BY name"
            )

    async def list_secret_names(self) -> list[str]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_column(conn, "SELECT name FROM _functions_secrets ORDER BY name")

    async def function_verify_jwt(self, name: str) -> bool:
        """The function's verify-JWT flag; True when no metadata is recorded."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            value = await fetch_scalar(
                conn,
                "SELECT verify_jwt FROM _functions_metadata WHERE name = :name",
                {"name": name},
            )
        return True if value is None else bool(value)

    def package_function(self, name: str) -> bytes:
        """
        Archive a function's source directory as an in-memory tar.gz.

        Entries are prefixed with "<name>/".

        Raises:
            ItemMigrationError: If the function directory does not exist.
        """
        function_dir = self._functions_dir / name
        if not function_dir.is_dir():
            raise ItemMigrationError(f"function directory not found: {function_dir}")

        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
            for path in sorted(function_dir.rglob("*")):
                relative = path.relative_to(function_dir).as_posix()
                archive.add(path, arcname=f"{name}/{relative}", recursive=False)
        return buffer.getvalue()

    # =========================================================================
    # Settings
    # =========================================================================

    async def get_setting(self, key: str) -> str | None:
        """Read one dashboard setting, or None when unset."""
        async with execute_with_connection(self._conn, transactional=False) as conn:
            return await fetch_scalar(
                conn, "SELECT value FROM _dashboard WHERE key = :key", {"key": key}
            )


__all__ = [
    "DDL_HEADER",
    "LocalColumn",
    "LocalObject",
    "LocalPolicy",
    "LocalSource",
    "map_default_to_postgres",
]
