"""
Migrators that write to the remote database directly.

    - SchemaMigrator: replays the exported DDL
    - DataMigrator: copies one table's rows
    - UsersMigrator / IdentitiesMigrator: copy the auth store
    - RLSMigrator: enables row security and creates policies
    - BucketsMigrator: copies bucket metadata

Row copies run inside one transaction per item: a failing row rolls the
whole item back and leaves previously completed items untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.exceptions import InvalidPolicyCommandError
from hostmigrate.identifiers import qualified_name, quote_identifier, validate_identifier
from hostmigrate.migrators._values import (
    coerce_value,
    insert_row,
    to_bool,
    to_json_text,
    to_text_array,
    to_timestamp,
)
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.models import ItemType, MigrationItem
from hostmigrate.rollback_info import (
    BucketsRollback,
    DataRollback,
    IdentitiesRollback,
    PolicyRef,
    RLSRollback,
    SchemaRollback,
    UsersRollback,
)
from hostmigrate.source import LocalPolicy

logger = logging.getLogger(__name__)

POLICY_COMMANDS = frozenset({"ALL", "SELECT", "INSERT", "UPDATE", "DELETE"})

Converter = Callable[[Any], Any]

USER_COLUMNS: dict[str, Converter | None] = {
    "id": None,
    "email": None,
    "encrypted_password": None,
    "email_confirmed_at": to_timestamp,
    "confirmation_token": None,
    "recovery_token": None,
    "email_change": None,
    "last_sign_in_at": to_timestamp,
    "raw_app_meta_data": to_json_text,
    "raw_user_meta_data": to_json_text,
    "is_super_admin": to_bool,
    "is_anonymous": to_bool,
    "role": None,
    "created_at": to_timestamp,
    "updated_at": to_timestamp,
}

IDENTITY_COLUMNS: dict[str, Converter | None] = {
    "id": None,
    "user_id": None,
    "identity_data": to_json_text,
    "provider": None,
    "provider_id": None,
    "last_sign_in_at": to_timestamp,
    "created_at": to_timestamp,
    "updated_at": to_timestamp,
}

BUCKET_COLUMNS: dict[str, Converter | None] = {
    "id": None,
    "name": None,
    "public": to_bool,
    "file_size_limit": lambda v: None if v is None else int(v),
    "allowed_mime_types": to_text_array,
    "created_at": to_timestamp,
    "updated_at": to_timestamp,
}


def _convert(row: Mapping[str, Any], columns: Mapping[str, Converter | None]) -> dict[str, Any]:
    converted = {}
    for column, converter in columns.items():
        value = row.get(column)
        converted[column] = converter(value) if converter and value is not None else value
    return converted


async def _copy_rows(
    engine: AsyncEngine,
    table_sql: str,
    rows: list[dict[str, Any]],
    columns: Mapping[str, Converter | None],
) -> list[str]:
    """Insert every row in one transaction; return the inserted ids."""
    ids = []
    async with engine.begin() as conn:
        for row in rows:
            await insert_row(conn, table_sql, _convert(row, columns))
            ids.append(str(row["id"]))
    return ids


class SchemaMigrator:
    """Replays the local schema as Postgres DDL, one statement per table."""

    item_type = ItemType.SCHEMA

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> SchemaRollback:
        statements = await ctx.source.table_ddl()
        async with ctx.remote_database() as engine, engine.begin() as conn:
            for table, statement in statements:
                logger.debug("Creating table %s", table)
                await conn.exec_driver_sql(statement)
        return SchemaRollback(tables=[table for table, _ in statements])


class DataMigrator:
    """Copies every row of one table, converting values by declared column type."""

    item_type = ItemType.DATA

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> DataRollback:
        table = validate_identifier(item.item_name, "table")
        table_sql = qualified_name("public", table)
        column_types = await ctx.source.column_types(table)
        rows = await ctx.source.fetch_rows(table)

        async with ctx.remote_database() as engine, engine.begin() as conn:
            for row in rows:
                converted = {
                    column: coerce_value(value, column_types.get(column))
                    for column, value in row.items()
                }
                await insert_row(conn, table_sql, converted)

        logger.info("Copied %d rows of %s", len(rows), table)
        return DataRollback(table_name=table, row_count=len(rows))


class UsersMigrator:
    """Copies local accounts into auth.users, preserving ids and hashes."""

    item_type = ItemType.USERS

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> UsersRollback:
        rows = await ctx.source.fetch_users()
        async with ctx.remote_database() as engine:
            user_ids = await _copy_rows(engine, "auth.users", rows, USER_COLUMNS)
        return UsersRollback(user_ids=user_ids)


class IdentitiesMigrator:
    """Copies OAuth identities into auth.identities."""

    item_type = ItemType.IDENTITIES

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> IdentitiesRollback:
        rows = await ctx.source.fetch_identities()
        async with ctx.remote_database() as engine:
            identity_ids = await _copy_rows(engine, "auth.identities", rows, IDENTITY_COLUMNS)
        return IdentitiesRollback(identity_ids=identity_ids)


def _is_already_enabled(error: Exception) -> bool:
    message = str(error).lower()
    return "already enabled" in message or "already exists" in message


def build_policy_statement(policy: LocalPolicy) -> str:
    """
    Build the CREATE POLICY statement for one local policy.

    Raises:
        InvalidIdentifierError: If the table or policy name is unsafe.
        InvalidPolicyCommandError: If the command is not a policy verb.
    """
    table_sql = qualified_name("public", policy.table_name)
    policy_sql = quote_identifier(policy.policy_name, "policy")
    command = (policy.command or "ALL").strip().upper()
    if command not in POLICY_COMMANDS:
        raise InvalidPolicyCommandError(policy.command or "", policy.policy_name)

    statement = f"CREATE POLICY {policy_sql} ON {table_sql} FOR {command}"
    if policy.using_expr:
        statement += f" USING ({policy.using_expr})"
    if policy.check_expr:
        statement += f" WITH CHECK ({policy.check_expr})"
    return statement


class RLSMigrator:
    """
    Recreates enabled local policies on the remote tables.

    The whole item runs in one transaction: a failed CREATE POLICY rolls
    back every policy created before it, so a retry starts clean. Each
    enable runs in a savepoint so its failure does not abort the
    transaction. Enable failures reporting an already-enabled state are
    ignored; other enable failures are logged and the create-policy
    statement decides the outcome.
    """

    item_type = ItemType.RLS

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> RLSRollback:
        policies = [policy for policy in await ctx.source.list_policies() if policy.enabled]
        # Validate everything before touching the remote side.
        statements = [(policy, build_policy_statement(policy)) for policy in policies]

        created = []
        async with ctx.remote_database() as engine, engine.begin() as conn:
            for policy, statement in statements:
                table_sql = qualified_name("public", policy.table_name)
                try:
                    async with conn.begin_nested():
                        await conn.exec_driver_sql(
                            f"ALTER TABLE {table_sql} ENABLE ROW LEVEL SECURITY"
                        )
                except Exception as e:
                    if not _is_already_enabled(e):
                        logger.warning(
                            "Enabling row security on %s failed: %s",
                            policy.table_name,
                            e,
                            extra={"table": policy.table_name},
                        )

                await conn.exec_driver_sql(statement)
                created.append(
                    PolicyRef(table_name=policy.table_name, policy_name=policy.policy_name)
                )

        return RLSRollback(policies=created)


class BucketsMigrator:
    """Copies bucket metadata into storage.buckets."""

    item_type = ItemType.STORAGE_BUCKETS

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> BucketsRollback:
        rows = await ctx.source.fetch_buckets()
        for row in rows:
            validate_identifier(row["id"], "bucket")
        async with ctx.remote_database() as engine:
            bucket_ids = await _copy_rows(engine, "storage.buckets", rows, BUCKET_COLUMNS)
        return BucketsRollback(bucket_ids=bucket_ids)


__all__ = [
    "BUCKET_COLUMNS",
    "IDENTITY_COLUMNS",
    "POLICY_COMMANDS",
    "USER_COLUMNS",
    "BucketsMigrator",
    "DataMigrator",
    "IdentitiesMigrator",
    "RLSMigrator",
    "SchemaMigrator",
    "UsersMigrator",
    "build_policy_statement",
]
