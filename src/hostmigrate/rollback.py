"""
RollbackRunner - explicit reversal of completed items.

Rollback is operator-triggered only; a failed run never rolls itself back.
Completed items are undone in reverse selection order using the rollback
descriptor each migrator recorded. Every item is attempted even when an
earlier one fails; failures are collected and reported together.

Undo actions by item type:
    - schema: DROP TABLE ... CASCADE, tables in reverse creation order
    - data: TRUNCATE the table, falling back to DELETE
    - users / identities: delete the copied rows by id
    - rls: DROP POLICY IF EXISTS for every created policy
    - storage_buckets: delete the buckets' objects, then the buckets
    - storage_files: delete every uploaded object (already gone is fine)
    - functions: delete the deployed function
    - secrets: delete the pushed secrets
    - auth_config / oauth_config / email_templates: marked only

Usage:
    >>> runner = RollbackRunner(store, remote)
    >>> migration = await runner.rollback(migration)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.exceptions import InvalidMigrationStateError, RollbackError
from hostmigrate.identifiers import qualified_name, quote_identifier
from hostmigrate.models import ItemStatus, ItemType, Migration, MigrationItem, MigrationStatus
from hostmigrate.observability import (
    ATTR_ITEM_COUNT,
    ATTR_ITEM_NAME,
    ATTR_ITEM_TYPE,
    ATTR_MIGRATION_ID,
    Tracer,
    create_tracer,
)
from hostmigrate.remote.access import RemoteAccess
from hostmigrate.repositories.state import StateStore
from hostmigrate.rollback_info import (
    BucketsRollback,
    DataRollback,
    FilesRollback,
    FunctionsRollback,
    IdentitiesRollback,
    RLSRollback,
    RollbackDescriptor,
    SchemaRollback,
    SecretsRollback,
    UsersRollback,
)

logger = logging.getLogger(__name__)


async def _delete_by_ids(engine: AsyncEngine, table_sql: str, column: str, ids: list[str]) -> None:
    if not ids:
        return
    query = text(f"DELETE FROM {table_sql} WHERE {column} IN :ids").bindparams(  # nosec B608
        bindparam("ids", expanding=True)
    )
    async with engine.begin() as conn:
        await conn.execute(query, {"ids": ids})


class RollbackRunner:
    """
    Undoes a migration's completed items.

    Args:
        store: State store for migration and item records.
        remote: Builds remote clients and engines for the migration.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing (default True).
    """

    def __init__(
        self,
        store: StateStore,
        remote: RemoteAccess,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._remote = remote
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def rollback(self, migration: Migration) -> Migration:
        """
        Roll back every completed item of a completed or failed migration.

        Returns:
            The migration, now rolled_back.

        Raises:
            InvalidMigrationStateError: If the migration is not completed or failed.
            RollbackError: If any item could not be undone; the migration is
                left failed with the collected errors.
        """
        if not migration.status.can_rollback:
            raise InvalidMigrationStateError(migration.id, migration.status, "roll back")

        items = [
            item
            for item in await self._store.get_items(migration.id)
            if item.status == ItemStatus.COMPLETED
        ]

        with self._tracer.span(
            "hostmigrate.rollback.rollback",
            {ATTR_MIGRATION_ID: str(migration.id), ATTR_ITEM_COUNT: len(items)},
        ):
            migration.status = MigrationStatus.IN_PROGRESS
            await self._store.update_migration(migration)
            logger.info(
                "Rolling back %d items of migration %s",
                len(items),
                migration.id,
                extra={"migration_id": str(migration.id)},
            )

            failures: list[str] = []
            for item in reversed(items):
                try:
                    await self._undo_item(migration, item)
                except Exception as e:
                    logger.warning(
                        "Rollback of %s/%s failed: %s",
                        item.item_type.value,
                        item.item_name,
                        e,
                        extra={"migration_id": str(migration.id), "item_id": str(item.id)},
                    )
                    failures.append(f"{item.item_type.value}/{item.item_name}: {e}")
                    continue
                item.status = ItemStatus.ROLLED_BACK
                await self._store.update_item(item)

            migration.completed_at = datetime.now(UTC)
            if failures:
                migration.status = MigrationStatus.FAILED
                migration.error_message = f"rollback errors: {'; '.join(failures)}"
            else:
                migration.status = MigrationStatus.ROLLED_BACK
                migration.error_message = None
            await self._store.update_migration(migration)

        if failures:
            raise RollbackError(migration.id, failures)
        logger.info("Rolled back migration %s", migration.id)
        return migration

    async def _undo_item(self, migration: Migration, item: MigrationItem) -> None:
        with self._tracer.span(
            "hostmigrate.rollback.undo_item",
            {ATTR_ITEM_TYPE: item.item_type.value, ATTR_ITEM_NAME: item.item_name},
        ):
            info = item.rollback_info
            if info is None:
                # Config items record nothing to undo.
                return
            if item.item_type in (ItemType.STORAGE_FILES, ItemType.FUNCTIONS, ItemType.SECRETS):
                await self._undo_remote_api(migration, info)
            else:
                async with self._remote.database(migration) as engine:
                    await self._undo_database(engine, info)

    async def _undo_database(self, engine: AsyncEngine, info: RollbackDescriptor) -> None:
        if isinstance(info, SchemaRollback):
            async with engine.begin() as conn:
                for table in reversed(info.tables):
                    await conn.exec_driver_sql(
                        f"DROP TABLE IF EXISTS {qualified_name('public', table)} CASCADE"
                    )
        elif isinstance(info, DataRollback):
            table_sql = qualified_name("public", info.table_name)
            try:
                async with engine.begin() as conn:
                    await conn.exec_driver_sql(f"TRUNCATE TABLE {table_sql} CASCADE")
            except Exception as e:
                logger.debug("TRUNCATE %s failed, deleting rows instead: %s", info.table_name, e)
                async with engine.begin() as conn:
                    await conn.exec_driver_sql(f"DELETE FROM {table_sql}")  # nosec B608
        elif isinstance(info, UsersRollback):
            await _delete_by_ids(engine, "auth.users", "id", info.user_ids)
        elif isinstance(info, IdentitiesRollback):
            await _delete_by_ids(engine, "auth.identities", "id", info.identity_ids)
        elif isinstance(info, RLSRollback):
            async with engine.begin() as conn:
                for policy in info.policies:
                    await conn.exec_driver_sql(
                        f"DROP POLICY IF EXISTS {quote_identifier(policy.policy_name, 'policy')} "
                        f"ON {qualified_name('public', policy.table_name)}"
                    )
        elif isinstance(info, BucketsRollback):
            await _delete_by_ids(engine, "storage.objects", "bucket_id", info.bucket_ids)
            await _delete_by_ids(engine, "storage.buckets", "id", info.bucket_ids)

    async def _undo_remote_api(self, migration: Migration, info: RollbackDescriptor) -> None:
        project_ref = migration.remote_project_ref or ""
        if isinstance(info, FilesRollback):
            timeout = self._remote.config.probe_timeout
            async with await self._remote.project_gateway(migration, timeout=timeout) as gateway:
                for path in info.paths:
                    await gateway.delete_object(info.bucket_id, path, missing_ok=True)
        elif isinstance(info, FunctionsRollback):
            async with self._remote.management_client(migration) as client:
                await client.delete_function(project_ref, info.function_name)
        elif isinstance(info, SecretsRollback) and info.secret_names:
            async with self._remote.management_client(migration) as client:
                await client.delete_secrets(project_ref, info.secret_names)


__all__ = ["RollbackRunner"]
