"""
MigrationService - the engine's public surface.

The service owns the Migration and MigrationItem lifecycle:

    start_migration -> connect_remote -> select_project
        -> set_database_password -> select_items -> run_migration
        -> run_*_verification (any number of times)

Failed items can be retried with retry_failed_items; completed work can be
undone explicitly with rollback.

Items within one run are processed strictly one after another. A failing
item is recorded and the run moves on; run_migration never raises because
of an item. Credentials are decrypted per call and never returned.

Usage:
    >>> service = MigrationService(store, source, CredentialVault(secret))
    >>> migration = await service.start_migration()
    >>> await service.connect_remote(migration.id, access_token)
    >>> await service.select_project(migration.id, "abcd1234")
    >>> await service.set_database_password(migration.id, db_password)
    >>> await service.select_items(migration.id, ItemSelection(schema=True, data=["todos"]))
    >>> migration = await service.run_migration(migration.id)
    >>> verification = await service.run_integrity_verification(migration.id)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx

from hostmigrate.config import EngineConfig
from hostmigrate.exceptions import (
    HostMigrateError,
    InvalidMigrationStateError,
    MigrationNotFoundError,
    NoItemsSelectedError,
    ProjectNotSelectedError,
    VaultNotConfiguredError,
)
from hostmigrate.identifiers import validate_slug
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.migrators.registry import MigratorRegistry, default_registry
from hostmigrate.models import (
    FunctionalTestOptions,
    ItemSelection,
    ItemStatus,
    Migration,
    MigrationItem,
    MigrationProgress,
    MigrationStatus,
    Verification,
    VerificationLayer,
)
from hostmigrate.observability import (
    ATTR_ITEM_COUNT,
    ATTR_ITEM_NAME,
    ATTR_ITEM_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
    ATTR_PROJECT_REF,
    Tracer,
    create_tracer,
)
from hostmigrate.remote.access import RemoteAccess
from hostmigrate.remote.database import RemoteEngineFactory, ping
from hostmigrate.remote.models import Project
from hostmigrate.repositories.state import StateStore
from hostmigrate.rollback import RollbackRunner
from hostmigrate.source import LocalSource
from hostmigrate.vault import CredentialVault
from hostmigrate.verification import (
    BasicVerifier,
    FunctionalVerifier,
    IntegrityVerifier,
    VerificationRunner,
    Verifier,
)

logger = logging.getLogger(__name__)

VERIFIERS: dict[VerificationLayer, Verifier] = {
    VerificationLayer.BASIC: BasicVerifier(),
    VerificationLayer.INTEGRITY: IntegrityVerifier(),
    VerificationLayer.FUNCTIONAL: FunctionalVerifier(),
}


def _now() -> datetime:
    return datetime.now(UTC)


class MigrationService:
    """
    Runs migrations from the local backend to a remote project.

    Args:
        store: State store for migrations, items and verifications.
        source: Read access to the local backend.
        vault: Encrypts and decrypts stored credentials and local secrets.
        config: Endpoints, timeouts and verification limits.
        engine_factory: Builds remote database engines (asyncpg by default).
        transport: Optional httpx transport for every remote HTTP client.
        registry: Item migrators by type (the built-in set by default).
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing (default True).
    """

    def __init__(
        self,
        store: StateStore,
        source: LocalSource,
        vault: CredentialVault,
        config: EngineConfig | None = None,
        *,
        engine_factory: RemoteEngineFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        registry: MigratorRegistry | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._store = store
        self._source = source
        self._vault = vault
        self._config = config or EngineConfig()
        self._registry = registry or default_registry()
        self._remote = RemoteAccess(
            store,
            vault,
            self._config,
            engine_factory=engine_factory,
            transport=transport,
            tracer=self._tracer,
            enable_tracing=enable_tracing,
        )
        self._rollback = RollbackRunner(store, self._remote, tracer=self._tracer)
        self._verification = VerificationRunner(
            store, source, self._remote, tracer=self._tracer
        )

    # =========================================================================
    # Migrations
    # =========================================================================

    async def start_migration(self) -> Migration:
        migration = await self._store.create_migration()
        logger.info("Started migration %s", migration.id, extra={"migration_id": str(migration.id)})
        return migration

    async def get_migration(self, migration_id: UUID) -> Migration:
        """
        Raises:
            MigrationNotFoundError: If the migration does not exist.
        """
        migration = await self._store.get_migration(migration_id)
        if migration is None:
            raise MigrationNotFoundError(migration_id)
        return migration

    async def list_migrations(self) -> list[Migration]:
        return await self._store.list_migrations()

    async def delete_migration(self, migration_id: UUID) -> None:
        """Delete a migration, its items, its verifications and its stored password."""
        await self.get_migration(migration_id)
        await self._store.delete_migration(migration_id)
        logger.info("Deleted migration %s", migration_id)

    # =========================================================================
    # Remote connection
    # =========================================================================

    async def connect_remote(self, migration_id: UUID, access_token: str) -> Migration:
        """
        Validate a management API token and store it encrypted.

        The token is checked by listing projects before anything is stored.

        Raises:
            VaultNotConfiguredError: If no server secret is configured.
            RemoteAPIError: If the token is rejected.
        """
        if not self._vault.is_configured:
            raise VaultNotConfiguredError()
        migration = await self.get_migration(migration_id)

        with self._tracer.span(
            "hostmigrate.orchestrator.connect_remote",
            {ATTR_MIGRATION_ID: str(migration_id)},
        ):
            async with self._remote.client_for_token(access_token) as client:
                projects = await client.list_projects()

            migration.encrypted_credentials = self._vault.encrypt(access_token.encode("utf-8"))
            await self._store.update_migration(migration)

        logger.info(
            "Connected migration %s to remote account (%d projects visible)",
            migration_id,
            len(projects),
        )
        return migration

    async def list_remote_projects(self, migration_id: UUID) -> list[Project]:
        migration = await self.get_migration(migration_id)
        async with self._remote.management_client(migration) as client:
            return await client.list_projects()

    async def select_project(self, migration_id: UUID, project_ref: str) -> Migration:
        """
        Select the destination project.

        Raises:
            InvalidIdentifierError: If the reference is not a valid slug.
            RemoteNotConnectedError: If no token has been stored.
            RemoteAPIError: If the project cannot be read.
        """
        validate_slug(project_ref, "project")
        migration = await self.get_migration(migration_id)
        with self._tracer.span(
            "hostmigrate.orchestrator.select_project",
            {ATTR_MIGRATION_ID: str(migration_id), ATTR_PROJECT_REF: project_ref},
        ):
            async with self._remote.management_client(migration) as client:
                project = await client.get_project(project_ref)

            migration.remote_project_ref = project_ref
            migration.remote_project_name = project.name
            await self._store.update_migration(migration)

        logger.info("Migration %s targets project %s", migration_id, project_ref)
        return migration

    async def set_database_password(self, migration_id: UUID, password: str) -> None:
        """
        Store the remote database password, encrypted.

        Raises:
            VaultNotConfiguredError: If no server secret is configured.
        """
        await self.get_migration(migration_id)
        await self._store.set_database_password(migration_id, self._vault.encrypt_text(password))
        logger.info("Stored database password for migration %s", migration_id)

    async def test_database_connection(self, migration_id: UUID) -> None:
        """
        Open and ping the remote database.

        Raises:
            ProjectNotSelectedError: If no project has been selected.
            DatabasePasswordMissingError: If no password has been stored.
            RemoteConnectionError: If the database cannot be reached.
        """
        migration = await self.get_migration(migration_id)
        async with self._remote.database(migration) as engine:
            await ping(engine)

    # =========================================================================
    # Items
    # =========================================================================

    async def select_items(
        self,
        migration_id: UUID,
        selection: ItemSelection,
    ) -> list[MigrationItem]:
        """
        Replace the migration's items with the given selection.

        Raises:
            InvalidMigrationStateError: If the migration is running.
        """
        migration = await self.get_migration(migration_id)
        if migration.status == MigrationStatus.IN_PROGRESS:
            raise InvalidMigrationStateError(migration_id, migration.status, "select items for")

        items = await self._store.replace_items(migration_id, selection.to_items())
        logger.info(
            "Selected %d items for migration %s",
            len(items),
            migration_id,
            extra={"migration_id": str(migration_id)},
        )
        return items

    async def get_items(self, migration_id: UUID) -> list[MigrationItem]:
        await self.get_migration(migration_id)
        return await self._store.get_items(migration_id)

    async def get_progress(self, migration_id: UUID) -> MigrationProgress:
        return MigrationProgress.from_items(await self.get_items(migration_id))

    # =========================================================================
    # Running
    # =========================================================================

    async def run_migration(self, migration_id: UUID) -> Migration:
        """
        Migrate every pending item, in selection order.

        Completed and skipped items from an earlier run are left alone, so a
        run after retry_failed_items only reprocesses the failed items. An
        item failure is recorded on the item and the run continues; the
        migration ends completed only if every item, pending or not, is
        completed or skipped.

        If the run is interrupted (cancellation, KeyboardInterrupt), the
        current item and the migration are marked failed before the
        interruption propagates, so retry_failed_items can resume.

        Raises:
            ProjectNotSelectedError: If no project has been selected.
            NoItemsSelectedError: If the migration has no items.
            InvalidMigrationStateError: If the migration cannot be run from
                its current status.
        """
        migration = await self.get_migration(migration_id)
        if not migration.has_project:
            raise ProjectNotSelectedError(migration_id)
        items = await self._store.get_items(migration_id)
        if not items:
            raise NoItemsSelectedError(migration_id)

        pending = [item for item in items if item.status == ItemStatus.PENDING]
        with self._tracer.span(
            "hostmigrate.orchestrator.run_migration",
            {
                ATTR_MIGRATION_ID: str(migration_id),
                ATTR_PROJECT_REF: migration.remote_project_ref,
                ATTR_ITEM_COUNT: len(pending),
            },
        ) as span:
            migration.status = MigrationStatus.IN_PROGRESS
            migration.error_message = None
            migration.completed_at = None
            await self._store.update_migration(migration)
            logger.info(
                "Running migration %s: %d pending of %d items",
                migration_id,
                len(pending),
                len(items),
                extra={"migration_id": str(migration_id)},
            )

            ctx = MigrationContext(
                migration=migration,
                source=self._source,
                remote=self._remote,
                vault=self._vault,
            )
            try:
                for item in pending:
                    await self._migrate_item(ctx, item)
            except BaseException as e:
                migration.status = MigrationStatus.FAILED
                migration.error_message = f"interrupted: {e!r}"
                migration.completed_at = _now()
                await self._store.update_migration(migration)
                raise

            # Items failed by an earlier run count too.
            failed = [
                f"{item.item_type.value}/{item.item_name}"
                for item in items
                if item.status not in (ItemStatus.COMPLETED, ItemStatus.SKIPPED)
            ]
            if failed:
                migration.status = MigrationStatus.FAILED
                migration.error_message = f"{len(failed)} item(s) failed: {', '.join(failed)}"
            else:
                migration.status = MigrationStatus.COMPLETED
            migration.completed_at = _now()
            await self._store.update_migration(migration)

            if span is not None:
                span.set_attribute(ATTR_MIGRATION_STATUS, migration.status.value)

        logger.info(
            "Migration %s %s",
            migration_id,
            migration.status.value,
            extra={"migration_id": str(migration_id), "failed_items": len(failed)},
        )
        return migration

    async def _migrate_item(self, ctx: MigrationContext, item: MigrationItem) -> None:
        """Run one item's migrator; record the outcome on the item."""
        with self._tracer.span(
            "hostmigrate.orchestrator.migrate_item",
            {
                ATTR_MIGRATION_ID: str(item.migration_id),
                ATTR_ITEM_TYPE: item.item_type.value,
                ATTR_ITEM_NAME: item.item_name,
            },
        ):
            item.status = ItemStatus.IN_PROGRESS
            item.started_at = _now()
            item.completed_at = None
            item.error_message = None
            await self._store.update_item(item)

            try:
                migrator = self._registry.get(item.item_type)
                descriptor = await migrator.migrate(ctx, item)
            except Exception as e:
                item.status = ItemStatus.FAILED
                item.error_message = str(e)
                item.completed_at = _now()
                await self._store.update_item(item)
                extra: dict[str, Any] = {
                    "migration_id": str(item.migration_id),
                    "item_id": str(item.id),
                }
                level = logging.WARNING
                if isinstance(e, HostMigrateError):
                    level = e.severity.log_level
                    extra["error_code"] = e.error_code
                    extra["retryable"] = e.recoverability.should_retry
                logger.log(
                    level,
                    "Item %s/%s failed: %s",
                    item.item_type.value,
                    item.item_name,
                    e,
                    extra=extra,
                )
                return
            except BaseException as e:
                item.status = ItemStatus.FAILED
                item.error_message = f"interrupted: {e!r}"
                item.completed_at = _now()
                await self._store.update_item(item)
                raise

            item.status = ItemStatus.COMPLETED
            item.rollback_info = descriptor
            item.completed_at = _now()
            await self._store.update_item(item)
            logger.info("Item %s/%s completed", item.item_type.value, item.item_name)

    async def retry_failed_items(self, migration_id: UUID) -> int:
        """
        Reset failed items to pending and the migration to pending.

        Returns:
            Number of items reset.

        Raises:
            InvalidMigrationStateError: If the migration is not failed.
        """
        migration = await self.get_migration(migration_id)
        if not migration.status.can_retry:
            raise InvalidMigrationStateError(migration_id, migration.status, "retry")

        reset = await self._store.reset_failed_items(migration_id)
        migration.status = MigrationStatus.PENDING
        migration.error_message = None
        migration.completed_at = None
        await self._store.update_migration(migration)
        logger.info("Reset %d failed items of migration %s", reset, migration_id)
        return reset

    async def rollback(self, migration_id: UUID) -> Migration:
        """
        Undo every completed item, newest first.

        Raises:
            InvalidMigrationStateError: If the migration is not completed or failed.
            RollbackError: If some items could not be undone.
        """
        return await self._rollback.rollback(await self.get_migration(migration_id))

    # =========================================================================
    # Verification
    # =========================================================================

    async def run_verification(
        self,
        migration_id: UUID,
        layer: VerificationLayer,
        options: FunctionalTestOptions | None = None,
    ) -> Verification:
        """
        Run one verification layer and record the result.

        Raises:
            ProjectNotSelectedError: If no project has been selected.
        """
        migration = await self.get_migration(migration_id)
        return await self._verification.run(migration, VERIFIERS[layer], options)

    async def run_basic_verification(self, migration_id: UUID) -> Verification:
        return await self.run_verification(migration_id, VerificationLayer.BASIC)

    async def run_integrity_verification(self, migration_id: UUID) -> Verification:
        return await self.run_verification(migration_id, VerificationLayer.INTEGRITY)

    async def run_functional_verification(
        self,
        migration_id: UUID,
        options: FunctionalTestOptions,
    ) -> Verification:
        return await self.run_verification(migration_id, VerificationLayer.FUNCTIONAL, options)

    async def get_verifications(self, migration_id: UUID) -> list[Verification]:
        """Verification history, newest first."""
        await self.get_migration(migration_id)
        return await self._store.get_verifications(migration_id)


__all__ = ["VERIFIERS", "MigrationService"]
