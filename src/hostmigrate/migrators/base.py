"""
Item migrator contract.

An item migrator moves one MigrationItem's worth of state from the local
backend to the remote project. The orchestrator owns the item lifecycle:
it marks the item in_progress before calling migrate(), then completed with
the returned rollback descriptor, or failed with the raised error's text.

Migrators raise on any failure. They never update item status themselves;
they may add informational entries to item.metadata.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.config import EngineConfig
from hostmigrate.models import ItemType, Migration, MigrationItem
from hostmigrate.remote.access import RemoteAccess
from hostmigrate.remote.gateway import ProjectGateway
from hostmigrate.remote.management import ManagementClient
from hostmigrate.rollback_info import RollbackDescriptor
from hostmigrate.source import LocalSource
from hostmigrate.vault import CredentialVault


@dataclass
class MigrationContext:
    """
    Everything a migrator may touch while migrating one item.

    Attributes:
        migration: The migration being run; its project is selected.
        source: Read access to the local backend.
        remote: Builds remote clients from the migration's credentials.
        vault: Decrypts locally encrypted function secrets.
    """

    migration: Migration
    source: LocalSource
    remote: RemoteAccess
    vault: CredentialVault

    @property
    def project_ref(self) -> str:
        return self.migration.remote_project_ref or ""

    @property
    def config(self) -> EngineConfig:
        return self.remote.config

    @asynccontextmanager
    async def remote_database(self) -> AsyncIterator[AsyncEngine]:
        """A fresh remote engine for this item, disposed afterwards."""
        async with self.remote.database(self.migration) as engine:
            yield engine

    def management_client(self) -> ManagementClient:
        """A fresh management client; close it (async with) after use."""
        return self.remote.management_client(self.migration)

    async def project_gateway(self, *, timeout: float | None = None) -> ProjectGateway:
        """A fresh gateway to the project's storage/functions/auth APIs."""
        return await self.remote.project_gateway(self.migration, timeout=timeout)


@runtime_checkable
class ItemMigrator(Protocol):
    """
    Protocol for item migrators.

    Attributes:
        item_type: The item type this migrator handles.
    """

    item_type: ItemType

    async def migrate(
        self,
        ctx: MigrationContext,
        item: MigrationItem,
    ) -> RollbackDescriptor | None:
        """
        Transfer one item.

        Args:
            ctx: Local and remote access for the running migration.
            item: The item being migrated (already marked in_progress).

        Returns:
            A descriptor of what was created remotely, or None for items
            that cannot be reversed.

        Raises:
            HostMigrateError: Or any driver/transport exception; the
                orchestrator records it on the item.
        """
        ...


__all__ = ["ItemMigrator", "MigrationContext"]
