"""
Registry mapping item types to their migrators.

The orchestrator dispatches every item through a registry. The default
registry holds one migrator per item type; tests build their own to swap
in fakes.

Usage:
    registry = default_registry()
    migrator = registry.get(ItemType.DATA)

    # Replace one migrator
    registry.register(FakeDataMigrator(), replace=True)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from hostmigrate.exceptions import UnknownItemTypeError
from hostmigrate.migrators.base import ItemMigrator
from hostmigrate.migrators.config import (
    AuthConfigMigrator,
    EmailTemplatesMigrator,
    OAuthConfigMigrator,
)
from hostmigrate.migrators.database import (
    BucketsMigrator,
    DataMigrator,
    IdentitiesMigrator,
    RLSMigrator,
    SchemaMigrator,
    UsersMigrator,
)
from hostmigrate.migrators.functions import FunctionsMigrator, SecretsMigrator
from hostmigrate.migrators.storage import StorageFilesMigrator
from hostmigrate.models import ItemType

logger = logging.getLogger(__name__)


class MigratorRegistry:
    """
    Mapping of ItemType to the migrator that handles it.

    Example:
        >>> registry = MigratorRegistry()
        >>> registry.register(SchemaMigrator())
        >>> registry.get(ItemType.SCHEMA)
    """

    def __init__(self) -> None:
        self._migrators: dict[ItemType, ItemMigrator] = {}

    def register(self, migrator: ItemMigrator, *, replace: bool = False) -> None:
        """
        Register a migrator for its item_type.

        Raises:
            ValueError: If the type already has a different migrator and
                replace is False.
        """
        item_type = migrator.item_type
        existing = self._migrators.get(item_type)
        if existing is not None and existing is not migrator and not replace:
            raise ValueError(
                f"Item type '{item_type.value}' already has migrator "
                f"{type(existing).__name__}"
            )
        self._migrators[item_type] = migrator
        logger.debug(
            "Registered migrator %s for %s",
            type(migrator).__name__,
            item_type.value,
        )

    def get(self, item_type: ItemType | str) -> ItemMigrator:
        """
        Look up the migrator for an item type.

        Raises:
            UnknownItemTypeError: If no migrator is registered for it.
        """
        try:
            resolved = ItemType(item_type)
        except ValueError:
            raise UnknownItemTypeError(str(item_type)) from None
        migrator = self._migrators.get(resolved)
        if migrator is None:
            raise UnknownItemTypeError(resolved.value)
        return migrator

    def __contains__(self, item_type: object) -> bool:
        return item_type in self._migrators

    def __iter__(self) -> Iterator[ItemType]:
        return iter(self._migrators)

    def __len__(self) -> int:
        return len(self._migrators)


def default_registry() -> MigratorRegistry:
    """A registry with the built-in migrator for every item type."""
    registry = MigratorRegistry()
    for migrator in (
        SchemaMigrator(),
        DataMigrator(),
        UsersMigrator(),
        IdentitiesMigrator(),
        RLSMigrator(),
        BucketsMigrator(),
        StorageFilesMigrator(),
        FunctionsMigrator(),
        SecretsMigrator(),
        AuthConfigMigrator(),
        OAuthConfigMigrator(),
        EmailTemplatesMigrator(),
    ):
        registry.register(migrator)
    return registry


__all__ = ["MigratorRegistry", "default_registry"]
