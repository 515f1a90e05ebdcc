"""
Unit tests for MigratorRegistry.

Tests cover:
- Registration, lookup and replacement
- Unknown item types
- The default registry's coverage of every item type
"""

from unittest.mock import AsyncMock

import pytest

from hostmigrate.exceptions import UnknownItemTypeError
from hostmigrate.migrators import ItemMigrator
from hostmigrate.migrators.database import DataMigrator, SchemaMigrator
from hostmigrate.migrators.registry import MigratorRegistry, default_registry
from hostmigrate.models import ItemType


class FakeDataMigrator:
    item_type = ItemType.DATA

    def __init__(self) -> None:
        self.migrate = AsyncMock(return_value=None)


class TestMigratorRegistry:
    """Tests for MigratorRegistry."""

    def test_register_and_get(self) -> None:
        """A migrator is found by its item type or the type's value."""
        registry = MigratorRegistry()
        migrator = SchemaMigrator()
        registry.register(migrator)

        assert registry.get(ItemType.SCHEMA) is migrator
        assert registry.get("schema") is migrator
        assert ItemType.SCHEMA in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self) -> None:
        """A second migrator for a type needs replace=True."""
        registry = MigratorRegistry()
        registry.register(DataMigrator())

        with pytest.raises(ValueError, match="already has migrator DataMigrator"):
            registry.register(FakeDataMigrator())

        fake = FakeDataMigrator()
        registry.register(fake, replace=True)
        assert registry.get(ItemType.DATA) is fake

    def test_same_instance_is_idempotent(self) -> None:
        """Registering the same migrator twice is allowed."""
        registry = MigratorRegistry()
        migrator = DataMigrator()
        registry.register(migrator)
        registry.register(migrator)
        assert len(registry) == 1

    def test_unknown_types(self) -> None:
        """Unregistered and unrecognized types both raise."""
        registry = MigratorRegistry()
        with pytest.raises(UnknownItemTypeError):
            registry.get(ItemType.USERS)
        with pytest.raises(UnknownItemTypeError, match="webhooks"):
            registry.get("webhooks")

    def test_default_registry_covers_every_type(self) -> None:
        """Every item type has a built-in migrator."""
        registry = default_registry()
        assert set(registry) == set(ItemType)
        assert all(isinstance(registry.get(t), ItemMigrator) for t in ItemType)
        assert isinstance(FakeDataMigrator(), ItemMigrator)
