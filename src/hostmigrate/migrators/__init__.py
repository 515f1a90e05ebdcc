"""
Item migrators, one per item type.

Each migrator reads from the local backend, writes to the remote project
and returns a rollback descriptor (or None for irreversible items). See
base.ItemMigrator for the contract.
"""

from hostmigrate.migrators.base import ItemMigrator, MigrationContext
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
    build_policy_statement,
)
from hostmigrate.migrators.functions import FunctionsMigrator, SecretsMigrator
from hostmigrate.migrators.registry import MigratorRegistry, default_registry
from hostmigrate.migrators.storage import StorageFilesMigrator

__all__ = [
    "AuthConfigMigrator",
    "BucketsMigrator",
    "DataMigrator",
    "EmailTemplatesMigrator",
    "FunctionsMigrator",
    "IdentitiesMigrator",
    "ItemMigrator",
    "MigrationContext",
    "MigratorRegistry",
    "OAuthConfigMigrator",
    "RLSMigrator",
    "SchemaMigrator",
    "SecretsMigrator",
    "StorageFilesMigrator",
    "UsersMigrator",
    "build_policy_statement",
    "default_registry",
]
