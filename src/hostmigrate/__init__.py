"""
hostmigrate - migrate an sblite backend into a hosted Supabase project.

This library provides:
- A migration engine moving schema, data, auth, row-level security,
  storage, functions, secrets and configuration item by item
- Per-item retry and explicit rollback of completed items
- Three independent verification layers (basic, integrity, functional)
- A credential vault for tokens, passwords and function secrets
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hostmigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from hostmigrate.config import EngineConfig
from hostmigrate.exceptions import (
    ConfigurationError,
    CredentialDecryptionError,
    DatabasePasswordMissingError,
    HostMigrateError,
    InvalidIdentifierError,
    InvalidMigrationStateError,
    InvalidPolicyCommandError,
    ItemMigrationError,
    MigrationNotFoundError,
    NoItemsSelectedError,
    ProjectNotSelectedError,
    RemoteAPIError,
    RemoteConnectionError,
    RemoteNotConnectedError,
    RollbackError,
    ValidationError,
    VaultNotConfiguredError,
)
from hostmigrate.models import (
    CheckResult,
    FunctionalTestOptions,
    ItemSelection,
    ItemStatus,
    ItemType,
    Migration,
    MigrationItem,
    MigrationProgress,
    MigrationStatus,
    Verification,
    VerificationLayer,
    VerificationStatus,
)
from hostmigrate.orchestrator import MigrationService
from hostmigrate.repositories import SQLAlchemyStateStore, StateStore
from hostmigrate.source import LocalSource
from hostmigrate.vault import CredentialVault

__all__ = [
    "__version__",
    # Engine
    "EngineConfig",
    "LocalSource",
    "MigrationService",
    "SQLAlchemyStateStore",
    "StateStore",
    "CredentialVault",
    # Models
    "CheckResult",
    "FunctionalTestOptions",
    "ItemSelection",
    "ItemStatus",
    "ItemType",
    "Migration",
    "MigrationItem",
    "MigrationProgress",
    "MigrationStatus",
    "Verification",
    "VerificationLayer",
    "VerificationStatus",
    # Exceptions
    "ConfigurationError",
    "CredentialDecryptionError",
    "DatabasePasswordMissingError",
    "HostMigrateError",
    "InvalidIdentifierError",
    "InvalidMigrationStateError",
    "InvalidPolicyCommandError",
    "ItemMigrationError",
    "MigrationNotFoundError",
    "NoItemsSelectedError",
    "ProjectNotSelectedError",
    "RemoteAPIError",
    "RemoteConnectionError",
    "RemoteNotConnectedError",
    "RollbackError",
    "ValidationError",
    "VaultNotConfiguredError",
]
