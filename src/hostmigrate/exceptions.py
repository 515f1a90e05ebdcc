"""
Exceptions for the hostmigrate migration and verification engine.

This module defines every exception raised by the engine, organized by the
kind of failure rather than by the component that raises it.

Exception Hierarchy:
    HostMigrateError (base)
    +-- ConfigurationError
    |   +-- VaultNotConfiguredError
    +-- ValidationError
    |   +-- InvalidIdentifierError
    |   +-- InvalidPolicyCommandError
    |   +-- ProjectNotSelectedError
    |   +-- NoItemsSelectedError
    |   +-- InvalidMigrationStateError
    +-- MigrationNotFoundError
    +-- ItemNotFoundError
    +-- CredentialError
    |   +-- CredentialDecryptionError
    |   +-- RemoteNotConnectedError
    |   +-- DatabasePasswordMissingError
    +-- RemoteError
    |   +-- RemoteAPIError
    |   +-- RemoteConnectionError
    +-- ItemMigrationError
    |   +-- UnknownItemTypeError
    +-- RollbackError

Error Classification:
    Every exception carries an ErrorClassification describing its severity,
    whether it can be recovered from, a stable error code and a suggested
    operator action. Item migrators never let these escape a run: the
    orchestrator writes them onto the failing MigrationItem instead.

Verification mismatches are deliberately not exceptions. They are reported
as failed CheckResult values by the verification layers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from hostmigrate.models import ItemType, MigrationStatus


class ErrorSeverity(Enum):
    """
    Severity level of engine errors.

    Used for logging and operator notification decisions.
    """

    CRITICAL = "critical"
    """Engine cannot proceed at all (e.g. missing server secret)."""

    ERROR = "error"
    """An operation or item failed and needs operator attention."""

    WARNING = "warning"
    """Issue that should be monitored but may self-resolve."""

    INFO = "info"
    """Informational condition, not a failure."""

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for engine errors.

    Attributes:
        RECOVERABLE: Operator action fixes the cause; the item can then be
            retried with retry_failed_items().
        TRANSIENT: Temporary remote failure (timeout, DNS, 5xx); retrying
            the failed item unchanged may succeed.
        FATAL: Input or configuration is wrong; retrying without changing
            it will fail the same way.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata describing how an error should be handled.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category (configuration, validation, lookup,
            credentials, connectivity, transfer).
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class HostMigrateError(Exception):
    """
    Base exception for all hostmigrate errors.

    Attributes:
        message: Human-readable error description.
        migration_id: The migration involved, if applicable.
        item_type: The item type involved, if applicable.
        item_name: The item name involved, if applicable.
        suggested_action: Overrides the classification's suggested action.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="HOSTMIGRATE_ERROR",
        category="general",
        suggested_action="Review the migration logs for details",
    )

    def __init__(
        self,
        message: str,
        *,
        migration_id: UUID | None = None,
        item_type: ItemType | str | None = None,
        item_name: str | None = None,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.migration_id = migration_id
        self.item_type = item_type
        self.item_name = item_name
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.migration_id:
            parts.append(f"migration_id={self.migration_id}")
        if self.item_type:
            item_type = getattr(self.item_type, "value", self.item_type)
            parts.append(f"item={item_type}/{self.item_name or ''}")
        return " ".join(parts)

    @property
    def classification(self) -> ErrorClassification:
        """
        Get the error classification for this exception.

        Subclasses override _default_classification to provide specific
        classification metadata for their error type.
        """
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        """Get the severity level of this error."""
        return self.classification.severity

    @property
    def recoverability(self) -> ErrorRecoverability:
        """Get the recoverability classification of this error."""
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        """Get the stable error code (e.g. "INVALID_IDENTIFIER")."""
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        classification = self.classification.to_dict()
        if self.suggested_action:
            classification["suggested_action"] = self.suggested_action
        return {
            "message": self.message,
            "migration_id": str(self.migration_id) if self.migration_id else None,
            "item_type": getattr(self.item_type, "value", self.item_type),
            "item_name": self.item_name,
            "error_code": self.error_code,
            "classification": classification,
        }


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(HostMigrateError):
    """Raised when the engine is misconfigured and refuses to proceed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="CONFIGURATION_ERROR",
        category="configuration",
        suggested_action="Fix the engine configuration and restart",
    )


class VaultNotConfiguredError(ConfigurationError):
    """
    Raised when the server-wide secret used to key the vault is unset.

    The vault fails closed: it never falls back to a default key.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        recoverability=ErrorRecoverability.FATAL,
        error_code="VAULT_NOT_CONFIGURED",
        category="configuration",
        suggested_action="Configure the server JWT secret before migrating",
    )

    def __init__(self) -> None:
        super().__init__("JWT secret not configured")


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(HostMigrateError):
    """Raised when input is rejected before any attempt is made."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="VALIDATION_ERROR",
        category="validation",
        suggested_action="Correct the input and try again",
    )


class InvalidIdentifierError(ValidationError):
    """
    Raised when a name taken from local data is not a safe SQL identifier.

    Only letters, digits and underscores are accepted.

    Attributes:
        identifier: The rejected identifier.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_IDENTIFIER",
        category="validation",
        suggested_action="Rename the object to use only letters, digits and underscores",
    )

    def __init__(self, identifier: str, kind: str = "identifier") -> None:
        self.identifier = identifier
        self.kind = kind
        super().__init__(f"invalid {kind}: {identifier!r}")


class InvalidPolicyCommandError(ValidationError):
    """Raised when an RLS policy uses a command outside ALL/SELECT/INSERT/UPDATE/DELETE."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_POLICY_COMMAND",
        category="validation",
        suggested_action="Fix the policy command in the local policy table",
    )

    def __init__(self, command: str, policy_name: str) -> None:
        self.command = command
        self.policy_name = policy_name
        super().__init__(f"invalid policy command {command!r} for policy {policy_name}")


class ProjectNotSelectedError(ValidationError):
    """Raised when an operation needs a remote project but none is selected."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="PROJECT_NOT_SELECTED",
        category="validation",
        suggested_action="Select a remote project for the migration first",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__("no remote project selected", migration_id=migration_id)


class NoItemsSelectedError(ValidationError):
    """Raised when running a migration that has no items."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="NO_ITEMS_SELECTED",
        category="validation",
        suggested_action="Select at least one item to migrate",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__("no items selected for migration", migration_id=migration_id)


class InvalidMigrationStateError(ValidationError):
    """
    Raised when an operation is not allowed in the migration's current status.

    Attributes:
        current_status: The status the migration is in.
        operation: The operation that was attempted.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="INVALID_MIGRATION_STATE",
        category="validation",
        suggested_action="Check the migration status before retrying the operation",
    )

    def __init__(
        self,
        migration_id: UUID,
        current_status: MigrationStatus,
        operation: str,
    ) -> None:
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"cannot {operation} migration with status {current_status.value}",
            migration_id=migration_id,
        )


# =============================================================================
# Lookup errors
# =============================================================================


class MigrationNotFoundError(HostMigrateError):
    """Raised when a requested migration does not exist."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="MIGRATION_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the migration ID is correct",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__(f"migration not found: {migration_id}", migration_id=migration_id)


class ItemNotFoundError(HostMigrateError):
    """Raised when a requested migration item does not exist."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="ITEM_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the item ID is correct",
    )

    def __init__(self, item_id: UUID) -> None:
        self.item_id = item_id
        super().__init__(f"migration item not found: {item_id}")


# =============================================================================
# Credential errors
# =============================================================================


class CredentialError(HostMigrateError):
    """Base class for problems with stored credentials."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="CREDENTIAL_ERROR",
        category="credentials",
        suggested_action="Reconnect the remote account",
    )


class CredentialDecryptionError(CredentialError):
    """Raised when an encrypted blob cannot be decrypted."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="CREDENTIAL_DECRYPTION_FAILED",
        category="credentials",
        suggested_action="Check that the server secret has not changed since encryption",
    )


class RemoteNotConnectedError(CredentialError):
    """Raised when a migration has no stored remote access token."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="REMOTE_NOT_CONNECTED",
        category="credentials",
        suggested_action="Connect the migration to the remote platform with an access token",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__("remote platform not connected", migration_id=migration_id)


class DatabasePasswordMissingError(CredentialError):
    """Raised when no remote database password is stored for a migration."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="DATABASE_PASSWORD_MISSING",
        category="credentials",
        suggested_action="Store the remote database password for this migration",
    )

    def __init__(self, migration_id: UUID) -> None:
        super().__init__("database password not set", migration_id=migration_id)


# =============================================================================
# Remote errors
# =============================================================================


class RemoteError(HostMigrateError):
    """Base class for failures talking to the remote platform."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="REMOTE_ERROR",
        category="connectivity",
        suggested_action="Check connectivity to the remote platform and retry",
    )


class RemoteAPIError(RemoteError):
    """
    Raised when a remote HTTP API answers with a non-success status.

    Attributes:
        status_code: HTTP status returned by the API.
        body: Response body text, as returned.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="REMOTE_API_ERROR",
        category="connectivity",
        suggested_action="Inspect the API response and retry the failed items",
    )

    def __init__(self, operation: str, status_code: int, body: str) -> None:
        self.operation = operation
        self.status_code = status_code
        self.body = body
        super().__init__(f"{operation}: API error (status {status_code}): {body}")

    @property
    def recoverability(self) -> ErrorRecoverability:
        """Client errors are not transient; server errors are."""
        if 400 <= self.status_code < 500:
            return ErrorRecoverability.RECOVERABLE
        return ErrorRecoverability.TRANSIENT


class RemoteConnectionError(RemoteError):
    """Raised when the remote database or API cannot be reached."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="REMOTE_CONNECTION_FAILED",
        category="connectivity",
        suggested_action="Check the project reference, password and network access",
    )


# =============================================================================
# Transfer errors
# =============================================================================


class ItemMigrationError(HostMigrateError):
    """Raised by an item migrator when its transfer cannot be completed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="ITEM_MIGRATION_FAILED",
        category="transfer",
        suggested_action="Fix the cause recorded on the item and retry failed items",
    )


class UnknownItemTypeError(ItemMigrationError):
    """Raised when an item's type has no registered migrator."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="UNKNOWN_ITEM_TYPE",
        category="transfer",
        suggested_action="Remove the item from the selection",
    )

    def __init__(self, item_type: str) -> None:
        super().__init__(f"unknown item type: {item_type}", item_type=item_type)


class RollbackError(HostMigrateError):
    """
    Raised when an explicit rollback finishes with one or more item failures.

    Attributes:
        failures: "<item_type>/<item_name>: <error>" strings, one per item.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="ROLLBACK_FAILED",
        category="transfer",
        suggested_action="Clean up the listed remote objects manually",
    )

    def __init__(self, migration_id: UUID, failures: list[str]) -> None:
        self.failures = failures
        super().__init__(
            f"rollback completed with errors: {'; '.join(failures)}",
            migration_id=migration_id,
        )


__all__ = [
    "ConfigurationError",
    "CredentialDecryptionError",
    "CredentialError",
    "DatabasePasswordMissingError",
    "ErrorClassification",
    "ErrorRecoverability",
    "ErrorSeverity",
    "HostMigrateError",
    "InvalidIdentifierError",
    "InvalidMigrationStateError",
    "InvalidPolicyCommandError",
    "ItemMigrationError",
    "ItemNotFoundError",
    "MigrationNotFoundError",
    "NoItemsSelectedError",
    "ProjectNotSelectedError",
    "RemoteAPIError",
    "RemoteConnectionError",
    "RemoteError",
    "RemoteNotConnectedError",
    "RollbackError",
    "UnknownItemTypeError",
    "ValidationError",
    "VaultNotConfiguredError",
]
