"""
Data models for the hostmigrate engine.

This module defines the core data structures shared by the orchestrator,
the item migrators, the verification layers and the state store.

Models in this module:

Enums:
    - MigrationStatus: Migration lifecycle states
    - ItemStatus: Per-item lifecycle states
    - ItemType: The twelve kinds of migratable state
    - VerificationLayer: basic / integrity / functional
    - VerificationStatus: Verification lifecycle states

Core Models:
    - Migration: One local-to-remote migration
    - MigrationItem: One migratable unit inside a migration
    - ItemSelection: Operator's choice of items to migrate
    - MigrationProgress: Item counts by status
    - CheckResult: Outcome of a single verification check
    - VerificationSummary: Aggregate of check outcomes
    - VerificationResults: Stored results of one verification run
    - Verification: One run of one verification layer
    - FunctionalTestOptions: Targets for the functional probes
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from hostmigrate.rollback_info import RollbackDescriptor


class MigrationStatus(Enum):
    """
    Migration lifecycle states.

    State machine transitions:
        PENDING -> IN_PROGRESS -> COMPLETED
                       |
                       +-------> FAILED -> PENDING (retry_failed_items)

        COMPLETED / FAILED -> IN_PROGRESS -> ROLLED_BACK (explicit rollback)
    """

    PENDING = "pending"
    """Created, or reset by a retry; waiting for run_migration()."""

    IN_PROGRESS = "in_progress"
    """Items are being migrated (or rolled back)."""

    COMPLETED = "completed"
    """Every processed item completed."""

    FAILED = "failed"
    """At least one item failed."""

    ROLLED_BACK = "rolled_back"
    """Completed items were undone by an explicit rollback."""

    @property
    def is_terminal(self) -> bool:
        """
        Check if the migration has finished a run.

        Returns:
            True for COMPLETED, FAILED and ROLLED_BACK.
        """
        return self in (
            MigrationStatus.COMPLETED,
            MigrationStatus.FAILED,
            MigrationStatus.ROLLED_BACK,
        )

    @property
    def can_retry(self) -> bool:
        """Only failed migrations can have their failed items retried."""
        return self == MigrationStatus.FAILED

    @property
    def can_rollback(self) -> bool:
        """Only completed or failed migrations can be rolled back."""
        return self in (MigrationStatus.COMPLETED, MigrationStatus.FAILED)


class ItemStatus(Enum):
    """
    Per-item lifecycle states.

    Valid transitions:
        - PENDING -> IN_PROGRESS: migrator started
        - IN_PROGRESS -> COMPLETED | FAILED: migrator finished
        - FAILED -> PENDING: explicit retry (clears error and timestamps)
        - COMPLETED -> ROLLED_BACK: explicit rollback
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


class ItemType(Enum):
    """
    The kinds of state that can be migrated.

    DATA, STORAGE_FILES and FUNCTIONS are multi-instance: one item per
    table, bucket or function, named after it. Every other type is
    single-instance and uses its own value as the item name.
    """

    SCHEMA = "schema"
    DATA = "data"
    USERS = "users"
    IDENTITIES = "identities"
    RLS = "rls"
    STORAGE_BUCKETS = "storage_buckets"
    STORAGE_FILES = "storage_files"
    FUNCTIONS = "functions"
    SECRETS = "secrets"
    AUTH_CONFIG = "auth_config"
    OAUTH_CONFIG = "oauth_config"
    EMAIL_TEMPLATES = "email_templates"

    @property
    def is_multi_instance(self) -> bool:
        """True for item types with one item per named object."""
        return self in (ItemType.DATA, ItemType.STORAGE_FILES, ItemType.FUNCTIONS)

    @property
    def sentinel_name(self) -> str:
        """
        Item name used for single-instance types.

        Raises:
            ValueError: If called on a multi-instance type.
        """
        if self.is_multi_instance:
            raise ValueError(f"{self.value} items are named after their object")
        return self.value


class VerificationLayer(Enum):
    """The three independent post-migration check passes."""

    BASIC = "basic"
    """Existence and shape of migrated objects."""

    INTEGRITY = "integrity"
    """Row counts, sampled row contents and referential integrity."""

    FUNCTIONAL = "functional"
    """Live probes against the remote platform."""


class VerificationStatus(Enum):
    """Verification lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class Migration:
    """
    A migration of one local backend into one remote project.

    This is a mutable dataclass because the orchestrator updates it as the
    migration moves through its lifecycle.

    Attributes:
        id: Unique migration identifier.
        status: Current lifecycle state.
        remote_project_ref: Selected remote project reference.
        remote_project_name: Display name of the selected project.
        encrypted_credentials: Vault blob holding the remote access token.
            Never serialized by to_dict().
        error_message: Failure summary of the last run, if any.
        created_at: When the migration was started.
        updated_at: When the migration was last updated.
        completed_at: When the last run (or rollback) finished.
    """

    id: UUID
    status: MigrationStatus = MigrationStatus.PENDING
    remote_project_ref: str | None = None
    remote_project_name: str | None = None
    encrypted_credentials: bytes | None = field(default=None, repr=False)
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def has_project(self) -> bool:
        """True once a remote project has been selected."""
        return bool(self.remote_project_ref)

    @property
    def is_connected(self) -> bool:
        """True once a remote access token has been stored."""
        return bool(self.encrypted_credentials)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to a dictionary for API responses.

        Credentials are reported only as a connected flag.
        """
        return {
            "id": str(self.id),
            "status": self.status.value,
            "remote_project_ref": self.remote_project_ref,
            "remote_project_name": self.remote_project_name,
            "connected": self.is_connected,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class MigrationItem:
    """
    One migratable unit of state.

    Attributes:
        id: Unique item identifier.
        migration_id: Owning migration.
        item_type: Kind of state this item moves.
        item_name: Table, bucket or function name, or the type's sentinel.
        status: Current lifecycle state.
        started_at: When the migrator started.
        completed_at: When the migrator finished (success or failure).
        error_message: Error text of the last failure.
        rollback_info: Descriptor of what the migrator created remotely.
        metadata: Free-form notes recorded by the migrator.
    """

    id: UUID
    migration_id: UUID
    item_type: ItemType
    item_name: str
    status: ItemStatus = ItemStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    rollback_info: RollbackDescriptor | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[ItemType, str]:
        """The (item_type, item_name) pair unique within a migration."""
        return (self.item_type, self.item_name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for API responses."""
        return {
            "id": str(self.id),
            "migration_id": str(self.migration_id),
            "item_type": self.item_type.value,
            "item_name": self.item_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "rollback_info": (
                self.rollback_info.model_dump(mode="json") if self.rollback_info else None
            ),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ItemSelection:
    """
    The operator's choice of what to migrate.

    Single-instance types are toggled with a flag; multi-instance types
    list the tables, buckets or functions to migrate.

    Example:
        >>> selection = ItemSelection(schema=True, data=("todos",))
        >>> [(t.value, n) for t, n in selection.to_items()]
        [('schema', 'schema'), ('data', 'todos')]
    """

    schema: bool = False
    users: bool = False
    identities: bool = False
    rls: bool = False
    storage_buckets: bool = False
    secrets: bool = False
    auth_config: bool = False
    oauth_config: bool = False
    email_templates: bool = False
    data: Sequence[str] = ()
    storage_files: Sequence[str] = ()
    functions: Sequence[str] = ()

    def to_items(self) -> list[tuple[ItemType, str]]:
        """
        Expand the selection into ordered (item_type, item_name) pairs.

        Order follows dependencies: schema before data, users before
        identities, buckets before their files. Duplicate names are
        collapsed so each pair appears once.
        """
        flags = (
            (self.schema, ItemType.SCHEMA),
            (self.users, ItemType.USERS),
            (self.identities, ItemType.IDENTITIES),
            (self.rls, ItemType.RLS),
            (self.storage_buckets, ItemType.STORAGE_BUCKETS),
            (self.secrets, ItemType.SECRETS),
            (self.auth_config, ItemType.AUTH_CONFIG),
            (self.oauth_config, ItemType.OAUTH_CONFIG),
            (self.email_templates, ItemType.EMAIL_TEMPLATES),
        )
        items = [(item_type, item_type.sentinel_name) for enabled, item_type in flags if enabled]

        named = (
            (ItemType.DATA, self.data),
            (ItemType.STORAGE_FILES, self.storage_files),
            (ItemType.FUNCTIONS, self.functions),
        )
        for item_type, names in named:
            for name in dict.fromkeys(names):
                items.append((item_type, name))
        return items

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ItemSelection:
        """Create a selection from a request payload."""
        return cls(
            schema=bool(data.get("schema", False)),
            users=bool(data.get("users", False)),
            identities=bool(data.get("identities", False)),
            rls=bool(data.get("rls", False)),
            storage_buckets=bool(data.get("storage_buckets", False)),
            secrets=bool(data.get("secrets", False)),
            auth_config=bool(data.get("auth_config", False)),
            oauth_config=bool(data.get("oauth_config", False)),
            email_templates=bool(data.get("email_templates", False)),
            data=tuple(data.get("data") or ()),
            storage_files=tuple(data.get("storage_files") or ()),
            functions=tuple(data.get("functions") or ()),
        )


@dataclass(frozen=True)
class MigrationProgress:
    """Item counts of one migration, by status."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    in_progress: int = 0
    rolled_back: int = 0

    @classmethod
    def from_items(cls, items: Iterable[MigrationItem]) -> MigrationProgress:
        """Count items by status."""
        counts = {status: 0 for status in ItemStatus}
        total = 0
        for item in items:
            counts[item.status] += 1
            total += 1
        return cls(
            total=total,
            completed=counts[ItemStatus.COMPLETED],
            failed=counts[ItemStatus.FAILED],
            pending=counts[ItemStatus.PENDING],
            skipped=counts[ItemStatus.SKIPPED],
            in_progress=counts[ItemStatus.IN_PROGRESS],
            rolled_back=counts[ItemStatus.ROLLED_BACK],
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for API responses."""
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "skipped": self.skipped,
            "in_progress": self.in_progress,
            "rolled_back": self.rolled_back,
        }


@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of a single verification check.

    Attributes:
        name: Check name (e.g. "row_count_todos").
        passed: Whether the check passed.
        message: Human-readable outcome.
        details: Structured evidence (counts, missing names, diffs).
    """

    name: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        result: dict[str, Any] = {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckResult:
        """Create from a stored dictionary."""
        return cls(
            name=data["name"],
            passed=bool(data["passed"]),
            message=data.get("message", ""),
            details=data.get("details"),
        )


@dataclass(frozen=True)
class VerificationSummary:
    """Counts of checks by outcome."""

    total: int
    passed: int
    failed: int

    @classmethod
    def from_checks(cls, checks: Sequence[CheckResult]) -> VerificationSummary:
        """Summarize a list of check results."""
        passed = sum(1 for check in checks if check.passed)
        return cls(total=len(checks), passed=passed, failed=len(checks) - passed)

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for storage."""
        return {"total": self.total, "passed": self.passed, "failed": self.failed}


@dataclass(frozen=True)
class VerificationResults:
    """
    Stored results of one verification run.

    The layer passes only when every check passed.
    """

    layer: VerificationLayer
    checks: tuple[CheckResult, ...]

    @property
    def summary(self) -> VerificationSummary:
        """Counts of checks by outcome."""
        return VerificationSummary.from_checks(self.checks)

    @property
    def status(self) -> VerificationStatus:
        """PASSED when no check failed, else FAILED."""
        if self.summary.failed == 0:
            return VerificationStatus.PASSED
        return VerificationStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "layer": self.layer.value,
            "status": self.status.value,
            "checks": [check.to_dict() for check in self.checks],
            "summary": self.summary.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerificationResults:
        """Create from a stored dictionary."""
        return cls(
            layer=VerificationLayer(data["layer"]),
            checks=tuple(CheckResult.from_dict(check) for check in data.get("checks", [])),
        )


@dataclass
class Verification:
    """
    One run of one verification layer.

    Runs accumulate as history; nothing is overwritten.
    """

    id: UUID
    migration_id: UUID
    layer: VerificationLayer
    status: VerificationStatus = VerificationStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    results: VerificationResults | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for API responses."""
        return {
            "id": str(self.id),
            "migration_id": str(self.migration_id),
            "layer": self.layer.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "results": self.results.to_dict() if self.results else None,
        }


@dataclass(frozen=True)
class FunctionalTestOptions:
    """
    Targets for the functional verification probes.

    Each probe runs only when its target is given.

    Attributes:
        test_table_name: Table to run a bounded SELECT against.
        test_bucket_id: Bucket to run an upload/download/delete round-trip in.
        test_function_name: Deployed function to invoke.
        test_auth_user: Whether to run the create/sign-in/delete auth flow.
    """

    test_table_name: str | None = None
    test_bucket_id: str | None = None
    test_function_name: str | None = None
    test_auth_user: bool = False


__all__ = [
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
    "VerificationResults",
    "VerificationStatus",
    "VerificationSummary",
]
