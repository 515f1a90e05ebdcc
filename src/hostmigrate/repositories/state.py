"""
StateStore - durable persistence for migrations, items and verifications.

The state store keeps every Migration, MigrationItem and Verification record
in the local database, next to the data being migrated, so a run can be
resumed or audited after a restart.

Responsibilities:
    - Create the bookkeeping tables on first use
    - CRUD for migrations, validating status transitions
    - Replace a migration's item selection atomically
    - Track per-item status, errors and rollback descriptors
    - Accumulate verification history per layer
    - Store the encrypted remote database password per migration

Database Tables:
    _migrations, _migration_items, _migration_verifications, plus the local
    key/value settings table _dashboard.

Usage:
    >>> store = SQLAlchemyStateStore(engine)
    >>> await store.create_tables()
    >>> migration = await store.create_migration()
    >>> items = await store.replace_items(migration.id, selection.to_items())
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import text

from hostmigrate.exceptions import (
    InvalidMigrationStateError,
    ItemNotFoundError,
    MigrationNotFoundError,
)
from hostmigrate.models import (
    ItemStatus,
    ItemType,
    Migration,
    MigrationItem,
    MigrationStatus,
    Verification,
    VerificationLayer,
    VerificationResults,
    VerificationStatus,
)
from hostmigrate.observability import (
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
    Tracer,
    create_tracer,
)
from hostmigrate.repositories._connection import Connectable, execute_with_connection
from hostmigrate.rollback_info import dump_rollback_info, parse_rollback_info

# Valid status transitions for the migration state machine
VALID_TRANSITIONS: dict[MigrationStatus, set[MigrationStatus]] = {
    MigrationStatus.PENDING: {MigrationStatus.IN_PROGRESS},
    MigrationStatus.IN_PROGRESS: {
        MigrationStatus.COMPLETED,
        MigrationStatus.FAILED,
        MigrationStatus.ROLLED_BACK,
    },
    MigrationStatus.COMPLETED: {MigrationStatus.IN_PROGRESS},  # Re-run or rollback
    MigrationStatus.FAILED: {
        MigrationStatus.PENDING,  # Retry
        MigrationStatus.IN_PROGRESS,  # Rollback
    },
    MigrationStatus.ROLLED_BACK: set(),  # Terminal
}

DB_PASSWORD_KEY_PREFIX = "migration_db_password_"

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS _migrations (
        id                    TEXT PRIMARY KEY,
        status                TEXT NOT NULL DEFAULT 'pending',
        remote_project_ref    TEXT,
        remote_project_name   TEXT,
        credentials_encrypted BLOB,
        error_message         TEXT,
        created_at            TEXT NOT NULL,
        updated_at            TEXT NOT NULL,
        completed_at          TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS _migration_items (
        id            TEXT PRIMARY KEY,
        migration_id  TEXT NOT NULL REFERENCES _migrations(id) ON DELETE CASCADE,
        position      INTEGER NOT NULL,
        item_type     TEXT NOT NULL,
        item_name     TEXT NOT NULL,
        status        TEXT NOT NULL DEFAULT 'pending',
        started_at    TEXT,
        completed_at  TEXT,
        error_message TEXT,
        rollback_info TEXT,
        metadata      TEXT,
        UNIQUE (migration_id, item_type, item_name)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_migration_items_migration
        ON _migration_items(migration_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS _migration_verifications (
        id            TEXT PRIMARY KEY,
        migration_id  TEXT NOT NULL REFERENCES _migrations(id) ON DELETE CASCADE,
        layer         TEXT NOT NULL,
        status        TEXT NOT NULL DEFAULT 'pending',
        created_at    TEXT NOT NULL,
        started_at    TEXT,
        completed_at  TEXT,
        results       TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS _dashboard (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at TEXT DEFAULT (datetime('now'))
    )
    """,
)


def _now() -> datetime:
    return datetime.now(UTC)


def _to_text(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _from_text(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@runtime_checkable
class StateStore(Protocol):
    """
    Protocol for migration state persistence.

    Implementations must validate migration status transitions and keep
    (migration_id, item_type, item_name) unique.
    """

    async def create_tables(self) -> None:
        """Create the bookkeeping tables if they do not exist."""
        ...

    async def create_migration(self) -> Migration:
        """Create and persist a new pending migration."""
        ...

    async def get_migration(self, migration_id: UUID) -> Migration | None:
        """Get a migration by ID, or None if not found."""
        ...

    async def list_migrations(self) -> list[Migration]:
        """List all migrations, newest first."""
        ...

    async def update_migration(self, migration: Migration) -> None:
        """
        Persist a migration's project, credentials and status fields.

        Raises:
            MigrationNotFoundError: If the migration does not exist
            InvalidMigrationStateError: If the status change is not allowed
        """
        ...

    async def delete_migration(self, migration_id: UUID) -> None:
        """Delete a migration with its items, verifications and stored password."""
        ...

    async def replace_items(
        self,
        migration_id: UUID,
        items: Sequence[tuple[ItemType, str]],
    ) -> list[MigrationItem]:
        """Delete all items of a migration and create the given ones, in order."""
        ...

    async def get_items(self, migration_id: UUID) -> list[MigrationItem]:
        """Get a migration's items in selection order."""
        ...

    async def get_item(self, item_id: UUID) -> MigrationItem:
        """Get one item. Raises ItemNotFoundError if missing."""
        ...

    async def update_item(self, item: MigrationItem) -> None:
        """Persist an item's status, timestamps, error, rollback info and metadata."""
        ...

    async def reset_failed_items(self, migration_id: UUID) -> int:
        """
        Reset failed items to pending, clearing errors and timestamps.

        Items stuck in_progress, left by a process that died mid-item, are
        reset too.
        """
        ...

    async def create_verification(
        self,
        migration_id: UUID,
        layer: VerificationLayer,
    ) -> Verification:
        """Create a pending verification record."""
        ...

    async def update_verification(self, verification: Verification) -> None:
        """Persist a verification's status, timestamps and results."""
        ...

    async def get_verifications(self, migration_id: UUID) -> list[Verification]:
        """Get a migration's verification history, newest first."""
        ...

    async def set_database_password(self, migration_id: UUID, encoded: str) -> None:
        """Store the encrypted (base64) remote database password."""
        ...

    async def get_database_password(self, migration_id: UUID) -> str | None:
        """Get the encrypted (base64) remote database password, if stored."""
        ...


class SQLAlchemyStateStore:
    """
    State store backed by the local SQLite database through SQLAlchemy.

    Args:
        conn: Database connection or engine
        tracer: Optional custom Tracer instance
        enable_tracing: Whether to enable OpenTelemetry tracing (default True)

    Example:
        >>> from sqlalchemy.ext.asyncio import create_async_engine
        >>> engine = create_async_engine("sqlite+aiosqlite:///data.db")
        >>> store = SQLAlchemyStateStore(engine)
        >>> await store.create_tables()
    """

    def __init__(
        self,
        conn: Connectable,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def create_tables(self) -> None:
        async with execute_with_connection(self._conn, transactional=True) as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))

    # =========================================================================
    # Migrations
    # =========================================================================

    async def create_migration(self) -> Migration:
        now = _now()
        migration = Migration(id=uuid4(), created_at=now, updated_at=now)
        with self._tracer.span(
            "hostmigrate.state_store.create_migration",
            {ATTR_MIGRATION_ID: str(migration.id)},
        ):
            query = text("""
                INSERT INTO _migrations (id, status, created_at, updated_at)
                VALUES (:id, :status, :created_at, :updated_at)
            """)
            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(
                    query,
                    {
                        "id": str(migration.id),
                        "status": migration.status.value,
                        "created_at": _to_text(now),
                        "updated_at": _to_text(now),
                    },
                )
        return migration

    async def get_migration(self, migration_id: UUID) -> Migration | None:
        query = text("""
            SELECT id, status, remote_project_ref, remote_project_name,
                   credentials_encrypted, error_message,
                   created_at, updated_at, completed_at
            FROM _migrations
            WHERE id = :id
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"id": str(migration_id)})
            row = result.mappings().fetchone()

        if row is None:
            return None
        return self._row_to_migration(row)

    async def list_migrations(self) -> list[Migration]:
        query = text("""
            SELECT id, status, remote_project_ref, remote_project_name,
                   credentials_encrypted, error_message,
                   created_at, updated_at, completed_at
            FROM _migrations
            ORDER BY created_at DESC
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query)
            rows = result.mappings().all()
        return [self._row_to_migration(row) for row in rows]

    async def update_migration(self, migration: Migration) -> None:
        with self._tracer.span(
            "hostmigrate.state_store.update_migration",
            {
                ATTR_MIGRATION_ID: str(migration.id),
                ATTR_MIGRATION_STATUS: migration.status.value,
            },
        ):
            current = await self.get_migration(migration.id)
            if current is None:
                raise MigrationNotFoundError(migration.id)

            if current.status != migration.status:
                valid = VALID_TRANSITIONS.get(current.status, set())
                if migration.status not in valid:
                    raise InvalidMigrationStateError(
                        migration.id,
                        current.status,
                        f"move to {migration.status.value}",
                    )

            migration.updated_at = _now()
            query = text("""
                UPDATE _migrations
                SET status = :status,
                    remote_project_ref = :remote_project_ref,
                    remote_project_name = :remote_project_name,
                    credentials_encrypted = :credentials_encrypted,
                    error_message = :error_message,
                    updated_at = :updated_at,
                    completed_at = :completed_at
                WHERE id = :id
            """)
            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(
                    query,
                    {
                        "id": str(migration.id),
                        "status": migration.status.value,
                        "remote_project_ref": migration.remote_project_ref,
                        "remote_project_name": migration.remote_project_name,
                        "credentials_encrypted": migration.encrypted_credentials,
                        "error_message": migration.error_message,
                        "updated_at": _to_text(migration.updated_at),
                        "completed_at": _to_text(migration.completed_at),
                    },
                )

    async def delete_migration(self, migration_id: UUID) -> None:
        params = {"id": str(migration_id)}
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                text("DELETE FROM _migration_items WHERE migration_id = :id"), params
            )
            await conn.execute(
                text("DELETE FROM _migration_verifications WHERE migration_id = :id"), params
            )
            await conn.execute(
                text("DELETE FROM _dashboard WHERE key = :key"),
                {"key": f"{DB_PASSWORD_KEY_PREFIX}{migration_id}"},
            )
            await conn.execute(text("DELETE FROM _migrations WHERE id = :id"), params)

    # =========================================================================
    # Items
    # =========================================================================

    async def replace_items(
        self,
        migration_id: UUID,
        items: Sequence[tuple[ItemType, str]],
    ) -> list[MigrationItem]:
        created = [
            MigrationItem(
                id=uuid4(),
                migration_id=migration_id,
                item_type=item_type,
                item_name=item_name,
            )
            for item_type, item_name in items
        ]
        insert = text("""
            INSERT INTO _migration_items
                (id, migration_id, position, item_type, item_name, status, metadata)
            VALUES
                (:id, :migration_id, :position, :item_type, :item_name, :status, :metadata)
        """)
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                text("DELETE FROM _migration_items WHERE migration_id = :migration_id"),
                {"migration_id": str(migration_id)},
            )
            for position, item in enumerate(created):
                await conn.execute(
                    insert,
                    {
                        "id": str(item.id),
                        "migration_id": str(migration_id),
                        "position": position,
                        "item_type": item.item_type.value,
                        "item_name": item.item_name,
                        "status": item.status.value,
                        "metadata": json.dumps(item.metadata),
                    },
                )
        return created

    async def get_items(self, migration_id: UUID) -> list[MigrationItem]:
        query = text("""
            SELECT id, migration_id, item_type, item_name, status,
                   started_at, completed_at, error_message, rollback_info, metadata
            FROM _migration_items
            WHERE migration_id = :migration_id
            ORDER BY position
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"migration_id": str(migration_id)})
            rows = result.mappings().all()
        return [self._row_to_item(row) for row in rows]

    async def get_item(self, item_id: UUID) -> MigrationItem:
        query = text("""
            SELECT id, migration_id, item_type, item_name, status,
                   started_at, completed_at, error_message, rollback_info, metadata
            FROM _migration_items
            WHERE id = :id
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"id": str(item_id)})
            row = result.mappings().fetchone()
        if row is None:
            raise ItemNotFoundError(item_id)
        return self._row_to_item(row)

    async def update_item(self, item: MigrationItem) -> None:
        query = text("""
            UPDATE _migration_items
            SET status = :status,
                started_at = :started_at,
                completed_at = :completed_at,
                error_message = :error_message,
                rollback_info = :rollback_info,
                metadata = :metadata
            WHERE id = :id
        """)
        async with execute_with_connection(self._conn, transactional=True) as conn:
            result = await conn.execute(
                query,
                {
                    "id": str(item.id),
                    "status": item.status.value,
                    "started_at": _to_text(item.started_at),
                    "completed_at": _to_text(item.completed_at),
                    "error_message": item.error_message,
                    "rollback_info": dump_rollback_info(item.rollback_info),
                    "metadata": json.dumps(item.metadata),
                },
            )
            if result.rowcount == 0:
                raise ItemNotFoundError(item.id)

    async def reset_failed_items(self, migration_id: UUID) -> int:
        query = text("""
            UPDATE _migration_items
            SET status = :pending,
                error_message = NULL,
                started_at = NULL,
                completed_at = NULL
            WHERE migration_id = :migration_id AND status IN (:failed, :in_progress)
        """)
        async with execute_with_connection(self._conn, transactional=True) as conn:
            result = await conn.execute(
                query,
                {
                    "migration_id": str(migration_id),
                    "pending": ItemStatus.PENDING.value,
                    "failed": ItemStatus.FAILED.value,
                    "in_progress": ItemStatus.IN_PROGRESS.value,
                },
            )
            return result.rowcount or 0

    # =========================================================================
    # Verifications
    # =========================================================================

    async def create_verification(
        self,
        migration_id: UUID,
        layer: VerificationLayer,
    ) -> Verification:
        verification = Verification(id=uuid4(), migration_id=migration_id, layer=layer)
        query = text("""
            INSERT INTO _migration_verifications (id, migration_id, layer, status, created_at)
            VALUES (:id, :migration_id, :layer, :status, :created_at)
        """)
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                query,
                {
                    "id": str(verification.id),
                    "migration_id": str(migration_id),
                    "layer": layer.value,
                    "status": verification.status.value,
                    "created_at": _to_text(_now()),
                },
            )
        return verification

    async def update_verification(self, verification: Verification) -> None:
        query = text("""
            UPDATE _migration_verifications
            SET status = :status,
                started_at = :started_at,
                completed_at = :completed_at,
                results = :results
            WHERE id = :id
        """)
        results = (
            json.dumps(verification.results.to_dict(), default=str)
            if verification.results
            else None
        )
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                query,
                {
                    "id": str(verification.id),
                    "status": verification.status.value,
                    "started_at": _to_text(verification.started_at),
                    "completed_at": _to_text(verification.completed_at),
                    "results": results,
                },
            )

    async def get_verifications(self, migration_id: UUID) -> list[Verification]:
        query = text("""
            SELECT id, migration_id, layer, status, started_at, completed_at, results
            FROM _migration_verifications
            WHERE migration_id = :migration_id
            ORDER BY created_at DESC
        """)
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, {"migration_id": str(migration_id)})
            rows = result.mappings().all()
        return [self._row_to_verification(row) for row in rows]

    # =========================================================================
    # Stored database password
    # =========================================================================

    async def set_database_password(self, migration_id: UUID, encoded: str) -> None:
        query = text("""
            INSERT INTO _dashboard (key, value, updated_at)
            VALUES (:key, :value, :updated_at)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at
        """)
        async with execute_with_connection(self._conn, transactional=True) as conn:
            await conn.execute(
                query,
                {
                    "key": f"{DB_PASSWORD_KEY_PREFIX}{migration_id}",
                    "value": encoded,
                    "updated_at": _to_text(_now()),
                },
            )

    async def get_database_password(self, migration_id: UUID) -> str | None:
        query = text("SELECT value FROM _dashboard WHERE key = :key")
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(
                query, {"key": f"{DB_PASSWORD_KEY_PREFIX}{migration_id}"}
            )
            return result.scalar()

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _row_to_migration(self, row: Mapping[str, Any]) -> Migration:
        """Convert a database row to a Migration instance."""
        credentials = row["credentials_encrypted"]
        return Migration(
            id=UUID(row["id"]),
            status=MigrationStatus(row["status"]),
            remote_project_ref=row["remote_project_ref"],
            remote_project_name=row["remote_project_name"],
            encrypted_credentials=bytes(credentials) if credentials else None,
            error_message=row["error_message"],
            created_at=_from_text(row["created_at"]),
            updated_at=_from_text(row["updated_at"]),
            completed_at=_from_text(row["completed_at"]),
        )

    def _row_to_item(self, row: Mapping[str, Any]) -> MigrationItem:
        """
        Convert a database row to a MigrationItem.

        The stored rollback JSON is read back into the descriptor shape
        selected by the item's type.
        """
        item_type = ItemType(row["item_type"])
        return MigrationItem(
            id=UUID(row["id"]),
            migration_id=UUID(row["migration_id"]),
            item_type=item_type,
            item_name=row["item_name"],
            status=ItemStatus(row["status"]),
            started_at=_from_text(row["started_at"]),
            completed_at=_from_text(row["completed_at"]),
            error_message=row["error_message"],
            rollback_info=parse_rollback_info(item_type, row["rollback_info"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    def _row_to_verification(self, row: Mapping[str, Any]) -> Verification:
        """Convert a database row to a Verification."""
        results = json.loads(row["results"]) if row["results"] else None
        return Verification(
            id=UUID(row["id"]),
            migration_id=UUID(row["migration_id"]),
            layer=VerificationLayer(row["layer"]),
            status=VerificationStatus(row["status"]),
            started_at=_from_text(row["started_at"]),
            completed_at=_from_text(row["completed_at"]),
            results=VerificationResults.from_dict(results) if results else None,
        )


__all__ = [
    "DB_PASSWORD_KEY_PREFIX",
    "SCHEMA_STATEMENTS",
    "VALID_TRANSITIONS",
    "SQLAlchemyStateStore",
    "StateStore",
]
