"""
Shared pytest fixtures for the hostmigrate tests.

This module provides:
- Local backend fixtures (local_engine, store, source, storage_dir, functions_dir)
- Credential fixtures (vault, unconfigured_vault)
- Remote fixtures (platform, remote_db, remote_access)
- Migration fixtures (remote_migration, stored_migration, migration_context)
- Service fixtures (service, connected_migration)
- Tracing fixtures (mock_tracer)

The local backend and the remote database are SQLite files under tmp_path;
the hosted platform's HTTP APIs are faked in memory by FakePlatform.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from hostmigrate.config import EngineConfig
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.models import Migration
from hostmigrate.observability import MockTracer
from hostmigrate.orchestrator import MigrationService
from hostmigrate.remote.access import RemoteAccess
from hostmigrate.repositories.state import SQLAlchemyStateStore
from hostmigrate.source import LocalSource
from hostmigrate.vault import CredentialVault
from tests.fixtures import FakePlatform, SQLiteRemote, create_local_schema

SERVER_SECRET = "test-server-jwt-secret"
DATABASE_PASSWORD = "db-password"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "sqlite: tests that run against SQLite through aiosqlite")


# ============================================================================
# Local backend
# ============================================================================


@pytest_asyncio.fixture
async def local_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine for a fresh local backend database.

    The state store's tables and the local backend's own tables exist;
    no user tables do.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'local.db'}")
    await SQLAlchemyStateStore(engine, enable_tracing=False).create_tables()
    await create_local_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(local_engine: AsyncEngine) -> SQLAlchemyStateStore:
    return SQLAlchemyStateStore(local_engine, enable_tracing=False)


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    path = tmp_path / "storage"
    path.mkdir()
    return path


@pytest.fixture
def functions_dir(tmp_path: Path) -> Path:
    path = tmp_path / "functions"
    path.mkdir()
    return path


@pytest.fixture
def config(storage_dir: Path, functions_dir: Path) -> EngineConfig:
    return EngineConfig(storage_dir=storage_dir, functions_dir=functions_dir)


@pytest.fixture
def source(local_engine: AsyncEngine, config: EngineConfig) -> LocalSource:
    return LocalSource(
        local_engine,
        storage_dir=config.storage_dir,
        functions_dir=config.functions_dir,
    )


# ============================================================================
# Credentials
# ============================================================================


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(SERVER_SECRET)


@pytest.fixture
def unconfigured_vault() -> CredentialVault:
    """A vault with no server secret; every operation fails closed."""
    return CredentialVault("")


# ============================================================================
# Remote side
# ============================================================================


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest_asyncio.fixture
async def remote_db(tmp_path: Path) -> SQLiteRemote:
    """SQLite remote database with the auth and storage tables created."""
    directory = tmp_path / "remote"
    directory.mkdir()
    remote = SQLiteRemote(directory)
    await remote.create_platform_tables()
    return remote


@pytest.fixture
def remote_access(
    store: SQLAlchemyStateStore,
    vault: CredentialVault,
    config: EngineConfig,
    platform: FakePlatform,
    remote_db: SQLiteRemote,
) -> RemoteAccess:
    return RemoteAccess(
        store,
        vault,
        config,
        engine_factory=remote_db,
        transport=platform.transport(),
        enable_tracing=False,
    )


@pytest_asyncio.fixture
async def remote_migration(
    store: SQLAlchemyStateStore,
    vault: CredentialVault,
    platform: FakePlatform,
) -> Migration:
    """
    An in-memory migration with a project selected and credentials stored.

    Only the database password goes through the state store; the migration
    itself is not persisted.
    """
    migration = Migration(
        id=uuid4(),
        remote_project_ref=platform.project_ref,
        remote_project_name="Test Project",
        encrypted_credentials=vault.encrypt(platform.token.encode("utf-8")),
    )
    await store.set_database_password(migration.id, vault.encrypt_text(DATABASE_PASSWORD))
    return migration


@pytest_asyncio.fixture
async def stored_migration(
    store: SQLAlchemyStateStore,
    vault: CredentialVault,
    platform: FakePlatform,
) -> Migration:
    """Like remote_migration, but persisted in the state store."""
    migration = await store.create_migration()
    migration.remote_project_ref = platform.project_ref
    migration.remote_project_name = "Test Project"
    migration.encrypted_credentials = vault.encrypt(platform.token.encode("utf-8"))
    await store.update_migration(migration)
    await store.set_database_password(migration.id, vault.encrypt_text(DATABASE_PASSWORD))
    return migration


@pytest.fixture
def migration_context(
    remote_migration: Migration,
    source: LocalSource,
    remote_access: RemoteAccess,
    vault: CredentialVault,
) -> MigrationContext:
    return MigrationContext(
        migration=remote_migration,
        source=source,
        remote=remote_access,
        vault=vault,
    )


# ============================================================================
# Service
# ============================================================================


@pytest.fixture
def service(
    store: SQLAlchemyStateStore,
    source: LocalSource,
    vault: CredentialVault,
    config: EngineConfig,
    platform: FakePlatform,
    remote_db: SQLiteRemote,
) -> MigrationService:
    return MigrationService(
        store,
        source,
        vault,
        config,
        engine_factory=remote_db,
        transport=platform.transport(),
        enable_tracing=False,
    )


@pytest_asyncio.fixture
async def connected_migration(service: MigrationService, platform: FakePlatform) -> Migration:
    """A migration with a stored token, a selected project and a database password."""
    migration = await service.start_migration()
    await service.connect_remote(migration.id, platform.token)
    await service.select_project(migration.id, platform.project_ref)
    await service.set_database_password(migration.id, DATABASE_PASSWORD)
    return await service.get_migration(migration.id)


# ============================================================================
# Tracing
# ============================================================================


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()
