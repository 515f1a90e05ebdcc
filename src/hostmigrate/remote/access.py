"""
RemoteAccess - builds remote clients from a migration's stored credentials.

Credentials are decrypted per call and a new client or engine is built each
time; no remote client is cached on the migration. The plaintext token and
password live only for the duration of the call that needs them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.config import EngineConfig
from hostmigrate.exceptions import (
    DatabasePasswordMissingError,
    ProjectNotSelectedError,
    RemoteError,
    RemoteNotConnectedError,
)
from hostmigrate.models import Migration
from hostmigrate.observability import Tracer
from hostmigrate.remote.database import PostgresEngineFactory, RemoteEngineFactory
from hostmigrate.remote.gateway import ProjectGateway
from hostmigrate.remote.management import ANON_KEY, SERVICE_ROLE_KEY, ManagementClient
from hostmigrate.repositories.state import StateStore
from hostmigrate.vault import CredentialVault

logger = logging.getLogger(__name__)


class RemoteAccess:
    """
    Factory for remote clients scoped to one migration.

    Args:
        store: State store holding the encrypted database password.
        vault: Vault that decrypts the stored token and password.
        config: Endpoints and timeouts.
        engine_factory: Builds remote database engines; defaults to asyncpg.
        transport: Optional httpx transport shared by every HTTP client
            (used to fake the remote APIs in tests).
        tracer: Optional tracer handed to the HTTP clients.
        enable_tracing: Whether the HTTP clients trace their requests.
    """

    def __init__(
        self,
        store: StateStore,
        vault: CredentialVault,
        config: EngineConfig,
        *,
        engine_factory: RemoteEngineFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._vault = vault
        self._config = config
        self._engine_factory = engine_factory or PostgresEngineFactory(config)
        self._transport = transport
        self._tracer = tracer
        self._enable_tracing = enable_tracing

    @property
    def config(self) -> EngineConfig:
        return self._config

    def client_for_token(self, access_token: str) -> ManagementClient:
        """A management client for a token that has not been stored yet."""
        return ManagementClient(
            access_token,
            base_url=self._config.management_api_url,
            timeout=self._config.management_timeout,
            transport=self._transport,
            tracer=self._tracer,
            enable_tracing=self._enable_tracing,
        )

    def management_client(self, migration: Migration) -> ManagementClient:
        """
        A management client authenticated with the migration's stored token.

        Raises:
            RemoteNotConnectedError: If no token has been stored.
            CredentialDecryptionError: If the stored token cannot be decrypted.
        """
        if not migration.encrypted_credentials:
            raise RemoteNotConnectedError(migration.id)
        token = self._vault.decrypt(migration.encrypted_credentials).decode("utf-8")
        return self.client_for_token(token)

    async def project_gateway(
        self,
        migration: Migration,
        *,
        timeout: float | None = None,
    ) -> ProjectGateway:
        """
        A gateway to the selected project's HTTP APIs.

        The service_role key is required; the anon key is used when the
        project reports one.

        Args:
            timeout: Request timeout in seconds; None disables it.

        Raises:
            ProjectNotSelectedError: If no project has been selected.
            RemoteError: If the project has no service_role key.
        """
        project_ref = self._require_project(migration)
        async with self.management_client(migration) as client:
            keys = {key.name: key.api_key for key in await client.get_api_keys(project_ref)}

        service_key = keys.get(SERVICE_ROLE_KEY)
        if not service_key:
            raise RemoteError(f"{SERVICE_ROLE_KEY} key not found")
        return ProjectGateway(
            self._config.project_url(project_ref),
            service_key=service_key,
            anon_key=keys.get(ANON_KEY),
            timeout=timeout,
            transport=self._transport,
            tracer=self._tracer,
            enable_tracing=self._enable_tracing,
        )

    @asynccontextmanager
    async def database(self, migration: Migration) -> AsyncIterator[AsyncEngine]:
        """
        A fresh engine for the selected project's database, disposed on exit.

        Raises:
            ProjectNotSelectedError: If no project has been selected.
            DatabasePasswordMissingError: If no password has been stored.
            CredentialDecryptionError: If the stored password cannot be decrypted.
        """
        project_ref = self._require_project(migration)
        encoded = await self._store.get_database_password(migration.id)
        if not encoded:
            raise DatabasePasswordMissingError(migration.id)
        password = self._vault.decrypt_text(encoded)

        engine = self._engine_factory(project_ref, password)
        try:
            yield engine
        finally:
            await engine.dispose()

    def _require_project(self, migration: Migration) -> str:
        if not migration.remote_project_ref:
            raise ProjectNotSelectedError(migration.id)
        return migration.remote_project_ref


__all__ = ["RemoteAccess"]
