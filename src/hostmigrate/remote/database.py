"""
Engines for the remote project's Postgres database.

A fresh engine is built for every item migration and every verification run
and disposed when that scope ends; nothing caches a remote connection.
"""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from hostmigrate.config import EngineConfig
from hostmigrate.exceptions import RemoteConnectionError

logger = logging.getLogger(__name__)


class RemoteEngineFactory(Protocol):
    """Builds an engine for one project's database."""

    def __call__(self, project_ref: str, password: str) -> AsyncEngine:
        """
        Create a new, unconnected engine.

        Args:
            project_ref: Selected project reference.
            password: Plaintext database password.
        """
        ...


def build_database_url(config: EngineConfig, project_ref: str, password: str) -> str:
    """Fill the configured URL template; the password is URL-quoted."""
    return config.database_url_template.format(
        password=quote_plus(password),
        ref=project_ref,
    )


class PostgresEngineFactory:
    """
    Default factory: asyncpg with TLS required, a bounded connect timeout and
    a per-statement timeout.

    Args:
        config: Supplies the URL template and timeouts.
    """

    def __init__(self, config: EngineConfig) -> None:
        self._config = config

    def __call__(self, project_ref: str, password: str) -> AsyncEngine:
        url = build_database_url(self._config, project_ref, password)
        return create_async_engine(
            url,
            poolclass=NullPool,
            connect_args={
                "ssl": "require",
                "timeout": self._config.database_connect_timeout,
                "command_timeout": self._config.database_statement_timeout,
            },
        )


async def ping(engine: AsyncEngine) -> None:
    """
    Open one connection and run a trivial query.

    Raises:
        RemoteConnectionError: If the database cannot be reached.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Remote database ping failed: %s", type(e).__name__)
        raise RemoteConnectionError(f"connect to database: {e}") from e


__all__ = [
    "PostgresEngineFactory",
    "RemoteEngineFactory",
    "build_database_url",
    "ping",
]
