"""
Migrators for edge functions and their secrets.
"""

from __future__ import annotations

import logging

from hostmigrate.exceptions import VaultNotConfiguredError
from hostmigrate.identifiers import validate_identifier, validate_slug
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.models import ItemType, MigrationItem
from hostmigrate.rollback_info import FunctionsRollback, SecretsRollback

logger = logging.getLogger(__name__)


class FunctionsMigrator:
    """
    Deploys one function from its local source directory.

    The directory is packaged as an in-memory tar.gz; the verify-JWT flag
    comes from local function metadata and defaults to on.
    """

    item_type = ItemType.FUNCTIONS

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> FunctionsRollback:
        name = validate_slug(item.item_name, "function")
        archive = ctx.source.package_function(name)
        verify_jwt = await ctx.source.function_verify_jwt(name)

        async with ctx.management_client() as client:
            await client.deploy_function(ctx.project_ref, name, archive, verify_jwt=verify_jwt)
        return FunctionsRollback(function_name=name)


class SecretsMigrator:
    """
    Pushes every local function secret in one batch.

    Local values are vault-encrypted; they are decrypted here, so the item
    fails when the server secret is not configured. Nothing is sent when
    there are no secrets.
    """

    item_type = ItemType.SECRETS

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> SecretsRollback:
        if not ctx.vault.is_configured:
            raise VaultNotConfiguredError()

        secrets: dict[str, str] = {}
        for row in await ctx.source.fetch_secrets():
            name = validate_identifier(row["name"], "secret")
            secrets[name] = ctx.vault.decrypt_text(row["value"])

        if secrets:
            async with ctx.management_client() as client:
                await client.create_secrets(ctx.project_ref, secrets)
            logger.info("Pushed %d secrets", len(secrets))
        return SecretsRollback(secret_names=list(secrets))


__all__ = ["FunctionsMigrator", "SecretsMigrator"]
