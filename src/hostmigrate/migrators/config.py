"""
Migrators for configuration items.

Settings are read from the local dashboard key/value table and PATCHed into
the remote auth configuration. These items record no rollback descriptor:
the previous remote values are not captured, so they cannot be restored.
"""

from __future__ import annotations

import logging
from typing import Any

from hostmigrate.migrators.base import MigrationContext
from hostmigrate.models import ItemType, MigrationItem

logger = logging.getLogger(__name__)

ANONYMOUS_USERS_FLAG = "EXTERNAL_ANONYMOUS_USERS_ENABLED"
OAUTH_PROVIDERS = ("google", "github")

EMAIL_TEMPLATES_NOTE = (
    "Email templates must be configured manually in the hosted dashboard "
    "under Authentication > Email Templates"
)


async def _apply(ctx: MigrationContext, changes: dict[str, Any]) -> None:
    if not changes:
        logger.info("No auth settings to apply")
        return
    async with ctx.management_client() as client:
        await client.update_auth_config(ctx.project_ref, changes)
    # Keys only; values may hold client secrets.
    logger.info("Updated remote auth settings: %s", ", ".join(sorted(changes)))


class AuthConfigMigrator:
    """Enables anonymous sign-in remotely when it is enabled locally."""

    item_type = ItemType.AUTH_CONFIG

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> None:
        changes: dict[str, Any] = {}
        if await ctx.source.get_setting("allow_anonymous") == "true":
            changes[ANONYMOUS_USERS_FLAG] = True
        await _apply(ctx, changes)


async def oauth_changes(ctx: MigrationContext) -> dict[str, Any]:
    """
    Auth settings for every OAuth provider enabled locally with a client id.

    A provider's secret is sent only when one is stored.
    """
    changes: dict[str, Any] = {}
    for provider in OAUTH_PROVIDERS:
        enabled = await ctx.source.get_setting(f"oauth_{provider}_enabled")
        client_id = await ctx.source.get_setting(f"oauth_{provider}_client_id")
        secret = await ctx.source.get_setting(f"oauth_{provider}_client_secret")
        if enabled != "true" or not client_id:
            continue
        prefix = f"EXTERNAL_{provider.upper()}"
        changes[f"{prefix}_ENABLED"] = True
        changes[f"{prefix}_CLIENT_ID"] = client_id
        if secret:
            changes[f"{prefix}_SECRET"] = secret
    return changes


class OAuthConfigMigrator:
    item_type = ItemType.OAUTH_CONFIG

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> None:
        await _apply(ctx, await oauth_changes(ctx))


class EmailTemplatesMigrator:
    """
    Completes immediately: templates cannot be set through the API.

    Leaves a note on the item telling the operator to configure them by hand.
    """

    item_type = ItemType.EMAIL_TEMPLATES

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> None:
        item.metadata["note"] = EMAIL_TEMPLATES_NOTE


__all__ = [
    "ANONYMOUS_USERS_FLAG",
    "EMAIL_TEMPLATES_NOTE",
    "OAUTH_PROVIDERS",
    "AuthConfigMigrator",
    "EmailTemplatesMigrator",
    "OAuthConfigMigrator",
    "oauth_changes",
]
