"""
Unit tests for the migrators that go through the platform HTTP APIs.

Tests cover:
- StorageFilesMigrator uploading one bucket's objects
- FunctionsMigrator packaging and deploying a function
- SecretsMigrator decrypting and pushing secrets in one batch
- Auth, OAuth and email template configuration items
"""

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from hostmigrate.exceptions import (
    InvalidIdentifierError,
    ItemMigrationError,
    RemoteAPIError,
    VaultNotConfiguredError,
)
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.migrators.config import (
    EMAIL_TEMPLATES_NOTE,
    AuthConfigMigrator,
    EmailTemplatesMigrator,
    OAuthConfigMigrator,
    oauth_changes,
)
from hostmigrate.migrators.functions import FunctionsMigrator, SecretsMigrator
from hostmigrate.migrators.storage import StorageFilesMigrator
from hostmigrate.models import ItemType
from hostmigrate.rollback_info import FilesRollback, FunctionsRollback, SecretsRollback
from hostmigrate.vault import CredentialVault
from tests.fixtures import FakePlatform, insert_rows, make_item, set_setting


class TestStorageFilesMigrator:
    """Tests for StorageFilesMigrator."""

    @pytest.mark.asyncio
    async def test_uploads_objects(
        self,
        local_engine: AsyncEngine,
        storage_dir: Path,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """Each object is uploaded with its MIME type or octet-stream."""
        (storage_dir / "avatars" / "users").mkdir(parents=True)
        (storage_dir / "avatars" / "users" / "a.png").write_bytes(b"png-bytes")
        (storage_dir / "avatars" / "readme").write_bytes(b"text")
        await insert_rows(
            local_engine,
            "storage_objects",
            [
                {
                    "id": "o1",
                    "bucket_id": "avatars",
                    "name": "users/a.png",
                    "mime_type": "image/png",
                },
                {"id": "o2", "bucket_id": "avatars", "name": "readme", "mime_type": None},
            ],
        )
        item = make_item(migration_context.migration.id, ItemType.STORAGE_FILES, "avatars")

        rollback = await StorageFilesMigrator().migrate(migration_context, item)

        assert rollback == FilesRollback(bucket_id="avatars", paths=["readme", "users/a.png"])
        assert platform.objects == {
            ("avatars", "users/a.png"): b"png-bytes",
            ("avatars", "readme"): b"text",
        }
        [readme] = platform.requests_to("POST", "/storage/v1/object/avatars/readme")
        assert readme.headers["Content-Type"] == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_missing_file_fails_item(
        self,
        local_engine: AsyncEngine,
        storage_dir: Path,
        migration_context: MigrationContext,
    ) -> None:
        """Metadata without bytes on disk fails the item."""
        (storage_dir / "docs").mkdir()
        await insert_rows(
            local_engine,
            "storage_objects",
            [{"id": "o1", "bucket_id": "docs", "name": "gone.pdf", "mime_type": None}],
        )
        item = make_item(migration_context.migration.id, ItemType.STORAGE_FILES, "docs")

        with pytest.raises(ItemMigrationError, match="gone.pdf"):
            await StorageFilesMigrator().migrate(migration_context, item)

    @pytest.mark.asyncio
    async def test_upload_error_fails_item(
        self,
        local_engine: AsyncEngine,
        storage_dir: Path,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """A rejected upload surfaces as RemoteAPIError."""
        (storage_dir / "docs").mkdir()
        (storage_dir / "docs" / "a.txt").write_bytes(b"a")
        await insert_rows(
            local_engine,
            "storage_objects",
            [{"id": "o1", "bucket_id": "docs", "name": "a.txt", "mime_type": "text/plain"}],
        )
        platform.failures[("POST", "/storage/v1/object/docs/a.txt")] = 413
        item = make_item(migration_context.migration.id, ItemType.STORAGE_FILES, "docs")

        with pytest.raises(RemoteAPIError) as exc_info:
            await StorageFilesMigrator().migrate(migration_context, item)
        assert exc_info.value.status_code == 413


class TestFunctionsMigrator:
    """Tests for FunctionsMigrator."""

    @pytest.mark.asyncio
    async def test_deploys_function(
        self,
        local_engine: AsyncEngine,
        functions_dir: Path,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """The packaged function is deployed with its verify-JWT flag."""
        (functions_dir / "hello-world").mkdir()
        (functions_dir / "hello-world" / "index.ts").write_text("export default 1")
        await insert_rows(
            local_engine, "_functions_metadata", [{"name": "hello-world", "verify_jwt": 0}]
        )
        item = make_item(migration_context.migration.id, ItemType.FUNCTIONS, "hello-world")

        rollback = await FunctionsMigrator().migrate(migration_context, item)

        assert rollback == FunctionsRollback(function_name="hello-world")
        assert platform.functions["hello-world"]["verify_jwt"] is False

    @pytest.mark.asyncio
    async def test_rejects_unsafe_name(self, migration_context: MigrationContext) -> None:
        """Function names are slugs."""
        item = make_item(migration_context.migration.id, ItemType.FUNCTIONS, "../escape")
        with pytest.raises(InvalidIdentifierError):
            await FunctionsMigrator().migrate(migration_context, item)

    @pytest.mark.asyncio
    async def test_missing_directory(self, migration_context: MigrationContext) -> None:
        """A function without sources cannot be deployed."""
        item = make_item(migration_context.migration.id, ItemType.FUNCTIONS, "ghost")
        with pytest.raises(ItemMigrationError):
            await FunctionsMigrator().migrate(migration_context, item)


class TestSecretsMigrator:
    """Tests for SecretsMigrator."""

    @pytest.mark.asyncio
    async def test_pushes_decrypted_secrets(
        self,
        local_engine: AsyncEngine,
        vault: CredentialVault,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """Secrets are decrypted locally and sent in one request."""
        await insert_rows(
            local_engine,
            "_functions_secrets",
            [
                {"name": "STRIPE_KEY", "value": vault.encrypt_text("sk_live")},
                {"name": "API_TOKEN", "value": vault.encrypt_text("tok")},
            ],
        )
        item = make_item(migration_context.migration.id, ItemType.SECRETS)

        rollback = await SecretsMigrator().migrate(migration_context, item)

        assert rollback == SecretsRollback(secret_names=["API_TOKEN", "STRIPE_KEY"])
        assert platform.secrets == {"API_TOKEN": "tok", "STRIPE_KEY": "sk_live"}
        assert len(platform.requests_to("POST", "/v1/projects/abcd1234/secrets")) == 1

    @pytest.mark.asyncio
    async def test_no_secrets_sends_nothing(
        self, migration_context: MigrationContext, platform: FakePlatform
    ) -> None:
        """An empty secret table completes without a request."""
        item = make_item(migration_context.migration.id, ItemType.SECRETS)

        rollback = await SecretsMigrator().migrate(migration_context, item)

        assert rollback == SecretsRollback(secret_names=[])
        assert platform.requests == []

    @pytest.mark.asyncio
    async def test_unconfigured_vault(
        self, migration_context: MigrationContext, unconfigured_vault: CredentialVault
    ) -> None:
        """Secrets cannot be decrypted without the server secret."""
        migration_context.vault = unconfigured_vault
        item = make_item(migration_context.migration.id, ItemType.SECRETS)

        with pytest.raises(VaultNotConfiguredError):
            await SecretsMigrator().migrate(migration_context, item)


class TestConfigMigrators:
    """Tests for the auth configuration items."""

    @pytest.mark.asyncio
    async def test_anonymous_sign_in_enabled(
        self,
        local_engine: AsyncEngine,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """Local anonymous sign-in turns on the remote flag."""
        await set_setting(local_engine, "allow_anonymous", "true")
        item = make_item(migration_context.migration.id, ItemType.AUTH_CONFIG)

        assert await AuthConfigMigrator().migrate(migration_context, item) is None
        assert platform.auth_config["EXTERNAL_ANONYMOUS_USERS_ENABLED"] is True

    @pytest.mark.asyncio
    async def test_nothing_to_apply(
        self, migration_context: MigrationContext, platform: FakePlatform
    ) -> None:
        """Without local changes no PATCH is sent."""
        item = make_item(migration_context.migration.id, ItemType.AUTH_CONFIG)

        await AuthConfigMigrator().migrate(migration_context, item)

        assert platform.requests == []

    @pytest.mark.asyncio
    async def test_oauth_changes(
        self,
        local_engine: AsyncEngine,
        migration_context: MigrationContext,
    ) -> None:
        """Only enabled providers with a client id are configured."""
        await set_setting(local_engine, "oauth_google_enabled", "true")
        await set_setting(local_engine, "oauth_google_client_id", "gid")
        await set_setting(local_engine, "oauth_google_client_secret", "gsecret")
        await set_setting(local_engine, "oauth_github_enabled", "true")

        assert await oauth_changes(migration_context) == {
            "EXTERNAL_GOOGLE_ENABLED": True,
            "EXTERNAL_GOOGLE_CLIENT_ID": "gid",
            "EXTERNAL_GOOGLE_SECRET": "gsecret",
        }

    @pytest.mark.asyncio
    async def test_oauth_migrator_patches(
        self,
        local_engine: AsyncEngine,
        migration_context: MigrationContext,
        platform: FakePlatform,
    ) -> None:
        """A provider without a stored secret is sent without one."""
        await set_setting(local_engine, "oauth_github_enabled", "true")
        await set_setting(local_engine, "oauth_github_client_id", "ghid")
        item = make_item(migration_context.migration.id, ItemType.OAUTH_CONFIG)

        await OAuthConfigMigrator().migrate(migration_context, item)

        assert platform.auth_config["EXTERNAL_GITHUB_CLIENT_ID"] == "ghid"
        assert "EXTERNAL_GITHUB_SECRET" not in platform.auth_config

    @pytest.mark.asyncio
    async def test_email_templates_note(
        self, migration_context: MigrationContext, platform: FakePlatform
    ) -> None:
        """Email templates complete at once with a note for the operator."""
        item = make_item(migration_context.migration.id, ItemType.EMAIL_TEMPLATES)

        assert await EmailTemplatesMigrator().migrate(migration_context, item) is None
        assert item.metadata == {"note": EMAIL_TEMPLATES_NOTE}
        assert platform.requests == []
