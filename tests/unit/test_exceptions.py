"""Unit tests for the exception hierarchy and error classification."""

from uuid import uuid4

from hostmigrate.exceptions import (
    ConfigurationError,
    ErrorRecoverability,
    HostMigrateError,
    InvalidMigrationStateError,
    ItemMigrationError,
    RemoteAPIError,
    RemoteError,
    RollbackError,
    UnknownItemTypeError,
    ValidationError,
    VaultNotConfiguredError,
)
from hostmigrate.models import ItemType, MigrationStatus


class TestHierarchy:
    """Tests for exception inheritance."""

    def test_all_derive_from_base(self) -> None:
        """Every engine error is a HostMigrateError."""
        for error in (VaultNotConfiguredError(), UnknownItemTypeError("x")):
            assert isinstance(error, HostMigrateError)

    def test_vault_error_is_configuration_error(self) -> None:
        """A missing server secret is a configuration problem."""
        assert isinstance(VaultNotConfiguredError(), ConfigurationError)

    def test_state_error_is_validation_error(self) -> None:
        """Illegal transitions are validation errors."""
        error = InvalidMigrationStateError(uuid4(), MigrationStatus.PENDING, "retry")
        assert isinstance(error, ValidationError)

    def test_api_error_is_remote_error(self) -> None:
        """API status failures are remote errors."""
        assert isinstance(RemoteAPIError("list projects", 500, "boom"), RemoteError)


class TestMessages:
    """Tests for error messages and context."""

    def test_invalid_state_message(self) -> None:
        """The message names the operation and the status."""
        error = InvalidMigrationStateError(uuid4(), MigrationStatus.PENDING, "retry")
        assert "cannot retry migration with status pending" in str(error)
        assert error.current_status == MigrationStatus.PENDING

    def test_context_in_str(self) -> None:
        """Migration and item context are appended."""
        migration_id = uuid4()
        error = ItemMigrationError(
            "upload failed",
            migration_id=migration_id,
            item_type=ItemType.STORAGE_FILES,
            item_name="avatars",
        )
        text = str(error)
        assert text.startswith("upload failed")
        assert f"migration_id={migration_id}" in text
        assert "item=storage_files/avatars" in text

    def test_api_error_keeps_body(self) -> None:
        """Status and body are kept for the operator."""
        error = RemoteAPIError("deploy function", 400, '{"message":"bad"}')
        assert error.status_code == 400
        assert error.body == '{"message":"bad"}'
        assert "status 400" in str(error)

    def test_rollback_error_lists_failures(self) -> None:
        """Every failure appears in the message."""
        error = RollbackError(uuid4(), ["schema/schema: boom", "data/todos: bang"])
        assert "schema/schema: boom" in str(error)
        assert "data/todos: bang" in str(error)
        assert len(error.failures) == 2


class TestClassification:
    """Tests for error classification."""

    def test_api_client_errors_are_recoverable(self) -> None:
        """4xx means fix and retry, 5xx means try again."""
        assert RemoteAPIError("x", 404, "").recoverability == ErrorRecoverability.RECOVERABLE
        assert RemoteAPIError("x", 503, "").recoverability == ErrorRecoverability.TRANSIENT

    def test_to_dict(self) -> None:
        """Serialization carries the code and classification."""
        data = VaultNotConfiguredError().to_dict()
        assert data["error_code"] == VaultNotConfiguredError().error_code
        assert "suggested_action" in data["classification"]

    def test_suggested_action_override(self) -> None:
        """A per-instance suggested action replaces the default."""
        error = HostMigrateError("x", suggested_action="Do the thing")
        assert error.to_dict()["classification"]["suggested_action"] == "Do the thing"
