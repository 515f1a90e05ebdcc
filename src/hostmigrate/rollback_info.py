"""
Rollback descriptors recorded by item migrators.

Each successful item migration records a small summary of what it created on
the remote side. There is one payload shape per item type; the item's type is
the tag that selects the shape when the stored JSON is read back.

Config-style items (auth_config, oauth_config, email_templates) are not
reversible and record no descriptor.

Example:
    >>> info = DataRollback(table_name="todos", row_count=3)
    >>> raw = dump_rollback_info(info)
    >>> parse_rollback_info(ItemType.DATA, raw) == info
    True
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hostmigrate.models import ItemType


class RollbackDescriptor(BaseModel):
    """Base class for all rollback descriptors."""

    model_config = ConfigDict(frozen=True)


class SchemaRollback(RollbackDescriptor):
    """Tables created by replaying the exported DDL, in creation order."""

    tables: list[str] = Field(default_factory=list)


class DataRollback(RollbackDescriptor):
    """Rows inserted into one table."""

    table_name: str
    row_count: int = 0


class UsersRollback(RollbackDescriptor):
    """Ids of accounts inserted into the remote identity store."""

    user_ids: list[str] = Field(default_factory=list)


class IdentitiesRollback(RollbackDescriptor):
    """Ids of OAuth identities inserted into the remote identity store."""

    identity_ids: list[str] = Field(default_factory=list)


class PolicyRef(RollbackDescriptor):
    """One created row-level security policy."""

    table_name: str
    policy_name: str


class RLSRollback(RollbackDescriptor):
    """Policies created on remote tables."""

    policies: list[PolicyRef] = Field(default_factory=list)


class BucketsRollback(RollbackDescriptor):
    """Ids of buckets inserted into remote storage."""

    bucket_ids: list[str] = Field(default_factory=list)


class FilesRollback(RollbackDescriptor):
    """Object paths uploaded into one bucket."""

    bucket_id: str
    paths: list[str] = Field(default_factory=list)


class FunctionsRollback(RollbackDescriptor):
    """A deployed edge function."""

    function_name: str


class SecretsRollback(RollbackDescriptor):
    """Names of secrets pushed to the remote project."""

    secret_names: list[str] = Field(default_factory=list)


DESCRIPTOR_TYPES: dict[ItemType, type[RollbackDescriptor]] = {
    ItemType.SCHEMA: SchemaRollback,
    ItemType.DATA: DataRollback,
    ItemType.USERS: UsersRollback,
    ItemType.IDENTITIES: IdentitiesRollback,
    ItemType.RLS: RLSRollback,
    ItemType.STORAGE_BUCKETS: BucketsRollback,
    ItemType.STORAGE_FILES: FilesRollback,
    ItemType.FUNCTIONS: FunctionsRollback,
    ItemType.SECRETS: SecretsRollback,
}


def dump_rollback_info(descriptor: RollbackDescriptor | None) -> str | None:
    """Serialize a descriptor to JSON text for storage."""
    if descriptor is None:
        return None
    return descriptor.model_dump_json()


def parse_rollback_info(item_type: ItemType, raw: str | None) -> RollbackDescriptor | None:
    """
    Read a stored descriptor back into its typed shape.

    Args:
        item_type: The owning item's type, which selects the payload shape.
        raw: Stored JSON text, or None.

    Returns:
        The typed descriptor, or None when nothing was recorded or the
        item type records no descriptor.

    Raises:
        pydantic.ValidationError: If the stored JSON does not match the shape.
    """
    if not raw:
        return None
    descriptor_type = DESCRIPTOR_TYPES.get(item_type)
    if descriptor_type is None:
        return None
    return descriptor_type.model_validate_json(raw)


__all__ = [
    "DESCRIPTOR_TYPES",
    "BucketsRollback",
    "DataRollback",
    "FilesRollback",
    "FunctionsRollback",
    "IdentitiesRollback",
    "PolicyRef",
    "RLSRollback",
    "RollbackDescriptor",
    "SchemaRollback",
    "SecretsRollback",
    "UsersRollback",
    "dump_rollback_info",
    "parse_rollback_info",
]
