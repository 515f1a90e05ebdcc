"""Builders for migration items."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from uuid import UUID, uuid4

from hostmigrate.models import ItemStatus, ItemType, MigrationItem
from hostmigrate.repositories.state import StateStore


def make_item(
    migration_id: UUID,
    item_type: ItemType,
    item_name: str | None = None,
) -> MigrationItem:
    """A pending item, not stored; single-instance types use their sentinel name."""
    return MigrationItem(
        id=uuid4(),
        migration_id=migration_id,
        item_type=item_type,
        item_name=item_name or item_type.sentinel_name,
    )


async def store_items(
    store: StateStore,
    migration_id: UUID,
    items: Sequence[tuple[ItemType, str]],
    status: ItemStatus = ItemStatus.COMPLETED,
) -> list[MigrationItem]:
    """Replace a migration's items and move every one of them to `status`."""
    stored = await store.replace_items(migration_id, items)
    for item in stored:
        item.status = status
        if status != ItemStatus.PENDING:
            item.started_at = item.completed_at = datetime.now(UTC)
        await store.update_item(item)
    return stored


__all__ = ["make_item", "store_items"]
