"""
StorageFilesMigrator - uploads one bucket's objects through the storage API.

Objects are read fully into memory and uploaded one request at a time. The
first failure aborts the item; a retry uploads every object again.
"""

from __future__ import annotations

import logging

from hostmigrate.identifiers import validate_identifier
from hostmigrate.migrators.base import MigrationContext
from hostmigrate.models import ItemType, MigrationItem
from hostmigrate.rollback_info import FilesRollback

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageFilesMigrator:
    item_type = ItemType.STORAGE_FILES

    async def migrate(self, ctx: MigrationContext, item: MigrationItem) -> FilesRollback:
        bucket_id = validate_identifier(item.item_name, "bucket")
        objects = await ctx.source.fetch_objects(bucket_id)

        uploaded: list[str] = []
        async with await ctx.project_gateway(timeout=None) as gateway:
            for obj in objects:
                data = ctx.source.read_object(bucket_id, obj.name)
                await gateway.upload_object(
                    bucket_id,
                    obj.name,
                    data,
                    obj.mime_type or DEFAULT_CONTENT_TYPE,
                )
                uploaded.append(obj.name)

        logger.info("Uploaded %d objects to bucket %s", len(uploaded), bucket_id)
        return FilesRollback(bucket_id=bucket_id, paths=uploaded)


__all__ = ["DEFAULT_CONTENT_TYPE", "StorageFilesMigrator"]
