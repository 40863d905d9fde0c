"""
Content Sync Service

Inbound contract for the content modules: they report creates, updates and
deletes, and the search index mirrors them. The content module stays the
source of truth for the text; nothing here derives it.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.constants import ContentType
from app.models.search_document import SearchDocument
from app.services.search_index_service import search_index_service

logger = logging.getLogger(__name__)


class ContentSyncService:
    """Applies content-change notifications to the search index"""

    @staticmethod
    async def on_content_saved(
        db: AsyncSession,
        content_id: str,
        content_type: ContentType | str,
        title: dict[str, str],
        body: dict[str, str] | None = None,
        description: dict[str, str] | None = None,
        tags: list[str] | None = None,
        language: str = "en",
        is_published: bool = True,
        is_active: bool = True,
    ) -> SearchDocument:
        """
        Upsert the search document for a content key and reindex it so the
        relevance score reflects the new text.
        """
        fields: dict[str, Any] = {
            "title": title,
            "body": body or {},
            "description": description,
            "tags": tags or [],
            "language": language,
            "is_published": is_published,
            "is_active": is_active,
        }
        document = await search_index_service.upsert_document(db, content_id, content_type, **fields)
        document = await search_index_service.reindex_document(db, document)
        logger.info(f"Synced {document.content_type.value}:{content_id} into the search index")
        return document

    @staticmethod
    async def on_content_created(db: AsyncSession, content_id: str, content_type: ContentType | str, **fields: Any):
        return await ContentSyncService.on_content_saved(db, content_id, content_type, **fields)

    @staticmethod
    async def on_content_updated(db: AsyncSession, content_id: str, content_type: ContentType | str, **fields: Any):
        return await ContentSyncService.on_content_saved(db, content_id, content_type, **fields)

    @staticmethod
    async def on_content_deleted(db: AsyncSession, content_id: str, content_type: ContentType | str) -> bool:
        return await search_index_service.delete_by_content(db, content_id, content_type)


# Singleton instance
content_sync_service = ContentSyncService()
