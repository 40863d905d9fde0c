"""
Search Administration Routes

Analytics, statistics, the reindex pipeline, content sync, query-log
retention, exports and CRUD over index documents and suggestions.
"""

import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.constants import ContentType, SortField, SortOrder
from app.database import get_db
from app.schemas.search import (
    BulkReindexRequest,
    BulkReindexResponse,
    ContentSyncRequest,
    IndexRemovalResponse,
    IndexStatistics,
    MessageResponse,
    QueryLogStatistics,
    QueryRecordListResponse,
    RelevanceScoreUpdate,
    RemovalCountResponse,
    SearchAnalyticsResponse,
    SearchDocumentCreate,
    SearchDocumentListResponse,
    SearchDocumentResponse,
    SearchDocumentUpdate,
    SearchStatisticsResponse,
    SuggestionCreate,
    SuggestionListResponse,
    SuggestionResponse,
    SuggestionStatistics,
    SuggestionUpdate,
)
from app.services.content_sync_service import content_sync_service
from app.services.export_service import export_service
from app.services.query_log_service import query_log_service
from app.services.search_index_service import DocumentFilter, search_index_service
from app.services.search_service import search_service
from app.services.suggestion_service import suggestion_service
from app.utils.validation import validate_language

logger = logging.getLogger(__name__)

router = APIRouter()

ExportFormat = Literal["json", "csv"]
MEDIA_TYPES = {"json": "application/json", "csv": "text/csv"}


def export_response(payload: str, fmt: str, name: str) -> Response:
    return Response(
        content=payload,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f"attachment; filename={name}_export.{fmt}"},
    )


# ============================================================================
# Analytics and statistics
# ============================================================================


@router.get("/analytics", response_model=SearchAnalyticsResponse)
async def get_search_analytics(
    days: int = Query(7, ge=1, le=365, description="Trailing window in days"),
    db: AsyncSession = Depends(get_db),
):
    return await search_service.get_analytics(db, days)


@router.get("/statistics", response_model=SearchStatisticsResponse)
async def get_search_statistics(db: AsyncSession = Depends(get_db)):
    return await search_service.get_statistics(db)


# ============================================================================
# Reindex pipeline
# ============================================================================


@router.post("/reindex/{content_type}/{content_id}", response_model=SearchDocumentResponse)
async def reindex_content(content_type: ContentType, content_id: str, db: AsyncSession = Depends(get_db)):
    """Recompute relevance for an indexed content key (404 if it was never indexed)."""
    return await search_service.reindex_content(db, content_id, content_type)


@router.post("/index/{content_type}/{content_id}", response_model=SearchDocumentResponse)
async def index_content(content_type: ContentType, content_id: str, db: AsyncSession = Depends(get_db)):
    return await search_service.index_content(db, content_id, content_type)


@router.delete("/index/{content_type}/{content_id}", response_model=IndexRemovalResponse)
async def remove_from_index(content_type: ContentType, content_id: str, db: AsyncSession = Depends(get_db)):
    removed = await search_service.remove_from_index(db, content_id, content_type)
    return {"content_id": content_id, "content_type": content_type, "removed": removed}


@router.post("/bulk-reindex", response_model=BulkReindexResponse)
async def bulk_reindex(payload: BulkReindexRequest | None = None, db: AsyncSession = Depends(get_db)):
    """
    Reindex every document, or every document of one content type.

    Individual failures are reported in the response; the batch always runs
    to the end.
    """
    content_type = payload.content_type if payload else None
    return await search_service.bulk_reindex(db, content_type)


@router.post("/optimize", response_model=MessageResponse)
async def optimize_index(db: AsyncSession = Depends(get_db)):
    return await search_service.optimize_index(db)


@router.delete("/cache", response_model=MessageResponse)
async def clear_cache():
    return search_service.clear_cache()


@router.post("/sync", response_model=SearchDocumentResponse)
async def sync_content(payload: ContentSyncRequest, db: AsyncSession = Depends(get_db)):
    """Content-change notification: upsert the document and reindex it."""
    return await content_sync_service.on_content_updated(
        db,
        payload.content_id,
        payload.content_type,
        title=payload.title,
        body=payload.body,
        description=payload.description,
        tags=payload.tags,
        language=payload.language,
        is_published=payload.is_published,
        is_active=payload.is_active,
    )


# ============================================================================
# Query log
# ============================================================================


@router.get("/queries", response_model=QueryRecordListResponse)
async def list_queries(
    user_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await query_log_service.find_all(
        db, user_id=user_id, date_from=date_from, date_to=date_to, page=page, limit=limit
    )


@router.get("/queries/statistics", response_model=QueryLogStatistics)
async def get_query_statistics(db: AsyncSession = Depends(get_db)):
    return await query_log_service.get_statistics(db)


@router.delete("/queries", response_model=RemovalCountResponse)
async def purge_queries(
    older_than_days: int = Query(settings.query_log_retention_days, ge=1, le=3650),
    db: AsyncSession = Depends(get_db),
):
    removed = await query_log_service.purge_older_than(db, older_than_days)
    return {"removed": removed}


@router.get("/export")
async def export_search_data(
    entity: Literal["documents", "suggestions", "queries"] = "queries",
    format: ExportFormat = "json",
    limit: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Export documents, suggestions or the query log.

    **Returns**: JSON envelope (``exported_at``, ``query``, ``count``,
    ``items``) or a CSV file
    """
    if entity == "documents":
        payload = await export_service.export_documents(db, fmt=format, limit=limit)
    elif entity == "suggestions":
        payload = await export_service.export_suggestions(db, fmt=format, limit=limit)
    else:
        payload = await export_service.export_queries(db, fmt=format, limit=limit)
    return export_response(payload, format, entity)


# ============================================================================
# Document CRUD
# ============================================================================


@router.get("/documents", response_model=SearchDocumentListResponse)
async def list_documents(
    content_type: ContentType | None = None,
    language: str | None = None,
    is_published: bool | None = None,
    is_active: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: SortField = SortField.RELEVANCE,
    order: SortOrder = SortOrder.DESC,
    db: AsyncSession = Depends(get_db),
):
    filters = DocumentFilter(
        content_types=[content_type] if content_type else None,
        languages=[validate_language(language)] if language else None,
        is_published=is_published,
        is_active=is_active,
    )
    return await search_index_service.find_all(db, filters, page=page, limit=limit, sort=sort, order=order)


@router.get("/documents/statistics", response_model=IndexStatistics)
async def get_document_statistics(db: AsyncSession = Depends(get_db)):
    return await search_index_service.get_statistics(db)


@router.get("/documents/export")
async def export_documents(
    format: ExportFormat = "json",
    content_type: ContentType | None = None,
    language: str | None = None,
    limit: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    payload = await export_service.export_documents(
        db, fmt=format, content_type=content_type, language=language, limit=limit
    )
    return export_response(payload, format, "documents")


@router.post("/documents", response_model=SearchDocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(payload: SearchDocumentCreate, db: AsyncSession = Depends(get_db)):
    return await search_index_service.create_document(db, **payload.model_dump())


@router.get("/documents/{document_id}", response_model=SearchDocumentResponse)
async def get_document(document_id: int, db: AsyncSession = Depends(get_db)):
    return await search_index_service.get_document(db, document_id)


@router.patch("/documents/{document_id}", response_model=SearchDocumentResponse)
async def update_document(document_id: int, payload: SearchDocumentUpdate, db: AsyncSession = Depends(get_db)):
    return await search_index_service.update_document(db, document_id, **payload.model_dump(exclude_unset=True))


@router.put("/documents/{document_id}/score", response_model=SearchDocumentResponse)
async def update_relevance_score(
    document_id: int, payload: RelevanceScoreUpdate, db: AsyncSession = Depends(get_db)
):
    return await search_index_service.update_relevance_score(db, document_id, payload.relevance_score)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(document_id: int, db: AsyncSession = Depends(get_db)):
    await search_index_service.delete_document(db, document_id)


# ============================================================================
# Suggestion CRUD
# ============================================================================


@router.get("/suggestions", response_model=SuggestionListResponse)
async def list_suggestions(
    search: str | None = None,
    language: str | None = None,
    content_type: ContentType | None = None,
    is_active: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort: str = "frequency",
    order: SortOrder = SortOrder.DESC,
    db: AsyncSession = Depends(get_db),
):
    return await suggestion_service.find_all(
        db,
        search=search,
        language=language,
        content_type=content_type,
        is_active=is_active,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
    )


@router.get("/suggestions/statistics", response_model=SuggestionStatistics)
async def get_suggestion_statistics(db: AsyncSession = Depends(get_db)):
    return await suggestion_service.get_statistics(db)


@router.get("/suggestions/export")
async def export_suggestions(
    format: ExportFormat = "json",
    language: str | None = None,
    limit: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    payload = await export_service.export_suggestions(db, fmt=format, language=language, limit=limit)
    return export_response(payload, format, "suggestions")


@router.post("/suggestions/cleanup", response_model=RemovalCountResponse)
async def cleanup_suggestions(db: AsyncSession = Depends(get_db)):
    """Delete stale, rarely used suggestions now instead of waiting for the nightly job."""
    return {"removed": await suggestion_service.cleanup(db)}


@router.post("/suggestions", response_model=SuggestionResponse, status_code=status.HTTP_201_CREATED)
async def create_suggestion(payload: SuggestionCreate, db: AsyncSession = Depends(get_db)):
    return await suggestion_service.create_suggestion(db, **payload.model_dump())


@router.get("/suggestions/{suggestion_id}", response_model=SuggestionResponse)
async def get_suggestion(suggestion_id: int, db: AsyncSession = Depends(get_db)):
    return await suggestion_service.get_suggestion(db, suggestion_id)


@router.patch("/suggestions/{suggestion_id}", response_model=SuggestionResponse)
async def update_suggestion(suggestion_id: int, payload: SuggestionUpdate, db: AsyncSession = Depends(get_db)):
    return await suggestion_service.update_suggestion(db, suggestion_id, **payload.model_dump(exclude_unset=True))


@router.delete("/suggestions/{suggestion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_suggestion(suggestion_id: int, db: AsyncSession = Depends(get_db)):
    await suggestion_service.delete_suggestion(db, suggestion_id)
