"""
Search Routes

Public endpoints: simple and advanced search, autocomplete suggestions and
popular searches.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.constants import ContentType, SortField, SortOrder
from app.database import get_db
from app.middleware.logging import client_ip_from
from app.schemas.search import (
    AdvancedSearchRequest,
    PopularSearchesResponse,
    SearchResponse,
    SuggestionSelectRequest,
    SuggestionsResponse,
)
from app.services.search_service import SearchContext, search_service
from app.utils.validation import validate_language

logger = logging.getLogger(__name__)

router = APIRouter()


def search_context(request: Request) -> SearchContext:
    """Caller details recorded with every logged query."""
    return SearchContext(
        ip_address=client_ip_from(request),
        user_agent=request.headers.get("User-Agent"),
        user_id=request.headers.get("X-User-ID"),
    )


@router.get("/", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, max_length=500, description="Text to look for in titles and bodies"),
    language: str | None = Query(None, description="Presentation language (en, ne)"),
    content_type: ContentType | None = Query(None, description="Restrict to one content type"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: SortField = Query(SortField.RELEVANCE),
    order: SortOrder = Query(SortOrder.DESC),
    context: SearchContext = Depends(search_context),
    db: AsyncSession = Depends(get_db),
):
    """
    Search published content in every supported language.

    Results carry a rank, snippet and URL; facets count every match before
    pagination.
    """
    return await search_service.search(
        db,
        q,
        language=language,
        content_type=content_type,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        context=context,
    )


@router.post("/advanced", response_model=SearchResponse)
async def advanced_search(
    payload: AdvancedSearchRequest,
    context: SearchContext = Depends(search_context),
    db: AsyncSession = Depends(get_db),
):
    date_range = payload.date_range
    return await search_service.advanced_search(
        db,
        payload.query,
        language=payload.language,
        content_types=payload.content_types,
        languages=payload.languages,
        date_from=date_range.date_from if date_range else None,
        date_to=date_range.date_to if date_range else None,
        page=payload.page,
        limit=payload.limit,
        sort=payload.sort,
        order=payload.order,
        context=context,
    )


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    q: str = Query(..., min_length=1, max_length=100, description="Prefix to complete"),
    language: str | None = Query(None),
    limit: int = Query(10, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    language = validate_language(language) if language else settings.search_default_language
    suggestions = await search_service.get_suggestions(db, q, language, limit)
    return {"query": q, "language": language, "suggestions": suggestions}


@router.post("/suggestions/select", status_code=status.HTTP_204_NO_CONTENT)
async def select_suggestion(payload: SuggestionSelectRequest, db: AsyncSession = Depends(get_db)):
    """Count a suggestion the user picked from the autocomplete list."""
    await search_service.record_suggestion_selection(db, payload.term, payload.language)


@router.get("/popular", response_model=PopularSearchesResponse)
async def get_popular_searches(
    language: str | None = Query(None),
    limit: int = Query(10, ge=1, le=50),
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    items = await search_service.get_popular_searches(db, language=language, limit=limit, days=days)
    return {"language": language, "days": days, "items": items}
