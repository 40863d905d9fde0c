"""
Search Service

Facade over the index, suggestion and query-log services. Executes simple
and advanced searches (ranking, snippets, URLs, facets, suggestions), writes
the query log in the background, and runs the reindex pipeline that keeps the
index in step with content-change notifications.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app import database
from app.config import settings
from app.constants import ContentType, SortField, SortOrder
from app.exceptions import DuplicateResourceError, ValidationError
from app.models.search_document import SearchDocument
from app.services.query_log_service import query_log_service
from app.services.search_index_service import DocumentFilter, FacetRow, search_index_service
from app.services.suggestion_service import suggestion_service
from app.utils.dates import ensure_utc, utcnow
from app.utils.metrics import record_query_log_failure, record_search
from app.utils.validation import validate_content_type, validate_language

logger = logging.getLogger(__name__)

DEFAULT_URL_TEMPLATE = "/{content_type}/{content_id}"
EMPTY_SNIPPET = "No content available"
ELLIPSIS = "..."


@dataclass
class SearchContext:
    """Request details captured into the query log."""

    ip_address: str | None = None
    user_agent: str | None = None
    user_id: str | None = None


# ============================================================================
# Result shaping helpers
# ============================================================================


def _pick_text(translations: dict | None, *languages: str) -> str:
    translations = translations or {}
    for language in (*languages, *settings.search_languages):
        text = translations.get(language)
        if isinstance(text, str) and text.strip():
            return text.strip()
    for text in translations.values():
        if isinstance(text, str) and text.strip():
            return text.strip()
    return ""


def build_snippet(document: SearchDocument, language: str) -> str:
    """First N characters of the body (or of the title when the body is empty)."""
    text = _pick_text(document.body, language, document.language) or _pick_text(
        document.title, language, document.language
    )
    if not text:
        return EMPTY_SNIPPET
    length = settings.search_snippet_length
    if len(text) > length:
        return text[:length].rstrip() + ELLIPSIS
    return text


def build_url(content_type: ContentType, content_id: str) -> str:
    template = settings.search_url_templates.get(content_type.value, DEFAULT_URL_TEMPLATE)
    return template.format(content_type=content_type.value.lower(), content_id=content_id)


def compute_facets(rows: list[FacetRow], now: datetime | None = None) -> dict[str, Any]:
    """
    Count matches by content type, language, tag and creation-date bucket.

    Date buckets are cumulative calendar periods in UTC: today, this week
    (from Monday), this month and this year.
    """
    now = ensure_utc(now) or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = start_of_day - timedelta(days=start_of_day.weekday())
    start_of_month = start_of_day.replace(day=1)
    start_of_year = start_of_month.replace(month=1)

    content_types: Counter = Counter()
    languages: Counter = Counter()
    tags: Counter = Counter()
    date_range = {"today": 0, "this_week": 0, "this_month": 0, "this_year": 0}

    for row in rows:
        content_type = row.content_type.value if isinstance(row.content_type, ContentType) else row.content_type
        content_types[content_type] += 1
        languages[row.language] += 1
        tags.update(set(row.tags))

        created_at = ensure_utc(row.created_at)
        if created_at is None or created_at > now:
            continue
        if created_at >= start_of_day:
            date_range["today"] += 1
        if created_at >= start_of_week:
            date_range["this_week"] += 1
        if created_at >= start_of_month:
            date_range["this_month"] += 1
        if created_at >= start_of_year:
            date_range["this_year"] += 1

    return {
        "content_type": dict(content_types.most_common()),
        "language": dict(languages.most_common()),
        "tags": dict(tags.most_common()),
        "date_range": date_range,
    }


def transform_result(document: SearchDocument, rank: int, language: str) -> dict[str, Any]:
    return {
        "id": document.content_id,
        "document_id": document.id,
        "content_type": document.content_type,
        "title": document.title or {},
        "description": document.description,
        "snippet": build_snippet(document, language),
        "url": build_url(document.content_type, document.content_id),
        "relevance_score": document.relevance_score,
        "rank": rank,
        "tags": list(document.tags or []),
        "language": document.language,
        "created_at": ensure_utc(document.created_at),
        "updated_at": ensure_utc(document.updated_at),
        "metadata": {
            "content_type": document.content_type.value,
            "language": document.language,
            "rank": rank,
        },
    }


class SearchService:
    """Search orchestration and reindex pipeline"""

    def __init__(self):
        self._pending_logs: set[asyncio.Task] = set()
        self.last_optimized_at: datetime | None = None
        self.last_cache_cleared_at: datetime | None = None

    # ========================================================================
    # Search
    # ========================================================================

    @staticmethod
    def _validate_paging(page: int, limit: int) -> None:
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if limit < 1 or limit > settings.search_max_page_size:
            raise ValidationError(f"limit must be between 1 and {settings.search_max_page_size}", field="limit")

    @staticmethod
    def _validate_query(query: str) -> str:
        if query is None or not query.strip():
            raise ValidationError("Search query must not be empty", field="q")
        return query.strip()

    async def search(
        self,
        db: AsyncSession,
        query: str,
        language: str | None = None,
        content_type: ContentType | str | None = None,
        filters: dict[str, Any] | None = None,
        page: int = 1,
        limit: int = 10,
        sort: SortField = SortField.RELEVANCE,
        order: SortOrder = SortOrder.DESC,
        context: SearchContext | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Free-text search over published, active documents.

        Args:
            db: Database session
            query: Text to match against titles and bodies in every language
            language: Presentation language for snippets, suggestions and the log
            content_type: Restrict matches to one content type
            filters: Extra caller filters, recorded in the query log
            page: 1-based page number
            limit: Page size
            sort: Sort key (relevance by default)
            order: Sort direction
            context: Request details for the query log
            timeout: Seconds the fallback scan may take

        Returns:
            dict matching the SearchResponse schema
        """
        query = self._validate_query(query)
        language = validate_language(language) if language else settings.search_default_language
        content_type = validate_content_type(content_type) if content_type is not None else None
        self._validate_paging(page, limit)

        document_filter = DocumentFilter(
            content_types=[content_type] if content_type else None,
            is_published=True,
            is_active=True,
        )
        log_filters = dict(filters or {})
        log_filters.update({"sort": sort.value, "order": order.value, "page": page, "limit": limit})

        return await self._execute(
            db,
            kind="simple",
            query=query,
            language=language,
            document_filter=document_filter,
            page=page,
            limit=limit,
            sort=sort,
            order=order,
            context=context,
            timeout=timeout,
            log_content_type=content_type,
            log_filters=log_filters,
        )

    async def advanced_search(
        self,
        db: AsyncSession,
        query: str,
        language: str | None = None,
        content_types: list[ContentType | str] | None = None,
        languages: list[str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
        sort: SortField = SortField.RELEVANCE,
        order: SortOrder = SortOrder.DESC,
        context: SearchContext | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Search with structured filters: several content types, several
        document languages and a creation-date range.
        """
        query = self._validate_query(query)
        language = validate_language(language) if language else settings.search_default_language
        self._validate_paging(page, limit)

        types = [validate_content_type(ct, field="content_types") for ct in content_types or []]
        document_languages = [validate_language(lang, field="languages") for lang in languages or []]
        date_from = ensure_utc(date_from)
        date_to = ensure_utc(date_to)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_range.from must not be after date_range.to", field="date_range")

        document_filter = DocumentFilter(
            content_types=types or None,
            languages=document_languages or None,
            is_published=True,
            is_active=True,
            created_from=date_from,
            created_to=date_to,
        )
        log_filters = {
            "content_types": [ct.value for ct in types] or None,
            "languages": document_languages or None,
            "date_from": date_from.isoformat() if date_from else None,
            "date_to": date_to.isoformat() if date_to else None,
            "sort": sort.value,
            "order": order.value,
            "page": page,
            "limit": limit,
        }

        return await self._execute(
            db,
            kind="advanced",
            query=query,
            language=language,
            document_filter=document_filter,
            page=page,
            limit=limit,
            sort=sort,
            order=order,
            context=context,
            timeout=timeout,
            log_content_type=types[0] if len(types) == 1 else None,
            log_filters={k: v for k, v in log_filters.items() if v is not None},
        )

    async def _execute(
        self,
        db: AsyncSession,
        kind: str,
        query: str,
        language: str,
        document_filter: DocumentFilter,
        page: int,
        limit: int,
        sort: SortField,
        order: SortOrder,
        context: SearchContext | None,
        timeout: float | None,
        log_content_type: ContentType | None,
        log_filters: dict[str, Any],
    ) -> dict[str, Any]:
        start_time = time.perf_counter()
        deadline = time.monotonic() + (timeout if timeout is not None else settings.search_timeout_seconds)

        search_page = await search_index_service.search(
            db,
            query,
            filters=document_filter,
            page=page,
            limit=limit,
            sort=sort,
            order=order,
            deadline=deadline,
        )

        offset = (page - 1) * limit
        results = [
            transform_result(document, offset + position, language)
            for position, document in enumerate(search_page.items, start=1)
        ]
        facets = compute_facets(search_page.facet_rows)
        suggestions = await self.get_suggestions(db, query, language, settings.search_suggestion_limit)

        total = search_page.pagination["total"]
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        record_search(kind, total, elapsed_ms / 1000)

        context = context or SearchContext()
        self._schedule_query_log(
            {
                "query": query,
                "language": language,
                "content_type": log_content_type,
                "filters": log_filters,
                "results_count": total,
                "execution_time_ms": elapsed_ms,
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
                "user_id": context.user_id,
            }
        )

        return {
            "query": query,
            "total_results": total,
            "execution_time_ms": round(elapsed_ms, 2),
            "suggestions": suggestions,
            "results": results,
            "pagination": search_page.pagination,
            "facets": facets,
            "degraded": search_page.degraded,
        }

    # ========================================================================
    # Background query logging
    # ========================================================================

    def _schedule_query_log(self, record: dict[str, Any]) -> None:
        if not settings.search_analytics_enabled:
            return
        task = asyncio.create_task(self._write_query_log(record))
        self._pending_logs.add(task)
        task.add_done_callback(self._pending_logs.discard)

    async def _write_query_log(self, record: dict[str, Any]) -> None:
        """Append the query-log record and count the query as suggestion usage."""
        try:
            async with database.AsyncSessionLocal() as db:
                await query_log_service.log_query(db, **record)
                if record["results_count"] > 0:
                    await self._grow_suggestion(db, record["query"], record["language"])
        except Exception:
            record_query_log_failure()
            logger.warning("Background query logging failed", exc_info=True)

    @staticmethod
    async def _grow_suggestion(db: AsyncSession, term: str, language: str) -> None:
        try:
            await suggestion_service.increment_usage(db, term, language)
        except ValidationError:
            logger.debug(f"Query '{term[:50]}' not eligible as a suggestion")
        except Exception:
            logger.warning("Failed to record suggestion usage", exc_info=True)

    async def wait_for_pending_logs(self) -> None:
        """Wait until every scheduled query-log write has finished."""
        while self._pending_logs:
            await asyncio.gather(*list(self._pending_logs), return_exceptions=True)

    # ========================================================================
    # Suggestions, popularity and analytics
    # ========================================================================

    @staticmethod
    async def get_suggestions(db: AsyncSession, prefix: str, language: str, limit: int = 10) -> list[str]:
        """Autocomplete terms for a prefix. Failures yield an empty list."""
        try:
            suggestions = await suggestion_service.find_by_prefix(db, prefix, language, limit)
            return [s.term for s in suggestions]
        except Exception:
            logger.warning("Suggestion lookup failed; continuing without suggestions", exc_info=True)
            await db.rollback()
            return []

    @staticmethod
    async def record_suggestion_selection(db: AsyncSession, term: str, language: str) -> None:
        await suggestion_service.increment_usage(db, term, validate_language(language))

    @staticmethod
    async def get_popular_searches(
        db: AsyncSession, language: str | None = None, limit: int = 10, days: int = 7
    ) -> list[dict[str, Any]]:
        if language:
            validate_language(language)
        return await query_log_service.popular_queries(db, language=language, days=days, limit=limit)

    @staticmethod
    async def get_analytics(db: AsyncSession, days: int = 7) -> dict[str, Any]:
        if days < 1:
            raise ValidationError("days must be at least 1", field="days")
        return await query_log_service.get_analytics(db, days)

    async def get_statistics(self, db: AsyncSession) -> dict[str, Any]:
        index_stats = await search_index_service.get_statistics(db)
        query_stats = await query_log_service.get_statistics(db)
        suggestion_stats = await suggestion_service.get_statistics(db)
        return {
            "total_indexed": index_stats["total"],
            "total_queries": query_stats["total"],
            "total_suggestions": suggestion_stats["total"],
            "average_query_time_ms": query_stats["average_execution_time_ms"],
            "index": index_stats,
            "queries": query_stats,
            "suggestions": suggestion_stats,
            "last_optimized_at": self.last_optimized_at,
            "last_cache_cleared_at": self.last_cache_cleared_at,
        }

    # ========================================================================
    # Reindex pipeline
    # ========================================================================

    @staticmethod
    async def index_content(db: AsyncSession, content_id: str, content_type: ContentType | str) -> SearchDocument:
        """
        Make sure a content key has a search document.

        Creates a placeholder entry when none exists; the owning content module
        fills in the real text through the content-sync contract. Existing
        entries are returned untouched.
        """
        content_type = validate_content_type(content_type)
        existing = await search_index_service.find_by_content(db, content_id, content_type)
        if existing is not None:
            return existing
        try:
            return await search_index_service.create_document(
                db,
                content_id=content_id,
                content_type=content_type,
                title={"en": f"Content {content_id}", "ne": f"सामग्री {content_id}"},
                body={"en": f"Content for {content_id}", "ne": f"{content_id} को लागि सामग्री"},
                language=settings.search_default_language,
            )
        except DuplicateResourceError:
            # Lost an indexing race; hand back the winner's entry
            existing = await search_index_service.find_by_content(db, content_id, content_type)
            if existing is None:
                raise
            return existing

    @staticmethod
    async def reindex_content(db: AsyncSession, content_id: str, content_type: ContentType | str) -> SearchDocument:
        return await search_index_service.reindex_by_content(db, content_id, content_type)

    @staticmethod
    async def remove_from_index(db: AsyncSession, content_id: str, content_type: ContentType | str) -> bool:
        return await search_index_service.delete_by_content(db, content_id, content_type)

    @staticmethod
    async def bulk_reindex(db: AsyncSession, content_type: ContentType | str | None = None) -> dict[str, Any]:
        return await search_index_service.bulk_reindex(db, content_type)

    async def optimize_index(self, db: AsyncSession) -> dict[str, Any]:
        """Record an optimisation pass. Safe to call at any time."""
        stats = await search_index_service.get_statistics(db)
        self.last_optimized_at = utcnow()
        logger.info(f"Index optimization completed ({stats['total']} documents)")
        return {"message": "Index optimization completed", "timestamp": self.last_optimized_at}

    def clear_cache(self) -> dict[str, Any]:
        self.last_cache_cleared_at = utcnow()
        logger.info("Search cache cleared")
        return {"message": "Search cache cleared", "timestamp": self.last_cache_cleared_at}


# Singleton instance
search_service = SearchService()
