"""
Search Index Service

Owns the denormalized SearchDocument table: point lookups, filtered scans,
per-language substring search with an in-memory fallback, mutations driven by
content-sync events, deterministic relevance scoring and (bulk) reindexing.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.constants import BASELINE_RELEVANCE_SCORE, ContentType, SortField, SortOrder
from app.exceptions import (
    DuplicateResourceError,
    IndexEntryNotFoundError,
    SearchDocumentNotFoundError,
    SearchTimeoutError,
    ValidationError,
)
from app.models.search_document import SearchDocument, fold_text, fold_translations
from app.utils.dates import ensure_utc, utcnow
from app.utils.metrics import record_fallback_scan, record_reindex
from app.utils.pagination import build_pagination, page_offset
from app.utils.validation import validate_content_type, validate_language, validate_tags, validate_translations

logger = logging.getLogger(__name__)

# Relevance weights; they sum to 1.0 so scores stay within [0, 1].
TITLE_COVERAGE_WEIGHT = 0.30
BODY_COVERAGE_WEIGHT = 0.20
DESCRIPTION_WEIGHT = 0.10
TAG_WEIGHT = 0.15
FRESHNESS_WEIGHT = 0.25

TAG_SATURATION = 5
FRESHNESS_HALF_LIFE_DAYS = 90

# Rows scanned between deadline checks on the fallback path.
DEADLINE_CHECK_INTERVAL = 100


@dataclass
class DocumentFilter:
    """Visibility and scope filters shared by scans and text search."""

    content_types: list[ContentType] | None = None
    languages: list[str] | None = None
    is_published: bool | None = None
    is_active: bool | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


@dataclass
class FacetRow:
    content_type: ContentType
    language: str
    tags: list[str]
    created_at: datetime | None


@dataclass
class SearchPage:
    """One page of text-search matches plus the facet signals of every match."""

    items: list[SearchDocument]
    pagination: dict[str, Any]
    facet_rows: list[FacetRow] = field(default_factory=list)
    degraded: bool = False


def _has_text(translations: dict | None) -> bool:
    return bool(translations) and any(isinstance(v, str) and v.strip() for v in translations.values())


def _coverage(translations: dict | None, languages: list[str]) -> float:
    if not languages:
        return 0.0
    translations = translations or {}
    filled = sum(1 for lang in languages if isinstance(translations.get(lang), str) and translations[lang].strip())
    return filled / len(languages)


def compute_relevance_score(document: SearchDocument, now: datetime | None = None) -> float:
    """
    Compute the document-intrinsic relevance score.

    The score blends translation coverage of title and body across the
    configured languages, presence of a description, number of distinct tags
    (saturating at TAG_SATURATION) and an exponential freshness decay on
    ``updated_at`` with a FRESHNESS_HALF_LIFE_DAYS half-life. Same document and
    same ``now`` always give the same score.
    """
    now = ensure_utc(now) or utcnow()
    languages = settings.search_languages

    title_coverage = _coverage(document.title, languages)
    body_coverage = _coverage(document.body, languages)
    description = 1.0 if _has_text(document.description) else 0.0
    tag_signal = min(len(set(document.tags or [])), TAG_SATURATION) / TAG_SATURATION

    updated_at = ensure_utc(document.updated_at) or now
    age_days = max((now - updated_at).total_seconds() / 86400, 0.0)
    freshness = 0.5 ** (age_days / FRESHNESS_HALF_LIFE_DAYS)

    score = (
        TITLE_COVERAGE_WEIGHT * title_coverage
        + BODY_COVERAGE_WEIGHT * body_coverage
        + DESCRIPTION_WEIGHT * description
        + TAG_WEIGHT * tag_signal
        + FRESHNESS_WEIGHT * freshness
    )
    return round(score, 4)


class SearchIndexService:
    """Service for maintaining and querying the search document index"""

    # ========================================================================
    # Lookups
    # ========================================================================

    @staticmethod
    async def find_by_id(db: AsyncSession, document_id: int) -> SearchDocument | None:
        return await db.get(SearchDocument, document_id)

    @staticmethod
    async def get_document(db: AsyncSession, document_id: int) -> SearchDocument:
        document = await db.get(SearchDocument, document_id)
        if document is None:
            raise SearchDocumentNotFoundError(document_id)
        return document

    @staticmethod
    async def find_by_content(
        db: AsyncSession, content_id: str, content_type: ContentType | str
    ) -> SearchDocument | None:
        content_type = validate_content_type(content_type)
        result = await db.execute(
            select(SearchDocument).where(
                SearchDocument.content_id == content_id,
                SearchDocument.content_type == content_type,
            )
        )
        return result.scalars().first()

    # ========================================================================
    # Filtering and ordering helpers
    # ========================================================================

    @staticmethod
    def _filter_clauses(filters: DocumentFilter) -> list:
        clauses = []
        if filters.content_types:
            clauses.append(SearchDocument.content_type.in_(filters.content_types))
        if filters.languages:
            clauses.append(SearchDocument.language.in_(filters.languages))
        if filters.is_published is not None:
            clauses.append(SearchDocument.is_published == filters.is_published)
        if filters.is_active is not None:
            clauses.append(SearchDocument.is_active == filters.is_active)
        if filters.created_from is not None:
            clauses.append(SearchDocument.created_at >= filters.created_from)
        if filters.created_to is not None:
            clauses.append(SearchDocument.created_at <= filters.created_to)
        return clauses

    @staticmethod
    def _text_predicate(needle: str, languages: list[str]):
        """Substring match of a folded needle against the folded title/body copies."""
        conditions = []
        for language in languages:
            for column in (SearchDocument.search_title, SearchDocument.search_body):
                conditions.append(column[language].as_string().contains(needle, autoescape=True))
        return or_(*conditions)

    @staticmethod
    def _order_by(sort: SortField, order: SortOrder) -> list:
        if sort == SortField.TITLE:
            column = SearchDocument.title[settings.search_default_language].as_string()
        elif sort == SortField.CREATED_AT:
            column = SearchDocument.created_at
        elif sort == SortField.UPDATED_AT:
            column = SearchDocument.updated_at
        else:
            column = SearchDocument.relevance_score
        primary = column.asc() if order == SortOrder.ASC else column.desc()
        return [primary, SearchDocument.id.asc()]

    @staticmethod
    def _sort_in_memory(documents: list[SearchDocument], sort: SortField, order: SortOrder) -> list[SearchDocument]:
        if sort == SortField.TITLE:
            language = settings.search_default_language

            def key(doc):
                return (doc.title or {}).get(language) or ""
        elif sort == SortField.CREATED_AT:

            def key(doc):
                return ensure_utc(doc.created_at)
        elif sort == SortField.UPDATED_AT:

            def key(doc):
                return ensure_utc(doc.updated_at)
        else:

            def key(doc):
                return doc.relevance_score or 0.0

        # id ascending breaks ties the same way the SQL ordering does
        ordered = sorted(documents, key=lambda doc: doc.id)
        return sorted(ordered, key=key, reverse=order == SortOrder.DESC)

    @staticmethod
    def matches_text(document: SearchDocument, needle: str, languages: list[str]) -> bool:
        for translations in (document.title, document.body):
            translations = translations or {}
            for language in languages:
                text = translations.get(language)
                if isinstance(text, str) and needle in fold_text(text):
                    return True
        return False

    @staticmethod
    def _facet_row(document: SearchDocument) -> FacetRow:
        return FacetRow(
            content_type=document.content_type,
            language=document.language,
            tags=list(document.tags or []),
            created_at=ensure_utc(document.created_at),
        )

    # ========================================================================
    # Scans and search
    # ========================================================================

    @staticmethod
    async def find_all(
        db: AsyncSession,
        filters: DocumentFilter | None = None,
        page: int = 1,
        limit: int = 10,
        sort: SortField = SortField.RELEVANCE,
        order: SortOrder = SortOrder.DESC,
    ) -> dict[str, Any]:
        """
        Filtered, paginated scan of the index (no text predicate).

        Returns:
            dict with ``data`` (list of SearchDocument) and ``pagination``
        """
        clauses = SearchIndexService._filter_clauses(filters or DocumentFilter())

        count_stmt = select(func.count(SearchDocument.id)).where(*clauses)
        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(SearchDocument)
            .where(*clauses)
            .order_by(*SearchIndexService._order_by(sort, order))
            .limit(limit)
            .offset(page_offset(page, limit))
        )
        result = await db.execute(stmt)
        return {"data": list(result.scalars().all()), "pagination": build_pagination(page, limit, total)}

    @staticmethod
    async def search(
        db: AsyncSession,
        query: str,
        filters: DocumentFilter | None = None,
        page: int = 1,
        limit: int = 10,
        sort: SortField = SortField.RELEVANCE,
        order: SortOrder = SortOrder.DESC,
        deadline: float | None = None,
    ) -> SearchPage:
        """
        Text search over title and body in every configured language.

        Runs the structured JSON-path predicate first. If the storage layer
        rejects it, the same filters are applied to an in-memory scan of the
        candidate set instead.

        Args:
            db: Database session
            query: Substring to look for (case-insensitive)
            filters: Visibility/scope filters
            page: 1-based page number
            limit: Page size
            sort: Sort key
            order: Sort direction
            deadline: ``time.monotonic()`` value the fallback scan must finish by

        Returns:
            SearchPage with the requested page and facet rows for all matches
        """
        filters = filters or DocumentFilter()
        needle = fold_text(query.strip())
        try:
            return await SearchIndexService._structured_search(db, needle, filters, page, limit, sort, order)
        except (SQLAlchemyError, NotImplementedError) as exc:
            await db.rollback()
            record_fallback_scan()
            logger.warning(
                f"Structured text search failed, falling back to in-memory scan: {exc}",
                extra={"query": query, "fallback": True},
            )
            return await SearchIndexService._fallback_search(db, needle, filters, page, limit, sort, order, deadline)

    @staticmethod
    async def _structured_search(
        db: AsyncSession,
        needle: str,
        filters: DocumentFilter,
        page: int,
        limit: int,
        sort: SortField,
        order: SortOrder,
    ) -> SearchPage:
        clauses = SearchIndexService._filter_clauses(filters)
        if needle:
            clauses.append(SearchIndexService._text_predicate(needle, settings.search_languages))
        where = and_(*clauses) if clauses else None

        facet_stmt = select(
            SearchDocument.content_type,
            SearchDocument.language,
            SearchDocument.tags,
            SearchDocument.created_at,
        )
        page_stmt = select(SearchDocument)
        if where is not None:
            facet_stmt = facet_stmt.where(where)
            page_stmt = page_stmt.where(where)

        facet_result = await db.execute(facet_stmt)
        facet_rows = [
            FacetRow(
                content_type=row.content_type,
                language=row.language,
                tags=list(row.tags or []),
                created_at=ensure_utc(row.created_at),
            )
            for row in facet_result.all()
        ]

        page_stmt = (
            page_stmt.order_by(*SearchIndexService._order_by(sort, order))
            .limit(limit)
            .offset(page_offset(page, limit))
        )
        result = await db.execute(page_stmt)
        return SearchPage(
            items=list(result.scalars().all()),
            pagination=build_pagination(page, limit, len(facet_rows)),
            facet_rows=facet_rows,
        )

    @staticmethod
    async def _fallback_search(
        db: AsyncSession,
        needle: str,
        filters: DocumentFilter,
        page: int,
        limit: int,
        sort: SortField,
        order: SortOrder,
        deadline: float | None,
    ) -> SearchPage:
        if deadline is not None and time.monotonic() > deadline:
            raise SearchTimeoutError()

        clauses = SearchIndexService._filter_clauses(filters)
        result = await db.execute(select(SearchDocument).where(*clauses))
        candidates = result.scalars().all()

        matched: list[SearchDocument] = []
        for position, document in enumerate(candidates):
            if deadline is not None and position % DEADLINE_CHECK_INTERVAL == 0 and time.monotonic() > deadline:
                raise SearchTimeoutError()
            if not needle or SearchIndexService.matches_text(document, needle, settings.search_languages):
                matched.append(document)

        ordered = SearchIndexService._sort_in_memory(matched, sort, order)
        start = page_offset(page, limit)
        return SearchPage(
            items=ordered[start : start + limit],
            pagination=build_pagination(page, limit, len(ordered)),
            facet_rows=[SearchIndexService._facet_row(doc) for doc in ordered],
            degraded=True,
        )

    # ========================================================================
    # Mutations
    # ========================================================================

    @staticmethod
    async def create_document(
        db: AsyncSession,
        content_id: str,
        content_type: ContentType | str,
        title: dict[str, str],
        body: dict[str, str],
        language: str,
        description: dict[str, str] | None = None,
        tags: list[str] | None = None,
        is_published: bool = True,
        is_active: bool = True,
    ) -> SearchDocument:
        """Insert a new document; the content key must not be indexed yet."""
        content_type = validate_content_type(content_type)
        if not content_id or not str(content_id).strip():
            raise ValidationError("content_id is required", field="content_id")

        existing = await SearchIndexService.find_by_content(db, content_id, content_type)
        if existing is not None:
            raise DuplicateResourceError("Search document", "content key", f"{content_type.value}:{content_id}")

        now = utcnow()
        document = SearchDocument(
            content_id=content_id,
            content_type=content_type,
            title=validate_translations(title, "title"),
            body=validate_translations(body, "body", required=False) or {},
            description=validate_translations(description, "description", required=False),
            tags=validate_tags(tags),
            language=validate_language(language),
            is_published=is_published,
            is_active=is_active,
            relevance_score=BASELINE_RELEVANCE_SCORE,
            last_indexed_at=now,
            created_at=now,
            updated_at=now,
        )
        SearchIndexService._refresh_search_copies(document)
        db.add(document)
        try:
            await db.commit()
        except IntegrityError:
            # Another writer indexed the same content key after our lookup
            await db.rollback()
            raise DuplicateResourceError("Search document", "content key", f"{content_type.value}:{content_id}")
        await db.refresh(document)
        logger.info(f"Indexed {content_type.value}:{content_id} as search document {document.id}")
        return document

    @staticmethod
    async def update_document(db: AsyncSession, document_id: int, **changes: Any) -> SearchDocument:
        """Partial update; only the supplied fields are replaced."""
        document = await SearchIndexService.get_document(db, document_id)
        SearchIndexService._apply_changes(document, changes)
        await db.commit()
        await db.refresh(document)
        return document

    @staticmethod
    def _apply_changes(document: SearchDocument, changes: dict[str, Any]) -> None:
        if "title" in changes and changes["title"] is not None:
            document.title = validate_translations(changes["title"], "title")
        if "body" in changes and changes["body"] is not None:
            document.body = validate_translations(changes["body"], "body", required=False)
        if "description" in changes:
            document.description = validate_translations(changes["description"], "description", required=False)
        if "tags" in changes and changes["tags"] is not None:
            document.tags = validate_tags(changes["tags"])
        if "language" in changes and changes["language"] is not None:
            document.language = validate_language(changes["language"])
        if "is_published" in changes and changes["is_published"] is not None:
            document.is_published = bool(changes["is_published"])
        if "is_active" in changes and changes["is_active"] is not None:
            document.is_active = bool(changes["is_active"])
        SearchIndexService._refresh_search_copies(document)
        document.updated_at = utcnow()

    @staticmethod
    def _refresh_search_copies(document: SearchDocument) -> None:
        document.search_title = fold_translations(document.title)
        document.search_body = fold_translations(document.body)

    @staticmethod
    async def upsert_document(
        db: AsyncSession,
        content_id: str,
        content_type: ContentType | str,
        **fields: Any,
    ) -> SearchDocument:
        """Create the document for a content key, or merge fields into the existing one."""
        existing = await SearchIndexService.find_by_content(db, content_id, content_type)
        if existing is None:
            try:
                return await SearchIndexService.create_document(
                    db, content_id=content_id, content_type=content_type, **fields
                )
            except DuplicateResourceError:
                existing = await SearchIndexService.find_by_content(db, content_id, content_type)
                if existing is None:
                    raise
        return await SearchIndexService.update_document(db, existing.id, **fields)

    @staticmethod
    async def delete_document(db: AsyncSession, document_id: int) -> None:
        document = await SearchIndexService.get_document(db, document_id)
        await db.delete(document)
        await db.commit()

    @staticmethod
    async def delete_by_content(db: AsyncSession, content_id: str, content_type: ContentType | str) -> bool:
        """Remove the document tied to a content key. Returns False if none existed."""
        content_type = validate_content_type(content_type)
        result = await db.execute(
            delete(SearchDocument).where(
                SearchDocument.content_id == content_id,
                SearchDocument.content_type == content_type,
            )
        )
        await db.commit()
        removed = (result.rowcount or 0) > 0
        if removed:
            logger.info(f"Removed {content_type.value}:{content_id} from the search index")
        return removed

    @staticmethod
    async def update_relevance_score(db: AsyncSession, document_id: int, score: float) -> SearchDocument:
        if score < 0:
            raise ValidationError("relevance_score must be non-negative", field="relevance_score")
        document = await SearchIndexService.get_document(db, document_id)
        document.relevance_score = score
        await db.commit()
        await db.refresh(document)
        return document

    # ========================================================================
    # Reindexing
    # ========================================================================

    @staticmethod
    async def reindex_document(
        db: AsyncSession, document: SearchDocument, now: datetime | None = None
    ) -> SearchDocument:
        """Recompute the relevance score and stamp ``last_indexed_at``."""
        now = now or utcnow()
        document.relevance_score = compute_relevance_score(document, now)
        document.last_indexed_at = now
        SearchIndexService._refresh_search_copies(document)
        await db.commit()
        await db.refresh(document)
        return document

    @staticmethod
    async def reindex_by_content(db: AsyncSession, content_id: str, content_type: ContentType | str) -> SearchDocument:
        content_type = validate_content_type(content_type)
        document = await SearchIndexService.find_by_content(db, content_id, content_type)
        if document is None:
            raise IndexEntryNotFoundError(content_id, content_type.value)
        document = await SearchIndexService.reindex_document(db, document)
        record_reindex(success=True)
        return document

    @staticmethod
    async def bulk_reindex(db: AsyncSession, content_type: ContentType | str | None = None) -> dict[str, Any]:
        """
        Reindex every document, optionally scoped to one content type.

        Each document is committed on its own; a failure is rolled back,
        counted and reported, and the batch moves on.

        Returns:
            dict with ``success``, ``failed`` and ``errors`` (bounded list)
        """
        stmt = select(SearchDocument.id, SearchDocument.content_id, SearchDocument.content_type).order_by(
            SearchDocument.id
        )
        if content_type is not None:
            stmt = stmt.where(SearchDocument.content_type == validate_content_type(content_type))
        keys = (await db.execute(stmt)).all()

        success = 0
        failed = 0
        errors: list[str] = []
        now = utcnow()

        for document_id, content_id, doc_type in keys:
            try:
                document = await db.get(SearchDocument, document_id)
                if document is None:
                    # removed by a concurrent delete; nothing left to reindex
                    continue
                await SearchIndexService.reindex_document(db, document, now=now)
                success += 1
                record_reindex(success=True)
            except Exception as e:
                await db.rollback()
                failed += 1
                record_reindex(success=False)
                label = doc_type.value if isinstance(doc_type, ContentType) else doc_type
                message = f"Failed to reindex {label}:{content_id}: {e}"
                logger.warning(message)
                if len(errors) < settings.search_bulk_error_limit:
                    errors.append(message)

        logger.info(f"Bulk reindex finished: {success} succeeded, {failed} failed")
        return {"success": success, "failed": failed, "errors": errors}

    # ========================================================================
    # Statistics
    # ========================================================================

    @staticmethod
    async def get_statistics(db: AsyncSession) -> dict[str, Any]:
        total = (await db.execute(select(func.count(SearchDocument.id)))).scalar() or 0

        type_result = await db.execute(
            select(SearchDocument.content_type, func.count(SearchDocument.id)).group_by(SearchDocument.content_type)
        )
        by_content_type = {ct.value if isinstance(ct, ContentType) else ct: count for ct, count in type_result.all()}

        language_result = await db.execute(
            select(SearchDocument.language, func.count(SearchDocument.id)).group_by(SearchDocument.language)
        )
        by_language = dict(language_result.all())

        published = (
            await db.execute(select(func.count(SearchDocument.id)).where(SearchDocument.is_published.is_(True)))
        ).scalar() or 0
        active = (
            await db.execute(select(func.count(SearchDocument.id)).where(SearchDocument.is_active.is_(True)))
        ).scalar() or 0
        average = (await db.execute(select(func.avg(SearchDocument.relevance_score)))).scalar()

        return {
            "total": total,
            "by_content_type": by_content_type,
            "by_language": by_language,
            "published": published,
            "active": active,
            "average_score": round(float(average or 0), 4),
        }


# Singleton instance
search_index_service = SearchIndexService()
