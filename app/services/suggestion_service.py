"""
Suggestion Service

Autocomplete terms ranked by usage frequency: prefix lookup, race-free usage
increments, popularity listing, a stale-term cleanup sweep and admin CRUD.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.constants import SUGGESTION_TERM_MAX_LENGTH, SUGGESTION_TERM_MIN_LENGTH, ContentType, SortOrder
from app.exceptions import DatabaseError, DuplicateResourceError, SuggestionNotFoundError, ValidationError
from app.models.search_suggestion import SearchSuggestion, normalize_term
from app.utils.dates import utcnow
from app.utils.metrics import record_maintenance_removals, record_suggestion_increment
from app.utils.pagination import build_pagination, page_offset
from app.utils.validation import validate_content_type, validate_language

logger = logging.getLogger(__name__)

# Attempts at the update-or-insert loop before giving up on a contended term.
MAX_INCREMENT_ATTEMPTS = 5

SUGGESTION_SORT_COLUMNS = {
    "frequency": SearchSuggestion.frequency,
    "term": SearchSuggestion.normalized_term,
    "last_used_at": SearchSuggestion.last_used_at,
    "created_at": SearchSuggestion.created_at,
}


def validate_term(term: Any) -> str:
    """Trim a term and enforce the length bounds."""
    if not isinstance(term, str):
        raise ValidationError("Term must be a string", field="term")
    term = " ".join(term.split())
    if len(term) < SUGGESTION_TERM_MIN_LENGTH:
        raise ValidationError(
            f"Term must be at least {SUGGESTION_TERM_MIN_LENGTH} characters long",
            field="term",
            details={"code": "TERM_TOO_SHORT"},
        )
    if len(term) > SUGGESTION_TERM_MAX_LENGTH:
        raise ValidationError(
            f"Term must not exceed {SUGGESTION_TERM_MAX_LENGTH} characters",
            field="term",
            details={"code": "TERM_TOO_LONG"},
        )
    return term


def validate_frequency(frequency: Any) -> int:
    if isinstance(frequency, bool) or not isinstance(frequency, int) or frequency < 0:
        raise ValidationError(
            "Frequency must be a non-negative integer", field="frequency", details={"code": "INVALID_FREQUENCY"}
        )
    return frequency


class SuggestionService:
    """Service for autocomplete suggestions"""

    @staticmethod
    async def get_suggestion(db: AsyncSession, suggestion_id: int) -> SearchSuggestion:
        suggestion = await db.get(SearchSuggestion, suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(suggestion_id)
        return suggestion

    @staticmethod
    async def find_by_term(db: AsyncSession, term: str, language: str) -> SearchSuggestion | None:
        result = await db.execute(
            select(SearchSuggestion).where(
                SearchSuggestion.normalized_term == normalize_term(term),
                SearchSuggestion.language == language,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def find_by_prefix(db: AsyncSession, prefix: str, language: str, limit: int = 10) -> list[SearchSuggestion]:
        """
        Active suggestions whose term starts with ``prefix`` (case-insensitive),
        most frequently used first.
        """
        needle = normalize_term(prefix)
        if not needle:
            return []
        stmt = (
            select(SearchSuggestion)
            .where(
                SearchSuggestion.normalized_term.startswith(needle, autoescape=True),
                SearchSuggestion.language == language,
                SearchSuggestion.is_active.is_(True),
            )
            .order_by(SearchSuggestion.frequency.desc(), SearchSuggestion.normalized_term.asc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_popular(db: AsyncSession, language: str, limit: int = 10) -> list[SearchSuggestion]:
        stmt = (
            select(SearchSuggestion)
            .where(SearchSuggestion.language == language, SearchSuggestion.is_active.is_(True))
            .order_by(SearchSuggestion.frequency.desc(), SearchSuggestion.normalized_term.asc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def increment_usage(db: AsyncSession, term: str, language: str) -> None:
        """
        Count one use of ``term``.

        The increment is a single ``UPDATE ... SET frequency = frequency + 1``
        so concurrent callers never lose updates. When no row matched, an
        insert with frequency 1 is attempted; losing that insert race to
        another caller shows up as an IntegrityError on the unique
        (normalized_term, language) key and the update is retried.

        This method commits (or rolls back) the session it is given.
        """
        term = validate_term(term)
        language = validate_language(language)
        normalized = normalize_term(term)

        for _attempt in range(MAX_INCREMENT_ATTEMPTS):
            now = utcnow()
            result = await db.execute(
                update(SearchSuggestion)
                .where(
                    SearchSuggestion.normalized_term == normalized,
                    SearchSuggestion.language == language,
                )
                .values(frequency=SearchSuggestion.frequency + 1, last_used_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if (result.rowcount or 0) > 0:
                await db.commit()
                record_suggestion_increment(created=False)
                return

            db.add(
                SearchSuggestion(
                    term=term,
                    normalized_term=normalized,
                    language=language,
                    frequency=1,
                    last_used_at=now,
                    is_active=True,
                    created_at=now,
                    updated_at=now,
                )
            )
            try:
                await db.commit()
                record_suggestion_increment(created=True)
                return
            except IntegrityError:
                await db.rollback()
                logger.debug(f"Suggestion '{normalized}' ({language}) created concurrently, retrying increment")

        raise DatabaseError(f"Could not record usage of suggestion '{normalized}'", operation="increment_usage")

    @staticmethod
    async def cleanup(db: AsyncSession) -> int:
        """
        Delete suggestions unused for the retention window whose frequency is
        below the minimum. Returns the number of deleted rows.
        """
        cutoff = utcnow() - timedelta(days=settings.suggestion_retention_days)
        result = await db.execute(
            delete(SearchSuggestion).where(
                SearchSuggestion.last_used_at < cutoff,
                SearchSuggestion.frequency < settings.suggestion_min_frequency,
            )
        )
        await db.commit()
        removed = result.rowcount or 0
        record_maintenance_removals("suggestion_cleanup", removed)
        logger.info(f"Suggestion cleanup removed {removed} stale terms")
        return removed

    # ========================================================================
    # Administrative CRUD
    # ========================================================================

    @staticmethod
    async def find_all(
        db: AsyncSession,
        search: str | None = None,
        language: str | None = None,
        content_type: ContentType | str | None = None,
        is_active: bool | None = None,
        page: int = 1,
        limit: int = 10,
        sort: str = "frequency",
        order: SortOrder = SortOrder.DESC,
    ) -> dict[str, Any]:
        clauses = []
        if search:
            clauses.append(SearchSuggestion.normalized_term.contains(normalize_term(search), autoescape=True))
        if language:
            clauses.append(SearchSuggestion.language == language)
        if content_type is not None:
            clauses.append(SearchSuggestion.content_type == validate_content_type(content_type))
        if is_active is not None:
            clauses.append(SearchSuggestion.is_active == is_active)

        column = SUGGESTION_SORT_COLUMNS.get(sort)
        if column is None:
            raise ValidationError(
                f"Invalid sort. Must be one of: {', '.join(SUGGESTION_SORT_COLUMNS)}", field="sort"
            )

        total = (await db.execute(select(func.count(SearchSuggestion.id)).where(*clauses))).scalar() or 0
        stmt = (
            select(SearchSuggestion)
            .where(*clauses)
            .order_by(column.asc() if order == SortOrder.ASC else column.desc(), SearchSuggestion.id.asc())
            .limit(limit)
            .offset(page_offset(page, limit))
        )
        result = await db.execute(stmt)
        return {"data": list(result.scalars().all()), "pagination": build_pagination(page, limit, total)}

    @staticmethod
    async def create_suggestion(
        db: AsyncSession,
        term: str,
        language: str,
        content_type: ContentType | str | None = None,
        frequency: int = 1,
        is_active: bool = True,
    ) -> SearchSuggestion:
        term = validate_term(term)
        language = validate_language(language)
        frequency = validate_frequency(frequency)
        if content_type is not None:
            content_type = validate_content_type(content_type)

        if await SuggestionService.find_by_term(db, term, language) is not None:
            raise DuplicateResourceError("Search suggestion", "term", term)

        now = utcnow()
        suggestion = SearchSuggestion(
            term=term,
            normalized_term=normalize_term(term),
            language=language,
            content_type=content_type,
            frequency=frequency,
            last_used_at=now,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        db.add(suggestion)
        try:
            await db.commit()
        except IntegrityError as err:
            await db.rollback()
            raise DuplicateResourceError("Search suggestion", "term", term) from err
        await db.refresh(suggestion)
        return suggestion

    @staticmethod
    async def update_suggestion(db: AsyncSession, suggestion_id: int, **changes: Any) -> SearchSuggestion:
        """
        Update curation fields. Frequency may be raised but never lowered;
        stale terms leave the table through deletion instead.
        """
        suggestion = await SuggestionService.get_suggestion(db, suggestion_id)

        if changes.get("frequency") is not None:
            frequency = validate_frequency(changes["frequency"])
            if frequency < suggestion.frequency:
                raise ValidationError(
                    "Frequency cannot be decreased",
                    field="frequency",
                    details={"current": suggestion.frequency, "requested": frequency},
                )
            suggestion.frequency = frequency
        if changes.get("is_active") is not None:
            suggestion.is_active = bool(changes["is_active"])
        if "content_type" in changes:
            content_type = changes["content_type"]
            suggestion.content_type = validate_content_type(content_type) if content_type is not None else None

        suggestion.updated_at = utcnow()
        await db.commit()
        await db.refresh(suggestion)
        return suggestion

    @staticmethod
    async def delete_suggestion(db: AsyncSession, suggestion_id: int) -> None:
        suggestion = await SuggestionService.get_suggestion(db, suggestion_id)
        await db.delete(suggestion)
        await db.commit()

    @staticmethod
    async def get_statistics(db: AsyncSession) -> dict[str, Any]:
        total = (await db.execute(select(func.count(SearchSuggestion.id)))).scalar() or 0
        active = (
            await db.execute(select(func.count(SearchSuggestion.id)).where(SearchSuggestion.is_active.is_(True)))
        ).scalar() or 0

        language_result = await db.execute(
            select(SearchSuggestion.language, func.count(SearchSuggestion.id)).group_by(SearchSuggestion.language)
        )
        type_result = await db.execute(
            select(SearchSuggestion.content_type, func.count(SearchSuggestion.id))
            .where(SearchSuggestion.content_type.is_not(None))
            .group_by(SearchSuggestion.content_type)
        )
        average = (await db.execute(select(func.avg(SearchSuggestion.frequency)))).scalar()

        return {
            "total": total,
            "active": active,
            "by_language": dict(language_result.all()),
            "by_content_type": {ct.value: count for ct, count in type_result.all()},
            "average_frequency": round(float(average or 0), 2),
        }


# Singleton instance
suggestion_service = SuggestionService()
