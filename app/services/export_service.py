"""
Export Service

Exports search documents, suggestions and the query log as JSON (an envelope
with the export timestamp and the filters used) or as CSV.
"""

import csv
import json
import logging
from datetime import datetime
from io import StringIO
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.constants import ContentType
from app.exceptions import ValidationError
from app.models.search_document import SearchDocument
from app.models.search_query import SearchQueryRecord
from app.models.search_suggestion import SearchSuggestion
from app.utils.dates import ensure_utc, utcnow
from app.utils.security import sanitize_csv_field
from app.utils.validation import validate_content_type, validate_language

logger = logging.getLogger(__name__)

# Maximum export limits to prevent resource exhaustion
MAX_EXPORT_LIMIT = 10000
DEFAULT_EXPORT_LIMIT = 1000

EXPORT_FORMATS = ("json", "csv")


def _effective_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_EXPORT_LIMIT
    if limit < 1:
        raise ValidationError("limit must be at least 1", field="limit")
    if limit > MAX_EXPORT_LIMIT:
        logger.warning(f"Export limit {limit} exceeds maximum {MAX_EXPORT_LIMIT}, capping")
        return MAX_EXPORT_LIMIT
    return limit


def _iso(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, ContentType) else value


def document_to_dict(document: SearchDocument) -> dict[str, Any]:
    return {
        "id": document.id,
        "content_id": document.content_id,
        "content_type": _enum_value(document.content_type),
        "title": document.title or {},
        "body": document.body or {},
        "description": document.description,
        "tags": list(document.tags or []),
        "language": document.language,
        "is_published": document.is_published,
        "is_active": document.is_active,
        "relevance_score": document.relevance_score,
        "last_indexed_at": _iso(document.last_indexed_at),
        "created_at": _iso(document.created_at),
        "updated_at": _iso(document.updated_at),
    }


def suggestion_to_dict(suggestion: SearchSuggestion) -> dict[str, Any]:
    return {
        "id": suggestion.id,
        "term": suggestion.term,
        "language": suggestion.language,
        "content_type": _enum_value(suggestion.content_type),
        "frequency": suggestion.frequency,
        "is_active": suggestion.is_active,
        "last_used_at": _iso(suggestion.last_used_at),
        "created_at": _iso(suggestion.created_at),
    }


def query_record_to_dict(record: SearchQueryRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "query": record.query,
        "language": record.language,
        "content_type": _enum_value(record.content_type),
        "filters": record.filters,
        "results_count": record.results_count,
        "execution_time_ms": record.execution_time_ms,
        "user_id": record.user_id,
        "ip_address": record.ip_address,
        "created_at": _iso(record.created_at),
    }


def _json_envelope(items: list[dict[str, Any]], query: dict[str, Any]) -> str:
    payload = {
        "exported_at": utcnow().isoformat(),
        "query": {key: value for key, value in query.items() if value is not None},
        "count": len(items),
        "items": items,
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _csv(header: list[str], rows: list[list[Any]]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(header)
    for row in rows:
        writer.writerow([sanitize_csv_field(value) for value in row])
    return output.getvalue()


def _check_format(fmt: str) -> str:
    fmt = (fmt or "json").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Invalid export format. Must be one of: {', '.join(EXPORT_FORMATS)}", field="format")
    return fmt


class ExportService:
    """Service for exporting search data"""

    @staticmethod
    async def export_documents(
        db: AsyncSession,
        fmt: str = "json",
        content_type: ContentType | str | None = None,
        language: str | None = None,
        limit: int | None = None,
    ) -> str:
        """
        Export indexed documents.

        Args:
            db: Database session
            fmt: ``json`` or ``csv``
            content_type: Only documents of this type
            language: Only documents in this language
            limit: Maximum number of records (capped at MAX_EXPORT_LIMIT)
        """
        fmt = _check_format(fmt)
        limit = _effective_limit(limit)

        stmt = select(SearchDocument).order_by(SearchDocument.id)
        if content_type is not None:
            content_type = validate_content_type(content_type)
            stmt = stmt.where(SearchDocument.content_type == content_type)
        if language:
            stmt = stmt.where(SearchDocument.language == validate_language(language))
        documents = (await db.execute(stmt.limit(limit))).scalars().all()
        items = [document_to_dict(doc) for doc in documents]

        if fmt == "json":
            return _json_envelope(
                items, {"content_type": _enum_value(content_type), "language": language, "limit": limit}
            )
        return _csv(
            [
                "ID",
                "Content ID",
                "Content Type",
                "Title (en)",
                "Title (ne)",
                "Tags",
                "Language",
                "Published",
                "Active",
                "Relevance Score",
                "Last Indexed At",
                "Created At",
            ],
            [
                [
                    item["id"],
                    item["content_id"],
                    item["content_type"],
                    item["title"].get("en", ""),
                    item["title"].get("ne", ""),
                    ", ".join(item["tags"]),
                    item["language"],
                    item["is_published"],
                    item["is_active"],
                    item["relevance_score"],
                    item["last_indexed_at"] or "",
                    item["created_at"] or "",
                ]
                for item in items
            ],
        )

    @staticmethod
    async def export_suggestions(
        db: AsyncSession,
        fmt: str = "json",
        language: str | None = None,
        limit: int | None = None,
    ) -> str:
        fmt = _check_format(fmt)
        limit = _effective_limit(limit)

        stmt = select(SearchSuggestion).order_by(SearchSuggestion.frequency.desc(), SearchSuggestion.id)
        if language:
            stmt = stmt.where(SearchSuggestion.language == validate_language(language))
        suggestions = (await db.execute(stmt.limit(limit))).scalars().all()
        items = [suggestion_to_dict(s) for s in suggestions]

        if fmt == "json":
            return _json_envelope(items, {"language": language, "limit": limit})
        return _csv(
            ["ID", "Term", "Language", "Content Type", "Frequency", "Active", "Last Used At"],
            [
                [
                    item["id"],
                    item["term"],
                    item["language"],
                    item["content_type"] or "",
                    item["frequency"],
                    item["is_active"],
                    item["last_used_at"] or "",
                ]
                for item in items
            ],
        )

    @staticmethod
    async def export_queries(
        db: AsyncSession,
        fmt: str = "json",
        user_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int | None = None,
    ) -> str:
        """Export the query log, newest first."""
        fmt = _check_format(fmt)
        limit = _effective_limit(limit)

        stmt = select(SearchQueryRecord).order_by(SearchQueryRecord.created_at.desc(), SearchQueryRecord.id.desc())
        if user_id is not None:
            stmt = stmt.where(SearchQueryRecord.user_id == user_id)
        if date_from is not None:
            stmt = stmt.where(SearchQueryRecord.created_at >= ensure_utc(date_from))
        if date_to is not None:
            stmt = stmt.where(SearchQueryRecord.created_at <= ensure_utc(date_to))
        records = (await db.execute(stmt.limit(limit))).scalars().all()
        items = [query_record_to_dict(r) for r in records]

        if fmt == "json":
            return _json_envelope(
                items,
                {"user_id": user_id, "date_from": _iso(date_from), "date_to": _iso(date_to), "limit": limit},
            )
        return _csv(
            ["ID", "Query", "Language", "Content Type", "Results", "Execution Time (ms)", "User ID", "Created At"],
            [
                [
                    item["id"],
                    item["query"],
                    item["language"],
                    item["content_type"] or "",
                    item["results_count"],
                    item["execution_time_ms"],
                    item["user_id"] or "",
                    item["created_at"] or "",
                ]
                for item in items
            ],
        )


# Singleton instance
export_service = ExportService()
