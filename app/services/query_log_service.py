"""
Query Log Service

Append-only history of executed searches and the analytics computed over it:
popular queries, unique users, zero-result counts and hour/day histograms.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.constants import ContentType
from app.models.search_query import SearchQueryRecord
from app.utils.dates import ensure_utc, utcnow
from app.utils.metrics import record_maintenance_removals, record_query_log_failure
from app.utils.pagination import build_pagination, page_offset
from app.utils.validation import validate_content_type

logger = logging.getLogger(__name__)

TOP_QUERIES_LIMIT = 10


class QueryLogService:
    """Service for the search query log and search analytics"""

    @staticmethod
    async def log_query(
        db: AsyncSession,
        query: str,
        language: str,
        results_count: int,
        execution_time_ms: float,
        content_type: ContentType | None = None,
        filters: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        user_id: str | None = None,
    ) -> SearchQueryRecord | None:
        """
        Append one query-log record.

        Failures are logged and discarded; the caller's search must never fail
        because its history could not be written.
        """
        try:
            record = SearchQueryRecord(
                query=query[:500],
                language=language,
                content_type=content_type,
                filters=filters or None,
                results_count=results_count,
                execution_time_ms=round(execution_time_ms, 2),
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
                user_id=user_id,
                created_at=utcnow(),
            )
            db.add(record)
            await db.commit()
            return record
        except Exception:
            logger.warning("Failed to log search query", exc_info=True)
            record_query_log_failure()
            await db.rollback()
            return None

    @staticmethod
    def _window_start(days: int) -> datetime:
        return utcnow() - timedelta(days=days)

    @staticmethod
    async def popular_queries(
        db: AsyncSession,
        language: str | None = None,
        content_type: ContentType | str | None = None,
        days: int = 7,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """
        Most frequent exact query texts within the trailing window.

        Returns:
            list of dicts with query, count, last_used and average_results
        """
        clauses = [SearchQueryRecord.created_at >= QueryLogService._window_start(days)]
        if language:
            clauses.append(SearchQueryRecord.language == language)
        if content_type is not None:
            clauses.append(SearchQueryRecord.content_type == validate_content_type(content_type))

        occurrences = func.count(SearchQueryRecord.id)
        stmt = (
            select(
                SearchQueryRecord.query,
                occurrences.label("count"),
                func.max(SearchQueryRecord.created_at).label("last_used"),
                func.avg(SearchQueryRecord.results_count).label("average_results"),
            )
            .where(*clauses)
            .group_by(SearchQueryRecord.query)
            .order_by(occurrences.desc(), SearchQueryRecord.query.asc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return [
            {
                "query": row.query,
                "count": row.count,
                "last_used": ensure_utc(row.last_used),
                "average_results": round(float(row.average_results or 0)),
            }
            for row in result.all()
        ]

    @staticmethod
    def bucket_timestamps(timestamps: list[datetime], days: int, now: datetime | None = None) -> tuple[dict, dict]:
        """
        Histogram query timestamps by UTC hour-of-day and by calendar day.

        Every hour 0-23 and every day of the window appears, with zero counts
        where nothing was logged. A rolling window of N days touches N + 1
        calendar days (the oldest one partially), so by_day has N + 1 keys.
        """
        now = ensure_utc(now) or utcnow()
        by_hour = {hour: 0 for hour in range(24)}
        by_day = {(now - timedelta(days=offset)).date().isoformat(): 0 for offset in range(days, -1, -1)}

        day_counts: Counter = Counter()
        for stamp in timestamps:
            stamp = ensure_utc(stamp)
            by_hour[stamp.hour] += 1
            day_counts[stamp.date().isoformat()] += 1

        for day, count in day_counts.items():
            if day in by_day:
                by_day[day] = count
        return by_hour, by_day

    @staticmethod
    async def get_analytics(db: AsyncSession, days: int = 7) -> dict[str, Any]:
        """
        Aggregate the trailing ``days`` of the query log.

        Returns:
            dict matching the SearchAnalyticsResponse schema
        """
        since = QueryLogService._window_start(days)
        in_window = SearchQueryRecord.created_at >= since

        total_queries = (await db.execute(select(func.count(SearchQueryRecord.id)).where(in_window))).scalar() or 0

        unique_users = (
            await db.execute(
                select(func.count(func.distinct(SearchQueryRecord.user_id))).where(
                    in_window, SearchQueryRecord.user_id.is_not(None)
                )
            )
        ).scalar() or 0

        average_results = (
            await db.execute(select(func.avg(SearchQueryRecord.results_count)).where(in_window))
        ).scalar()
        average_execution = (
            await db.execute(select(func.avg(SearchQueryRecord.execution_time_ms)).where(in_window))
        ).scalar()

        zero_results = (
            await db.execute(
                select(func.count(SearchQueryRecord.id)).where(in_window, SearchQueryRecord.results_count == 0)
            )
        ).scalar() or 0

        top_queries = await QueryLogService.popular_queries(db, days=days, limit=TOP_QUERIES_LIMIT)

        stamps_result = await db.execute(select(SearchQueryRecord.created_at).where(in_window))
        queries_by_hour, queries_by_day = QueryLogService.bucket_timestamps(
            [row[0] for row in stamps_result.all()], days
        )

        return {
            "days": days,
            "total_queries": total_queries,
            "unique_users": unique_users,
            "average_queries_per_user": round(total_queries / unique_users, 2) if unique_users else 0.0,
            "top_queries": top_queries,
            "queries_by_hour": queries_by_hour,
            "queries_by_day": queries_by_day,
            "average_results": round(float(average_results or 0)),
            "average_execution_time_ms": round(float(average_execution or 0), 2),
            "zero_results_queries": zero_results,
        }

    @staticmethod
    async def find_all(
        db: AsyncSession,
        user_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Paginated query history, newest first, optionally for one user."""
        clauses = []
        if user_id is not None:
            clauses.append(SearchQueryRecord.user_id == user_id)
        if date_from is not None:
            clauses.append(SearchQueryRecord.created_at >= ensure_utc(date_from))
        if date_to is not None:
            clauses.append(SearchQueryRecord.created_at <= ensure_utc(date_to))

        total = (await db.execute(select(func.count(SearchQueryRecord.id)).where(*clauses))).scalar() or 0
        stmt = (
            select(SearchQueryRecord)
            .where(*clauses)
            .order_by(SearchQueryRecord.created_at.desc(), SearchQueryRecord.id.desc())
            .limit(limit)
            .offset(page_offset(page, limit))
        )
        result = await db.execute(stmt)
        return {"data": list(result.scalars().all()), "pagination": build_pagination(page, limit, total)}

    @staticmethod
    async def get_statistics(db: AsyncSession) -> dict[str, Any]:
        total = (await db.execute(select(func.count(SearchQueryRecord.id)))).scalar() or 0

        language_result = await db.execute(
            select(SearchQueryRecord.language, func.count(SearchQueryRecord.id)).group_by(SearchQueryRecord.language)
        )
        type_result = await db.execute(
            select(SearchQueryRecord.content_type, func.count(SearchQueryRecord.id))
            .where(SearchQueryRecord.content_type.is_not(None))
            .group_by(SearchQueryRecord.content_type)
        )
        average_results = (await db.execute(select(func.avg(SearchQueryRecord.results_count)))).scalar()
        average_execution = (await db.execute(select(func.avg(SearchQueryRecord.execution_time_ms)))).scalar()

        return {
            "total": total,
            "by_language": dict(language_result.all()),
            "by_content_type": {ct.value: count for ct, count in type_result.all()},
            "average_results": round(float(average_results or 0)),
            "average_execution_time_ms": round(float(average_execution or 0), 2),
        }

    @staticmethod
    async def purge_older_than(db: AsyncSession, days: int) -> int:
        """Hard-delete records older than ``days``. Returns the number removed."""
        cutoff = utcnow() - timedelta(days=days)
        result = await db.execute(delete(SearchQueryRecord).where(SearchQueryRecord.created_at < cutoff))
        await db.commit()
        removed = result.rowcount or 0
        record_maintenance_removals("query_purge", removed)
        logger.info(f"Purged {removed} query-log records older than {days} days")
        return removed


# Singleton instance
query_log_service = QueryLogService()
