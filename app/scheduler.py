import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app import database
from app.config import settings
from app.services.query_log_service import query_log_service
from app.services.search_service import search_service
from app.services.suggestion_service import suggestion_service

scheduler = AsyncIOScheduler(timezone="UTC")

logger = logging.getLogger(__name__)

SUGGESTION_CLEANUP_JOB = "suggestion_cleanup"
QUERY_PURGE_JOB = "query_log_purge"
BULK_REINDEX_JOB = "nightly_bulk_reindex"


async def cleanup_suggestions() -> int | None:
    try:
        async with database.AsyncSessionLocal() as db:
            removed = await suggestion_service.cleanup(db)
        logger.info(f"[Scheduler] Suggestion cleanup removed {removed} terms.")
        return removed
    except Exception:
        logger.exception("[Scheduler] Suggestion cleanup failed")
        return None


async def purge_query_log() -> int | None:
    try:
        async with database.AsyncSessionLocal() as db:
            removed = await query_log_service.purge_older_than(db, settings.query_log_retention_days)
        logger.info(f"[Scheduler] Query-log purge removed {removed} records.")
        return removed
    except Exception:
        logger.exception("[Scheduler] Query-log purge failed")
        return None


async def reindex_all() -> dict | None:
    try:
        async with database.AsyncSessionLocal() as db:
            result = await search_service.bulk_reindex(db)
        logger.info(f"[Scheduler] Nightly reindex: {result['success']} succeeded, {result['failed']} failed.")
        return result
    except Exception:
        logger.exception("[Scheduler] Nightly reindex failed")
        return None


def register_jobs() -> None:
    """Add (or replace) the maintenance jobs on the shared scheduler."""
    jobs = (
        (cleanup_suggestions, SUGGESTION_CLEANUP_JOB, settings.suggestion_cleanup_hour),
        (purge_query_log, QUERY_PURGE_JOB, settings.query_purge_hour),
        (reindex_all, BULK_REINDEX_JOB, settings.bulk_reindex_hour),
    )
    for func, job_id, hour in jobs:
        scheduler.add_job(
            func,
            trigger=CronTrigger(hour=hour, minute=0, timezone="UTC"),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info(f"[Scheduler] Job {job_id} scheduled daily at {hour:02d}:00 UTC")
