"""
Tests for the maintenance scheduler jobs
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from utils.mock_utils import create_test_document, create_test_query_record, create_test_suggestion

import app.database as database_module
from app.models.search_query import SearchQueryRecord
from app.scheduler import (
    BULK_REINDEX_JOB,
    QUERY_PURGE_JOB,
    SUGGESTION_CLEANUP_JOB,
    cleanup_suggestions,
    purge_query_log,
    register_jobs,
    reindex_all,
    scheduler,
)
from app.utils.dates import utcnow


class TestRegisterJobs:
    def test_jobs_registered(self):
        register_jobs()

        try:
            job_ids = sorted(job.id for job in scheduler.get_jobs())
            assert job_ids == sorted([SUGGESTION_CLEANUP_JOB, QUERY_PURGE_JOB, BULK_REINDEX_JOB])
        finally:
            scheduler.remove_all_jobs()


class TestJobs:
    @pytest.mark.asyncio
    async def test_cleanup_suggestions(self, test_db):
        await create_test_suggestion(test_db, "stale", frequency=1, last_used_at=utcnow() - timedelta(days=60))
        await create_test_suggestion(test_db, "fresh", frequency=1)

        assert await cleanup_suggestions() == 1

    @pytest.mark.asyncio
    async def test_purge_query_log(self, test_db):
        await create_test_query_record(test_db, "ancient", created_at=utcnow() - timedelta(days=365))
        await create_test_query_record(test_db, "recent")

        assert await purge_query_log() == 1
        remaining = (await test_db.execute(select(SearchQueryRecord.query))).scalars().all()
        assert remaining == ["recent"]

    @pytest.mark.asyncio
    async def test_reindex_all(self, test_db):
        await create_test_document(test_db, "a", title={"en": "Bus"})

        result = await reindex_all()

        assert result == {"success": 1, "failed": 0, "errors": []}

    @pytest.mark.asyncio
    async def test_job_failure_is_logged_not_raised(self, setup_test_database, monkeypatch, caplog):
        def unavailable_session():
            raise RuntimeError("no database")

        monkeypatch.setattr(database_module, "AsyncSessionLocal", unavailable_session)

        assert await cleanup_suggestions() is None
        assert "Suggestion cleanup failed" in caplog.text
