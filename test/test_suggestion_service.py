"""
Tests for the Suggestion Service

Prefix lookup, atomic usage increments (including concurrent callers), the
cleanup sweep boundaries and administrative CRUD validation.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select
from utils.mock_utils import create_test_suggestion

from app.constants import ContentType
from app.exceptions import DuplicateResourceError, SuggestionNotFoundError, ValidationError
from app.models.search_suggestion import SearchSuggestion, normalize_term
from app.services.suggestion_service import suggestion_service, validate_term
from app.utils.dates import utcnow


async def _frequency(db, term: str, language: str = "en") -> int | None:
    result = await db.execute(
        select(SearchSuggestion.frequency).where(
            SearchSuggestion.normalized_term == normalize_term(term),
            SearchSuggestion.language == language,
        )
    )
    return result.scalar()


class TestValidateTerm:
    def test_trims_and_collapses_whitespace(self):
        assert validate_term("  bus   park ") == "bus park"

    @pytest.mark.parametrize("term, code", [("a", "TERM_TOO_SHORT"), (" b ", "TERM_TOO_SHORT"), ("x" * 101, "TERM_TOO_LONG")])
    def test_length_bounds(self, term, code):
        with pytest.raises(ValidationError) as exc_info:
            validate_term(term)

        assert exc_info.value.details["code"] == code

    def test_boundary_lengths_accepted(self):
        assert validate_term("ab") == "ab"
        assert validate_term("x" * 100) == "x" * 100


class TestFindByPrefix:
    @pytest.mark.asyncio
    async def test_orders_by_frequency_and_scopes_language(self, test_db):
        await create_test_suggestion(test_db, "Bus park", frequency=3)
        await create_test_suggestion(test_db, "bus schedule", frequency=9)
        await create_test_suggestion(test_db, "business permit", frequency=5)
        await create_test_suggestion(test_db, "bus route", frequency=50, is_active=False)
        await create_test_suggestion(test_db, "bus", language="ne", frequency=100)
        await create_test_suggestion(test_db, "visa", frequency=20)

        suggestions = await suggestion_service.find_by_prefix(test_db, "BUS", "en", limit=10)

        assert [s.term for s in suggestions] == ["bus schedule", "business permit", "Bus park"]

    @pytest.mark.asyncio
    async def test_limit_and_wildcards(self, test_db):
        await create_test_suggestion(test_db, "50% off", frequency=1)
        await create_test_suggestion(test_db, "500 rupees", frequency=2)
        await create_test_suggestion(test_db, "5 star", frequency=3)

        assert [s.term for s in await suggestion_service.find_by_prefix(test_db, "50%", "en")] == ["50% off"]
        assert len(await suggestion_service.find_by_prefix(test_db, "5", "en", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_blank_prefix_returns_nothing(self, test_db):
        await create_test_suggestion(test_db, "bus")

        assert await suggestion_service.find_by_prefix(test_db, "   ", "en") == []

    @pytest.mark.asyncio
    async def test_nepali_prefix(self, test_db):
        await create_test_suggestion(test_db, "बस पार्क", language="ne", frequency=2)

        suggestions = await suggestion_service.find_by_prefix(test_db, "बस", "ne")

        assert [s.term for s in suggestions] == ["बस पार्क"]


class TestIncrementUsage:
    @pytest.mark.asyncio
    async def test_creates_then_increments(self, test_db):
        await suggestion_service.increment_usage(test_db, "Bus Park", "en")
        assert await _frequency(test_db, "bus park") == 1

        await suggestion_service.increment_usage(test_db, "  bus   PARK ", "en")
        assert await _frequency(test_db, "bus park") == 2

        rows = (await test_db.execute(select(SearchSuggestion))).scalars().all()
        assert len(rows) == 1
        assert rows[0].term == "Bus Park"

    @pytest.mark.asyncio
    async def test_languages_are_separate(self, test_db):
        await suggestion_service.increment_usage(test_db, "bus", "en")
        await suggestion_service.increment_usage(test_db, "bus", "ne")

        assert await _frequency(test_db, "bus", "en") == 1
        assert await _frequency(test_db, "bus", "ne") == 1

    @pytest.mark.asyncio
    async def test_refreshes_last_used_at(self, test_db):
        old = utcnow() - timedelta(days=40)
        await create_test_suggestion(test_db, "visa", frequency=1, last_used_at=old)

        await suggestion_service.increment_usage(test_db, "visa", "en")

        result = await test_db.execute(select(SearchSuggestion.last_used_at))
        last_used = result.scalar()
        assert last_used.replace(tzinfo=None) > old.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_rejects_invalid_input(self, test_db):
        with pytest.raises(ValidationError):
            await suggestion_service.increment_usage(test_db, "a", "en")
        with pytest.raises(ValidationError):
            await suggestion_service.increment_usage(test_db, "bus", "fr")

    @pytest.mark.asyncio
    async def test_concurrent_increments_lose_nothing(self, test_db, session_factory):
        calls = 10

        async def use_term():
            async with session_factory() as session:
                await suggestion_service.increment_usage(session, "passport renewal", "en")

        await asyncio.gather(*(use_term() for _ in range(calls)))

        assert await _frequency(test_db, "passport renewal") == calls
        count = len((await test_db.execute(select(SearchSuggestion.id))).all())
        assert count == 1


class TestCleanup:
    @pytest.mark.asyncio
    async def test_cleanup_boundaries(self, test_db):
        stale = utcnow() - timedelta(days=31)
        recent = utcnow() - timedelta(days=1)
        await create_test_suggestion(test_db, "stale rare", frequency=1, last_used_at=stale)
        await create_test_suggestion(test_db, "stale popular", frequency=5, last_used_at=stale)
        await create_test_suggestion(test_db, "recent rare", frequency=1, last_used_at=recent)

        removed = await suggestion_service.cleanup(test_db)

        assert removed == 1
        terms = (await test_db.execute(select(SearchSuggestion.term))).scalars().all()
        assert sorted(terms) == ["recent rare", "stale popular"]

    @pytest.mark.asyncio
    async def test_cleanup_keeps_minimum_frequency(self, test_db):
        await create_test_suggestion(
            test_db, "stale at minimum", frequency=2, last_used_at=utcnow() - timedelta(days=31)
        )

        assert await suggestion_service.cleanup(test_db) == 0


class TestPopular:
    @pytest.mark.asyncio
    async def test_get_popular(self, test_db):
        await create_test_suggestion(test_db, "bus", frequency=2)
        await create_test_suggestion(test_db, "visa", frequency=7)
        await create_test_suggestion(test_db, "hidden", frequency=99, is_active=False)

        popular = await suggestion_service.get_popular(test_db, "en", limit=5)

        assert [s.term for s in popular] == ["visa", "bus"]


class TestSuggestionCrud:
    @pytest.mark.asyncio
    async def test_create_and_duplicate(self, test_db):
        created = await suggestion_service.create_suggestion(
            test_db, "  Citizenship  ", "en", content_type="faq", frequency=4
        )

        assert created.term == "Citizenship"
        assert created.content_type == ContentType.FAQ
        assert created.frequency == 4

        with pytest.raises(DuplicateResourceError):
            await suggestion_service.create_suggestion(test_db, "citizenship", "en")

    @pytest.mark.asyncio
    async def test_create_rejects_negative_frequency(self, test_db):
        with pytest.raises(ValidationError):
            await suggestion_service.create_suggestion(test_db, "bus", "en", frequency=-1)

    @pytest.mark.asyncio
    async def test_update_cannot_lower_frequency(self, test_db):
        suggestion = await create_test_suggestion(test_db, "bus", frequency=5)

        with pytest.raises(ValidationError):
            await suggestion_service.update_suggestion(test_db, suggestion.id, frequency=3)

        updated = await suggestion_service.update_suggestion(test_db, suggestion.id, frequency=8, is_active=False)
        assert updated.frequency == 8
        assert updated.is_active is False

    @pytest.mark.asyncio
    async def test_delete_and_missing(self, test_db):
        suggestion = await create_test_suggestion(test_db, "bus")

        await suggestion_service.delete_suggestion(test_db, suggestion.id)

        with pytest.raises(SuggestionNotFoundError):
            await suggestion_service.get_suggestion(test_db, suggestion.id)

    @pytest.mark.asyncio
    async def test_find_all_filters_and_sorts(self, test_db):
        await create_test_suggestion(test_db, "bus park", frequency=3)
        await create_test_suggestion(test_db, "school bus", frequency=8)
        await create_test_suggestion(test_db, "visa", frequency=5)

        result = await suggestion_service.find_all(test_db, search="bus", sort="term", order="asc")

        assert [s.term for s in result["data"]] == ["bus park", "school bus"]
        assert result["pagination"]["total"] == 2

        with pytest.raises(ValidationError):
            await suggestion_service.find_all(test_db, sort="nonsense")

    @pytest.mark.asyncio
    async def test_statistics(self, test_db):
        await create_test_suggestion(test_db, "bus", frequency=2, content_type=ContentType.FAQ)
        await create_test_suggestion(test_db, "बस", language="ne", frequency=4, is_active=False)

        stats = await suggestion_service.get_statistics(test_db)

        assert stats == {
            "total": 2,
            "active": 1,
            "by_language": {"en": 1, "ne": 1},
            "by_content_type": {"FAQ": 1},
            "average_frequency": 3.0,
        }
