"""
Tests for Search Routes

Public search endpoints, the admin surface (reindex pipeline, CRUD, query log,
exports), error envelopes and the monitoring probes.
"""

import json

import pytest
from sqlalchemy import select
from utils.mock_utils import create_test_document, create_test_query_record, create_test_suggestion

from app.constants import ContentType
from app.models.search_query import SearchQueryRecord
from app.models.search_suggestion import SearchSuggestion
from app.services.search_service import search_service

SEARCH = "/api/v1/search"
ADMIN = "/api/v1/admin/search"


@pytest.fixture
async def bus_documents(test_db):
    await create_test_document(
        test_db, "a", title={"en": "Bus schedule"}, body={"en": "Routes and times"}, relevance_score=0.9
    )
    await create_test_document(
        test_db,
        "b",
        title={"ne": "बस समय"},
        body={"en": "Bus timings in Nepali", "ne": "बस बिदा"},
        language="ne",
        relevance_score=0.4,
    )


class TestPublicSearch:
    """Test the public search API"""

    @pytest.mark.asyncio
    async def test_search_returns_ranked_results(self, client, bus_documents):
        response = await client.get(f"{SEARCH}/", params={"q": "bus"})

        assert response.status_code == 200
        data = response.json()
        assert data["query"] == "bus"
        assert data["total_results"] == 2
        assert [(r["id"], r["rank"]) for r in data["results"]] == [("a", 1), ("b", 2)]
        assert data["results"][0]["url"] == "/content/a"
        assert data["facets"]["language"] == {"en": 1, "ne": 1}
        assert data["pagination"]["total_pages"] == 1
        assert data["degraded"] is False

    @pytest.mark.asyncio
    async def test_search_nepali_query(self, client, bus_documents):
        response = await client.get(f"{SEARCH}/", params={"q": "बस", "language": "ne"})

        assert response.status_code == 200
        assert [r["id"] for r in response.json()["results"]] == ["b"]

    @pytest.mark.asyncio
    async def test_missing_query_is_422_envelope(self, client, setup_test_database):
        response = await client.get(f"{SEARCH}/")

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_FAILED"
        assert error["type"] == "Validation Error"
        assert any(e["field"].endswith("q") for e in error["details"]["validation_errors"])

    @pytest.mark.asyncio
    async def test_unsupported_language_is_400(self, client, setup_test_database):
        response = await client.get(f"{SEARCH}/", params={"q": "bus", "language": "fr"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "VALIDATION_FAILED"
        assert error["details"]["field"] == "language"
        assert error["path"] == f"{SEARCH}/"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [{"q": "bus", "limit": 101}, {"q": "bus", "page": 0}, {"q": "bus", "sort": "random"}])
    async def test_bad_paging_and_sort(self, client, setup_test_database, params):
        response = await client.get(f"{SEARCH}/", params=params)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_request_details_reach_query_log(self, client, test_db, bus_documents):
        headers = {"X-User-ID": "u-9", "User-Agent": "portal-tests", "X-Request-ID": "req-123"}

        response = await client.get(f"{SEARCH}/", params={"q": "bus"}, headers=headers)
        await search_service.wait_for_pending_logs()

        assert response.headers["X-Request-ID"] == "req-123"
        record = (await test_db.execute(select(SearchQueryRecord))).scalar_one()
        assert (record.query, record.user_id, record.user_agent) == ("bus", "u-9", "portal-tests")
        assert record.results_count == 2

    @pytest.mark.asyncio
    async def test_advanced_search(self, client, bus_documents):
        payload = {"query": "bus", "content_types": ["CONTENT"], "languages": ["en"], "limit": 5}

        response = await client.post(f"{SEARCH}/advanced", json=payload)

        assert response.status_code == 200
        assert [r["id"] for r in response.json()["results"]] == ["a"]

    @pytest.mark.asyncio
    async def test_advanced_search_inverted_dates(self, client, setup_test_database):
        payload = {"query": "bus", "date_range": {"from": "2026-05-01T00:00:00Z", "to": "2026-04-01T00:00:00Z"}}

        response = await client.post(f"{SEARCH}/advanced", json=payload)

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "date_range"

    @pytest.mark.asyncio
    async def test_advanced_search_blank_query(self, client, setup_test_database):
        response = await client.post(f"{SEARCH}/advanced", json={"query": "   "})

        assert response.status_code == 422


class TestSuggestionRoutes:
    @pytest.mark.asyncio
    async def test_suggestions(self, client, test_db):
        await create_test_suggestion(test_db, "bus schedule", frequency=5)
        await create_test_suggestion(test_db, "bus park", frequency=2)

        response = await client.get(f"{SEARCH}/suggestions", params={"q": "bu", "limit": 1})

        assert response.status_code == 200
        assert response.json() == {"query": "bu", "language": "en", "suggestions": ["bus schedule"]}

    @pytest.mark.asyncio
    async def test_select_suggestion_counts_usage(self, client, test_db):
        response = await client.post(f"{SEARCH}/suggestions/select", json={"term": "visa fees", "language": "en"})

        assert response.status_code == 204
        frequency = (await test_db.execute(select(SearchSuggestion.frequency))).scalar()
        assert frequency == 1

    @pytest.mark.asyncio
    async def test_select_rejects_short_term(self, client, setup_test_database):
        response = await client.post(f"{SEARCH}/suggestions/select", json={"term": "a"})

        assert response.status_code == 400
        assert response.json()["error"]["details"]["code"] == "TERM_TOO_SHORT"

    @pytest.mark.asyncio
    async def test_popular(self, client, test_db):
        await create_test_query_record(test_db, "bus")
        await create_test_query_record(test_db, "bus")
        await create_test_query_record(test_db, "visa")

        response = await client.get(f"{SEARCH}/popular", params={"language": "en", "limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["days"] == 7
        assert [(i["query"], i["count"]) for i in data["items"]] == [("bus", 2)]


class TestAdminAnalytics:
    @pytest.mark.asyncio
    async def test_analytics(self, client, test_db):
        await create_test_query_record(test_db, "bus", user_id="u-1")
        await create_test_query_record(test_db, "visa", results_count=0)

        response = await client.get(f"{ADMIN}/analytics", params={"days": 3})

        assert response.status_code == 200
        data = response.json()
        assert data["total_queries"] == 2
        assert data["zero_results_queries"] == 1
        assert len(data["queries_by_hour"]) == 24
        assert len(data["queries_by_day"]) == 4

    @pytest.mark.asyncio
    async def test_analytics_window_bounds(self, client, setup_test_database):
        response = await client.get(f"{ADMIN}/analytics", params={"days": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_statistics(self, client, bus_documents):
        response = await client.get(f"{ADMIN}/statistics")

        assert response.status_code == 200
        data = response.json()
        assert data["total_indexed"] == 2
        assert data["index"]["by_language"] == {"en": 1, "ne": 1}


class TestAdminReindex:
    @pytest.mark.asyncio
    async def test_reindex_missing_is_404(self, client, setup_test_database):
        response = await client.post(f"{ADMIN}/reindex/FAQ/42")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["error_code"] == "INDEX_ENTRY_NOT_FOUND"
        assert error["details"]["content_id"] == "42"
        assert error["details"]["content_type"] == "FAQ"

    @pytest.mark.asyncio
    async def test_index_reindex_remove_cycle(self, client, setup_test_database):
        created = await client.post(f"{ADMIN}/index/CONTENT/42")
        assert created.status_code == 200
        assert created.json()["content_id"] == "42"
        assert created.json()["relevance_score"] == 0.5

        reindexed = await client.post(f"{ADMIN}/reindex/CONTENT/42")
        assert reindexed.status_code == 200
        assert reindexed.json()["relevance_score"] != 0.5

        removed = await client.delete(f"{ADMIN}/index/CONTENT/42")
        assert removed.json() == {"content_id": "42", "content_type": "CONTENT", "removed": True}

        again = await client.delete(f"{ADMIN}/index/CONTENT/42")
        assert again.json()["removed"] is False

    @pytest.mark.asyncio
    async def test_unknown_content_type_in_path(self, client, setup_test_database):
        response = await client.post(f"{ADMIN}/index/BLOG/1")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_bulk_reindex(self, client, test_db, bus_documents):
        await create_test_document(test_db, "f1", title={"en": "FAQ"}, content_type=ContentType.FAQ)

        everything = await client.post(f"{ADMIN}/bulk-reindex")
        assert everything.json() == {"success": 3, "failed": 0, "errors": []}

        scoped = await client.post(f"{ADMIN}/bulk-reindex", json={"content_type": "FAQ"})
        assert scoped.json()["success"] == 1

    @pytest.mark.asyncio
    async def test_optimize_and_clear_cache(self, client, setup_test_database):
        optimized = await client.post(f"{ADMIN}/optimize")
        cleared = await client.delete(f"{ADMIN}/cache")

        assert optimized.json()["message"] == "Index optimization completed"
        assert cleared.json()["message"] == "Search cache cleared"
        assert cleared.json()["timestamp"] is not None

    @pytest.mark.asyncio
    async def test_content_sync(self, client, setup_test_database):
        payload = {
            "content_id": "n-1",
            "content_type": "CONTENT",
            "title": {"en": "Road closure", "ne": "सडक बन्द"},
            "body": {"en": "Main road closed"},
            "tags": ["traffic"],
        }

        response = await client.post(f"{ADMIN}/sync", json=payload)

        assert response.status_code == 200
        assert response.json()["content_id"] == "n-1"

        search = await client.get(f"{SEARCH}/", params={"q": "सडक"})
        assert search.json()["total_results"] == 1


class TestAdminDocuments:
    @pytest.mark.asyncio
    async def test_document_crud(self, client, setup_test_database):
        payload = {"content_id": "v-1", "content_type": "FAQ", "title": {"en": "Visa fees"}, "tags": ["visa"]}

        created = await client.post(f"{ADMIN}/documents", json=payload)
        assert created.status_code == 201
        document_id = created.json()["id"]

        duplicate = await client.post(f"{ADMIN}/documents", json=payload)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["error_code"] == "VALIDATION_DUPLICATE_RESOURCE"

        updated = await client.patch(f"{ADMIN}/documents/{document_id}", json={"is_published": False})
        assert updated.json()["is_published"] is False
        assert updated.json()["title"] == {"en": "Visa fees"}

        scored = await client.put(f"{ADMIN}/documents/{document_id}/score", json={"relevance_score": 0.75})
        assert scored.json()["relevance_score"] == 0.75

        listed = await client.get(f"{ADMIN}/documents", params={"content_type": "FAQ", "is_published": "false"})
        assert [d["content_id"] for d in listed.json()["data"]] == ["v-1"]

        deleted = await client.delete(f"{ADMIN}/documents/{document_id}")
        assert deleted.status_code == 204

        missing = await client.get(f"{ADMIN}/documents/{document_id}")
        assert missing.status_code == 404
        assert missing.json()["error"]["error_code"] == "SEARCH_DOCUMENT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_negative_score_rejected(self, client, test_db):
        document = await create_test_document(test_db, "a", title={"en": "Bus"})

        response = await client.put(f"{ADMIN}/documents/{document.id}/score", json={"relevance_score": -1})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_document_statistics(self, client, bus_documents):
        response = await client.get(f"{ADMIN}/documents/statistics")

        assert response.status_code == 200
        assert response.json()["total"] == 2


class TestAdminSuggestions:
    @pytest.mark.asyncio
    async def test_suggestion_crud(self, client, setup_test_database):
        created = await client.post(f"{ADMIN}/suggestions", json={"term": "visa fees", "frequency": 3})
        assert created.status_code == 201
        suggestion_id = created.json()["id"]

        lowered = await client.patch(f"{ADMIN}/suggestions/{suggestion_id}", json={"frequency": 1})
        assert lowered.status_code == 400

        renamed = await client.patch(f"{ADMIN}/suggestions/{suggestion_id}", json={"term": "other"})
        assert renamed.status_code == 422

        deactivated = await client.patch(f"{ADMIN}/suggestions/{suggestion_id}", json={"is_active": False})
        assert deactivated.json()["is_active"] is False

        listed = await client.get(f"{ADMIN}/suggestions", params={"search": "visa"})
        assert listed.json()["pagination"]["total"] == 1

        deleted = await client.delete(f"{ADMIN}/suggestions/{suggestion_id}")
        assert deleted.status_code == 204

        missing = await client.get(f"{ADMIN}/suggestions/{suggestion_id}")
        assert missing.json()["error"]["error_code"] == "SUGGESTION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_cleanup(self, client, setup_test_database):
        response = await client.post(f"{ADMIN}/suggestions/cleanup")

        assert response.status_code == 200
        assert response.json() == {"removed": 0}


class TestAdminQueryLog:
    @pytest.mark.asyncio
    async def test_list_and_purge(self, client, test_db):
        await create_test_query_record(test_db, "bus", user_id="u-1")
        await create_test_query_record(test_db, "visa", user_id="u-2")

        listed = await client.get(f"{ADMIN}/queries", params={"user_id": "u-1"})
        assert [r["query"] for r in listed.json()["data"]] == ["bus"]

        stats = await client.get(f"{ADMIN}/queries/statistics")
        assert stats.json()["total"] == 2

        purged = await client.delete(f"{ADMIN}/queries", params={"older_than_days": 30})
        assert purged.json() == {"removed": 0}


class TestAdminExport:
    @pytest.mark.asyncio
    async def test_export_queries_csv(self, client, test_db):
        await create_test_query_record(test_db, "=HYPERLINK(\"x\")")

        response = await client.get(f"{ADMIN}/export", params={"entity": "queries", "format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=queries_export.csv"
        lines = response.text.splitlines()
        assert lines[0].startswith("ID,Query")
        assert "'=HYPERLINK" in lines[1]

    @pytest.mark.asyncio
    async def test_export_documents_json(self, client, bus_documents):
        response = await client.get(f"{ADMIN}/documents/export", params={"language": "ne"})

        payload = json.loads(response.text)
        assert payload["count"] == 1
        assert payload["query"]["language"] == "ne"
        assert payload["items"][0]["content_id"] == "b"

    @pytest.mark.asyncio
    async def test_export_rejects_unknown_format(self, client, setup_test_database):
        response = await client.get(f"{ADMIN}/export", params={"format": "xml"})

        assert response.status_code == 422


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/ready")

        assert response.json()["checks"]["database"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_metrics(self, client, bus_documents):
        await client.get(f"{SEARCH}/", params={"q": "bus"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "search_requests_total" in response.text
        assert "search_http_requests_total" in response.text
