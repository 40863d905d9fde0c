"""
Prometheus Metrics Module

Provides application metrics using the prometheus_client library.
Metrics are exposed at /metrics endpoint for Prometheus scraping.
"""

import time
from collections.abc import Callable

from prometheus_client import Counter, Histogram, Info
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# =============================================================================
# Application Info
# =============================================================================

APP_INFO = Info("search_app", "Search application information")


def set_app_info(version: str, environment: str) -> None:
    """Set application info labels."""
    APP_INFO.info({"version": version, "environment": environment})


# =============================================================================
# HTTP Request Metrics
# =============================================================================

HTTP_REQUESTS_TOTAL = Counter(
    "search_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "search_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# =============================================================================
# Search Metrics
# =============================================================================

SEARCH_REQUESTS_TOTAL = Counter(
    "search_requests_total",
    "Total executed searches",
    ["kind", "outcome"],  # kind: simple/advanced, outcome: hit/zero
)

SEARCH_DURATION_SECONDS = Histogram(
    "search_duration_seconds",
    "Search pipeline duration in seconds",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Each increment means a query ran on the non-indexed O(n) path.
SEARCH_FALLBACK_SCANS_TOTAL = Counter(
    "search_fallback_scans_total",
    "Searches served by the in-memory fallback scan",
)

QUERY_LOG_FAILURES_TOTAL = Counter(
    "search_query_log_failures_total",
    "Query-log appends that failed and were discarded",
)

SUGGESTION_INCREMENTS_TOTAL = Counter(
    "search_suggestion_increments_total",
    "Suggestion usage increments",
    ["result"],  # incremented, created
)

REINDEX_OPERATIONS_TOTAL = Counter(
    "search_reindex_operations_total",
    "Document reindex outcomes",
    ["result"],  # success, failure
)

MAINTENANCE_REMOVALS_TOTAL = Counter(
    "search_maintenance_removals_total",
    "Rows removed by maintenance sweeps",
    ["job"],  # suggestion_cleanup, query_purge
)


# =============================================================================
# Prometheus Metrics Middleware
# =============================================================================


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Middleware to collect HTTP request metrics for Prometheus.

    Tracks request count by method, endpoint and status code, and request
    duration by method and endpoint.
    """

    EXCLUDED_PATHS = {"/metrics", "/health", "/favicon.ico"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        method = request.method
        endpoint = self._normalize_path(path)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, endpoint=endpoint).observe(duration)
            HTTP_REQUESTS_TOTAL.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """
        Normalize URL path for metrics by replacing dynamic segments.

        Examples:
            /api/v1/admin/search/documents/123 -> /api/v1/admin/search/documents/{id}
        """
        parts = path.split("/")
        return "/".join("{id}" if part.isdigit() else part for part in parts)


# =============================================================================
# Helper Functions
# =============================================================================


def record_search(kind: str, results_count: int, duration_seconds: float) -> None:
    """Record one executed search."""
    outcome = "hit" if results_count > 0 else "zero"
    SEARCH_REQUESTS_TOTAL.labels(kind=kind, outcome=outcome).inc()
    SEARCH_DURATION_SECONDS.labels(kind=kind).observe(duration_seconds)


def record_fallback_scan() -> None:
    SEARCH_FALLBACK_SCANS_TOTAL.inc()


def record_query_log_failure() -> None:
    QUERY_LOG_FAILURES_TOTAL.inc()


def record_suggestion_increment(created: bool) -> None:
    SUGGESTION_INCREMENTS_TOTAL.labels(result="created" if created else "incremented").inc()


def record_reindex(success: bool) -> None:
    REINDEX_OPERATIONS_TOTAL.labels(result="success" if success else "failure").inc()


def record_maintenance_removals(job: str, count: int) -> None:
    if count:
        MAINTENANCE_REMOVALS_TOTAL.labels(job=job).inc(count)
