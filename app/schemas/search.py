"""
Search Schemas

Pydantic models for search requests and responses.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.constants import ContentType, SortField, SortOrder

# ============================================================================
# Shared
# ============================================================================


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int = Field(..., description="Total number of matching rows")
    total_pages: int
    has_next: bool
    has_prev: bool


class MessageResponse(BaseModel):
    message: str
    timestamp: datetime | None = None


# ============================================================================
# Search (public)
# ============================================================================


class ResultMetadata(BaseModel):
    content_type: str
    language: str
    rank: int


class SearchResultItem(BaseModel):
    """Single ranked search hit"""

    id: str = Field(..., description="Content id of the source entity")
    document_id: int
    content_type: ContentType
    title: dict[str, str]
    description: dict[str, str] | None = None
    snippet: str
    url: str
    relevance_score: float = Field(..., description="Document-intrinsic ranking signal")
    rank: int = Field(..., ge=1, description="1-based position in the full result list")
    tags: list[str] = []
    language: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: ResultMetadata


class DateRangeFacet(BaseModel):
    today: int = 0
    this_week: int = 0
    this_month: int = 0
    this_year: int = 0


class SearchFacets(BaseModel):
    """Counts over every match before pagination"""

    content_type: dict[str, int] = {}
    language: dict[str, int] = {}
    tags: dict[str, int] = {}
    date_range: DateRangeFacet = DateRangeFacet()


class SearchResponse(BaseModel):
    query: str
    total_results: int
    execution_time_ms: float
    suggestions: list[str] = []
    results: list[SearchResultItem]
    pagination: PaginationInfo
    facets: SearchFacets
    degraded: bool = Field(False, description="True when the in-memory fallback scan served the request")


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date_from: datetime | None = Field(None, alias="from")
    date_to: datetime | None = Field(None, alias="to")


class AdvancedSearchRequest(BaseModel):
    """Structured search request"""

    query: str = Field(..., min_length=1, max_length=500)
    language: str | None = Field(None, description="Presentation language for snippets and suggestions")
    content_types: list[ContentType] | None = None
    languages: list[str] | None = Field(None, description="Only documents written in these languages")
    date_range: DateRange | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort: SortField = SortField.RELEVANCE
    order: SortOrder = SortOrder.DESC

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v.strip()


class SuggestionsResponse(BaseModel):
    query: str
    language: str
    suggestions: list[str]


class SuggestionSelectRequest(BaseModel):
    term: str = Field(..., min_length=1, max_length=200)
    language: str = "en"


class PopularSearchItem(BaseModel):
    query: str
    count: int
    last_used: datetime | None = None
    average_results: int = 0


class PopularSearchesResponse(BaseModel):
    language: str | None = None
    days: int
    items: list[PopularSearchItem]


# ============================================================================
# Analytics and statistics (admin)
# ============================================================================


class SearchAnalyticsResponse(BaseModel):
    """Aggregates over the trailing window of the query log"""

    days: int
    total_queries: int
    unique_users: int
    average_queries_per_user: float
    top_queries: list[PopularSearchItem]
    queries_by_hour: dict[int, int]
    queries_by_day: dict[str, int]
    average_results: int
    average_execution_time_ms: float
    zero_results_queries: int


class IndexStatistics(BaseModel):
    total: int
    by_content_type: dict[str, int]
    by_language: dict[str, int]
    published: int
    active: int
    average_score: float


class QueryLogStatistics(BaseModel):
    total: int
    by_language: dict[str, int]
    by_content_type: dict[str, int]
    average_results: int
    average_execution_time_ms: float


class SuggestionStatistics(BaseModel):
    total: int
    active: int
    by_language: dict[str, int]
    by_content_type: dict[str, int]
    average_frequency: float


class SearchStatisticsResponse(BaseModel):
    total_indexed: int
    total_queries: int
    total_suggestions: int
    average_query_time_ms: float
    index: IndexStatistics
    queries: QueryLogStatistics
    suggestions: SuggestionStatistics
    last_optimized_at: datetime | None = None
    last_cache_cleared_at: datetime | None = None


# ============================================================================
# Index administration
# ============================================================================


class SearchDocumentBase(BaseModel):
    title: dict[str, str] = Field(..., description="Title per language code")
    body: dict[str, str] = Field(default_factory=dict, description="Body text per language code")
    description: dict[str, str] | None = None
    tags: list[str] = []
    language: str = "en"
    is_published: bool = True
    is_active: bool = True


class SearchDocumentCreate(SearchDocumentBase):
    content_id: str = Field(..., min_length=1, max_length=100)
    content_type: ContentType


class SearchDocumentUpdate(BaseModel):
    title: dict[str, str] | None = None
    body: dict[str, str] | None = None
    description: dict[str, str] | None = None
    tags: list[str] | None = None
    language: str | None = None
    is_published: bool | None = None
    is_active: bool | None = None


class ContentSyncRequest(SearchDocumentCreate):
    """Content-change notification from an owning content module"""


class RelevanceScoreUpdate(BaseModel):
    relevance_score: float = Field(..., ge=0)


class SearchDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content_id: str
    content_type: ContentType
    title: dict[str, str]
    body: dict[str, str]
    description: dict[str, str] | None = None
    tags: list[str]
    language: str
    is_published: bool
    is_active: bool
    relevance_score: float
    last_indexed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SearchDocumentListResponse(BaseModel):
    data: list[SearchDocumentResponse]
    pagination: PaginationInfo


class BulkReindexRequest(BaseModel):
    content_type: ContentType | None = None


class BulkReindexResponse(BaseModel):
    success: int
    failed: int
    errors: list[str]


class IndexRemovalResponse(BaseModel):
    content_id: str
    content_type: ContentType
    removed: bool


# ============================================================================
# Suggestion administration
# ============================================================================


class SuggestionCreate(BaseModel):
    term: str = Field(..., max_length=200)
    language: str = "en"
    content_type: ContentType | None = None
    frequency: int = Field(1, description="Initial usage count; must be non-negative")
    is_active: bool = True


class SuggestionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    frequency: int | None = None
    is_active: bool | None = None
    content_type: ContentType | None = None


class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    term: str
    language: str
    content_type: ContentType | None = None
    frequency: int
    is_active: bool
    last_used_at: datetime | None = None
    created_at: datetime


class SuggestionListResponse(BaseModel):
    data: list[SuggestionResponse]
    pagination: PaginationInfo


class RemovalCountResponse(BaseModel):
    removed: int


# ============================================================================
# Query log
# ============================================================================


class QueryRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    query: str
    language: str
    content_type: ContentType | None = None
    filters: dict[str, Any] | None = None
    results_count: int
    execution_time_ms: float
    ip_address: str | None = None
    user_agent: str | None = None
    user_id: str | None = None
    created_at: datetime


class QueryRecordListResponse(BaseModel):
    data: list[QueryRecordResponse]
    pagination: PaginationInfo
