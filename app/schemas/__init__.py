from .search import (
    AdvancedSearchRequest,
    SearchAnalyticsResponse,
    SearchDocumentCreate,
    SearchDocumentResponse,
    SearchDocumentUpdate,
    SearchResponse,
    SearchStatisticsResponse,
    SuggestionCreate,
    SuggestionResponse,
    SuggestionUpdate,
)

# Define the public API of this module
__all__ = [
    "AdvancedSearchRequest",
    "SearchAnalyticsResponse",
    "SearchDocumentCreate",
    "SearchDocumentResponse",
    "SearchDocumentUpdate",
    "SearchResponse",
    "SearchStatisticsResponse",
    "SuggestionCreate",
    "SuggestionResponse",
    "SuggestionUpdate",
]
