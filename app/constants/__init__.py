"""Constants package for the search service."""

from .search import (
    BASELINE_RELEVANCE_SCORE,
    SUGGESTION_TERM_MAX_LENGTH,
    SUGGESTION_TERM_MIN_LENGTH,
    ContentType,
    SortField,
    SortOrder,
)

__all__ = [
    "BASELINE_RELEVANCE_SCORE",
    "SUGGESTION_TERM_MAX_LENGTH",
    "SUGGESTION_TERM_MIN_LENGTH",
    "ContentType",
    "SortField",
    "SortOrder",
]
