"""
Search Constants

Content type discriminants, sort keys and validation bounds shared by the
index, suggestion and query-log services.
"""

from enum import Enum


class ContentType(str, Enum):
    """Kinds of external content that can own a search document."""

    CONTENT = "CONTENT"
    DOCUMENT = "DOCUMENT"
    MEDIA = "MEDIA"
    FAQ = "FAQ"
    USER = "USER"
    DEPARTMENT = "DEPARTMENT"
    EMPLOYEE = "EMPLOYEE"


class SortField(str, Enum):
    """Sort keys accepted by document scans and text search."""

    RELEVANCE = "relevance"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# Score given to a document before its first reindex.
BASELINE_RELEVANCE_SCORE = 0.5

SUGGESTION_TERM_MIN_LENGTH = 2
SUGGESTION_TERM_MAX_LENGTH = 100
