from .search_document import SearchDocument
from .search_query import SearchQueryRecord
from .search_suggestion import SearchSuggestion

__all__ = [
    "SearchDocument",
    "SearchQueryRecord",
    "SearchSuggestion",
]
