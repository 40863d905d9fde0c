"""
Pagination Utilities

Page-number pagination shared by every listing in the search service.
"""

import math
from typing import Any


def page_offset(page: int, limit: int) -> int:
    """Translate a 1-based page number into a row offset."""
    return (max(page, 1) - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> dict[str, Any]:
    """
    Build the pagination block returned next to every page of results.

    Args:
        page: 1-based page number
        limit: Page size
        total: Total number of matching rows before pagination

    Returns:
        dict matching the PaginationInfo schema
    """
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
