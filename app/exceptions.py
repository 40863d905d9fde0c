"""
Custom Exception Classes for the Search Service

This module defines custom exceptions for better error handling and
consistent error responses across the application.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the error envelope."""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    SEARCH_DOCUMENT_NOT_FOUND = "SEARCH_DOCUMENT_NOT_FOUND"
    SUGGESTION_NOT_FOUND = "SUGGESTION_NOT_FOUND"
    INDEX_ENTRY_NOT_FOUND = "INDEX_ENTRY_NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    VALIDATION_DUPLICATE_RESOURCE = "VALIDATION_DUPLICATE_RESOURCE"
    SEARCH_TIMEOUT = "SEARCH_TIMEOUT"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class SearchServiceError(Exception):
    """Base exception class for all search-service exceptions"""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class ResourceNotFoundError(SearchServiceError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None):
        message = f"{resource_type} not found"
        if resource_id is not None:
            message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class SearchDocumentNotFoundError(ResourceNotFoundError):
    """Raised when a search document is not found"""

    error_code = ErrorCode.SEARCH_DOCUMENT_NOT_FOUND

    def __init__(self, document_id: Any | None = None):
        super().__init__(resource_type="Search document", resource_id=document_id)


class SuggestionNotFoundError(ResourceNotFoundError):
    """Raised when a search suggestion is not found"""

    error_code = ErrorCode.SUGGESTION_NOT_FOUND

    def __init__(self, suggestion_id: Any | None = None):
        super().__init__(resource_type="Search suggestion", resource_id=suggestion_id)


class IndexEntryNotFoundError(ResourceNotFoundError):
    """Raised when a content key has no search document to reindex"""

    error_code = ErrorCode.INDEX_ENTRY_NOT_FOUND

    def __init__(self, content_id: str, content_type: str):
        super().__init__(resource_type="Search index entry", resource_id=f"{content_type}:{content_id}")
        self.details.update({"content_id": content_id, "content_type": content_type})


# ============================================================================
# Validation & Business Logic Exceptions
# ============================================================================


class ValidationError(SearchServiceError):
    """Raised when input validation fails"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, details=error_details)


class DuplicateResourceError(SearchServiceError):
    """Raised when attempting to create a duplicate resource"""

    error_code = ErrorCode.VALIDATION_DUPLICATE_RESOURCE

    def __init__(self, resource_type: str, field: str, value: Any):
        super().__init__(
            message=f"{resource_type} with {field} '{value}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "field": field, "value": value},
        )


# ============================================================================
# Database & Service Exceptions
# ============================================================================


class SearchTimeoutError(SearchServiceError):
    """Raised when a search exceeds its deadline"""

    error_code = ErrorCode.SEARCH_TIMEOUT

    def __init__(self, message: str = "Search did not complete before its deadline", timeout: float | None = None):
        details = {"timeout_seconds": timeout} if timeout is not None else {}
        super().__init__(message=message, status_code=status.HTTP_504_GATEWAY_TIMEOUT, details=details)


class DatabaseError(SearchServiceError):
    """Raised when a database operation fails"""

    error_code = ErrorCode.DATABASE_ERROR

    def __init__(self, message: str = "A database error occurred", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)
