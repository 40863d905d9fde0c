"""
Tests for custom exception classes and the error envelope
"""

import json

from fastapi import status

from app.exception_handlers import create_error_response, get_error_type, get_http_error_code
from app.exceptions import (
    DatabaseError,
    DuplicateResourceError,
    ErrorCode,
    IndexEntryNotFoundError,
    ResourceNotFoundError,
    SearchDocumentNotFoundError,
    SearchServiceError,
    SearchTimeoutError,
    SuggestionNotFoundError,
    ValidationError,
)


class TestSearchServiceError:
    def test_defaults(self):
        exc = SearchServiceError("Test error")

        assert str(exc) == "Test error"
        assert exc.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert exc.details == {}
        assert exc.error_code == ErrorCode.INTERNAL_ERROR

    def test_error_code_override(self):
        exc = SearchServiceError("Busy", status_code=503, error_code=ErrorCode.SERVICE_UNAVAILABLE)

        assert exc.error_code == ErrorCode.SERVICE_UNAVAILABLE
        # class default untouched
        assert SearchServiceError.error_code == ErrorCode.INTERNAL_ERROR


class TestNotFoundErrors:
    def test_resource_not_found_message(self):
        assert ResourceNotFoundError("Thing").message == "Thing not found"
        assert ResourceNotFoundError("Thing", 3).message == "Thing with id '3' not found"

    def test_specific_codes(self):
        assert SearchDocumentNotFoundError(1).error_code == ErrorCode.SEARCH_DOCUMENT_NOT_FOUND
        assert SuggestionNotFoundError(1).error_code == ErrorCode.SUGGESTION_NOT_FOUND

    def test_index_entry_details(self):
        exc = IndexEntryNotFoundError("42", "FAQ")

        assert exc.status_code == status.HTTP_404_NOT_FOUND
        assert exc.error_code == ErrorCode.INDEX_ENTRY_NOT_FOUND
        assert exc.details["content_id"] == "42"
        assert exc.details["content_type"] == "FAQ"
        assert exc.details["resource_id"] == "FAQ:42"


class TestOtherErrors:
    def test_validation_error_field(self):
        exc = ValidationError("bad", field="language", details={"value": "fr"})

        assert exc.status_code == status.HTTP_400_BAD_REQUEST
        assert exc.details == {"value": "fr", "field": "language"}

    def test_duplicate(self):
        exc = DuplicateResourceError("Search document", "content key", "FAQ:1")

        assert exc.status_code == status.HTTP_409_CONFLICT
        assert "already exists" in exc.message

    def test_timeout(self):
        exc = SearchTimeoutError(timeout=2.5)

        assert exc.status_code == status.HTTP_504_GATEWAY_TIMEOUT
        assert exc.details == {"timeout_seconds": 2.5}
        assert SearchTimeoutError().details == {}

    def test_database_error(self):
        assert DatabaseError(operation="insert").details == {"operation": "insert"}


class TestErrorEnvelope:
    def test_envelope_omits_empty_parts(self):
        response = create_error_response(404, "Missing")

        body = json.loads(response.body)
        assert body == {"error": {"status_code": 404, "message": "Missing", "type": "Not Found"}}

    def test_envelope_with_everything(self):
        response = create_error_response(
            504, "Too slow", error_code=ErrorCode.SEARCH_TIMEOUT, details={"timeout_seconds": 1}, path="/x"
        )

        error = json.loads(response.body)["error"]
        assert error["error_code"] == "SEARCH_TIMEOUT"
        assert error["type"] == "Gateway Timeout"
        assert error["details"] == {"timeout_seconds": 1}
        assert error["path"] == "/x"

    def test_status_mappings(self):
        assert get_error_type(418) == "Error"
        assert get_http_error_code(404) == "RESOURCE_NOT_FOUND"
        assert get_http_error_code(504) == "SEARCH_TIMEOUT"
        assert get_http_error_code(418) == "UNKNOWN_ERROR"
