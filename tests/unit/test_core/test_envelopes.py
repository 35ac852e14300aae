"""
Tests for response helper functions and the response-v2 envelope.
"""

from prompt_anchor.core.context import sync_request_context
from prompt_anchor.core.responses import (
    RESPONSE_VERSION,
    ErrorCode,
    ErrorType,
    ToolResponse,
    error_response,
    success_response,
)


class TestToolResponse:
    """Tests for the ToolResponse dataclass."""

    def test_defaults(self):
        response = ToolResponse(success=True)
        assert response.data == {}
        assert response.error is None
        assert response.meta == {"version": RESPONSE_VERSION}


class TestSuccessResponse:
    """Tests for the success_response helper function."""

    def test_merges_data_and_fields(self):
        response = success_response({"count": 2}, taxonomy_version="1.0")
        assert response.success is True
        assert response.data == {"count": 2, "taxonomy_version": "1.0"}
        assert response.error is None

    def test_meta_carries_warnings_and_request_id(self):
        response = success_response(
            {}, warnings=["anchor not found"], request_id="cli_123", meta={"source": "cache"}
        )
        assert response.meta == {
            "version": RESPONSE_VERSION,
            "request_id": "cli_123",
            "warnings": ["anchor not found"],
            "source": "cache",
        }

    def test_request_id_falls_back_to_correlation_context(self):
        with sync_request_context(correlation_id="req_ctx"):
            response = success_response({})
        assert response.meta["request_id"] == "req_ctx"

    def test_no_request_id_outside_context(self):
        assert "request_id" not in success_response({}).meta


class TestErrorResponse:
    """Tests for the error_response helper function."""

    def test_defaults_to_internal(self):
        response = error_response("boom")
        assert response.success is False
        assert response.error == "boom"
        assert response.data == {
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "error_type": ErrorType.INTERNAL.value,
        }

    def test_explicit_code_type_and_details(self):
        response = error_response(
            "Spans payload must be a JSON list",
            error_code=ErrorCode.INVALID_FORMAT,
            error_type=ErrorType.VALIDATION,
            remediation="Pass a JSON array of span objects",
            details={"path": "spans.json"},
        )
        assert response.data["error_code"] == "INVALID_FORMAT"
        assert response.data["error_type"] == "validation"
        assert response.data["remediation"] == "Pass a JSON array of span objects"
        assert response.data["details"] == {"path": "spans.json"}

    def test_string_codes_pass_through(self):
        response = error_response("x", error_code="CUSTOM", error_type="custom")
        assert (response.data["error_code"], response.data["error_type"]) == ("CUSTOM", "custom")

