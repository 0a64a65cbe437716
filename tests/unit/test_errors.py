"""
Unit tests for shared error types.
"""

from ascent_common.errors import (
    AscentException,
    AuthenticationError,
    ConfigurationError,
    ExternalServiceError,
    ValidationError,
)
from ascent_common.logging import clear_context, set_request_id


class TestErrors:
    """Test cases for AscentException and subclasses."""

    def teardown_method(self):
        clear_context()

    def test_response_carries_request_id(self):
        """Test responses include the current request ID."""
        set_request_id("req-9")

        response = AscentException("SOME_CODE", "Something failed", {"field": "x"}).to_response()

        assert response.model_dump() == {
            "request_id": "req-9",
            "code": "SOME_CODE",
            "message": "Something failed",
            "details": {"field": "x"},
        }

    def test_default_status_codes(self):
        """Test each subclass has its HTTP status."""
        assert AscentException("X", "x").status_code == 400
        assert AuthenticationError().status_code == 401
        assert ValidationError().status_code == 400
        assert ConfigurationError().status_code == 500
        assert ExternalServiceError("jwks").status_code == 502

    def test_authentication_error_overrides(self):
        """Test code and status can be set per rejection kind."""
        error = AuthenticationError("Invalid credential", code="SIGNATURE_MISMATCH", status_code=403)

        assert error.code == "SIGNATURE_MISMATCH"
        assert error.status_code == 403
        assert AuthenticationError().status_code == 401

    def test_external_service_message(self):
        """Test the failing service is named in the message."""
        error = ExternalServiceError("jwks", "timeout")

        assert error.message == "jwks: timeout"
        assert error.code == "EXTERNAL_SERVICE_ERROR"
