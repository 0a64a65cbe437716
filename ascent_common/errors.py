"""
Shared error handling for the Ascent access layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AscentException(Exception):
    """Base exception for Ascent services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(AscentException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
        *,
        code: str = "AUTHENTICATION_ERROR",
        status_code: Optional[int] = None,
    ):
        super().__init__(code, message, details, status_code)


class ValidationError(AscentException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ConfigurationError(AscentException):
    """Required configuration is absent or invalid."""

    status_code = 500

    def __init__(self, message: str = "Server configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVER_MISCONFIGURATION", message, details)


class ExternalServiceError(AscentException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
