"""Shared exceptions for the expertise API."""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ExpertiseException(Exception):
    """Base exception for the expertise API."""

    http_status = 500

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(ExpertiseException):
    """Raised when input validation fails."""

    http_status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class DatabaseError(ExpertiseException):
    """Raised when database operations fail."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_ERROR", details)


class ExternalServiceError(ExpertiseException):
    """Raised when external service calls fail."""

    http_status = 502

    def __init__(self, service: str, message: str, details: Optional[Dict[str, Any]] = None):
        full_message = f"{service} service error: {message}"
        super().__init__(full_message, "EXTERNAL_SERVICE_ERROR", details)


def to_http_exception(exc: ExpertiseException) -> HTTPException:
    return HTTPException(
        status_code=exc.http_status,
        detail={"error_code": exc.error_code, "message": exc.message, "details": exc.details},
    )
