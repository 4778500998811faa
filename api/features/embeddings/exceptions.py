"""Exceptions for the Embeddings feature."""
from typing import Any, Dict, Optional

from api.shared.exceptions import (
    DatabaseError,
    ExpertiseException,
    ExternalServiceError,
    ValidationError,
)


class EmbeddingException(ExpertiseException):
    """Base exception for embedding operations."""

    pass


class ConfigurationError(EmbeddingException):
    """Raised when the embedding service is not usable as configured.

    Never retried.
    """

    http_status = 503

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EMBEDDING_CONFIGURATION_ERROR", details)


class TransientServiceError(ExternalServiceError):
    """Raised for a single failed call to the embedding endpoint (retryable)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details: Dict[str, Any] = {"status_code": status_code}
        if details:
            error_details.update(details)
        super().__init__("embedding", message, error_details)
        self.status_code = status_code


class GenerationFailure(EmbeddingException):
    """Raised when a batch exhausted its retries or the call timed out."""

    http_status = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "EMBEDDING_GENERATION_FAILED", details)


class InvalidEntityTypeError(ValidationError):
    """Raised when an entity type string or URI cannot be normalized."""

    def __init__(self, value: Optional[str], supported: list[str]):
        message = f"Unknown entity type: '{value}'. Supported types: {', '.join(supported)}"
        super().__init__(message, {"value": value, "supported": supported})


class StoreQueryFailure(DatabaseError):
    """Raised when the vector store rejects or cannot run a query."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.error_code = "STORE_QUERY_FAILURE"
