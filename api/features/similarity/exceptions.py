"""Exceptions for the Similarity feature."""
from typing import Any, Dict, Optional

from api.shared.exceptions import ValidationError


class InvalidSimilarityMetricError(ValidationError):
    """Raised when a similarity metric name is not recognised."""

    def __init__(self, value: str, supported: list[str]):
        message = (
            f"Unsupported similarity metric: '{value}'. "
            f"Supported metrics: {', '.join(supported)}"
        )
        super().__init__(message, {"value": value, "supported": supported})
        self.error_code = "INVALID_SIMILARITY_METRIC"


class InvalidStrategyError(ValidationError):
    """Raised when a scale or fallback strategy is not recognised."""

    def __init__(self, value: str, supported: list[str]):
        message = f"Unsupported strategy: '{value}'. Supported strategies: {', '.join(supported)}"
        super().__init__(message, {"value": value, "supported": supported})
        self.error_code = "INVALID_STRATEGY"


class InvalidQueryError(ValidationError):
    """Raised when a similarity query cannot be executed as given."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.error_code = "INVALID_SIMILARITY_QUERY"
