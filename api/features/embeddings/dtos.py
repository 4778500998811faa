"""DTOs for the Embeddings feature."""
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from api.features.embeddings.models import EmbeddingRecordModel
from api.shared.dtos import BaseDTO


class GenerateEmbeddingsRequest(BaseDTO):
    """Request DTO for generating and storing one (order, metric) scope."""
    order_id: int = Field(..., ge=0, description="Order (ingestion session) identifier")
    contexts: Dict[str, str] = Field(..., description="Entity URI -> context text")
    metric_type: Optional[str] = Field(default=None, max_length=255, description="Rating dimension; defaults to 'general'")
    ratings: Optional[Dict[str, float]] = Field(default=None, description="Entity URI -> expert rating for metric_type")
    entity_types: Optional[Dict[str, str]] = Field(default=None, description="Entity URI -> entity type; derived from the URI when missing")
    strategy: Optional[str] = Field(default=None, max_length=50, description="Text construction strategy tag")
    model_id: Optional[str] = Field(default=None, description="Override the configured model id")
    dimensions: Optional[int] = Field(default=None, gt=0, description="Override the configured dimensions")

    @field_validator("metric_type", "strategy", "model_id")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class GenerateEmbeddingsResponse(BaseDTO):
    """Response DTO for a generation + store run."""
    order_id: int
    metric_type: Optional[str]
    requested: int = Field(description="Number of contexts received")
    generated: int = Field(description="Number of vectors produced")
    stored: int = Field(description="Number of records inserted")
    deleted: int = Field(description="Number of prior records replaced")
    skipped: List[str] = Field(default_factory=list, description="URIs not stored (unknown entity type)")
    model_name: str
    dimensions: int
    batch_count: int
    processing_time_ms: float


class RatedEntityDTO(BaseDTO):
    entity_uri: str = Field(..., min_length=1)
    context: str = Field(default="")
    entity_type: Optional[str] = None
    ratings: Dict[str, float] = Field(default_factory=dict, description="Metric id -> rating")


class GenerateByMetricRequest(BaseDTO):
    """Request DTO for storing one scope per rated metric."""
    order_id: int = Field(..., ge=0)
    entities: List[RatedEntityDTO] = Field(..., description="Entities with context and ratings")
    metric_filter: Optional[List[str]] = Field(default=None, description="Only store these metrics")
    strategy: Optional[str] = Field(default=None, max_length=50)


class StoreScopeDTO(BaseDTO):
    metric_type: Optional[str]
    stored: int
    deleted: int
    skipped: List[str] = Field(default_factory=list)


class GenerateByMetricResponse(BaseDTO):
    order_id: int
    generated: int
    model_name: str
    dimensions: int
    scopes: List[StoreScopeDTO]
    processing_time_ms: float


class ClearEmbeddingsResponse(BaseDTO):
    order_id: Optional[int] = None
    deleted: int


class EmbeddingRecordListResponse(BaseDTO):
    order_id: int
    items: List[EmbeddingRecordModel]
    total: int


class ServiceAvailabilityResponse(BaseDTO):
    configured: bool
    available: bool
    service_url: str
    model_id: str
