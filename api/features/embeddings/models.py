"""Models for the Embeddings feature."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.features.embeddings.entities.entity_embedding import EntityEmbedding


class EmbeddingModelDescriptor(BaseModel):
    """Model identity sent with every embedding request."""

    model_id: str = Field(description="Model identifier understood by the endpoint")
    dimensions: int = Field(gt=0, description="Requested vector width")
    input_type: str = Field(default="passage", description="Input type hint")


class EmbeddingBatchResult(BaseModel):
    """Output of one batch generation call."""

    embeddings: Dict[str, List[float]] = Field(default_factory=dict)
    character_lengths: Dict[str, int] = Field(default_factory=dict)
    model_name: str = Field(default="")
    dimensions: int = Field(default=0)
    batch_count: int = Field(default=0)
    successful_batches: int = Field(default=0)
    failed_batches: int = Field(default=0)

    @property
    def is_empty(self) -> bool:
        return not self.embeddings


class BatchConfiguration(BaseModel):
    service_url: str
    model_id: str
    dimensions: int
    input_type: str
    batch_size: int
    max_retries: int
    retry_backoff_ms: int
    timeout_seconds: int
    max_parallel_batches: int


class RatedEntity(BaseModel):
    """An entity with its context text and its expert ratings per metric."""

    entity_uri: str
    context: str
    entity_type: Optional[str] = None
    ratings: Dict[str, float] = Field(default_factory=dict)


class StoreResult(BaseModel):
    order_id: int
    metric_type: Optional[str]
    deleted: int = 0
    stored: int = 0
    skipped: List[str] = Field(default_factory=list)


class EmbeddingRecordModel(BaseModel):
    """Stored embedding record without the vector payload."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_uri: str
    order_id: int
    entity_type: str
    metric_type: Optional[str] = None
    rating_value: Optional[float] = None
    strategy: str
    dimensions: int
    model_name: str
    character_length: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, entity: EntityEmbedding) -> "EmbeddingRecordModel":
        return cls(
            id=entity.id,
            entity_uri=entity.entity_uri,
            order_id=entity.order_id,
            entity_type=entity.entity_type,
            metric_type=entity.metric_type,
            rating_value=entity.rating_value,
            strategy=entity.strategy,
            dimensions=entity.dimensions,
            model_name=entity.model_name,
            character_length=entity.character_length,
            created_at=entity.created_at,
        )


class VectorStatistics(BaseModel):
    total_embeddings: int = 0
    distinct_entities: int = 0
    distinct_orders: int = 0
    entity_types: List[str] = Field(default_factory=list)
    metric_types: List[str] = Field(default_factory=list)
    by_entity_type: Dict[str, int] = Field(default_factory=dict)
    by_metric_type: Dict[str, int] = Field(default_factory=dict)
    by_dimensions: Dict[int, int] = Field(default_factory=dict)
    similarity_threshold: float = 0.0
    max_candidates: int = 0
    filter_by_entity_type: bool = True
