"""DTOs for the Similarity feature."""
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from api.features.similarity.exceptions import InvalidSimilarityMetricError
from api.features.similarity.metrics import SimilarityMetric, SortBy
from api.features.similarity.models import SimilarityResult
from api.shared.dtos import BaseDTO


class QueryInput(BaseDTO):
    """Either a ready query vector or a text to embed on the fly."""
    query_vector: Optional[List[float]] = Field(default=None, description="Query embedding")
    query_text: Optional[str] = Field(default=None, max_length=20000, description="Text embedded on the fly when no vector is given")
    similarity_metric: SimilarityMetric = Field(default=SimilarityMetric.COSINE, description="cosine, euclidean or dot_product (aliases accepted)")
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    model_dimensions: Optional[int] = Field(default=None, gt=0)
    model_name: Optional[str] = Field(default=None, description="Only compare with embeddings from this model; defaults to the configured model when query_text is embedded")
    query_length: Optional[int] = Field(default=None, ge=0, description="Query text length for the length-aware window")
    length_tolerance: Optional[int] = Field(default=None, ge=0)
    use_length_filter: bool = Field(default=False, description="Derive query_length from query_text")

    @field_validator("similarity_metric", mode="before")
    @classmethod
    def parse_metric(cls, v):
        if isinstance(v, SimilarityMetric):
            return v
        try:
            return SimilarityMetric.from_string(v)
        except InvalidSimilarityMetricError as e:
            raise ValueError(e.message) from e

    @field_validator("query_vector")
    @classmethod
    def non_empty_vector(cls, v: Optional[List[float]]) -> Optional[List[float]]:
        if v is not None and not v:
            raise ValueError("query_vector cannot be empty")
        return v


class SimilaritySearchRequest(QueryInput):
    """Request DTO for a single similarity query."""
    exclude_uri: str = Field(..., min_length=1, description="Query entity URI, never returned")
    order_id: Optional[int] = Field(default=None, description="Provenance only; the search spans all orders")
    metric_type: Optional[str] = Field(default=None)
    entity_type: Optional[str] = Field(default=None)
    top_k: int = Field(default=10, ge=1, le=100)
    sort_by: SortBy = Field(default=SortBy.SIMILARITY)

    @model_validator(mode="after")
    def require_query(self) -> "SimilaritySearchRequest":
        if not self.query_vector and not (self.query_text and self.query_text.strip()):
            raise ValueError("Either query_vector or query_text is required")
        return self


class StrategySearchRequest(QueryInput):
    """Request DTO for scale-aware search with optional fallback."""
    exclude_uri: Optional[str] = Field(default=None)
    entity_type: Optional[str] = Field(default=None)
    metric_types: List[str] = Field(default_factory=list)
    top_k: int = Field(default=10, ge=1, le=100)
    scale_type: Optional[str] = Field(default=None, description="best, worst, center or randomcenter")
    fallback_strategy: Optional[str] = Field(default=None, description="Rating-based strategy used when nothing qualifies")


class SimilarityResultDTO(BaseDTO):
    entity_uri: str
    entity_type: str
    metric_type: Optional[str] = None
    order_id: Optional[int] = None
    rating_value: Optional[float] = None
    similarity: Optional[float] = None
    character_length: Optional[int] = None
    source_metric: Optional[str] = None

    @classmethod
    def from_result(cls, result: SimilarityResult) -> "SimilarityResultDTO":
        return cls(
            entity_uri=result.entity_uri,
            entity_type=result.entity_type,
            metric_type=result.metric_type,
            order_id=result.order_id,
            rating_value=result.rating_value,
            similarity=round(result.similarity, 3) if result.similarity is not None else None,
            character_length=result.character_length,
            source_metric=result.source_metric,
        )


class SimilaritySearchResponse(BaseDTO):
    exclude_uri: str
    results: List[SimilarityResultDTO]
    total_results: int
    similarity_metric: SimilarityMetric
    sort_by: SortBy
    processing_time_ms: float
    search_metadata: Dict[str, Any] = Field(default_factory=dict)


class StrategySearchResponse(BaseDTO):
    results: List[SimilarityResultDTO]
    total_results: int
    search_type: str
    scale_type: Optional[str] = None
    fallback_strategy: Optional[str] = None
    fallback_applied: bool = False
    similarity_metric: SimilarityMetric
    searched_metrics: List[str] = Field(default_factory=list)
    processing_time_ms: float


class MetricInfoDTO(BaseDTO):
    name: str
    operator: str
    description: str
