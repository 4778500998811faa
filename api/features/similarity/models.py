"""Models for the Similarity feature."""
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field, model_validator

from api.features.similarity.metrics import SimilarityMetric, SortBy


class SimilarityQuery(BaseModel):
    """A nearest-neighbour query against stored entity embeddings.

    ``order_id`` is carried for provenance only; the search spans all orders.
    """

    query_vector: List[float] = Field(min_length=1)
    exclude_uri: str
    order_id: Optional[int] = None
    metric_type: Optional[str] = None
    entity_type: Optional[str] = None
    top_k: int = Field(default=10, ge=1)
    sort_by: SortBy = SortBy.SIMILARITY
    similarity_metric: SimilarityMetric = SimilarityMetric.COSINE
    model_dimensions: Optional[int] = Field(default=None, gt=0)
    model_name: Optional[str] = None
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    query_length: Optional[int] = Field(default=None, ge=0)
    length_tolerance: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_length_window(self) -> "SimilarityQuery":
        if self.length_tolerance is not None and self.query_length is None:
            raise ValueError("length_tolerance requires query_length")
        return self


class SimilarityResult(BaseModel):
    """One ranked neighbour. ``similarity`` is None for rating-based picks."""

    entity_uri: str
    entity_type: str
    metric_type: Optional[str] = None
    order_id: Optional[int] = None
    rating_value: Optional[float] = None
    similarity: Optional[float] = None
    character_length: Optional[int] = None
    distance: Optional[float] = None
    source_metric: Optional[str] = None

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], similarity: Optional[float]
    ) -> "SimilarityResult":
        distance = row.get("distance")
        return cls(
            entity_uri=row["entity_uri"],
            entity_type=row["entity_type"],
            metric_type=row.get("metric_type"),
            order_id=row.get("order_id"),
            rating_value=row.get("rating_value"),
            similarity=similarity,
            character_length=row.get("character_length"),
            distance=float(distance) if distance is not None else None,
        )


class SearchOutcome(BaseModel):
    """Results of a strategy-aware search plus how they were obtained."""

    results: List[SimilarityResult] = Field(default_factory=list)
    search_type: str = "similarity"
    scale_type: Optional[str] = None
    fallback_strategy: Optional[str] = None
    fallback_applied: bool = False
    similarity_metric: SimilarityMetric = SimilarityMetric.COSINE
    searched_metrics: List[str] = Field(default_factory=list)
