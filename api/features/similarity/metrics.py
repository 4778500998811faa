"""Distance metrics, sort modes and distance-to-similarity normalization."""
from enum import Enum
from typing import Optional

from api.features.similarity.exceptions import InvalidSimilarityMetricError


class SimilarityMetric(str, Enum):
    """pgvector distance operators.

    Every member carries the store operator it maps to and knows how to turn a raw
    distance into a similarity score.
    """

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT_PRODUCT = "dot_product"

    @property
    def operator(self) -> str:
        return _OPERATORS[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def to_similarity(
        self,
        distance: float,
        *,
        per_metric: bool = False,
        euclidean_bound: float = 2.0,
    ) -> float:
        """Convert a store distance into a similarity score.

        The default is ``max(0, 1 - distance)`` for every metric. It is exact for
        cosine distance and only monotonic for the other two. ``per_metric`` switches
        to metric-aware scaling: euclidean distance is divided by ``euclidean_bound``
        and ``<#>`` (negative inner product) is sign-inverted and clamped to [0, 1].
        """
        if not per_metric or self is SimilarityMetric.COSINE:
            return max(0.0, 1.0 - distance)
        if self is SimilarityMetric.EUCLIDEAN:
            return max(0.0, 1.0 - distance / euclidean_bound)
        return min(1.0, max(0.0, -distance))

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]

    @classmethod
    def from_string(cls, value: Optional[str]) -> "SimilarityMetric":
        """Parse a metric name, accepting common aliases. Blank means cosine."""
        if value is None or not value.strip():
            return cls.COSINE
        metric = _ALIASES.get(value.strip().lower())
        if metric is None:
            raise InvalidSimilarityMetricError(value, cls.values())
        return metric


_OPERATORS = {
    SimilarityMetric.COSINE: "<=>",
    SimilarityMetric.EUCLIDEAN: "<->",
    SimilarityMetric.DOT_PRODUCT: "<#>",
}

_DESCRIPTIONS = {
    SimilarityMetric.COSINE: "Cosine distance, insensitive to vector magnitude",
    SimilarityMetric.EUCLIDEAN: "Euclidean (L2) distance",
    SimilarityMetric.DOT_PRODUCT: "Negative inner product",
}

_ALIASES = {
    "cosine": SimilarityMetric.COSINE,
    "cos": SimilarityMetric.COSINE,
    "cosine_similarity": SimilarityMetric.COSINE,
    "cosine_distance": SimilarityMetric.COSINE,
    "euclidean": SimilarityMetric.EUCLIDEAN,
    "l2": SimilarityMetric.EUCLIDEAN,
    "euclidean_distance": SimilarityMetric.EUCLIDEAN,
    "dot_product": SimilarityMetric.DOT_PRODUCT,
    "dot": SimilarityMetric.DOT_PRODUCT,
    "inner_product": SimilarityMetric.DOT_PRODUCT,
    "negative_inner_product": SimilarityMetric.DOT_PRODUCT,
}


class SortBy(str, Enum):
    SIMILARITY = "similarity"
    BEST_RATED = "best_rated"
    WORST_RATED = "worst_rated"

    @classmethod
    def from_scale_type(cls, scale_type: Optional[str]) -> "SortBy":
        """best -> BEST_RATED, worst -> WORST_RATED, anything else -> SIMILARITY."""
        if scale_type is None:
            return cls.SIMILARITY
        normalized = scale_type.strip().lower()
        if normalized == "best":
            return cls.BEST_RATED
        if normalized == "worst":
            return cls.WORST_RATED
        return cls.SIMILARITY
