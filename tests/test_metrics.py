import pytest

from api.features.similarity.exceptions import InvalidSimilarityMetricError
from api.features.similarity.metrics import SimilarityMetric, SortBy


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, SimilarityMetric.COSINE),
        ("", SimilarityMetric.COSINE),
        ("Cosine", SimilarityMetric.COSINE),
        ("l2", SimilarityMetric.EUCLIDEAN),
        ("euclidean_distance", SimilarityMetric.EUCLIDEAN),
        ("dot", SimilarityMetric.DOT_PRODUCT),
        ("inner_product", SimilarityMetric.DOT_PRODUCT),
    ],
)
def test_from_string(value, expected):
    assert SimilarityMetric.from_string(value) is expected


def test_from_string_rejects_unknown_metric():
    with pytest.raises(InvalidSimilarityMetricError) as excinfo:
        SimilarityMetric.from_string("manhattan")
    assert excinfo.value.error_code == "INVALID_SIMILARITY_METRIC"


def test_operators():
    assert SimilarityMetric.COSINE.operator == "<=>"
    assert SimilarityMetric.EUCLIDEAN.operator == "<->"
    assert SimilarityMetric.DOT_PRODUCT.operator == "<#>"


@pytest.mark.parametrize("metric", list(SimilarityMetric))
def test_uniform_normalization_is_one_minus_distance_clamped(metric):
    assert metric.to_similarity(0.25) == pytest.approx(0.75)
    assert metric.to_similarity(1.7) == 0.0


DISTANCES = [i / 100 for i in range(0, 201)]


@pytest.mark.parametrize("per_metric", [False, True])
@pytest.mark.parametrize("metric", list(SimilarityMetric))
def test_similarity_is_bounded_and_non_increasing_over_distance(metric, per_metric):
    similarities = [metric.to_similarity(d, per_metric=per_metric) for d in DISTANCES]

    assert all(0.0 <= s <= 1.0 for s in similarities)
    assert all(a >= b for a, b in zip(similarities, similarities[1:]))


def test_per_metric_normalization():
    assert SimilarityMetric.COSINE.to_similarity(0.4, per_metric=True) == pytest.approx(0.6)
    assert SimilarityMetric.EUCLIDEAN.to_similarity(1.0, per_metric=True) == pytest.approx(0.5)
    assert SimilarityMetric.EUCLIDEAN.to_similarity(1.0, per_metric=True, euclidean_bound=4.0) == pytest.approx(0.75)
    assert SimilarityMetric.DOT_PRODUCT.to_similarity(-0.8, per_metric=True) == pytest.approx(0.8)
    assert SimilarityMetric.DOT_PRODUCT.to_similarity(-3.0, per_metric=True) == 1.0
    assert SimilarityMetric.DOT_PRODUCT.to_similarity(0.5, per_metric=True) == 0.0


@pytest.mark.parametrize(
    "scale, expected",
    [
        ("best", SortBy.BEST_RATED),
        (" WORST ", SortBy.WORST_RATED),
        ("center", SortBy.SIMILARITY),
        (None, SortBy.SIMILARITY),
    ],
)
def test_sort_by_from_scale_type(scale, expected):
    assert SortBy.from_scale_type(scale) is expected
