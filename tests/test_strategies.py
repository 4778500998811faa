import random

import pytest

from api.features.similarity.exceptions import InvalidQueryError, InvalidStrategyError
from api.features.similarity.models import SimilarityResult
from api.features.similarity.service import SimilaritySearchEngine, SimilarityService
from api.features.similarity.strategies import (
    ScaleType,
    merge_by_uri,
    select_balanced,
    select_by_rating,
    select_center_by_similarity,
    select_random_center,
    split_counts,
)

QUERY_URI = "https://github.com/acme/app/pull/100"


def pull(n):
    return f"https://github.com/acme/app/pull/{n}"


def result(n, rating, similarity=None):
    return SimilarityResult(
        entity_uri=pull(n), entity_type="pull_request", rating_value=rating, similarity=similarity
    )


@pytest.fixture
def service(similarity_settings, repository_factory, rng):
    return SimilarityService(SimilaritySearchEngine(similarity_settings, repository_factory), rng)


@pytest.fixture
def rated_pulls(fake_repository):
    for n in range(1, 10):
        fake_repository.add(
            pull(n),
            "pull_request",
            [1.0, 0.1 * n, 0.0],
            metric_type="clarity",
            rating=float(n),
        )
    return fake_repository


def test_scale_type_parse():
    assert ScaleType.parse("random_center") is ScaleType.RANDOM_CENTER
    assert ScaleType.parse(" Best ") is ScaleType.BEST
    assert ScaleType.parse(None) is None
    with pytest.raises(InvalidStrategyError):
        ScaleType.parse("median")


def test_split_counts():
    assert split_counts(10) == (3, 3, 4)
    assert split_counts(2) == (0, 0, 2)


def test_center_by_similarity_draws_from_every_tier():
    candidates = [result(n, float(n), similarity=1 - n / 20) for n in range(1, 10)]

    selected = select_center_by_similarity(candidates, 3)

    assert sorted(r.rating_value for r in selected) == [1.0, 4.0, 7.0]


def test_center_by_similarity_ignores_unrated():
    assert select_center_by_similarity([result(1, None, 0.9)], 3) == []


def test_balanced_takes_both_ends():
    candidates = [result(n, float(n)) for n in range(1, 7)]

    selected = select_balanced(candidates, 4)

    assert [r.rating_value for r in selected] == [6.0, 5.0, 2.0, 1.0]


def test_select_by_rating_best_and_worst():
    candidates = [result(n, float(n)) for n in (3, 1, 2)]

    assert [r.rating_value for r in select_by_rating(candidates, ScaleType.BEST, 2)] == [3.0, 2.0]
    assert [r.rating_value for r in select_by_rating(candidates, ScaleType.WORST, 2)] == [1.0, 2.0]


def test_select_by_rating_center_keeps_top_and_samples_the_rest(rng):
    candidates = [result(n, float(n)) for n in range(1, 13)]

    selected = select_by_rating(candidates, ScaleType.CENTER, 6, rng)

    ratings = [r.rating_value for r in selected]
    assert ratings[:2] == [12.0, 11.0]
    assert len(ratings) == 6
    assert len(set(ratings)) == 6


def test_random_center_covers_the_rating_range(rng):
    candidates = [result(n, float(n)) for n in range(1, 31)]

    selected = select_random_center(candidates, 9, rng)

    ratings = [r.rating_value for r in selected]
    assert len(ratings) == 9
    assert len(set(ratings)) == 9
    assert any(r >= 21 for r in ratings)
    assert any(r <= 10 for r in ratings)


def test_random_center_tops_up_short_tiers(rng):
    candidates = [result(n, 10.0) for n in range(5)] + [result(9, 1.0)]

    assert len(select_random_center(candidates, 4, rng)) == 4


def test_random_center_with_flat_ratings(rng):
    candidates = [result(n, 3.0) for n in range(8)]

    assert len(select_random_center(candidates, 5, rng)) == 5


def test_random_center_is_reproducible_with_a_seed():
    candidates = [result(n, float(n)) for n in range(1, 31)]

    first = select_random_center(candidates, 6, random.Random(7))
    second = select_random_center(candidates, 6, random.Random(7))

    assert [r.entity_uri for r in first] == [r.entity_uri for r in second]


def test_merge_by_uri_keeps_most_similar_hit():
    merged = merge_by_uri(
        {
            "clarity": [result(1, 4.0, 0.7), result(2, 3.0, 0.9)],
            "tone": [result(1, 2.0, 0.8)],
        }
    )

    by_uri = {r.entity_uri: r for r in merged}
    assert len(merged) == 2
    assert by_uri[pull(1)].source_metric == "tone"
    assert by_uri[pull(1)].similarity == 0.8
    assert by_uri[pull(2)].source_metric == "clarity"


async def test_best_scale_sorts_by_rating(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[1.0, 0.0, 0.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity"],
        top_k=3,
        scale_type="best",
    )

    assert outcome.search_type == "similarity"
    assert [r.rating_value for r in outcome.results] == [9.0, 8.0, 7.0]
    assert rated_pulls.calls[-1]["sort_by"].value == "best_rated"


async def test_center_scale_searches_a_wider_pool(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[1.0, 0.0, 0.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity"],
        top_k=3,
        scale_type="center",
    )

    assert rated_pulls.calls[-1]["limit"] == 9
    assert sorted(r.rating_value for r in outcome.results) == [1.0, 4.0, 7.0]


async def test_fallback_applies_when_nothing_clears_the_threshold(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[0.0, 0.0, 1.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity"],
        top_k=2,
        scale_type="best",
        fallback_strategy="worst",
        similarity_threshold=0.5,
    )

    assert outcome.fallback_applied is True
    assert outcome.search_type == "rating-based"
    assert outcome.fallback_strategy == "worst"
    assert outcome.scale_type == "best"
    assert [r.rating_value for r in outcome.results] == [1.0, 2.0]
    assert all(r.similarity is None for r in outcome.results)


async def test_no_fallback_returns_empty_outcome(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[0.0, 0.0, 1.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity"],
        similarity_threshold=0.5,
    )

    assert outcome.results == []
    assert outcome.fallback_applied is False


async def test_without_query_vector_selects_by_rating(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=None,
        exclude_uri=pull(9),
        entity_type="PR",
        top_k=3,
    )

    assert outcome.search_type == "rating-based"
    assert [r.rating_value for r in outcome.results] == [8.0, 7.0, 6.0]


async def test_random_center_scale_is_rating_based(service, rated_pulls, db_session):
    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[1.0, 0.0, 0.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity"],
        top_k=4,
        scale_type="randomcenter",
    )

    assert outcome.search_type == "rating-based"
    assert len({r.entity_uri for r in outcome.results}) == 4


async def test_multiple_metrics_are_merged(service, fake_repository, db_session):
    fake_repository.add(pull(1), "pull_request", [1.0, 0.0, 0.0], metric_type="clarity", rating=4.0)
    fake_repository.add(pull(1), "pull_request", [1.0, 0.0, 0.0], metric_type="tone", rating=2.0)
    fake_repository.add(pull(2), "pull_request", [1.0, 0.5, 0.0], metric_type="tone", rating=5.0)

    outcome = await service.search_with_strategy(
        db_session=db_session,
        query_vector=[1.0, 0.0, 0.0],
        exclude_uri=QUERY_URI,
        entity_type="pull_request",
        metric_types=["clarity", "tone"],
        top_k=5,
    )

    assert [r.entity_uri for r in outcome.results] == [pull(1), pull(2)]
    assert outcome.searched_metrics == ["clarity", "tone"]


async def test_rating_based_search_requires_entity_type(service, db_session):
    with pytest.raises(InvalidQueryError):
        await service.rating_based_search(
            db_session=db_session,
            entity_type=None,
            metric_types=[],
            limit=3,
            strategy=ScaleType.BEST,
        )


async def test_unknown_scale_type_is_rejected(service, db_session):
    with pytest.raises(InvalidStrategyError):
        await service.search_with_strategy(
            db_session=db_session,
            query_vector=[1.0, 0.0, 0.0],
            exclude_uri=QUERY_URI,
            entity_type="pull_request",
            scale_type="middle",
        )
