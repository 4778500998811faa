"""Similarity search over stored entity embeddings.

``SimilaritySearchEngine`` runs one nearest-neighbour query. ``SimilarityService``
layers scale strategies, multi-metric merging and rating-based fallback on top of it.
"""
from __future__ import annotations

import random
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.embeddings.entity_types import normalize_entity_type
from api.features.embeddings.repositories.embedding_repository import EmbeddingRepository
from api.features.similarity.exceptions import InvalidQueryError
from api.features.similarity.metrics import SimilarityMetric, SortBy
from api.features.similarity.models import (
    SearchOutcome,
    SimilarityQuery,
    SimilarityResult,
)
from api.features.similarity.strategies import (
    ScaleType,
    merge_by_uri,
    select_balanced,
    select_by_rating,
    select_center_by_similarity,
)
from api.features.similarity.tolerance import length_window
from core.settings import SimilaritySettings

logger = structlog.get_logger("similarity.engine")

RepositoryFactory = Callable[[AsyncSession], EmbeddingRepository]


class SimilaritySearchEngine:
    """Builds and runs store-side similarity queries and normalizes their distances."""

    def __init__(
        self,
        settings: SimilaritySettings,
        repository_factory: RepositoryFactory = EmbeddingRepository,
    ):
        self.settings = settings
        self.repository_factory = repository_factory

    def to_similarity(self, metric: SimilarityMetric, distance: float) -> float:
        return metric.to_similarity(
            distance,
            per_metric=self.settings.SIMILARITY_NORMALIZATION == "per_metric",
            euclidean_bound=self.settings.SIMILARITY_EUCLIDEAN_DISTANCE_BOUND,
        )

    def resolve_filters(self, query: SimilarityQuery) -> Dict[str, Optional[object]]:
        """Turn a query into the predicates the store should apply."""
        metric_type = query.metric_type
        entity_type: Optional[str] = None
        dimensions = query.model_dimensions

        if query.entity_type:
            normalized = normalize_entity_type(query.entity_type).value
            if self.settings.SIMILARITY_FILTER_BY_ENTITY_TYPE:
                entity_type = normalized
            else:
                logger.debug("entity_type_filter_disabled", entity_type=normalized)
        else:
            metric_type = metric_type or self.settings.SIMILARITY_DEFAULT_METRIC_TYPE
            dimensions = dimensions or self.settings.SIMILARITY_DEFAULT_DIMENSIONS
            logger.warning(
                "similarity_search_without_entity_type",
                metric_type=metric_type,
                dimensions=dimensions,
            )

        vector_width = len(query.query_vector)
        if dimensions is None:
            # vectors of another width are never comparable with this query
            dimensions = vector_width
        elif dimensions != vector_width:
            raise InvalidQueryError(
                f"Query vector has {vector_width} dimensions but "
                f"{dimensions}-dimensional embeddings were requested",
                {"query_dimensions": vector_width, "model_dimensions": dimensions},
            )

        min_length = max_length = None
        if query.query_length is not None:
            min_length, max_length = length_window(
                query.query_length, query.length_tolerance
            )

        return {
            "metric_type": metric_type,
            "entity_type": entity_type,
            "dimensions": dimensions,
            "model_name": query.model_name,
            "min_length": min_length,
            "max_length": max_length,
        }

    async def search(
        self, query: SimilarityQuery, *, db_session: AsyncSession
    ) -> List[SimilarityResult]:
        """Up to ``top_k`` neighbours of ``query.query_vector``.

        The threshold is applied after the store-side LIMIT, so fewer than ``top_k``
        results can come back even when more qualifying rows exist further down.
        An empty list means "no candidates", not a failure.
        """
        filters = self.resolve_filters(query)
        threshold = (
            query.similarity_threshold
            if query.similarity_threshold is not None
            else self.settings.SIMILARITY_THRESHOLD
        )
        limit = min(query.top_k, self.settings.SIMILARITY_MAX_CANDIDATES)

        repository = self.repository_factory(db_session)
        rows = await repository.find_similar(
            query.query_vector,
            exclude_uri=query.exclude_uri,
            metric=query.similarity_metric,
            sort_by=query.sort_by,
            limit=limit,
            **filters,
        )

        results: List[SimilarityResult] = []
        for row in rows:
            if row["entity_uri"] == query.exclude_uri:
                continue
            similarity = self.to_similarity(query.similarity_metric, float(row["distance"]))
            if similarity < threshold:
                continue
            results.append(SimilarityResult.from_row(row, similarity))

        logger.info(
            "similarity_search_completed",
            exclude_uri=query.exclude_uri,
            order_id=query.order_id,
            similarity_metric=query.similarity_metric.value,
            sort_by=query.sort_by.value,
            candidates=len(rows),
            results=len(results),
            threshold=threshold,
            **filters,
        )
        return results


class SimilarityService:
    """Strategy-aware search: scale types, several metrics and rating-based fallback."""

    def __init__(
        self,
        engine: SimilaritySearchEngine,
        rng: Optional[random.Random] = None,
    ):
        self.engine = engine
        self.settings = engine.settings
        self.rng = rng or random.Random()

    async def search(
        self, query: SimilarityQuery, *, db_session: AsyncSession
    ) -> List[SimilarityResult]:
        return await self.engine.search(query, db_session=db_session)

    async def search_with_strategy(
        self,
        *,
        db_session: AsyncSession,
        query_vector: Optional[List[float]],
        exclude_uri: Optional[str],
        entity_type: Optional[str],
        metric_types: Optional[List[str]] = None,
        top_k: int = 10,
        scale_type: Optional[str] = None,
        fallback_strategy: Optional[str] = None,
        similarity_metric: SimilarityMetric = SimilarityMetric.COSINE,
        similarity_threshold: Optional[float] = None,
        model_dimensions: Optional[int] = None,
        model_name: Optional[str] = None,
        query_length: Optional[int] = None,
        length_tolerance: Optional[int] = None,
    ) -> SearchOutcome:
        """Search with a scale type and an optional fallback when nothing qualifies."""
        scale = ScaleType.parse(scale_type)
        fallback = ScaleType.parse(fallback_strategy)
        metric_types = [m for m in (metric_types or []) if m]

        if not query_vector:
            logger.info("rating_based_search_without_query", entity_type=entity_type)
            return await self.rating_based_search(
                db_session=db_session,
                entity_type=entity_type,
                metric_types=metric_types,
                limit=top_k,
                strategy=scale or ScaleType.BEST,
                exclude_uri=exclude_uri,
                similarity_metric=similarity_metric,
            )

        if scale is ScaleType.RANDOM_CENTER:
            return await self.rating_based_search(
                db_session=db_session,
                entity_type=entity_type,
                metric_types=metric_types,
                limit=top_k,
                strategy=ScaleType.RANDOM_CENTER,
                exclude_uri=exclude_uri,
                similarity_metric=similarity_metric,
            )

        def make_query(metric_type: Optional[str], k: int, sort_by: SortBy) -> SimilarityQuery:
            return SimilarityQuery(
                query_vector=query_vector,
                exclude_uri=exclude_uri or "",
                metric_type=metric_type,
                entity_type=entity_type,
                top_k=k,
                sort_by=sort_by,
                similarity_metric=similarity_metric,
                model_dimensions=model_dimensions,
                model_name=model_name,
                similarity_threshold=similarity_threshold,
                query_length=query_length,
                length_tolerance=length_tolerance,
            )

        sort_by = SortBy.from_scale_type(scale.value if scale else None)
        per_metric: Dict[str, List[SimilarityResult]] = {}
        for metric_type in metric_types or [None]:
            if scale is ScaleType.CENTER:
                pool_size = min(top_k * 3, self.settings.SIMILARITY_MAX_CANDIDATES)
                pool = await self.engine.search(
                    make_query(metric_type, pool_size, SortBy.SIMILARITY),
                    db_session=db_session,
                )
                found = select_center_by_similarity(pool, top_k)
            else:
                found = await self.engine.search(
                    make_query(metric_type, top_k, sort_by), db_session=db_session
                )
            per_metric[metric_type or ""] = found

        if len(per_metric) == 1:
            results = next(iter(per_metric.values()))
        else:
            merged = merge_by_uri(per_metric)
            if scale is ScaleType.CENTER:
                results = select_balanced(merged, top_k)
            else:
                results = sorted(
                    merged,
                    key=lambda r: r.similarity if r.similarity is not None else 0.0,
                    reverse=True,
                )[:top_k]

        if not results and fallback is not None:
            logger.info(
                "similarity_fallback_applied",
                fallback_strategy=fallback.value,
                metric_types=metric_types,
                entity_type=entity_type,
            )
            outcome = await self.rating_based_search(
                db_session=db_session,
                entity_type=entity_type,
                metric_types=metric_types,
                limit=top_k,
                strategy=fallback,
                exclude_uri=exclude_uri,
                similarity_metric=similarity_metric,
            )
            outcome.fallback_applied = True
            outcome.scale_type = scale.value if scale else None
            return outcome

        return SearchOutcome(
            results=results,
            search_type="similarity",
            scale_type=scale.value if scale else None,
            fallback_strategy=fallback.value if fallback else None,
            similarity_metric=similarity_metric,
            searched_metrics=metric_types,
        )

    async def rating_based_search(
        self,
        *,
        db_session: AsyncSession,
        entity_type: Optional[str],
        metric_types: List[str],
        limit: int,
        strategy: ScaleType,
        exclude_uri: Optional[str] = None,
        similarity_metric: SimilarityMetric = SimilarityMetric.COSINE,
    ) -> SearchOutcome:
        """Pick stored, rated examples by rating alone (no similarity)."""
        if not entity_type:
            raise InvalidQueryError("Rating-based search requires an entity type")
        normalized = normalize_entity_type(entity_type).value

        repository = self.engine.repository_factory(db_session)
        rows = await repository.find_rated(
            entity_type=normalized,
            metric_types=metric_types or None,
            exclude_uri=exclude_uri,
            limit=self.settings.SIMILARITY_MAX_CANDIDATES * 10,
        )
        candidates = [SimilarityResult.from_row(row, None) for row in rows]
        selected = select_by_rating(candidates, strategy, limit, self.rng)

        logger.info(
            "rating_based_search_completed",
            entity_type=normalized,
            metric_types=metric_types,
            strategy=strategy.value,
            candidates=len(candidates),
            results=len(selected),
        )
        return SearchOutcome(
            results=selected,
            search_type="rating-based",
            scale_type=strategy.value,
            fallback_strategy=strategy.value,
            similarity_metric=similarity_metric,
            searched_metrics=metric_types,
        )

