"""Vector store writer: persists generated embeddings with their versioning metadata."""
from __future__ import annotations

from typing import Dict, List, Mapping, MutableMapping, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.embeddings.entities.entity_embedding import EntityEmbedding
from api.features.embeddings.entity_types import (
    EntityType,
    entity_type_from_uri,
    normalize_entity_type,
)
from api.features.embeddings.exceptions import InvalidEntityTypeError, StoreQueryFailure
from api.features.embeddings.models import EmbeddingBatchResult, StoreResult
from api.features.embeddings.repositories.embedding_repository import EmbeddingRepository

logger = structlog.get_logger("embeddings.vector_store")


class VectorStoreWriter:
    """Replace-on-reingest writes scoped by ``(order_id, metric_type)``."""

    def __init__(self, default_strategy: str = "text-based"):
        self.default_strategy = default_strategy

    def build_records(
        self,
        result: EmbeddingBatchResult,
        order_id: int,
        metric_type: Optional[str],
        *,
        ratings: Optional[Mapping[str, float]] = None,
        entity_types: Optional[Mapping[str, str]] = None,
        strategy: Optional[str] = None,
    ) -> tuple[List[EntityEmbedding], List[str]]:
        """Entities to insert plus the URIs skipped because their type is unknown."""
        ratings = ratings or {}
        entity_types = entity_types or {}
        type_cache: MutableMapping[str, EntityType] = {}
        records: List[EntityEmbedding] = []
        skipped: List[str] = []

        for uri, vector in result.embeddings.items():
            try:
                if entity_types.get(uri):
                    entity_type = normalize_entity_type(entity_types[uri], type_cache)
                else:
                    entity_type = entity_type_from_uri(uri)
            except InvalidEntityTypeError as e:
                logger.warning(
                    "embedding_skipped_unknown_entity_type", entity_uri=uri, error=e.message
                )
                skipped.append(uri)
                continue

            records.append(
                EntityEmbedding(
                    entity_uri=uri,
                    order_id=order_id,
                    entity_type=entity_type.value,
                    metric_type=metric_type,
                    rating_value=ratings.get(uri),
                    strategy=strategy or self.default_strategy,
                    embedding=list(vector),
                    dimensions=len(vector),
                    model_name=result.model_name,
                    character_length=result.character_lengths.get(uri),
                )
            )
        return records, skipped

    async def store_embeddings(
        self,
        result: EmbeddingBatchResult,
        order_id: int,
        metric_type: Optional[str],
        *,
        db_session: AsyncSession,
        ratings: Optional[Mapping[str, float]] = None,
        entity_types: Optional[Mapping[str, str]] = None,
        strategy: Optional[str] = None,
    ) -> StoreResult:
        """Delete the ``(order_id, metric_type)`` scope and insert ``result`` in one transaction.

        With ``metric_type=None`` the scope is the whole order.
        """
        records, skipped = self.build_records(
            result,
            order_id,
            metric_type,
            ratings=ratings,
            entity_types=entity_types,
            strategy=strategy,
        )
        repository = EmbeddingRepository(db_session)
        try:
            deleted, stored = await repository.replace_scope(order_id, metric_type, records)
            await db_session.commit()
        except SQLAlchemyError as e:
            await db_session.rollback()
            logger.error(
                "embedding_store_failed",
                order_id=order_id,
                metric_type=metric_type,
                error=str(e),
            )
            raise StoreQueryFailure(
                "Failed to store embeddings",
                {"order_id": order_id, "metric_type": metric_type, "error": str(e)},
            ) from e

        logger.info(
            "embeddings_stored",
            order_id=order_id,
            metric_type=metric_type,
            deleted=deleted,
            stored=stored,
            skipped=len(skipped),
            model=result.model_name,
            dimensions=result.dimensions,
        )
        return StoreResult(
            order_id=order_id,
            metric_type=metric_type,
            deleted=deleted,
            stored=stored,
            skipped=skipped,
        )

    async def clear_order(self, order_id: int, *, db_session: AsyncSession) -> int:
        return await self._delete(db_session, order_id=order_id)

    async def clear_all(self, *, db_session: AsyncSession) -> int:
        return await self._delete(db_session)

    async def _delete(
        self, db_session: AsyncSession, order_id: Optional[int] = None
    ) -> int:
        repository = EmbeddingRepository(db_session)
        try:
            if order_id is None:
                deleted = await repository.delete_all()
            else:
                deleted = await repository.delete_scope(order_id, None)
            await db_session.commit()
        except SQLAlchemyError as e:
            await db_session.rollback()
            raise StoreQueryFailure(
                "Failed to clear embeddings", {"order_id": order_id, "error": str(e)}
            ) from e
        logger.info("embeddings_cleared", order_id=order_id, deleted=deleted)
        return deleted


def group_by_metric(
    ratings_by_entity: Mapping[str, Mapping[str, float]],
    metric_filter: Optional[List[str]] = None,
    default_metric: str = "general",
) -> Dict[str, Dict[str, Optional[float]]]:
    """Invert ``entity -> {metric: rating}`` into ``metric -> {entity: rating}``.

    Entities without any metric land in ``default_metric`` with no rating. When
    ``metric_filter`` is given only those metrics are kept.
    """
    grouped: Dict[str, Dict[str, Optional[float]]] = {}
    for uri, ratings in ratings_by_entity.items():
        if not ratings:
            if metric_filter is None or default_metric in metric_filter:
                grouped.setdefault(default_metric, {})[uri] = None
            continue
        for metric, rating in ratings.items():
            if metric_filter is not None and metric not in metric_filter:
                continue
            grouped.setdefault(metric, {})[uri] = rating
    return grouped
