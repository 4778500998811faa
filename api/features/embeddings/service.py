"""Service layer for the Embeddings feature: generation plus storage."""
import logging
from typing import List, Mapping, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from api.features.embeddings.generator import BatchEmbeddingGenerator
from api.features.embeddings.models import (
    BatchConfiguration,
    EmbeddingBatchResult,
    EmbeddingModelDescriptor,
    EmbeddingRecordModel,
    RatedEntity,
    StoreResult,
    VectorStatistics,
)
from api.features.embeddings.repositories.embedding_repository import EmbeddingRepository
from api.features.embeddings.vector_store import VectorStoreWriter, group_by_metric
from core.settings import SimilaritySettings

logger = logging.getLogger("expertise.embeddings.service")


class EmbeddingService:
    """Coordinates the batch generator and the vector store writer."""

    def __init__(
        self,
        generator: BatchEmbeddingGenerator,
        writer: VectorStoreWriter,
        similarity_settings: SimilaritySettings,
    ):
        self.generator = generator
        self.writer = writer
        self.similarity_settings = similarity_settings

    @property
    def model_id(self) -> str:
        """Model that on-the-fly query vectors are produced with."""
        return self.generator.default_model.model_id

    def validate_configuration(self) -> None:
        self.generator.validate_configuration()

    def get_batch_configuration(self) -> BatchConfiguration:
        return self.generator.get_batch_configuration()

    async def check_availability(self) -> bool:
        return await self.generator.check_availability()

    async def generate_and_store(
        self,
        order_id: int,
        contexts: Mapping[str, str],
        *,
        db_session: AsyncSession,
        metric_type: Optional[str] = None,
        ratings: Optional[Mapping[str, float]] = None,
        entity_types: Optional[Mapping[str, str]] = None,
        strategy: Optional[str] = None,
        model: Optional[EmbeddingModelDescriptor] = None,
    ) -> Tuple[EmbeddingBatchResult, StoreResult]:
        """Embed ``contexts`` and replace the ``(order_id, metric_type)`` scope with them."""
        metric_type = metric_type or self.similarity_settings.SIMILARITY_DEFAULT_METRIC_TYPE
        result = await self.generator.generate(contexts, order_id, model)
        if result.is_empty:
            logger.info(f"No embeddings generated for order {order_id}, store left untouched")
            return result, StoreResult(order_id=order_id, metric_type=metric_type)

        stored = await self.writer.store_embeddings(
            result,
            order_id,
            metric_type,
            db_session=db_session,
            ratings=ratings,
            entity_types=entity_types,
            strategy=strategy,
        )
        return result, stored

    async def store_by_metric_type(
        self,
        order_id: int,
        entities: List[RatedEntity],
        *,
        db_session: AsyncSession,
        metric_filter: Optional[List[str]] = None,
        strategy: Optional[str] = None,
        model: Optional[EmbeddingModelDescriptor] = None,
    ) -> Tuple[EmbeddingBatchResult, List[StoreResult]]:
        """Embed each entity once, then store one scope per metric it was rated on.

        Entities without ratings go to the default metric type.
        """
        default_metric = self.similarity_settings.SIMILARITY_DEFAULT_METRIC_TYPE
        contexts = {entity.entity_uri: entity.context for entity in entities}
        entity_types = {
            entity.entity_uri: entity.entity_type
            for entity in entities
            if entity.entity_type
        }
        grouped = group_by_metric(
            {entity.entity_uri: entity.ratings for entity in entities},
            metric_filter=metric_filter,
            default_metric=default_metric,
        )
        if not grouped:
            logger.info(f"No metrics left to store for order {order_id}")
            return EmbeddingBatchResult(), []

        wanted = {uri for ratings in grouped.values() for uri in ratings}
        result = await self.generator.generate(
            {uri: text for uri, text in contexts.items() if uri in wanted},
            order_id,
            model,
        )

        stored: List[StoreResult] = []
        for metric_type, ratings in grouped.items():
            subset = EmbeddingBatchResult(
                embeddings={
                    uri: vector
                    for uri, vector in result.embeddings.items()
                    if uri in ratings
                },
                character_lengths={
                    uri: length
                    for uri, length in result.character_lengths.items()
                    if uri in ratings
                },
                model_name=result.model_name,
                dimensions=result.dimensions,
            )
            if subset.is_empty:
                continue
            stored.append(
                await self.writer.store_embeddings(
                    subset,
                    order_id,
                    metric_type,
                    db_session=db_session,
                    ratings={u: r for u, r in ratings.items() if r is not None},
                    entity_types=entity_types,
                    strategy=strategy,
                )
            )

        logger.info(
            f"Stored embeddings for order {order_id} across {len(stored)} metric types"
        )
        return result, stored

    async def embed_query(self, text: str) -> Tuple[List[float], int]:
        """On-the-fly query vector plus the character length of ``text``."""
        vector = await self.generator.embed_text(text)
        return vector, len(text)

    async def clear_order(self, order_id: int, *, db_session: AsyncSession) -> int:
        return await self.writer.clear_order(order_id, db_session=db_session)

    async def clear_all(self, *, db_session: AsyncSession) -> int:
        return await self.writer.clear_all(db_session=db_session)

    async def list_records(
        self,
        order_id: int,
        *,
        db_session: AsyncSession,
        metric_type: Optional[str] = None,
        limit: int = 1000,
    ) -> List[EmbeddingRecordModel]:
        repository = EmbeddingRepository(db_session)
        entities = await repository.list_by_order(order_id, metric_type, limit)
        return [EmbeddingRecordModel.from_entity(entity) for entity in entities]

    async def get_statistics(self, *, db_session: AsyncSession) -> VectorStatistics:
        repository = EmbeddingRepository(db_session)
        stats = await repository.get_statistics()
        return VectorStatistics(
            **stats,
            entity_types=sorted(stats["by_entity_type"].keys()),
            metric_types=sorted(stats["by_metric_type"].keys()),
            similarity_threshold=self.similarity_settings.SIMILARITY_THRESHOLD,
            max_candidates=self.similarity_settings.SIMILARITY_MAX_CANDIDATES,
            filter_by_entity_type=self.similarity_settings.SIMILARITY_FILTER_BY_ENTITY_TYPE,
        )
