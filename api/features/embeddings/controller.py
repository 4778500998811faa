"""Controller for the Embeddings feature."""
import logging
import time

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.embeddings.dtos import (
    ClearEmbeddingsResponse,
    EmbeddingRecordListResponse,
    GenerateByMetricRequest,
    GenerateByMetricResponse,
    GenerateEmbeddingsRequest,
    GenerateEmbeddingsResponse,
    ServiceAvailabilityResponse,
    StoreScopeDTO,
)
from api.features.embeddings.models import (
    BatchConfiguration,
    EmbeddingModelDescriptor,
    RatedEntity,
    VectorStatistics,
)
from api.features.embeddings.service import EmbeddingService
from api.shared.exceptions import ExpertiseException, to_http_exception
from api.shared.response import ResponseModel

logger = logging.getLogger("expertise.embeddings")


class EmbeddingController:
    """Controller for embedding generation and vector store maintenance."""

    def __init__(self, embedding_service: EmbeddingService):
        self.embedding_service = embedding_service

    def _model_override(self, model_id, dimensions):
        if model_id is None and dimensions is None:
            return None
        default = self.embedding_service.generator.default_model
        return EmbeddingModelDescriptor(
            model_id=model_id or default.model_id,
            dimensions=dimensions or default.dimensions,
            input_type=default.input_type,
        )

    async def generate(
        self, request: GenerateEmbeddingsRequest, db_session: AsyncSession
    ) -> ResponseModel[GenerateEmbeddingsResponse]:
        """Generate embeddings for one order and replace its (order, metric) scope."""
        start = time.time()
        try:
            result, stored = await self.embedding_service.generate_and_store(
                request.order_id,
                request.contexts,
                db_session=db_session,
                metric_type=request.metric_type,
                ratings=request.ratings,
                entity_types=request.entity_types,
                strategy=request.strategy,
                model=self._model_override(request.model_id, request.dimensions),
            )
        except ExpertiseException as e:
            logger.error(f"Embedding generation failed for order {request.order_id}: {e.message}")
            raise to_http_exception(e)
        except Exception as e:
            logger.exception(f"Unexpected error generating embeddings for order {request.order_id}")
            raise HTTPException(status_code=500, detail=str(e))

        response = GenerateEmbeddingsResponse(
            order_id=request.order_id,
            metric_type=stored.metric_type,
            requested=len(request.contexts),
            generated=len(result.embeddings),
            stored=stored.stored,
            deleted=stored.deleted,
            skipped=stored.skipped,
            model_name=result.model_name,
            dimensions=result.dimensions,
            batch_count=result.batch_count,
            processing_time_ms=(time.time() - start) * 1000,
        )
        return ResponseModel.success(
            data=response,
            message=f"Stored {stored.stored} embeddings for order {request.order_id}",
        )

    async def generate_by_metric(
        self, request: GenerateByMetricRequest, db_session: AsyncSession
    ) -> ResponseModel[GenerateByMetricResponse]:
        """Embed rated entities once and store one scope per metric type."""
        start = time.time()
        entities = [
            RatedEntity(
                entity_uri=e.entity_uri,
                context=e.context,
                entity_type=e.entity_type,
                ratings=e.ratings,
            )
            for e in request.entities
        ]
        try:
            result, scopes = await self.embedding_service.store_by_metric_type(
                request.order_id,
                entities,
                db_session=db_session,
                metric_filter=request.metric_filter,
                strategy=request.strategy,
            )
        except ExpertiseException as e:
            logger.error(f"Per-metric embedding failed for order {request.order_id}: {e.message}")
            raise to_http_exception(e)
        except Exception as e:
            logger.exception(f"Unexpected error storing per-metric embeddings for order {request.order_id}")
            raise HTTPException(status_code=500, detail=str(e))

        response = GenerateByMetricResponse(
            order_id=request.order_id,
            generated=len(result.embeddings),
            model_name=result.model_name,
            dimensions=result.dimensions,
            scopes=[
                StoreScopeDTO(
                    metric_type=s.metric_type,
                    stored=s.stored,
                    deleted=s.deleted,
                    skipped=s.skipped,
                )
                for s in scopes
            ],
            processing_time_ms=(time.time() - start) * 1000,
        )
        return ResponseModel.success(
            data=response,
            message=f"Stored embeddings for {len(scopes)} metric types",
        )

    async def clear_order(
        self, order_id: int, db_session: AsyncSession
    ) -> ResponseModel[ClearEmbeddingsResponse]:
        try:
            deleted = await self.embedding_service.clear_order(order_id, db_session=db_session)
        except ExpertiseException as e:
            raise to_http_exception(e)
        return ResponseModel.success(
            data=ClearEmbeddingsResponse(order_id=order_id, deleted=deleted),
            message=f"Deleted {deleted} embeddings for order {order_id}",
        )

    async def clear_all(
        self, db_session: AsyncSession
    ) -> ResponseModel[ClearEmbeddingsResponse]:
        try:
            deleted = await self.embedding_service.clear_all(db_session=db_session)
        except ExpertiseException as e:
            raise to_http_exception(e)
        logger.warning(f"Cleared all {deleted} stored embeddings")
        return ResponseModel.success(
            data=ClearEmbeddingsResponse(deleted=deleted),
            message=f"Deleted {deleted} embeddings",
        )

    async def list_records(
        self, order_id: int, metric_type, limit: int, db_session: AsyncSession
    ) -> ResponseModel[EmbeddingRecordListResponse]:
        try:
            items = await self.embedding_service.list_records(
                order_id, db_session=db_session, metric_type=metric_type, limit=limit
            )
        except ExpertiseException as e:
            raise to_http_exception(e)
        return ResponseModel.success(
            data=EmbeddingRecordListResponse(order_id=order_id, items=items, total=len(items)),
            message=f"Found {len(items)} embeddings",
        )

    async def get_statistics(
        self, db_session: AsyncSession
    ) -> ResponseModel[VectorStatistics]:
        try:
            stats = await self.embedding_service.get_statistics(db_session=db_session)
        except ExpertiseException as e:
            raise to_http_exception(e)
        return ResponseModel.success(data=stats, message="Vector store statistics")

    def get_configuration(self) -> ResponseModel[BatchConfiguration]:
        return ResponseModel.success(
            data=self.embedding_service.get_batch_configuration(),
            message="Embedding batch configuration",
        )

    async def check_availability(self) -> ResponseModel[ServiceAvailabilityResponse]:
        generator = self.embedding_service.generator
        configured = generator.is_configured()
        available = await self.embedding_service.check_availability() if configured else False
        return ResponseModel.success(
            data=ServiceAvailabilityResponse(
                configured=configured,
                available=available,
                service_url=generator.service_url,
                model_id=generator.settings.EMBEDDING_MODEL_ID,
            ),
            message="Embedding service is available" if available else "Embedding service is unavailable",
        )
