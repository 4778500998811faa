"""Router for the Embeddings feature."""
from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.di.container import ApplicationContainer as DependencyContainer
from api.features.embeddings.controller import EmbeddingController
from api.features.embeddings.dtos import (
    ClearEmbeddingsResponse,
    EmbeddingRecordListResponse,
    GenerateByMetricRequest,
    GenerateByMetricResponse,
    GenerateEmbeddingsRequest,
    GenerateEmbeddingsResponse,
    ServiceAvailabilityResponse,
)
from api.features.embeddings.models import BatchConfiguration, VectorStatistics
from api.shared.db import get_db_session
from api.shared.response import ResponseModel

router = APIRouter()


@router.post("/generate", response_model=ResponseModel[GenerateEmbeddingsResponse])
@inject
async def generate_embeddings(
    request: GenerateEmbeddingsRequest,
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Generate embeddings for an order and replace its (order, metric) scope."""
    return await controller.generate(request, db_session=db_session)


@router.post("/generate/by-metric", response_model=ResponseModel[GenerateByMetricResponse])
@inject
async def generate_embeddings_by_metric(
    request: GenerateByMetricRequest,
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Embed rated entities once and store one scope per metric."""
    return await controller.generate_by_metric(request, db_session=db_session)


@router.get("/orders/{order_id}", response_model=ResponseModel[EmbeddingRecordListResponse])
@inject
async def list_order_embeddings(
    order_id: int,
    metric_type: Optional[str] = Query(None, description="Only records of this metric type"),
    limit: int = Query(1000, ge=1, le=10000),
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """List stored records of an order (vectors omitted)."""
    return await controller.list_records(order_id, metric_type, limit, db_session=db_session)


@router.delete("/orders/{order_id}", response_model=ResponseModel[ClearEmbeddingsResponse])
@inject
async def clear_order_embeddings(
    order_id: int,
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Delete every stored embedding of an order."""
    return await controller.clear_order(order_id, db_session=db_session)


@router.delete("", response_model=ResponseModel[ClearEmbeddingsResponse])
@inject
async def clear_all_embeddings(
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Delete every stored embedding."""
    return await controller.clear_all(db_session=db_session)


@router.get("/statistics", response_model=ResponseModel[VectorStatistics])
@inject
async def get_statistics(
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    return await controller.get_statistics(db_session=db_session)


@router.get("/config", response_model=ResponseModel[BatchConfiguration])
@inject
async def get_configuration(
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
):
    return controller.get_configuration()


@router.get("/health", response_model=ResponseModel[ServiceAvailabilityResponse])
@inject
async def embedding_service_health(
    controller: EmbeddingController = Depends(
        Provide[DependencyContainer.controllers.embedding_controller]
    ),
):
    """Whether the embedding endpoint is configured and reachable."""
    return await controller.check_availability()
