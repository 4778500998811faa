"""Router for the Similarity feature."""
from typing import List

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.di.container import ApplicationContainer as DependencyContainer
from api.features.similarity.controller import SimilarityController
from api.features.similarity.dtos import (
    MetricInfoDTO,
    SimilaritySearchRequest,
    SimilaritySearchResponse,
    StrategySearchRequest,
    StrategySearchResponse,
)
from api.shared.db import get_db_session
from api.shared.response import ResponseModel

router = APIRouter()


@router.post("/search", response_model=ResponseModel[SimilaritySearchResponse])
@inject
async def similarity_search(
    request: SimilaritySearchRequest,
    controller: SimilarityController = Depends(
        Provide[DependencyContainer.controllers.similarity_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Find stored entities similar to a query vector or text."""
    return await controller.search(request, db_session=db_session)


@router.post("/search/strategy", response_model=ResponseModel[StrategySearchResponse])
@inject
async def strategy_search(
    request: StrategySearchRequest,
    controller: SimilarityController = Depends(
        Provide[DependencyContainer.controllers.similarity_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    """Pick examples with a scale strategy, falling back to rating-based selection."""
    return await controller.search_with_strategy(request, db_session=db_session)


@router.get("/metrics", response_model=ResponseModel[List[MetricInfoDTO]])
@inject
async def list_metrics(
    controller: SimilarityController = Depends(
        Provide[DependencyContainer.controllers.similarity_controller]
    ),
):
    return controller.list_metrics()
