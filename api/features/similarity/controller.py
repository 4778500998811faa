"""Controller for the Similarity feature."""
import logging
import time
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.embeddings.service import EmbeddingService
from api.features.similarity.dtos import (
    MetricInfoDTO,
    SimilarityResultDTO,
    SimilaritySearchRequest,
    SimilaritySearchResponse,
    StrategySearchRequest,
    StrategySearchResponse,
    QueryInput,
)
from api.features.similarity.metrics import SimilarityMetric
from api.features.similarity.models import SimilarityQuery
from api.features.similarity.service import SimilarityService
from api.shared.exceptions import ExpertiseException, to_http_exception
from api.shared.response import ResponseModel

logger = logging.getLogger("expertise.similarity")


class SimilarityController:
    """Controller for similarity and strategy-aware searches."""

    def __init__(
        self,
        similarity_service: SimilarityService,
        embedding_service: EmbeddingService,
    ):
        self.similarity_service = similarity_service
        self.embedding_service = embedding_service

    async def _resolve_query(
        self, request: QueryInput
    ) -> Tuple[Optional[List[float]], Optional[int], Optional[str]]:
        """Query vector, query length and model filter.

        ``query_text`` is embedded when no vector is given; the resulting vector belongs
        to the configured model, so the search is restricted to that model unless the
        request names one.
        """
        query_length = request.query_length
        if request.query_vector:
            if query_length is None and request.use_length_filter and request.query_text:
                query_length = len(request.query_text)
            return request.query_vector, query_length, request.model_name
        if not request.query_text or not request.query_text.strip():
            return None, query_length, request.model_name

        vector, text_length = await self.embedding_service.embed_query(request.query_text)
        if query_length is None and request.use_length_filter:
            query_length = text_length
        return vector, query_length, request.model_name or self.embedding_service.model_id

    async def search(
        self, request: SimilaritySearchRequest, db_session: AsyncSession
    ) -> ResponseModel[SimilaritySearchResponse]:
        """Nearest neighbours of a query vector (or text) among stored embeddings."""
        start = time.time()
        try:
            vector, query_length, model_name = await self._resolve_query(request)
            query = SimilarityQuery(
                query_vector=vector,
                exclude_uri=request.exclude_uri,
                order_id=request.order_id,
                metric_type=request.metric_type,
                entity_type=request.entity_type,
                top_k=request.top_k,
                sort_by=request.sort_by,
                similarity_metric=request.similarity_metric,
                model_dimensions=request.model_dimensions,
                model_name=model_name,
                similarity_threshold=request.similarity_threshold,
                query_length=query_length,
                length_tolerance=request.length_tolerance if query_length is not None else None,
            )
            results = await self.similarity_service.search(query, db_session=db_session)
        except ExpertiseException as e:
            logger.error(f"Similarity search for {request.exclude_uri} failed: {e.message}")
            raise to_http_exception(e)
        except Exception as e:
            logger.exception(f"Unexpected error in similarity search for {request.exclude_uri}")
            raise HTTPException(status_code=500, detail=str(e))

        response = SimilaritySearchResponse(
            exclude_uri=request.exclude_uri,
            results=[SimilarityResultDTO.from_result(r) for r in results],
            total_results=len(results),
            similarity_metric=request.similarity_metric,
            sort_by=request.sort_by,
            processing_time_ms=(time.time() - start) * 1000,
            search_metadata={
                "top_k": request.top_k,
                "entity_type": request.entity_type,
                "metric_type": request.metric_type,
                "query_length": query_length,
                "model_name": model_name,
                "embedded_query_text": not request.query_vector,
            },
        )
        return ResponseModel.success(
            data=response, message=f"Found {len(results)} similar entities"
        )

    async def search_with_strategy(
        self, request: StrategySearchRequest, db_session: AsyncSession
    ) -> ResponseModel[StrategySearchResponse]:
        """Scale-aware search with rating-based fallback."""
        start = time.time()
        try:
            vector, query_length, model_name = await self._resolve_query(request)
            outcome = await self.similarity_service.search_with_strategy(
                db_session=db_session,
                query_vector=vector,
                exclude_uri=request.exclude_uri,
                entity_type=request.entity_type,
                metric_types=request.metric_types,
                top_k=request.top_k,
                scale_type=request.scale_type,
                fallback_strategy=request.fallback_strategy,
                similarity_metric=request.similarity_metric,
                similarity_threshold=request.similarity_threshold,
                model_dimensions=request.model_dimensions,
                model_name=model_name,
                query_length=query_length,
                length_tolerance=request.length_tolerance if query_length is not None else None,
            )
        except ExpertiseException as e:
            logger.error(f"Strategy search failed: {e.message}")
            raise to_http_exception(e)
        except Exception as e:
            logger.exception("Unexpected error in strategy search")
            raise HTTPException(status_code=500, detail=str(e))

        response = StrategySearchResponse(
            results=[SimilarityResultDTO.from_result(r) for r in outcome.results],
            total_results=len(outcome.results),
            search_type=outcome.search_type,
            scale_type=outcome.scale_type,
            fallback_strategy=outcome.fallback_strategy,
            fallback_applied=outcome.fallback_applied,
            similarity_metric=outcome.similarity_metric,
            searched_metrics=outcome.searched_metrics,
            processing_time_ms=(time.time() - start) * 1000,
        )
        return ResponseModel.success(
            data=response,
            message=f"Found {len(outcome.results)} examples ({outcome.search_type})",
        )

    def list_metrics(self) -> ResponseModel[List[MetricInfoDTO]]:
        return ResponseModel.success(
            data=[
                MetricInfoDTO(name=m.value, operator=m.operator, description=m.description)
                for m in SimilarityMetric
            ],
            message="Supported similarity metrics",
        )
