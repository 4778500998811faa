"""Entity embedding repository: replace-on-reingest writes and pgvector similarity reads."""
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import bindparam, delete, distinct, func, select, text
from sqlalchemy.exc import SQLAlchemyError

from api.features.embeddings.entities.entity_embedding import EntityEmbedding
from api.features.embeddings.exceptions import StoreQueryFailure
from api.features.similarity.metrics import SimilarityMetric, SortBy
from api.shared.base import BaseRepository

SIMILARITY_SQL = """
    SELECT
        e.entity_uri,
        e.entity_type,
        e.metric_type,
        e.order_id,
        e.rating_value,
        (e.embedding {operator} CAST(:q AS vector)) AS distance,
        e.character_length
    FROM entity_embeddings e
    WHERE e.entity_uri != :exclude_uri
    {filters}
    ORDER BY {order_by}
    LIMIT :k
    """

RATED_SQL = """
    SELECT
        e.entity_uri,
        e.entity_type,
        e.metric_type,
        e.order_id,
        e.rating_value,
        e.character_length
    FROM entity_embeddings e
    WHERE e.rating_value IS NOT NULL
    {filters}
    ORDER BY e.rating_value DESC, e.entity_uri ASC
    LIMIT :k
    """

_ORDER_BY = {
    SortBy.SIMILARITY: "distance ASC",
    SortBy.BEST_RATED: "e.rating_value DESC NULLS LAST, distance ASC",
    SortBy.WORST_RATED: "e.rating_value ASC NULLS LAST, distance ASC",
}


def to_vector_literal(vector: Sequence[float]) -> str:
    """Serialize a vector as a pgvector literal ``[v1,v2,...]``."""
    if not vector:
        raise StoreQueryFailure("Cannot serialize an empty vector")
    parts = []
    for value in vector:
        number = float(value)
        if not math.isfinite(number):
            raise StoreQueryFailure(
                "Vector contains a non-finite component", {"value": str(value)}
            )
        parts.append(repr(number))
    return "[" + ",".join(parts) + "]"


def build_similarity_query(
    *,
    query_literal: str,
    exclude_uri: str,
    metric: SimilarityMetric,
    sort_by: SortBy,
    limit: int,
    metric_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    dimensions: Optional[int] = None,
    model_name: Optional[str] = None,
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[str, Dict[str, Any]]:
    """Compose the nearest-neighbour SQL and its bind parameters.

    Each optional filter adds one conjunctive predicate. The operator and ORDER BY
    come from closed enums, everything user supplied travels as a bind parameter.
    """
    filters: List[str] = []
    params: Dict[str, Any] = {
        "q": query_literal,
        "exclude_uri": exclude_uri,
        "k": limit,
    }
    if metric_type is not None:
        filters.append("AND e.metric_type = :metric_type")
        params["metric_type"] = metric_type
    if entity_type is not None:
        filters.append("AND e.entity_type = :entity_type")
        params["entity_type"] = entity_type
    if dimensions is not None:
        filters.append("AND e.dimensions = :dimensions")
        params["dimensions"] = dimensions
    if model_name is not None:
        filters.append("AND e.model_name = :model_name")
        params["model_name"] = model_name
    if min_length is not None and max_length is not None:
        filters.append("AND e.character_length BETWEEN :min_length AND :max_length")
        params["min_length"] = min_length
        params["max_length"] = max_length

    sql = SIMILARITY_SQL.format(
        operator=metric.operator,
        filters="\n    ".join(filters),
        order_by=_ORDER_BY[sort_by],
    )
    return sql, params


class EmbeddingRepository(BaseRepository[EntityEmbedding]):
    """Repository for entity embeddings."""

    model = EntityEmbedding

    async def delete_scope(self, order_id: int, metric_type: Optional[str]) -> int:
        """Delete all records of ``(order_id, metric_type)``; whole order when metric_type is None."""
        stmt = delete(self.model).where(self.model.order_id == order_id)
        if metric_type is not None:
            stmt = stmt.where(self.model.metric_type == metric_type)
        return await self.execute_delete(stmt)

    async def replace_scope(
        self,
        order_id: int,
        metric_type: Optional[str],
        entities: List[EntityEmbedding],
    ) -> Tuple[int, int]:
        """Delete then insert within the caller's transaction. Returns (deleted, inserted)."""
        deleted = await self.delete_scope(order_id, metric_type)
        if entities:
            await self.create_many(entities)
        return deleted, len(entities)

    async def delete_all(self) -> int:
        return await self.execute_delete(delete(self.model))

    async def list_by_order(
        self, order_id: int, metric_type: Optional[str] = None, limit: int = 1000
    ) -> List[EntityEmbedding]:
        stmt = select(self.model).where(self.model.order_id == order_id)
        if metric_type is not None:
            stmt = stmt.where(self.model.metric_type == metric_type)
        stmt = stmt.order_by(self.model.id.asc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_similar(
        self,
        query_vector: Sequence[float],
        *,
        exclude_uri: str,
        metric: SimilarityMetric,
        sort_by: SortBy,
        limit: int,
        metric_type: Optional[str] = None,
        entity_type: Optional[str] = None,
        dimensions: Optional[int] = None,
        model_name: Optional[str] = None,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Run the nearest-neighbour query. Rows carry the raw ``distance``."""
        sql, params = build_similarity_query(
            query_literal=to_vector_literal(query_vector),
            exclude_uri=exclude_uri,
            metric=metric,
            sort_by=sort_by,
            limit=limit,
            metric_type=metric_type,
            entity_type=entity_type,
            dimensions=dimensions,
            model_name=model_name,
            min_length=min_length,
            max_length=max_length,
        )
        try:
            res = await self.session.execute(text(sql), params)
        except SQLAlchemyError as e:
            raise StoreQueryFailure(
                "Vector similarity query failed", {"error": str(e)}
            ) from e
        return [dict(row) for row in res.mappings().all()]

    async def find_rated(
        self,
        *,
        entity_type: Optional[str] = None,
        metric_types: Optional[List[str]] = None,
        exclude_uri: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """Stored records that carry a rating, best rated first."""
        filters: List[str] = []
        params: Dict[str, Any] = {"k": limit}
        if exclude_uri:
            filters.append("AND e.entity_uri != :exclude_uri")
            params["exclude_uri"] = exclude_uri
        if entity_type is not None:
            filters.append("AND e.entity_type = :entity_type")
            params["entity_type"] = entity_type
        if metric_types:
            filters.append("AND e.metric_type IN :metric_types")
            params["metric_types"] = list(metric_types)

        stmt = text(RATED_SQL.format(filters="\n    ".join(filters)))
        if metric_types:
            stmt = stmt.bindparams(bindparam("metric_types", expanding=True))
        try:
            res = await self.session.execute(stmt, params)
        except SQLAlchemyError as e:
            raise StoreQueryFailure(
                "Rated entity query failed", {"error": str(e)}
            ) from e
        return [dict(row) for row in res.mappings().all()]

    async def _grouped_counts(self, column) -> Dict[Any, int]:
        stmt = select(column, func.count()).group_by(column)
        result = await self.session.execute(stmt)
        return {key: int(count) for key, count in result.all() if key is not None}

    async def get_statistics(self) -> Dict[str, Any]:
        """Counts and distributions over the whole table."""
        total_stmt = select(
            func.count(self.model.id),
            func.count(distinct(self.model.entity_uri)),
            func.count(distinct(self.model.order_id)),
        )
        try:
            total, entities, orders = (await self.session.execute(total_stmt)).one()
            by_entity_type = await self._grouped_counts(self.model.entity_type)
            by_metric_type = await self._grouped_counts(self.model.metric_type)
            by_dimensions = await self._grouped_counts(self.model.dimensions)
        except SQLAlchemyError as e:
            raise StoreQueryFailure(
                "Vector statistics query failed", {"error": str(e)}
            ) from e

        return {
            "total_embeddings": int(total or 0),
            "distinct_entities": int(entities or 0),
            "distinct_orders": int(orders or 0),
            "by_entity_type": by_entity_type,
            "by_metric_type": by_metric_type,
            "by_dimensions": by_dimensions,
        }
