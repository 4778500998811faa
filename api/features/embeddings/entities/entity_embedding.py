"""Entity embedding: one vector per (entity, order, metric type) with versioning metadata."""
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from api.shared.entities.base import BaseEntity


class EntityEmbedding(BaseEntity):
    """Vector embedding of a content entity (commit, issue, pull request, comment).

    The vector column has no fixed width: several embedding models (384, 768, 4096, ...)
    share the table and are kept apart by the ``dimensions`` / ``model_name`` columns.
    """

    __tablename__ = "entity_embeddings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    entity_uri: Mapped[str] = mapped_column(Text, nullable=False)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    metric_type: Mapped[Optional[str]] = mapped_column(String(255))
    rating_value: Mapped[Optional[float]] = mapped_column(Float)
    strategy: Mapped[str] = mapped_column(
        String(50), nullable=False, default="text-based"
    )

    embedding: Mapped[list[float]] = mapped_column(Vector(), nullable=False)

    dimensions: Mapped[int] = mapped_column(Integer, nullable=False)
    model_name: Mapped[str] = mapped_column(String(100), nullable=False)
    character_length: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("idx_entity_embeddings_uri", "entity_uri"),
        Index("idx_entity_embeddings_order", "order_id"),
        Index("idx_entity_embeddings_type", "entity_type"),
        Index("idx_entity_embeddings_metric", "metric_type"),
        Index("idx_entity_embeddings_rating", "rating_value"),
        Index("idx_entity_embeddings_strategy", "strategy"),
    )
