"""Add entity_embeddings table for versioned entity vectors

Revision ID: 20251019_add_entity_embeddings
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector

# revision identifiers, used by Alembic.
revision = "20251019_add_entity_embeddings"
down_revision = None
branch_labels = None
depends_on = None

_INDEXES = {
    "idx_entity_embeddings_uri": ["entity_uri"],
    "idx_entity_embeddings_order": ["order_id"],
    "idx_entity_embeddings_type": ["entity_type"],
    "idx_entity_embeddings_metric": ["metric_type"],
    "idx_entity_embeddings_rating": ["rating_value"],
    "idx_entity_embeddings_strategy": ["strategy"],
}


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "entity_embeddings",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("entity_uri", sa.Text, nullable=False),
        sa.Column("order_id", sa.Integer, nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("metric_type", sa.String(255), nullable=True),
        sa.Column("rating_value", sa.Float, nullable=True),
        sa.Column("strategy", sa.String(50), nullable=False, server_default="text-based"),
        # no fixed width: several models share the table
        sa.Column("embedding", Vector(), nullable=False),
        sa.Column("dimensions", sa.Integer, nullable=False),
        sa.Column("model_name", sa.String(100), nullable=False),
        sa.Column("character_length", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )

    for name, columns in _INDEXES.items():
        op.create_index(name, "entity_embeddings", columns)


def downgrade() -> None:
    for name in reversed(list(_INDEXES)):
        op.drop_index(name, table_name="entity_embeddings")
    op.drop_table("entity_embeddings")
