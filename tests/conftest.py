"""
conftest.py: pytest fixtures for the expertise embedding service.

No PostgreSQL is needed: pgvector SQL is replaced by an in-memory repository that
computes the same distances, and the embedding endpoint is served by an
httpx.MockTransport.
"""

import asyncio
import json
import math
import os
import random
from typing import Any, Dict, List, Optional

import httpx
import pytest

os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("JSON_LOGS", "false")

from api.features.similarity.metrics import SimilarityMetric, SortBy  # noqa: E402
from core.settings import EmbeddingSettings, SimilaritySettings  # noqa: E402

EMBEDDING_URL = "http://embeddings.test/v1/embeddings"


def fake_vector(text: str, width: int = 4) -> List[float]:
    """Deterministic, non-zero vector derived from the text."""
    seed = sum(ord(c) for c in text)
    return [float(len(text) % 17 + 1)] + [float((seed * (i + 3)) % 11 + 1) for i in range(width - 1)]


class FakeEmbeddingEndpoint:
    """OpenAI-compatible embeddings endpoint with switchable failure modes."""

    def __init__(self, width: int = 4, delay: float = 0.0):
        self.width = width
        self.delay = delay
        self.requests: List[Dict[str, Any]] = []
        self.failures_before_success = 0
        self.short_by = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if self.failures_before_success > 0:
                self.failures_before_success -= 1
                return httpx.Response(503, text="busy")
            texts = body["input"]
            data = [
                {"index": i, "embedding": fake_vector(t, self.width)}
                for i, t in enumerate(texts)
            ]
            if self.short_by:
                data = data[: len(data) - self.short_by]
            return httpx.Response(200, json={"data": data, "model": body["model"]})
        finally:
            self.in_flight -= 1

    @property
    def batch_sizes(self) -> List[int]:
        return sorted(len(r["input"]) for r in self.requests)


@pytest.fixture
def endpoint() -> FakeEmbeddingEndpoint:
    return FakeEmbeddingEndpoint()


@pytest.fixture
def embedding_settings() -> EmbeddingSettings:
    return EmbeddingSettings(
        EMBEDDING_SERVICE_URL=EMBEDDING_URL,
        EMBEDDING_MODEL_ID="test-model",
        EMBEDDING_DIMENSIONS=4,
        EMBEDDING_BATCH_SIZE=32,
        EMBEDDING_MAX_RETRIES=3,
        EMBEDDING_RETRY_BACKOFF_MS=0,
        EMBEDDING_TIMEOUT_SECONDS=5,
        EMBEDDING_MAX_PARALLEL_BATCHES=3,
    )


@pytest.fixture
def similarity_settings() -> SimilaritySettings:
    return SimilaritySettings(
        SIMILARITY_THRESHOLD=0.0,
        SIMILARITY_MAX_CANDIDATES=100,
        SIMILARITY_FILTER_BY_ENTITY_TYPE=True,
    )


def _distance(metric: SimilarityMetric, a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    if metric is SimilarityMetric.COSINE:
        norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
        return 1.0 - dot / norm
    if metric is SimilarityMetric.EUCLIDEAN:
        return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))
    return -dot


class FakeEmbeddingRepository:
    """In-memory stand-in for EmbeddingRepository's read side.

    Applies the same predicates, ORDER BY and LIMIT the SQL does.
    """

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []

    def add(
        self,
        uri: str,
        entity_type: str,
        embedding: List[float],
        *,
        metric_type: Optional[str] = "general",
        rating: Optional[float] = None,
        order_id: int = 1,
        length: Optional[int] = None,
        model: str = "test-model",
    ) -> None:
        self.rows.append(
            {
                "entity_uri": uri,
                "entity_type": entity_type,
                "metric_type": metric_type,
                "order_id": order_id,
                "rating_value": rating,
                "character_length": length,
                "dimensions": len(embedding),
                "model_name": model,
                "embedding": embedding,
            }
        )

    @staticmethod
    def _public(row: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in row.items() if k not in ("embedding", "dimensions", "model_name")}

    async def find_similar(
        self,
        query_vector,
        *,
        exclude_uri,
        metric,
        sort_by,
        limit,
        metric_type=None,
        entity_type=None,
        dimensions=None,
        model_name=None,
        min_length=None,
        max_length=None,
    ):
        self.calls.append(
            {
                "metric_type": metric_type,
                "entity_type": entity_type,
                "dimensions": dimensions,
                "model_name": model_name,
                "min_length": min_length,
                "max_length": max_length,
                "limit": limit,
                "sort_by": sort_by,
            }
        )
        matches = []
        for row in self.rows:
            if row["entity_uri"] == exclude_uri:
                continue
            if metric_type is not None and row["metric_type"] != metric_type:
                continue
            if entity_type is not None and row["entity_type"] != entity_type:
                continue
            if dimensions is not None and row["dimensions"] != dimensions:
                continue
            if model_name is not None and row["model_name"] != model_name:
                continue
            if min_length is not None and max_length is not None:
                length = row["character_length"]
                if length is None or not min_length <= length <= max_length:
                    continue
            result = self._public(row)
            result["distance"] = _distance(metric, query_vector, row["embedding"])
            matches.append(result)

        if sort_by is SortBy.SIMILARITY:
            matches.sort(key=lambda r: r["distance"])
        else:
            rated = [r for r in matches if r["rating_value"] is not None]
            unrated = [r for r in matches if r["rating_value"] is None]
            sign = -1 if sort_by is SortBy.BEST_RATED else 1
            rated.sort(key=lambda r: (sign * r["rating_value"], r["distance"]))
            unrated.sort(key=lambda r: r["distance"])
            matches = rated + unrated
        return matches[:limit]

    async def find_rated(self, *, entity_type=None, metric_types=None, exclude_uri=None, limit=1000):
        rows = [
            self._public(r)
            for r in self.rows
            if r["rating_value"] is not None
            and (not exclude_uri or r["entity_uri"] != exclude_uri)
            and (entity_type is None or r["entity_type"] == entity_type)
            and (not metric_types or r["metric_type"] in metric_types)
        ]
        rows.sort(key=lambda r: (-r["rating_value"], r["entity_uri"]))
        return rows[:limit]


@pytest.fixture
def fake_repository() -> FakeEmbeddingRepository:
    return FakeEmbeddingRepository()


@pytest.fixture
def repository_factory(fake_repository):
    return lambda session: fake_repository


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


class FakeSession:
    """Records commits and rollbacks; the repository is faked separately."""

    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1

    async def close(self):
        pass


@pytest.fixture
def db_session() -> FakeSession:
    return FakeSession()


class InMemoryVectorStore:
    """Write-side stand-in for EmbeddingRepository, keyed like the real table."""

    def __init__(self):
        self.records: List[Any] = []

    def __call__(self, session):
        return self

    async def delete_scope(self, order_id, metric_type):
        keep, drop = [], []
        for r in self.records:
            in_scope = r.order_id == order_id and (metric_type is None or r.metric_type == metric_type)
            (drop if in_scope else keep).append(r)
        self.records = keep
        return len(drop)

    async def replace_scope(self, order_id, metric_type, entities):
        deleted = await self.delete_scope(order_id, metric_type)
        self.records.extend(entities)
        return deleted, len(entities)

    async def delete_all(self):
        deleted = len(self.records)
        self.records = []
        return deleted


@pytest.fixture
def vector_store(monkeypatch) -> InMemoryVectorStore:
    from api.features.embeddings import vector_store as vector_store_module

    store = InMemoryVectorStore()
    monkeypatch.setattr(vector_store_module, "EmbeddingRepository", store)
    return store
