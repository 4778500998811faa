"""Batch embedding generation against an OpenAI-compatible ``/v1/embeddings`` endpoint.

Context texts are split into fixed-size batches and pushed through a bounded pool of
worker coroutines. Each worker owns the retry loop of the batch it holds; the first
batch that exhausts its retries, or the aggregate timeout, fails the whole call.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import structlog

from api.features.embeddings.exceptions import (
    ConfigurationError,
    GenerationFailure,
    TransientServiceError,
)
from api.features.embeddings.models import (
    BatchConfiguration,
    EmbeddingBatchResult,
    EmbeddingModelDescriptor,
)
from core.settings import EmbeddingSettings

logger = structlog.get_logger("embeddings.generator")

Batch = List[Tuple[str, str]]


class BatchEmbeddingGenerator:
    """Turns ``entity_uri -> context`` maps into ``entity_uri -> vector`` maps."""

    def __init__(
        self,
        settings: EmbeddingSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport

    @property
    def service_url(self) -> str:
        return (self.settings.EMBEDDING_SERVICE_URL or "").strip()

    @property
    def default_model(self) -> EmbeddingModelDescriptor:
        return EmbeddingModelDescriptor(
            model_id=self.settings.EMBEDDING_MODEL_ID,
            dimensions=self.settings.EMBEDDING_DIMENSIONS,
            input_type=self.settings.EMBEDDING_INPUT_TYPE,
        )

    def validate_configuration(self) -> None:
        """Raise ConfigurationError unless URL, model id and dimensions are usable."""
        if not self.service_url:
            raise ConfigurationError("No embedding service configured")
        if not self.settings.EMBEDDING_MODEL_ID.strip():
            raise ConfigurationError("No embedding model configured")
        if self.settings.EMBEDDING_DIMENSIONS <= 0:
            raise ConfigurationError(
                "Embedding dimensions must be positive",
                {"dimensions": self.settings.EMBEDDING_DIMENSIONS},
            )

    def is_configured(self) -> bool:
        try:
            self.validate_configuration()
            return True
        except ConfigurationError:
            return False

    def get_batch_configuration(self) -> BatchConfiguration:
        return BatchConfiguration(
            service_url=self.service_url,
            model_id=self.settings.EMBEDDING_MODEL_ID,
            dimensions=self.settings.EMBEDDING_DIMENSIONS,
            input_type=self.settings.EMBEDDING_INPUT_TYPE,
            batch_size=self.settings.EMBEDDING_BATCH_SIZE,
            max_retries=self.settings.EMBEDDING_MAX_RETRIES,
            retry_backoff_ms=self.settings.EMBEDDING_RETRY_BACKOFF_MS,
            timeout_seconds=self.settings.EMBEDDING_TIMEOUT_SECONDS,
            max_parallel_batches=self.settings.EMBEDDING_MAX_PARALLEL_BATCHES,
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        api_key = self.settings.EMBEDDING_API_KEY.get_secret_value()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return httpx.AsyncClient(
            timeout=float(self.settings.EMBEDDING_TIMEOUT_SECONDS),
            headers=headers,
            transport=self._transport,
        )

    async def check_availability(self) -> bool:
        """GET the service docs page; never raises."""
        if not self.service_url:
            return False
        docs_url = self.service_url.replace("/v1/embeddings", "/docs")
        try:
            async with self._client() as client:
                resp = await client.get(docs_url)
            available = resp.is_success
        except httpx.HTTPError as e:
            logger.warning("embedding_service_unreachable", url=docs_url, error=str(e))
            return False
        logger.info(
            "embedding_service_availability",
            url=docs_url,
            status_code=resp.status_code,
            available=available,
        )
        return available

    def partition(self, contexts: Mapping[str, str]) -> List[Batch]:
        """Drop empty contexts and split the rest into batches of EMBEDDING_BATCH_SIZE."""
        entries = [
            (uri, context)
            for uri, context in contexts.items()
            if context is not None and context.strip()
        ]
        size = self.settings.EMBEDDING_BATCH_SIZE
        return [entries[i : i + size] for i in range(0, len(entries), size)]

    async def generate(
        self,
        contexts: Mapping[str, str],
        order_id: int,
        model: Optional[EmbeddingModelDescriptor] = None,
    ) -> EmbeddingBatchResult:
        """Embed every non-empty context.

        Raises:
            ConfigurationError: no service URL / model configured.
            GenerationFailure: a batch exhausted its retries or the call timed out.
        """
        descriptor = model or self.default_model
        batches = self.partition(contexts)
        skipped = len(contexts) - sum(len(b) for b in batches)

        if not batches:
            logger.info(
                "embedding_generation_skipped",
                order_id=order_id,
                reason="no_contexts",
                skipped=skipped,
            )
            return EmbeddingBatchResult(
                model_name=descriptor.model_id, dimensions=descriptor.dimensions
            )

        self.validate_configuration()

        total_timeout = self.settings.EMBEDDING_TIMEOUT_SECONDS * len(batches)
        workers = min(self.settings.EMBEDDING_MAX_PARALLEL_BATCHES, len(batches))
        start_time = time.time()

        logger.info(
            "embedding_generation_started",
            order_id=order_id,
            entities=sum(len(b) for b in batches),
            skipped=skipped,
            batches=len(batches),
            workers=workers,
            model=descriptor.model_id,
            dimensions=descriptor.dimensions,
            timeout_seconds=total_timeout,
        )

        queue: asyncio.Queue[Tuple[int, Batch]] = asyncio.Queue()
        for index, batch in enumerate(batches):
            queue.put_nowait((index, batch))

        embeddings: Dict[str, List[float]] = {}
        counters = {"succeeded": 0, "failed": 0}

        async with self._client() as client:
            tasks = [
                asyncio.create_task(
                    self._worker(client, queue, descriptor, embeddings, counters)
                )
                for _ in range(workers)
            ]
            done, pending = await asyncio.wait(
                tasks, timeout=total_timeout, return_when=asyncio.FIRST_EXCEPTION
            )
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        failure = next(
            (t.exception() for t in done if not t.cancelled() and t.exception()),
            None,
        )
        elapsed = time.time() - start_time

        logger.info(
            "embedding_generation_finished",
            order_id=order_id,
            successful_batches=counters["succeeded"],
            failed_batches=counters["failed"],
            embeddings=len(embeddings),
            processing_time=round(elapsed, 3),
        )

        if failure is not None:
            raise GenerationFailure(
                "Failed to generate embeddings in batches",
                {"order_id": order_id, "error": str(failure)},
            ) from failure
        if pending:
            raise GenerationFailure(
                "Failed to generate embeddings in batches",
                {
                    "order_id": order_id,
                    "error": f"timed out after {total_timeout}s",
                    "completed_batches": counters["succeeded"],
                    "total_batches": len(batches),
                },
            )

        dimensions = len(next(iter(embeddings.values())))
        character_lengths = {
            uri: len(context) for batch in batches for uri, context in batch
        }
        return EmbeddingBatchResult(
            embeddings=embeddings,
            character_lengths=character_lengths,
            model_name=descriptor.model_id,
            dimensions=dimensions,
            batch_count=len(batches),
            successful_batches=counters["succeeded"],
            failed_batches=counters["failed"],
        )

    async def embed_text(
        self, text: str, model: Optional[EmbeddingModelDescriptor] = None
    ) -> List[float]:
        """Embed one query text on the fly."""
        if not text or not text.strip():
            raise GenerationFailure("Cannot embed an empty query text")
        self.validate_configuration()
        descriptor = model or self.default_model
        async with self._client() as client:
            vectors = await self._embed_with_retry(
                client, 0, [("query", text)], descriptor
            )
        return vectors[0]

    async def _worker(
        self,
        client: httpx.AsyncClient,
        queue: "asyncio.Queue[Tuple[int, Batch]]",
        descriptor: EmbeddingModelDescriptor,
        embeddings: Dict[str, List[float]],
        counters: Dict[str, int],
    ) -> None:
        while True:
            try:
                index, batch = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                vectors = await self._embed_with_retry(client, index, batch, descriptor)
            except GenerationFailure:
                counters["failed"] += 1
                raise
            # no await in this loop, so concurrent workers never interleave writes
            for (uri, _), vector in zip(batch, vectors):
                embeddings[uri] = vector
            counters["succeeded"] += 1

    async def _embed_with_retry(
        self,
        client: httpx.AsyncClient,
        index: int,
        batch: Batch,
        descriptor: EmbeddingModelDescriptor,
    ) -> List[List[float]]:
        """Sequential retries of one batch with ``attempt * backoff`` sleeps."""
        texts = [context for _, context in batch]
        max_retries = self.settings.EMBEDDING_MAX_RETRIES
        last_error: Optional[Exception] = None

        for attempt in range(1, max_retries + 1):
            try:
                return await self._request_embeddings(client, texts, descriptor)
            except TransientServiceError as e:
                last_error = e
                if attempt == max_retries:
                    break
                delay = self.settings.EMBEDDING_RETRY_BACKOFF_MS * attempt / 1000.0
                logger.warning(
                    "embedding_batch_failed_retrying",
                    batch_index=index,
                    batch_size=len(batch),
                    attempt=attempt,
                    max_retries=max_retries,
                    delay=delay,
                    error=e.message,
                )
                await asyncio.sleep(delay)

        logger.error(
            "embedding_batch_failed",
            batch_index=index,
            batch_size=len(batch),
            attempts=max_retries,
            error=str(last_error),
        )
        raise GenerationFailure(
            f"Batch {index} failed after {max_retries} attempts",
            {"batch_index": index, "error": str(last_error)},
        )

    async def _request_embeddings(
        self,
        client: httpx.AsyncClient,
        texts: List[str],
        descriptor: EmbeddingModelDescriptor,
    ) -> List[List[float]]:
        """One POST; every failure mode surfaces as TransientServiceError."""
        body = {
            "input": texts,
            "model": descriptor.model_id,
            "dimensions": descriptor.dimensions,
        }
        try:
            resp = await client.post(self.service_url, json=body)
        except httpx.HTTPError as e:
            raise TransientServiceError(f"request failed: {e!r}") from e

        if not resp.is_success:
            raise TransientServiceError(
                f"HTTP {resp.status_code} from embedding endpoint",
                status_code=resp.status_code,
                details={"body": resp.text[:500]},
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise TransientServiceError("response body is not valid JSON") from e

        return parse_embedding_response(payload, len(texts))


def parse_embedding_response(payload: Any, expected: int) -> List[List[float]]:
    """Validate an embeddings response and return vectors in request order."""
    if not isinstance(payload, dict) or payload.get("data") is None:
        raise TransientServiceError("response has no 'data' field")
    data = payload["data"]
    if not isinstance(data, list) or len(data) != expected:
        raise TransientServiceError(
            f"expected {expected} embeddings, got "
            f"{len(data) if isinstance(data, list) else type(data).__name__}"
        )

    vectors: List[Optional[List[float]]] = [None] * expected
    for position, item in enumerate(data):
        if not isinstance(item, dict):
            raise TransientServiceError(f"item {position} is not an object")
        index = item.get("index", position)
        if not isinstance(index, int) or not 0 <= index < expected or vectors[index] is not None:
            raise TransientServiceError(f"item {position} has invalid index {index!r}")
        embedding = item.get("embedding")
        if not embedding or not isinstance(embedding, list):
            raise TransientServiceError(f"empty embedding for input {index}")
        try:
            vectors[index] = [float(v) for v in embedding]
        except (TypeError, ValueError) as e:
            raise TransientServiceError(f"non-numeric embedding for input {index}") from e

    width = len(vectors[0])  # type: ignore[arg-type]
    if any(len(v) != width for v in vectors):  # type: ignore[arg-type]
        raise TransientServiceError("embeddings in one response differ in width")
    return vectors  # type: ignore[return-value]
