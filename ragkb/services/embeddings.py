"""
Batched text embedding with retry, timeout and dimensionality checks.
"""

import abc
import asyncio
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

import numpy as np
from langchain_community.embeddings.fastembed import FastEmbedEmbeddings
from openai import AsyncOpenAI

from ragkb.services.errors import DimensionMismatch, EmbeddingFailure
from ragkb.utils.logging_config import logger

EMBEDDING_DIMENSIONS = 1024
BATCH_SIZE = 100
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0

ProgressCallback = Callable[[int, int], Awaitable[None]]


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: list[float]
    model: str
    dimensions: int


class EmbeddingProvider(abc.ABC):
    """An external embedding model call."""

    @abc.abstractmethod
    async def embed_many(self, texts: Sequence[str], dimensions: int) -> list[list[float]]:
        """Returns one vector per input text, in input order."""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, model: str, api_key: Optional[str] = None):
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key or None)

    async def embed_many(self, texts: Sequence[str], dimensions: int) -> list[list[float]]:
        response = await self._client.embeddings.create(
            model=self.model, input=list(texts), dimensions=dimensions
        )
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]


class FastEmbedProvider(EmbeddingProvider):
    """
    Local FastEmbed model, loaded once per process. The output size is fixed
    by the model, so `dimensions` is only checked by the Embedder.
    """

    _models: dict[str, FastEmbedEmbeddings] = {}
    _lock: threading.Lock = threading.Lock()

    def __init__(self, model: str):
        self.model = model

    def _get_model(self) -> FastEmbedEmbeddings:
        model = self._models.get(self.model)
        if model is None:
            with self._lock:
                model = self._models.get(self.model)
                if model is None:  # Double-check after acquiring lock
                    logger.info(f"Initializing shared Embedding Model ({self.model})...")
                    try:
                        model = FastEmbedEmbeddings(model_name=self.model)
                    except (RuntimeError, ValueError, OSError) as e:
                        logger.error(f"Failed to initialize Embedding Model: {e}")
                        raise
                    self._models[self.model] = model
                    logger.info("Embedding Model initialized successfully.")
        return model

    async def embed_many(self, texts: Sequence[str], dimensions: int) -> list[list[float]]:
        model = await asyncio.to_thread(self._get_model)
        return await model.aembed_documents(list(texts))


class Embedder:
    """
    Turns texts into fixed-size vectors through an EmbeddingProvider.

    Inputs are sent in batches of at most `batch_size`, one batch at a time.
    Each batch gets `max_retries` attempts with exponential backoff
    (`retry_delay`, doubled per attempt) and a per-attempt timeout. A batch
    that exhausts its attempts fails the whole call with EmbeddingFailure.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        model: str,
        dimensions: int = EMBEDDING_DIMENSIONS,
        batch_size: int = BATCH_SIZE,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        timeout: Optional[float] = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.provider = provider
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    def model_info(self) -> dict:
        return {
            "model": self.model,
            "dimensions": self.dimensions,
            "batch_size": self.batch_size,
        }

    async def embed(self, text: str) -> EmbeddingResult:
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(
        self, texts: Sequence[str], on_progress: Optional[ProgressCallback] = None
    ) -> list[EmbeddingResult]:
        """
        Embeds texts in input order.

        Args:
            texts: The texts to embed.
            on_progress: Awaited with (embedded_count, total) after each batch.

        Raises:
            EmbeddingFailure: If a batch fails after all retries or returns
                vectors of the wrong size or count.
        """
        if not texts:
            return []

        results: list[EmbeddingResult] = []
        total = len(texts)
        for start in range(0, total, self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            vectors = await self._with_retry(batch)
            self._validate(vectors, len(batch))
            results.extend(
                EmbeddingResult(
                    embedding=[float(x) for x in vector],
                    model=self.model,
                    dimensions=self.dimensions,
                )
                for vector in vectors
            )
            if on_progress is not None:
                await on_progress(len(results), total)
        return results

    async def _with_retry(self, batch: list[str]) -> list[list[float]]:
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                return await asyncio.wait_for(
                    self.provider.embed_many(batch, self.dimensions),
                    timeout=self.timeout,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Embedding batch failed (attempt {attempt + 1}/{self.max_retries}): {e!r}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * 2**attempt)
        raise EmbeddingFailure(
            f"Embedding failed after {self.max_retries} attempts: {last_error}"
        ) from last_error

    def _validate(self, vectors: Sequence[Sequence[float]], expected_count: int) -> None:
        if len(vectors) != expected_count:
            raise EmbeddingFailure(
                f"Embedding provider returned {len(vectors)} vectors for {expected_count} inputs"
            )
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise DimensionMismatch(self.dimensions, len(vector))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors; 0.0 if either has zero norm.

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)
