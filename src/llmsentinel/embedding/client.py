# src/llmsentinel/embedding/client.py
"""
Embeddings client used by the drift engine.

Wraps an ordered chain of embedding models (capability-equivalent variants of
the same service) behind a call that never raises:

1. Look the text up in the embedding cache.
2. Try each model in order; the first non-empty vector wins and is cached.
3. If every model fails, return a low-information random vector flagged as
   degraded. Degraded vectors are never cached.
"""

import logging
import random
import time
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from ..exceptions import EmbeddingError
from .base import BaseEmbeddingModel
from .cache import CacheStats, EmbeddingCache

logger = logging.getLogger(__name__)

FALLBACK_MODEL_NAME = "fallback"
FALLBACK_SCALE = 0.01


class EmbeddingResult(BaseModel):
    """A vector together with where it came from."""

    vector: list[float]
    model: str
    cached: bool = False
    degraded: bool = False
    latency_ms: float = Field(default=0.0, ge=0)


class EmbeddingsClient:
    """
    Ordered fallback chain of embedding models with caching.

    Args:
        models: Models tried in order. May be empty, in which case every call
            returns the degraded fallback vector.
        cache: Optional cache; ``None`` disables caching.
        dimension: Length of the fallback vector.
        rng: Random source for the fallback vector.
    """

    def __init__(
        self,
        models: Sequence[BaseEmbeddingModel],
        cache: Optional[EmbeddingCache] = None,
        dimension: int = 768,
        rng: Optional[random.Random] = None,
    ):
        self._models = list(models)
        self._cache = cache
        self._dimension = dimension
        self._rng = rng or random.Random()
        self._initialized = False

    @property
    def model_names(self) -> list[str]:
        return [m.model_name for m in self._models]

    async def initialize(self) -> None:
        """Initialize every model; models that fail are dropped from the chain."""
        if self._initialized:
            return
        ready: list[BaseEmbeddingModel] = []
        for model in self._models:
            try:
                await model.initialize()
                ready.append(model)
            except Exception as e:
                logger.warning(f"Embedding model '{model.model_name}' failed to initialize, skipping: {e}")
        self._models = ready
        self._initialized = True
        logger.info(f"Embeddings client ready with models: {self.model_names or ['<fallback only>']}")

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed ``text``; never raises."""
        start = time.perf_counter()

        if self._cache is not None:
            cached = self._cache.get(text)
            if cached is not None:
                return EmbeddingResult(vector=cached, model="cache", cached=True)

        for model in self._models:
            try:
                vector = await model.generate_embedding(text)
            except EmbeddingError as e:
                logger.warning(f"{e}; trying next model variant.")
                continue
            except Exception as e:
                logger.warning(f"Unexpected failure from embedding model '{model.model_name}': {e}", exc_info=True)
                continue
            if not vector:
                logger.warning(f"Embedding model '{model.model_name}' returned an empty vector; trying next model variant.")
                continue
            if self._cache is not None:
                self._cache.set(text, vector)
            return EmbeddingResult(
                vector=vector,
                model=model.model_name,
                latency_ms=(time.perf_counter() - start) * 1000,
            )

        logger.error(f"All embedding models failed ({self.model_names}); returning degraded fallback vector.")
        return EmbeddingResult(
            vector=self._fallback_vector(),
            model=FALLBACK_MODEL_NAME,
            degraded=True,
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    async def get_embedding(self, text: str) -> list[float]:
        """Vector-only convenience wrapper around :meth:`embed`."""
        result = await self.embed(text)
        return result.vector

    def _fallback_vector(self) -> list[float]:
        return [self._rng.random() * FALLBACK_SCALE for _ in range(self._dimension)]

    def get_cache_stats(self) -> Optional[CacheStats]:
        """Cache counters, or None when caching is disabled."""
        if self._cache is None:
            return None
        return self._cache.stats()

    def get_cache_hit_rate(self) -> Optional[float]:
        """Hit rate for the cost optimizer; None until the cache has seen a lookup."""
        stats = self.get_cache_stats()
        if stats is None or stats.hits + stats.misses == 0:
            return None
        return stats.hit_rate

    async def close(self) -> None:
        for model in self._models:
            try:
                await model.close()
            except Exception as e:
                logger.warning(f"Error closing embedding model '{model.model_name}': {e}")
