# src/llmsentinel/embedding/hashing.py
"""
Deterministic character n-gram hashing embedder.

Used by the CLI's ``--offline`` mode so the full pipeline runs without model
credentials. Texts that share vocabulary land close together, which is all
drift scoring needs for local replays.
"""

import hashlib
import math

from .base import BaseEmbeddingModel


class HashingEmbedding(BaseEmbeddingModel):
    """Embed text by hashing character trigrams into a fixed number of buckets."""

    def __init__(self, dimension: int = 768):
        self.dimension = dimension

    @property
    def model_name(self) -> str:
        return f"hashing-{self.dimension}"

    def _bucket(self, ngram: str) -> int:
        digest = hashlib.blake2b(ngram.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self.dimension

    async def generate_embedding(self, text: str) -> list[float]:
        embedding = [0.0] * self.dimension
        for word in text.lower().split():
            for i in range(max(1, len(word) - 2)):
                embedding[self._bucket(word[i:i + 3])] += 1.0

        magnitude = math.sqrt(math.fsum(x * x for x in embedding))
        if magnitude > 0:
            embedding = [x / magnitude for x in embedding]
        return embedding
