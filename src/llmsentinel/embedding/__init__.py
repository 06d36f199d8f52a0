# src/llmsentinel/embedding/__init__.py
"""
Embedding providers for drift scoring.
"""

from .base import BaseEmbeddingModel
from .cache import CacheStats, EmbeddingCache
from .client import EmbeddingResult, EmbeddingsClient
from .hashing import HashingEmbedding

__all__ = [
    "BaseEmbeddingModel",
    "CacheStats",
    "EmbeddingCache",
    "EmbeddingResult",
    "EmbeddingsClient",
    "HashingEmbedding",
]
