# src/llmsentinel/storage/__init__.py
"""
Durable storage for enriched events and baselines.
"""

from ..config import StorageBackend, StorageConfig
from .base import BaseTelemetryStore
from .memory import InMemoryTelemetryStore
from .sqlite_store import SqliteTelemetryStore


def create_store(config: StorageConfig) -> BaseTelemetryStore:
    """Instantiate (but do not initialize) the configured backend."""
    if config.backend == StorageBackend.MEMORY:
        return InMemoryTelemetryStore()
    return SqliteTelemetryStore()


__all__ = [
    "BaseTelemetryStore",
    "InMemoryTelemetryStore",
    "SqliteTelemetryStore",
    "create_store",
]
