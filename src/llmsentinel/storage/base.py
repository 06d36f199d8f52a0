# src/llmsentinel/storage/base.py
"""
Abstract Base Class for durable telemetry storage backends.

The analyzer persists two kinds of records: enriched events (append-only,
one row per analyzed message) and endpoint baselines (one row per endpoint,
replaced on every snapshot). Concrete implementations handle the specifics
of storing data (SQLite, in-memory).
"""

import abc
from typing import Any, Dict, List

from ..models import Baseline, EnrichedEvent


class BaseTelemetryStore(abc.ABC):
    """
    Abstract Base Class for the analyzer's durable store.

    Implementations raise ``StorageError`` on failure; callers in the
    pipeline decide whether a failure is fatal (it never is for a single
    event or baseline write).
    """

    @abc.abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the storage backend with given configuration.

        Args:
            config: Backend-specific configuration dictionary (the
                    ``[storage]`` section, e.g. path and table names).
        """

    @abc.abstractmethod
    async def write_event(self, enriched: EnrichedEvent) -> None:
        """
        Append one enriched event. Redelivered events produce duplicate rows;
        deduplication is left to the warehouse.
        """

    @abc.abstractmethod
    async def upsert_baseline(self, baseline: Baseline) -> None:
        """
        Store a baseline snapshot, replacing any existing row for its endpoint
        (delete by key, then insert).
        """

    @abc.abstractmethod
    async def load_baselines(self) -> List[Baseline]:
        """Return every persisted baseline."""

    @abc.abstractmethod
    async def count_events(self) -> int:
        """Number of stored enriched events."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release connections and other resources."""
