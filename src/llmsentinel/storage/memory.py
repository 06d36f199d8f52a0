# src/llmsentinel/storage/memory.py
"""
In-memory telemetry store.

Used by tests and by CLI runs configured with ``backend = "memory"``.
Nothing survives the process.
"""

import logging
from typing import Any, Dict, List

from ..models import Baseline, EnrichedEvent
from .base import BaseTelemetryStore

logger = logging.getLogger(__name__)


class InMemoryTelemetryStore(BaseTelemetryStore):
    """Keeps events in a list and baselines in a dict keyed by endpoint."""

    def __init__(self) -> None:
        self.events: List[EnrichedEvent] = []
        self.baselines: Dict[str, Baseline] = {}

    async def initialize(self, config: Dict[str, Any]) -> None:
        logger.debug("In-memory telemetry store initialized.")

    async def write_event(self, enriched: EnrichedEvent) -> None:
        self.events.append(enriched)

    async def upsert_baseline(self, baseline: Baseline) -> None:
        self.baselines.pop(baseline.endpoint, None)
        self.baselines[baseline.endpoint] = baseline.model_copy(deep=True)

    async def load_baselines(self) -> List[Baseline]:
        return [b.model_copy(deep=True) for b in self.baselines.values()]

    async def count_events(self) -> int:
        return len(self.events)

    async def close(self) -> None:
        pass
