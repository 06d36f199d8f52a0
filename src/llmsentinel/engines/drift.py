# src/llmsentinel/engines/drift.py
"""
Drift engine: how far a response sits from its endpoint's baseline.

Each successful response is embedded, compared with the endpoint's EMA
baseline by cosine similarity, and then folded into that baseline. The first
response for an endpoint seeds the baseline and reports no drift.
"""

import logging
import time

from ..baseline.store import BaselineStore
from ..embedding.client import EmbeddingsClient
from ..exceptions import EmbeddingError
from ..models import DriftResult, TelemetryEvent
from ..utils.vector import cosine_similarity

logger = logging.getLogger(__name__)


def baseline_id_for(endpoint: str) -> str:
    return f"baseline:{endpoint}"


class DriftEngine:
    """Computes DriftResult for telemetry events."""

    def __init__(self, embeddings: EmbeddingsClient, baselines: BaselineStore):
        self._embeddings = embeddings
        self._baselines = baselines

    async def compute_drift(self, event: TelemetryEvent) -> DriftResult:
        start = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - start) * 1000

        if event.is_error or not event.has_response:
            return DriftResult(baseline_id=None, processing_time_ms=elapsed_ms())

        endpoint = event.endpoint
        baseline_id = baseline_id_for(endpoint)

        try:
            result = await self._embeddings.embed(event.response)
        except EmbeddingError as e:
            logger.warning(f"Embedding failed for request '{event.request_id}': {e}")
            return DriftResult(baseline_id=f"{baseline_id}:error", processing_time_ms=elapsed_ms())

        if result.degraded:
            logger.warning(f"Degraded embedding for request '{event.request_id}'; drift not scored.")
            return DriftResult(baseline_id=f"{baseline_id}:error", processing_time_ms=elapsed_ms())

        baseline = self._baselines.get(endpoint)
        if baseline is None:
            await self._baselines.update(endpoint, result.vector, event.timestamp)
            logger.debug(f"Seeded baseline for endpoint '{endpoint}' from request '{event.request_id}'.")
            return DriftResult(baseline_id=baseline_id, baseline_ready=False, processing_time_ms=elapsed_ms())

        similarity = cosine_similarity(result.vector, baseline.embedding)
        similarity = max(0.0, min(1.0, similarity))
        drift = max(0.0, min(1.0, 1.0 - similarity))

        await self._baselines.update(endpoint, result.vector, event.timestamp)

        return DriftResult(
            similarity_score=similarity,
            drift_score=drift,
            baseline_ready=self._baselines.is_ready(endpoint),
            baseline_id=baseline_id,
            processing_time_ms=elapsed_ms(),
        )
