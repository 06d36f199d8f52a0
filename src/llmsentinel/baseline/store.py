# src/llmsentinel/baseline/store.py
"""
Per-endpoint baseline store.

Holds the exponential moving average (EMA) of response embeddings for every
endpoint. The in-memory map is authoritative while the process runs; the
durable store only receives snapshots, on the schedule chosen by the flush
policy, and is read once at start-up.

Snapshot writes are best effort: a failed write is logged and the in-memory
baseline is kept.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..exceptions import InvalidInputError
from ..models import Baseline, ensure_utc, utc_now
from ..storage.base import BaseTelemetryStore
from .flush import DebouncedFlushPolicy, FlushPolicy

logger = logging.getLogger(__name__)


class BaselineStore:
    """
    EMA baselines keyed by endpoint.

    Args:
        store: Durable store for snapshots. ``None`` keeps baselines in memory only.
        flush_policy: When to write snapshots. Defaults to DebouncedFlushPolicy().
        min_samples: Samples needed before a baseline is considered ready.
        learning_rate: EMA weight given to each new sample (alpha).
    """

    def __init__(
        self,
        store: Optional[BaseTelemetryStore] = None,
        flush_policy: Optional[FlushPolicy] = None,
        min_samples: int = 5,
        learning_rate: float = 0.1,
    ):
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError("learning_rate must be in (0, 1]")
        self._store = store
        self._flush_policy = flush_policy or DebouncedFlushPolicy()
        self.min_samples = min_samples
        self.learning_rate = learning_rate
        self._baselines: Dict[str, Baseline] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._dimension: Optional[int] = None

    @property
    def flush_policy(self) -> FlushPolicy:
        return self._flush_policy

    def get(self, endpoint: str) -> Optional[Baseline]:
        """Return a copy of the endpoint's baseline, or None."""
        baseline = self._baselines.get(endpoint)
        return baseline.model_copy(deep=True) if baseline else None

    def is_ready(self, endpoint: str) -> bool:
        baseline = self._baselines.get(endpoint)
        return baseline is not None and baseline.sample_count >= self.min_samples

    def all_baselines(self) -> List[Baseline]:
        return [b.model_copy(deep=True) for b in self._baselines.values()]

    def _check_dimension(self, embedding: Sequence[float]) -> None:
        if not embedding:
            raise InvalidInputError("Baseline sample must be a non-empty vector.")
        if self._dimension is not None and len(embedding) != self._dimension:
            raise InvalidInputError(
                f"Baseline sample has {len(embedding)} dimensions, expected {self._dimension}."
            )

    async def update(
        self,
        endpoint: str,
        embedding: Sequence[float],
        event_timestamp: Optional[datetime] = None,
    ) -> Baseline:
        """
        Fold one embedding into the endpoint's baseline.

        The first sample creates the baseline verbatim with count 1; later
        samples update each component as ``old * (1 - a) + new * a``.

        Returns:
            A copy of the updated baseline.

        Raises:
            InvalidInputError: If the embedding's length differs from the
                store's established dimensionality.
        """
        timestamp = ensure_utc(event_timestamp) if event_timestamp else utc_now()
        async with self._locks[endpoint]:
            self._check_dimension(embedding)
            current = self._baselines.get(endpoint)
            if current is None:
                updated = Baseline(
                    endpoint=endpoint,
                    embedding=list(embedding),
                    sample_count=1,
                    last_updated=timestamp,
                    created_at=utc_now(),
                )
                logger.info(f"Created baseline for endpoint '{endpoint}' ({len(embedding)} dimensions).")
            else:
                alpha = self.learning_rate
                updated = Baseline(
                    endpoint=endpoint,
                    embedding=[old * (1 - alpha) + new * alpha for old, new in zip(current.embedding, embedding)],
                    sample_count=current.sample_count + 1,
                    last_updated=max(current.last_updated, timestamp),
                    created_at=current.created_at,
                )
            self._baselines[endpoint] = updated
            if self._dimension is None:
                self._dimension = len(embedding)
            snapshot = updated.model_copy(deep=True)

        if self._flush_policy.should_flush_now(snapshot.sample_count):
            self._flush_policy.cancel(endpoint)
            await self._persist(snapshot)
        else:
            self._flush_policy.schedule_delayed(endpoint)
        return snapshot

    async def _persist(self, baseline: Baseline) -> bool:
        if self._store is None:
            return False
        try:
            await self._store.upsert_baseline(baseline)
            return True
        except Exception as e:
            logger.warning(f"Failed to persist baseline for endpoint '{baseline.endpoint}': {e}", exc_info=True)
            return False

    async def flush_due(self) -> int:
        """Persist every baseline whose deferred flush is due. Returns the number written."""
        written = 0
        for endpoint in self._flush_policy.due_keys():
            baseline = self.get(endpoint)
            if baseline is not None and await self._persist(baseline):
                written += 1
        return written

    async def flush_all(self) -> int:
        """Persist every baseline regardless of schedule (used at shutdown)."""
        written = 0
        for endpoint in list(self._baselines):
            self._flush_policy.cancel(endpoint)
            baseline = self.get(endpoint)
            if baseline is not None and await self._persist(baseline):
                written += 1
        logger.info(f"Flushed {written} baselines to durable storage.")
        return written

    async def run_flusher(self, interval: float = 1.0) -> None:
        """Background task: periodically write due snapshots until cancelled."""
        logger.debug(f"Baseline flusher started (interval {interval}s).")
        try:
            while True:
                await asyncio.sleep(interval)
                await self.flush_due()
        except asyncio.CancelledError:
            logger.debug("Baseline flusher stopped.")
            raise

    async def load_all(self) -> int:
        """
        Restore baselines from the durable store.

        Best effort: on failure the store starts empty. Returns the number of
        baselines loaded.
        """
        if self._store is None:
            return 0
        try:
            baselines = await self._store.load_baselines()
        except Exception as e:
            logger.warning(f"Could not load baselines, starting empty: {e}", exc_info=True)
            return 0

        loaded = 0
        for baseline in baselines:
            if self._dimension is None:
                self._dimension = baseline.dimension
            elif baseline.dimension != self._dimension:
                logger.warning(
                    f"Skipping stored baseline '{baseline.endpoint}' with {baseline.dimension} dimensions "
                    f"(expected {self._dimension})."
                )
                continue
            self._baselines[baseline.endpoint] = baseline
            loaded += 1
        logger.info(f"Loaded {loaded} baselines from durable storage.")
        return loaded
