# src/llmsentinel/engines/anomaly.py
"""
Anomaly Detection Engine.

Flags drift scores that are statistical outliers relative to the endpoint's
own recent history, using a rolling z-score over a bounded window.
"""

import logging
import statistics
import threading
from collections import deque
from typing import Deque, Dict, Optional

from pydantic import BaseModel

from ..models import AnomalyResult

logger = logging.getLogger(__name__)


class AnomalyStats(BaseModel):
    """Summary of an endpoint's drift-score window."""

    count: int
    mean: float
    std_dev: float


class AnomalyDetector:
    """
    Rolling z-score detector, one window per endpoint.

    Args:
        window_size: Drift scores retained per endpoint.
        min_samples: Window length required before scoring.
        z_threshold: Absolute z-score above which a score is anomalous.
    """

    def __init__(self, window_size: int = 50, min_samples: int = 10, z_threshold: float = 3.0):
        self.window_size = window_size
        self.min_samples = min_samples
        self.z_threshold = z_threshold
        self._history: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def detect_anomaly(self, endpoint: str, drift_score: float) -> AnomalyResult:
        """
        Record ``drift_score`` and score it against the endpoint's window
        (the window includes the new score).
        """
        with self._lock:
            scores = self._history.get(endpoint)
            if scores is None:
                scores = deque(maxlen=self.window_size)
                self._history[endpoint] = scores
            scores.append(drift_score)
            if len(scores) < self.min_samples:
                return AnomalyResult()
            window = list(scores)

        mean = statistics.fmean(window)
        std_dev = statistics.pstdev(window, mu=mean)
        z_score = (drift_score - mean) / std_dev if std_dev > 0 else 0.0
        is_anomaly = abs(z_score) > self.z_threshold

        if is_anomaly:
            logger.info(f"Drift anomaly on '{endpoint}': score={drift_score:.4f} z={z_score:.2f} (mean {mean:.4f}, std {std_dev:.4f})")

        return AnomalyResult(
            is_anomaly=is_anomaly,
            z_score=z_score,
            threshold=mean + self.z_threshold * std_dev,
            mean=mean,
            std_dev=std_dev,
        )

    def get_stats(self, endpoint: str) -> Optional[AnomalyStats]:
        with self._lock:
            scores = list(self._history.get(endpoint, ()))
        if not scores:
            return None
        mean = statistics.fmean(scores)
        return AnomalyStats(count=len(scores), mean=mean, std_dev=statistics.pstdev(scores, mu=mean))

    def clear_history(self, endpoint: str) -> None:
        with self._lock:
            self._history.pop(endpoint, None)

    def clear_all_history(self) -> None:
        with self._lock:
            self._history.clear()
