# src/llmsentinel/observability/metrics.py
"""
In-process metrics registry for the analyzer.

Metrics are named with dotted names (``llm.latency_ms``) and dimensioned by
``key:value`` tag lists, the convention used by metrics backends such as
Datadog. The registry is the local sink for metric points: each point is
folded into a Counter, Gauge or Histogram keyed by its sorted tags.

Architecture:
    - MetricPoint: one submitted value (name, value, timestamp, tags, type)
    - Counter: monotonically increasing metric
    - Gauge: point-in-time value
    - Histogram: distribution with percentile calculations
    - MetricsRegistry: name -> metric, plus ``record(point)``
    - ProcessMetricsCollector: CPU/memory gauges via psutil

Thread Safety:
    All metric operations are thread-safe using locks.

Usage:
    >>> registry = MetricsRegistry()
    >>> registry.record(MetricPoint(name="llm.request.count", value=1, tags=["env:dev"]))
    >>> registry.counter("llm.request.count").get(["env:dev"])
    1.0
"""

from __future__ import annotations

import logging
import os
import random
import threading
from bisect import insort
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import psutil
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_PERCENTILES = [50, 90, 95, 99]

# Maximum samples to keep per histogram series
MAX_HISTOGRAM_SAMPLES = 10000

TagKey = Tuple[str, ...]


def tag_key(tags: Optional[Iterable[str]]) -> TagKey:
    """Order-independent key for a tag list."""
    return tuple(sorted(tags or ()))


# =============================================================================
# DATA MODELS
# =============================================================================


class MetricType(str, Enum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


class MetricPoint(BaseModel):
    """A single metric value as submitted to a sink."""

    name: str
    value: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    tags: List[str] = Field(default_factory=list)
    type: MetricType = MetricType.GAUGE


class MetricSnapshot(BaseModel):
    """Snapshot of one metric series."""

    name: str
    type: MetricType
    tags: List[str] = Field(default_factory=list)
    value: float = 0.0
    count: int = 0
    min: Optional[float] = None
    max: Optional[float] = None
    percentiles: Dict[int, float] = Field(default_factory=dict)


# =============================================================================
# METRIC CLASSES
# =============================================================================


class Counter:
    """
    A monotonically increasing counter.

    Args:
        name: Metric name.
    """

    def __init__(self, name: str):
        self.name = name
        self._values: Dict[TagKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def inc(self, value: float = 1.0, tags: Optional[Sequence[str]] = None) -> None:
        if value < 0:
            raise ValueError(f"Counter '{self.name}' cannot be decremented")
        with self._lock:
            self._values[tag_key(tags)] += value

    def get(self, tags: Optional[Sequence[str]] = None) -> float:
        with self._lock:
            return self._values.get(tag_key(tags), 0.0)

    def total(self) -> float:
        """Total across all tag sets."""
        with self._lock:
            return sum(self._values.values())

    def snapshots(self) -> List[MetricSnapshot]:
        with self._lock:
            return [
                MetricSnapshot(name=self.name, type=MetricType.COUNTER, tags=list(key), value=value)
                for key, value in self._values.items()
            ]


class Gauge:
    """
    A gauge holding the last value set per tag set.

    Args:
        name: Metric name.
    """

    def __init__(self, name: str):
        self.name = name
        self._values: Dict[TagKey, float] = {}
        self._lock = threading.Lock()

    def set(self, value: float, tags: Optional[Sequence[str]] = None) -> None:
        with self._lock:
            self._values[tag_key(tags)] = value

    def get(self, tags: Optional[Sequence[str]] = None) -> Optional[float]:
        with self._lock:
            return self._values.get(tag_key(tags))

    def snapshots(self) -> List[MetricSnapshot]:
        with self._lock:
            return [
                MetricSnapshot(name=self.name, type=MetricType.GAUGE, tags=list(key), value=value)
                for key, value in self._values.items()
            ]


@dataclass
class HistogramBucket:
    """Internal storage for one histogram series."""

    samples: List[float] = field(default_factory=list)
    count: int = 0
    sum: float = 0.0
    min_val: Optional[float] = None
    max_val: Optional[float] = None

    def add(self, value: float, max_samples: int = MAX_HISTOGRAM_SAMPLES) -> None:
        self.count += 1
        self.sum += value
        if self.min_val is None or value < self.min_val:
            self.min_val = value
        if self.max_val is None or value > self.max_val:
            self.max_val = value

        if len(self.samples) < max_samples:
            insort(self.samples, value)
        elif random.random() < max_samples / self.count:
            # Reservoir sampling once full
            self.samples[random.randint(0, max_samples - 1)] = value
            self.samples.sort()


class Histogram:
    """
    A distribution of observed values with percentile calculations.

    Args:
        name: Metric name.
        percentiles: Which percentiles to report in snapshots.
        max_samples: Maximum samples kept per series.
    """

    def __init__(
        self,
        name: str,
        percentiles: Optional[List[int]] = None,
        max_samples: int = MAX_HISTOGRAM_SAMPLES,
    ):
        self.name = name
        self.percentiles_to_track = percentiles or DEFAULT_PERCENTILES
        self.max_samples = max_samples
        self._buckets: Dict[TagKey, HistogramBucket] = defaultdict(HistogramBucket)
        self._lock = threading.Lock()

    def observe(self, value: float, tags: Optional[Sequence[str]] = None) -> None:
        with self._lock:
            self._buckets[tag_key(tags)].add(value, self.max_samples)

    def count(self, tags: Optional[Sequence[str]] = None) -> int:
        """Observation count for ``tags``, or across all series when ``tags`` is None."""
        with self._lock:
            if tags is None:
                return sum(b.count for b in self._buckets.values())
            bucket = self._buckets.get(tag_key(tags))
            return bucket.count if bucket else 0

    def mean(self, tags: Optional[Sequence[str]] = None) -> Optional[float]:
        with self._lock:
            bucket = self._buckets.get(tag_key(tags))
            if bucket and bucket.count > 0:
                return bucket.sum / bucket.count
            return None

    def percentile(self, p: int, tags: Optional[Sequence[str]] = None) -> Optional[float]:
        with self._lock:
            bucket = self._buckets.get(tag_key(tags))
            if not bucket or not bucket.samples:
                return None
            idx = min(int(len(bucket.samples) * p / 100), len(bucket.samples) - 1)
            return bucket.samples[idx]

    def snapshots(self) -> List[MetricSnapshot]:
        with self._lock:
            items = list(self._buckets.items())
        result = []
        for key, bucket in items:
            result.append(MetricSnapshot(
                name=self.name,
                type=MetricType.HISTOGRAM,
                tags=list(key),
                value=bucket.sum / bucket.count if bucket.count else 0.0,
                count=bucket.count,
                min=bucket.min_val,
                max=bucket.max_val,
                percentiles={
                    p: v for p in self.percentiles_to_track
                    if (v := self.percentile(p, key)) is not None
                },
            ))
        return result


# =============================================================================
# METRICS REGISTRY
# =============================================================================


class MetricsRegistry:
    """
    Central registry for all metrics.

    Usage:
        >>> registry = MetricsRegistry()
        >>> registry.counter("llm.request.count").inc(tags=["env:dev"])
        >>> registry.histogram("llm.latency_ms").observe(150.5)
    """

    def __init__(self):
        self._counters: Dict[str, Counter] = {}
        self._gauges: Dict[str, Gauge] = {}
        self._histograms: Dict[str, Histogram] = {}
        self._registry_lock = threading.Lock()

    def counter(self, name: str) -> Counter:
        """Get or create a counter."""
        with self._registry_lock:
            if name not in self._counters:
                self._counters[name] = Counter(name)
            return self._counters[name]

    def gauge(self, name: str) -> Gauge:
        """Get or create a gauge."""
        with self._registry_lock:
            if name not in self._gauges:
                self._gauges[name] = Gauge(name)
            return self._gauges[name]

    def histogram(self, name: str) -> Histogram:
        """Get or create a histogram."""
        with self._registry_lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name)
            return self._histograms[name]

    def record(self, point: MetricPoint) -> None:
        """Fold a submitted point into the matching metric."""
        if point.type == MetricType.COUNTER:
            self.counter(point.name).inc(point.value, point.tags)
        elif point.type == MetricType.HISTOGRAM:
            self.histogram(point.name).observe(point.value, point.tags)
        else:
            self.gauge(point.name).set(point.value, point.tags)

    def names(self) -> List[str]:
        with self._registry_lock:
            return sorted({*self._counters, *self._gauges, *self._histograms})

    def get_all_snapshots(self) -> List[MetricSnapshot]:
        with self._registry_lock:
            metrics = [*self._counters.values(), *self._gauges.values(), *self._histograms.values()]
        snapshots: List[MetricSnapshot] = []
        for metric in metrics:
            snapshots.extend(metric.snapshots())
        return snapshots

    def reset_all(self) -> None:
        with self._registry_lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


# =============================================================================
# PROCESS METRICS
# =============================================================================


class ProcessMetricsCollector:
    """
    Samples CPU and memory of the analyzer process and the host via psutil.

    Usage:
        >>> collector = ProcessMetricsCollector()
        >>> points = collector.collect(tags=["env:dev"])
    """

    def __init__(self, pid: Optional[int] = None):
        self._process = psutil.Process(pid or os.getpid())
        # Prime cpu_percent so the first real sample is meaningful
        self._process.cpu_percent(interval=None)

    def collect(self, tags: Optional[Sequence[str]] = None) -> List[MetricPoint]:
        tag_list = list(tags or [])
        mem_info = self._process.memory_info()
        virtual = psutil.virtual_memory()
        return [
            MetricPoint(name="sentinel.process.cpu_percent", value=self._process.cpu_percent(interval=None), tags=tag_list),
            MetricPoint(name="sentinel.process.memory_rss_bytes", value=float(mem_info.rss), tags=tag_list),
            MetricPoint(name="sentinel.system.memory_percent", value=float(virtual.percent), tags=tag_list),
        ]
