# src/llmsentinel/observability/sink.py
"""
Metrics/events sink port and its local adapters.

A sink accepts batches of metric points and individual alert events. The
TelemetryEmitter is the only caller; it treats every sink failure as
non-fatal.
"""

import abc
import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional, Sequence

from ..exceptions import TelemetryExportError
from .alerts import AlertEvent, AlertLog
from .metrics import MetricPoint, MetricsRegistry

logger = logging.getLogger(__name__)


class BaseTelemetrySink(abc.ABC):
    """Abstract destination for metrics and alert events."""

    name: str = "base"

    @abc.abstractmethod
    async def submit_metrics(self, points: Sequence[MetricPoint]) -> None:
        """Deliver a batch of metric points."""

    @abc.abstractmethod
    async def create_event(self, alert: AlertEvent) -> None:
        """Deliver one alert event."""

    async def close(self) -> None:
        """Release any resources. The default implementation does nothing."""


class NullTelemetrySink(BaseTelemetrySink):
    """Discards everything (telemetry disabled)."""

    name = "null"

    async def submit_metrics(self, points: Sequence[MetricPoint]) -> None:
        logger.debug(f"Telemetry disabled; dropped {len(points)} metric points.")

    async def create_event(self, alert: AlertEvent) -> None:
        logger.debug(f"Telemetry disabled; dropped alert '{alert.title}'.")


class RegistryTelemetrySink(BaseTelemetrySink):
    """
    Local sink: metric points go into a MetricsRegistry, alerts into an
    optional JSONL AlertLog and a bounded in-memory list of recent alerts.

    Args:
        registry: Registry receiving metric points.
        alert_log: Optional JSONL log for alerts.
        recent_alerts_size: How many alerts to keep in memory.
    """

    name = "registry"

    def __init__(
        self,
        registry: Optional[MetricsRegistry] = None,
        alert_log: Optional[AlertLog] = None,
        recent_alerts_size: int = 100,
    ):
        self.registry = registry or MetricsRegistry()
        self.alert_log = alert_log
        self._recent: Deque[AlertEvent] = deque(maxlen=recent_alerts_size)

    @property
    def recent_alerts(self) -> List[AlertEvent]:
        return list(self._recent)

    async def submit_metrics(self, points: Sequence[MetricPoint]) -> None:
        for point in points:
            self.registry.record(point)

    async def create_event(self, alert: AlertEvent) -> None:
        self._recent.append(alert)
        if self.alert_log is None:
            return
        try:
            await asyncio.to_thread(self.alert_log.write, alert)
        except OSError as e:
            raise TelemetryExportError(sink_name=self.name, message=f"Could not write alert log: {e}") from e
