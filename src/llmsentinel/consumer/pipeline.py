# src/llmsentinel/consumer/pipeline.py
"""
The per-message analysis pipeline.

    received -> parsed -> analyzed -> persisted -> acknowledged
    (parse or analysis failure)   -> rejected (nack, redelivered later)

Parsing and analysis errors reject the message. Everything after analysis
(alerts, metrics, persistence) is fault-isolated: a failure there is logged
and the message is still acknowledged.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..embedding.client import EmbeddingsClient
from ..engines.anomaly import AnomalyDetector
from ..engines.cost import CostOptimizer
from ..engines.drift import DriftEngine
from ..engines.patterns import PatternDetection, PatternDetector, PatternType
from ..engines.safety import SafetyEngine
from ..exceptions import MessageParseError
from ..models import EnrichedEvent, TelemetryEvent
from ..observability.emitter import TelemetryEmitter
from ..storage.base import BaseTelemetryStore
from .message import InboundMessage, parse_message

logger = logging.getLogger(__name__)


class PipelineStats(BaseModel):
    """Counters exposed for the CLI summary and health checks."""

    received: int = 0
    analyzed: int = 0
    acked: int = 0
    nacked: int = 0
    parse_errors: int = 0
    analysis_errors: int = 0
    persist_failures: int = 0
    high_risk_events: int = 0
    anomalies: int = 0
    pattern_alerts: int = 0


class AnalysisPipeline:
    """
    Orchestrates the engines for one message at a time; safe to run many
    messages concurrently.

    Args:
        drift_engine, safety_engine: Per-event engines, run concurrently.
        anomaly_detector: Scores the drift result.
        cost_optimizer, pattern_detector: Cross-event ledgers.
        store: Durable store for enriched events.
        emitter: Metrics and alerts.
        embeddings: Source of cache statistics for sampled metrics.
        metrics_sample_every: Emit cache/cost/process metrics every N messages.
    """

    def __init__(
        self,
        drift_engine: DriftEngine,
        safety_engine: SafetyEngine,
        anomaly_detector: AnomalyDetector,
        cost_optimizer: CostOptimizer,
        pattern_detector: PatternDetector,
        store: BaseTelemetryStore,
        emitter: TelemetryEmitter,
        embeddings: Optional[EmbeddingsClient] = None,
        metrics_sample_every: int = 10,
    ):
        self.drift_engine = drift_engine
        self.safety_engine = safety_engine
        self.anomaly_detector = anomaly_detector
        self.cost_optimizer = cost_optimizer
        self.pattern_detector = pattern_detector
        self.store = store
        self.emitter = emitter
        self.embeddings = embeddings
        self.metrics_sample_every = metrics_sample_every
        self.stats = PipelineStats()
        self._last_pattern_alert: Dict[PatternType, datetime] = {}

    async def handle_message(self, message: InboundMessage) -> Optional[EnrichedEvent]:
        """
        Process one message and settle it (ack or nack).

        Returns:
            The enriched event if the message was acknowledged, else None.
        """
        self.stats.received += 1
        try:
            event = parse_message(message)
        except MessageParseError as e:
            logger.warning(f"Rejecting message: {e}")
            self.stats.parse_errors += 1
            self.stats.nacked += 1
            message.nack()
            return None

        try:
            enriched, detections = await self.analyze(event)
        except Exception as e:
            logger.error(f"Error analyzing event '{event.request_id}': {e}", exc_info=True)
            self.stats.analysis_errors += 1
            self.stats.nacked += 1
            message.nack()
            return None

        await self._publish(enriched, detections, sequence=self.stats.analyzed)

        message.ack()
        self.stats.acked += 1
        logger.debug(f"Processed and acknowledged event '{event.request_id}'.")
        return enriched

    async def analyze(self, event: TelemetryEvent) -> Tuple[EnrichedEvent, List[PatternDetection]]:
        """
        Run every engine for one event. No side effects beyond engine state.

        Returns:
            The enriched event and the attack patterns active after recording it.
        """
        drift, safety = await asyncio.gather(
            self.drift_engine.compute_drift(event),
            self.safety_engine.check_safety(event),
        )
        anomaly = self.anomaly_detector.detect_anomaly(event.endpoint, drift.drift_score)
        self.cost_optimizer.record_event(event)
        self.pattern_detector.record_event(event, safety)
        detections = self.pattern_detector.detect_patterns()

        self.stats.analyzed += 1
        if safety.is_high_risk:
            self.stats.high_risk_events += 1
        if anomaly.is_anomaly:
            self.stats.anomalies += 1

        logger.debug(f"Event '{event.request_id}': drift={drift.drift_score:.4f} "
                     f"safety={safety.safety_label.value}({safety.safety_score:.2f}) anomaly={anomaly.is_anomaly}")
        return EnrichedEvent(event=event, drift=drift, safety=safety, anomaly=anomaly), detections

    async def _publish(self, enriched: EnrichedEvent, detections: List[PatternDetection], sequence: int) -> None:
        event = enriched.event

        for detection in detections:
            if self._should_alert(detection, event):
                if await self.emitter.emit_pattern_event(event, detection):
                    self.stats.pattern_alerts += 1

        await self.emitter.emit_metrics(event, enriched.drift, enriched.safety, enriched.anomaly)

        if sequence % self.metrics_sample_every == 0:
            await self._emit_sampled_metrics(event)

        if enriched.safety.is_high_risk:
            await self.emitter.emit_safety_event(event, enriched.safety)

        try:
            await self.store.write_event(enriched)
        except Exception as e:
            self.stats.persist_failures += 1
            logger.error(f"Failed to persist event '{event.request_id}': {e}")

    def _should_alert(self, detection: PatternDetection, event: TelemetryEvent) -> bool:
        """One alert per pattern type per detection window."""
        last = self._last_pattern_alert.get(detection.pattern_type)
        now = max(event.timestamp, detection.last_seen)
        if last is not None and now - last < timedelta(seconds=detection.window_seconds):
            return False
        self._last_pattern_alert[detection.pattern_type] = now
        return True

    async def _emit_sampled_metrics(self, event: TelemetryEvent) -> None:
        if self.embeddings is not None:
            try:
                cache_stats = self.embeddings.get_cache_stats()
            except Exception as e:
                logger.error(f"Reading embedding cache stats failed: {e}", exc_info=True)
            else:
                if cache_stats is not None:
                    await self.emitter.emit_cache_metrics(cache_stats)
        try:
            analysis = self.cost_optimizer.analyze_costs()
        except Exception as e:
            logger.error(f"Cost analysis failed: {e}", exc_info=True)
        else:
            await self.emitter.emit_cost_metrics(event, analysis)
        await self.emitter.emit_process_metrics()
