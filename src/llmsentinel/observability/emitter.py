# src/llmsentinel/observability/emitter.py
"""
Telemetry emitter: turns analysis results into metric points and alerts.

Every public method is fire-and-forget. Failures (including sink errors) are
logged and reported through the boolean return value; they never propagate
into the pipeline.
"""

import logging
from typing import List, Optional

from ..embedding.cache import CacheStats
from ..engines.cost import CostAnalysis, CostOptimizer, RecommendationPriority
from ..engines.patterns import PatternDetection
from ..models import AnomalyResult, DriftResult, SafetyResult, TelemetryEvent, utc_now
from .alerts import AlertEvent, AlertType
from .metrics import MetricPoint, MetricType, ProcessMetricsCollector
from .sink import BaseTelemetrySink

logger = logging.getLogger(__name__)

# Flat-rate estimate used for the per-event llm.cost_usd metric: USD per 1K tokens
FLAT_COST_PER_1K_TOKENS = 0.00001
SAFETY_ERROR_SCORE = 0.3
PATTERN_ERROR_CONFIDENCE = 0.7
ALERT_EXCERPT_CHARS = 200
PATTERN_SAMPLE_IDS = 5


def _excerpt(text: str, limit: int = ALERT_EXCERPT_CHARS) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class TelemetryEmitter:
    """
    Args:
        sink: Destination for points and alerts.
        environment: Value of the ``env`` tag.
        service_name: Value of the ``service`` tag on analyzer-level metrics.
        drift_alert_threshold: Drift above this increments ``llm.drift.count``.
        process_collector: Optional psutil-backed collector for process gauges.
    """

    def __init__(
        self,
        sink: BaseTelemetrySink,
        environment: str = "dev",
        service_name: str = "sentinel-analyzer",
        drift_alert_threshold: float = 0.2,
        process_collector: Optional[ProcessMetricsCollector] = None,
    ):
        self._sink = sink
        self.environment = environment
        self.service_name = service_name
        self.drift_alert_threshold = drift_alert_threshold
        self._process_collector = process_collector

    def build_tags(self, event: TelemetryEvent, safety: Optional[SafetyResult] = None) -> List[str]:
        label = safety.safety_label.value if safety else "CLEAN"
        return [
            f"env:{self.environment}",
            f"service:{event.service}",
            f"endpoint:{event.endpoint}",
            f"method:{event.method}",
            f"model:{event.model_name}",
            f"model_version:{event.model_version}",
            f"status:{event.status.value}",
            f"safety_label:{label}",
        ]

    def _service_tags(self) -> List[str]:
        return [f"env:{self.environment}", f"service:{self.service_name}"]

    async def emit_metrics(
        self,
        event: TelemetryEvent,
        drift: DriftResult,
        safety: SafetyResult,
        anomaly: Optional[AnomalyResult] = None,
    ) -> bool:
        """Per-event metrics."""
        try:
            ts = event.timestamp
            tags = self.build_tags(event, safety)
            drift_tags = [*tags, f"baseline_ready:{str(drift.baseline_ready).lower()}"]
            tokens_total = event.tokens_total or 0

            def point(name: str, value: float, point_tags: List[str], kind: MetricType = MetricType.GAUGE) -> MetricPoint:
                return MetricPoint(name=name, value=value, timestamp=ts, tags=point_tags, type=kind)

            points = [
                point("llm.request.count", 1, tags, MetricType.COUNTER),
                point("llm.latency_ms", event.latency_ms, tags, MetricType.HISTOGRAM),
                point("llm.tokens.input", event.tokens_in, tags, MetricType.HISTOGRAM),
                point("llm.tokens.output", event.tokens_out, tags, MetricType.HISTOGRAM),
                point("llm.tokens.total", tokens_total, tags, MetricType.HISTOGRAM),
                point("llm.cost_usd", tokens_total / 1000 * FLAT_COST_PER_1K_TOKENS, tags, MetricType.HISTOGRAM),
                point("llm.drift_score", drift.drift_score, drift_tags, MetricType.HISTOGRAM),
                point("llm.similarity_score", drift.similarity_score, drift_tags, MetricType.HISTOGRAM),
                point("llm.safety.score", safety.safety_score, tags, MetricType.HISTOGRAM),
                point("llm.safety.event.count", 1, tags, MetricType.COUNTER),
                point("sentinel.analyzer.events_processed", 1, tags, MetricType.COUNTER),
            ]
            if drift.processing_time_ms is not None:
                points.append(point("sentinel.analyzer.drift_processing_time_ms", drift.processing_time_ms, tags, MetricType.HISTOGRAM))
            if safety.processing_time_ms is not None:
                points.append(point("sentinel.analyzer.safety_processing_time_ms", safety.processing_time_ms, tags, MetricType.HISTOGRAM))
            if event.is_error:
                points.append(point("llm.error.count", 1, tags, MetricType.COUNTER))
            if drift.drift_score > self.drift_alert_threshold:
                points.append(point("llm.drift.count", 1, [*tags, f"drift_threshold:{self.drift_alert_threshold}"], MetricType.COUNTER))
            if anomaly is not None and anomaly.is_anomaly:
                points.append(point("llm.drift.anomaly", 1, [
                    *tags,
                    f"z_score:{anomaly.z_score:.2f}",
                    f"anomaly_threshold:{anomaly.threshold:.3f}",
                ], MetricType.COUNTER))
                points.append(point("llm.drift.z_score", abs(anomaly.z_score), tags))

            await self._sink.submit_metrics(points)
            logger.debug(f"Emitted {len(points)} metrics for request '{event.request_id}'.")
            return True
        except Exception as e:
            logger.error(f"Failed to emit metrics for request '{event.request_id}': {e}")
            return False

    async def emit_cost_metrics(self, event: TelemetryEvent, analysis: CostAnalysis) -> bool:
        """Cost-per-request, monthly estimates and top high-priority savings."""
        try:
            ts = event.timestamp
            tags = self.build_tags(event)
            points = [
                MetricPoint(name="llm.cost.per_request", value=CostOptimizer.cost_per_request(event), timestamp=ts, tags=tags),
                MetricPoint(name="llm.cost.monthly_estimated", value=analysis.current_cost, timestamp=ts, tags=[*tags, "type:current"]),
                MetricPoint(name="llm.cost.monthly_estimated", value=analysis.projected_cost, timestamp=ts, tags=[*tags, "type:projected"]),
                MetricPoint(name="llm.cost.recommendations.count", value=len(analysis.recommendations), timestamp=ts, tags=tags),
            ]
            high = [r for r in analysis.recommendations if r.priority == RecommendationPriority.HIGH][:3]
            for rec in high:
                rec_tags = [*tags, f"recommendation_type:{rec.type.value}", f"priority:{rec.priority.value}"]
                if rec.model:
                    rec_tags.append(f"model:{rec.model}")
                if rec.alternative_model:
                    rec_tags.append(f"alternative_model:{rec.alternative_model}")
                points.append(MetricPoint(name="llm.cost.recommendation.savings", value=rec.estimated_savings, timestamp=ts, tags=rec_tags))
            if analysis.cache_hit_rate is not None:
                points.append(MetricPoint(name="llm.cache.hit_rate", value=analysis.cache_hit_rate, timestamp=ts, tags=tags))

            await self._sink.submit_metrics(points)
            logger.debug(f"Emitted {len(points)} cost metrics for request '{event.request_id}'.")
            return True
        except Exception as e:
            logger.error(f"Failed to emit cost metrics for request '{event.request_id}': {e}")
            return False

    async def emit_cache_metrics(self, stats: CacheStats) -> bool:
        try:
            ts = utc_now()
            tags = self._service_tags()
            points = [
                MetricPoint(name="llm.cache.hits", value=stats.hits, timestamp=ts, tags=tags),
                MetricPoint(name="llm.cache.misses", value=stats.misses, timestamp=ts, tags=tags),
                MetricPoint(name="llm.cache.hit_rate", value=stats.hit_rate, timestamp=ts, tags=tags),
                MetricPoint(name="llm.cache.size", value=stats.size, timestamp=ts, tags=tags),
            ]
            await self._sink.submit_metrics(points)
            logger.debug(f"Emitted cache metrics: {stats.hits} hits, {stats.misses} misses, "
                         f"{stats.hit_rate * 100:.1f}% hit rate")
            return True
        except Exception as e:
            logger.error(f"Failed to emit cache metrics: {e}")
            return False

    async def emit_process_metrics(self) -> bool:
        if self._process_collector is None:
            return False
        try:
            await self._sink.submit_metrics(self._process_collector.collect(self._service_tags()))
            return True
        except Exception as e:
            logger.error(f"Failed to emit process metrics: {e}")
            return False

    async def emit_safety_event(self, event: TelemetryEvent, safety: SafetyResult) -> bool:
        """High-severity alert for a high-risk event; no-op otherwise."""
        if not safety.is_high_risk:
            return False
        try:
            text = (
                "High-risk safety issue detected in LLM interaction.\n\n"
                f"Request ID: {event.request_id}\n"
                f"Safety Label: {safety.safety_label.value}\n"
                f"Safety Score: {safety.safety_score:.2f}\n"
                f"Details: {safety.details or 'No details available'}\n\n"
                f"Prompt: {_excerpt(event.prompt)}\n"
                f"Response: {_excerpt(event.response)}\n\n"
                f"Model: {event.model_name} ({event.model_version})\n"
                f"Endpoint: {event.endpoint}\n"
                f"Environment: {self.environment}"
            )
            alert = AlertEvent(
                title=f"LLM Safety Alert: {safety.safety_label.value}",
                text=text,
                alert_type=AlertType.ERROR if safety.safety_score < SAFETY_ERROR_SCORE else AlertType.WARNING,
                tags=self.build_tags(event, safety),
                source_type_name="sentinel",
            )
            await self._sink.create_event(alert)
            logger.info(f"Emitted safety alert for request '{event.request_id}': {safety.safety_label.value}")
            return True
        except Exception as e:
            logger.error(f"Failed to emit safety event for request '{event.request_id}': {e}")
            return False

    async def emit_pattern_event(self, event: TelemetryEvent, pattern: PatternDetection) -> bool:
        try:
            sample = ", ".join(pattern.request_ids[:PATTERN_SAMPLE_IDS])
            extra = len(pattern.request_ids) - PATTERN_SAMPLE_IDS
            if extra > 0:
                sample += f" (+{extra} more)"
            text = (
                f"Pattern Type: {pattern.pattern_type.value}\n"
                f"Confidence: {pattern.confidence * 100:.1f}%\n"
                f"Affected Requests: {pattern.affected_requests}\n"
                f"Time Window: {pattern.window_seconds:.0f}s\n"
                f"Details: {pattern.details}\n\n"
                f"First Seen: {pattern.first_seen.isoformat()}\n"
                f"Last Seen: {pattern.last_seen.isoformat()}\n\n"
                f"Sample Request IDs: {sample}\n\n"
                f"Current Request: {event.request_id}\n"
                f"Endpoint: {event.endpoint}\n"
                f"Model: {event.model_name}\n"
                f"Environment: {self.environment}\n\n"
                "Action Required: review affected requests and consider rate limiting or blocking suspicious sources."
            )
            alert = AlertEvent(
                title=f"Attack Campaign Detected: {pattern.pattern_type.value}",
                text=text,
                alert_type=AlertType.ERROR if pattern.confidence > PATTERN_ERROR_CONFIDENCE else AlertType.WARNING,
                tags=[
                    *self.build_tags(event),
                    f"pattern_type:{pattern.pattern_type.value}",
                    f"pattern_confidence:{pattern.confidence:.2f}",
                    f"affected_requests:{pattern.affected_requests}",
                ],
                source_type_name="sentinel-pattern",
            )
            await self._sink.create_event(alert)
            logger.info(f"Emitted pattern alert: {pattern.pattern_type.value} (confidence {pattern.confidence * 100:.1f}%)")
            return True
        except Exception as e:
            logger.error(f"Failed to emit pattern event for request '{event.request_id}': {e}")
            return False
