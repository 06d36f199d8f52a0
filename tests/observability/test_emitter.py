# tests/observability/test_emitter.py
"""
Tests for the telemetry emitter.

The emitter is exercised against a RegistryTelemetrySink so assertions can
be made on the resulting registry; sink failures are simulated with AsyncMock.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BASE_TIME
from llmsentinel.embedding import CacheStats
from llmsentinel.engines import CostOptimizer
from llmsentinel.engines.patterns import PatternDetection, PatternType
from llmsentinel.exceptions import TelemetryExportError
from llmsentinel.models import AnomalyResult, DriftResult, EventStatus, SafetyLabel, SafetyResult
from llmsentinel.observability import AlertType, MetricPoint, RegistryTelemetrySink, TelemetryEmitter


@pytest.fixture
def sink():
    return RegistryTelemetrySink()


@pytest.fixture
def emitter(sink):
    return TelemetryEmitter(sink, environment="test", service_name="sentinel-test")


def _pattern(confidence=0.8, n=7):
    return PatternDetection(
        pattern_type=PatternType.COORDINATED_JAILBREAK,
        confidence=confidence,
        affected_requests=n,
        window_seconds=300,
        details="Detected coordinated jailbreak attempts",
        request_ids=[f"req-{i}" for i in range(n)],
        first_seen=BASE_TIME,
        last_seen=BASE_TIME + timedelta(seconds=60),
    )


class TestBuildTags:

    def test_tags(self, emitter, event_factory):
        tags = emitter.build_tags(
            event_factory(model_version="002", service="chat-api"),
            SafetyResult(safety_label=SafetyLabel.PII, safety_score=0.6),
        )
        assert tags == [
            "env:test",
            "service:chat-api",
            "endpoint:/v1/chat",
            "method:POST",
            "model:gemini-1.5-pro",
            "model_version:002",
            "status:success",
            "safety_label:PII",
        ]

    def test_default_label(self, emitter, event_factory):
        assert "safety_label:CLEAN" in emitter.build_tags(event_factory())


class TestEmitMetrics:

    @pytest.mark.asyncio
    async def test_core_metrics(self, emitter, sink, event_factory):
        event = event_factory()
        drift = DriftResult(similarity_score=0.9, drift_score=0.1, baseline_ready=True, processing_time_ms=3.0)
        safety = SafetyResult(processing_time_ms=1.0)

        assert await emitter.emit_metrics(event, drift, safety, AnomalyResult()) is True

        registry = sink.registry
        assert registry.counter("llm.request.count").total() == 1
        assert registry.counter("sentinel.analyzer.events_processed").total() == 1
        assert registry.histogram("llm.latency_ms").count() == 1
        assert registry.histogram("llm.tokens.total").count() == 1
        assert registry.histogram("sentinel.analyzer.drift_processing_time_ms").count() == 1
        tags = emitter.build_tags(event, safety)
        assert registry.histogram("llm.drift_score").mean([*tags, "baseline_ready:true"]) == pytest.approx(0.1)
        assert "llm.error.count" not in registry.names()
        assert "llm.drift.count" not in registry.names()
        assert "llm.drift.anomaly" not in registry.names()

    @pytest.mark.asyncio
    async def test_error_event_counted(self, emitter, sink, event_factory):
        event = event_factory(status=EventStatus.ERROR, response="")
        await emitter.emit_metrics(event, DriftResult(), SafetyResult())
        assert sink.registry.counter("llm.error.count").total() == 1

    @pytest.mark.asyncio
    async def test_drift_over_threshold_counted(self, emitter, sink, event_factory):
        await emitter.emit_metrics(event_factory(), DriftResult(similarity_score=0.6, drift_score=0.4), SafetyResult())
        assert sink.registry.counter("llm.drift.count").total() == 1

    @pytest.mark.asyncio
    async def test_anomaly_metrics(self, emitter, sink, event_factory):
        anomaly = AnomalyResult(is_anomaly=True, z_score=-4.5, threshold=0.4, mean=0.1, std_dev=0.1)
        await emitter.emit_metrics(event_factory(), DriftResult(), SafetyResult(), anomaly)

        assert sink.registry.counter("llm.drift.anomaly").total() == 1
        snapshot = next(s for s in sink.registry.get_all_snapshots() if s.name == "llm.drift.z_score")
        assert snapshot.value == 4.5

    @pytest.mark.asyncio
    async def test_sink_failure_returns_false(self, event_factory):
        failing = AsyncMock()
        failing.submit_metrics.side_effect = TelemetryExportError("mock", "unreachable")
        emitter = TelemetryEmitter(failing)

        assert await emitter.emit_metrics(event_factory(), DriftResult(), SafetyResult()) is False


class TestAuxiliaryMetrics:

    @pytest.mark.asyncio
    async def test_cost_metrics(self, emitter, sink, event_factory):
        optimizer = CostOptimizer(cache_hit_rate_provider=lambda: 0.1)
        event = event_factory(tokens_in=1_000_000, tokens_out=0)
        optimizer.record_event(event)

        assert await emitter.emit_cost_metrics(event, optimizer.analyze_costs()) is True
        names = sink.registry.names()
        assert "llm.cost.per_request" in names
        assert "llm.cost.monthly_estimated" in names
        assert "llm.cost.recommendation.savings" in names
        assert "llm.cache.hit_rate" in names

    @pytest.mark.asyncio
    async def test_cache_metrics(self, emitter, sink):
        assert await emitter.emit_cache_metrics(CacheStats(size=3, max_size=10, hits=3, misses=1)) is True
        tags = ["env:test", "service:sentinel-test"]
        assert sink.registry.gauge("llm.cache.hit_rate").get(tags) == pytest.approx(0.75)
        assert sink.registry.gauge("llm.cache.size").get(tags) == 3

    @pytest.mark.asyncio
    async def test_process_metrics(self, sink):
        collector = MagicMock()
        collector.collect.return_value = [MetricPoint(name="sentinel.process.cpu_percent", value=12.5)]
        emitter = TelemetryEmitter(sink, process_collector=collector)

        assert await emitter.emit_process_metrics() is True
        assert sink.registry.gauge("sentinel.process.cpu_percent").get() == 12.5

    @pytest.mark.asyncio
    async def test_process_metrics_without_collector(self, emitter):
        assert await emitter.emit_process_metrics() is False


class TestAlerts:

    @pytest.mark.asyncio
    async def test_safety_alert_for_high_risk(self, emitter, sink, event_factory):
        safety = SafetyResult(safety_label=SafetyLabel.JAILBREAK, safety_score=0.2, is_high_risk=True, details="roleplay")

        assert await emitter.emit_safety_event(event_factory(prompt="x" * 500), safety) is True

        alert = sink.recent_alerts[0]
        assert alert.title == "LLM Safety Alert: JAILBREAK"
        assert alert.alert_type == AlertType.ERROR
        assert alert.source_type_name == "sentinel"
        assert "Request ID: req-0" in alert.text
        assert "x" * 200 + "..." in alert.text
        assert "safety_label:JAILBREAK" in alert.tags

    @pytest.mark.asyncio
    async def test_safety_alert_warning_severity(self, emitter, sink, event_factory):
        safety = SafetyResult(safety_label=SafetyLabel.TOXIC, safety_score=0.45, is_high_risk=True)
        await emitter.emit_safety_event(event_factory(), safety)
        assert sink.recent_alerts[0].alert_type == AlertType.WARNING

    @pytest.mark.asyncio
    async def test_no_alert_when_not_high_risk(self, emitter, sink, event_factory):
        assert await emitter.emit_safety_event(event_factory(), SafetyResult()) is False
        assert sink.recent_alerts == []

    @pytest.mark.asyncio
    async def test_pattern_alert(self, emitter, sink, event_factory):
        assert await emitter.emit_pattern_event(event_factory(), _pattern(confidence=0.8, n=7)) is True

        alert = sink.recent_alerts[0]
        assert alert.title == "Attack Campaign Detected: COORDINATED_JAILBREAK"
        assert alert.alert_type == AlertType.ERROR
        assert alert.source_type_name == "sentinel-pattern"
        assert "(+2 more)" in alert.text
        assert "pattern_type:COORDINATED_JAILBREAK" in alert.tags

    @pytest.mark.asyncio
    async def test_pattern_alert_warning_severity(self, emitter, sink, event_factory):
        await emitter.emit_pattern_event(event_factory(), _pattern(confidence=0.5, n=5))
        assert sink.recent_alerts[0].alert_type == AlertType.WARNING

    @pytest.mark.asyncio
    async def test_alert_failure_returns_false(self, event_factory):
        failing = AsyncMock()
        failing.create_event.side_effect = TelemetryExportError("mock", "down")
        emitter = TelemetryEmitter(failing)
        safety = SafetyResult(safety_label=SafetyLabel.TOXIC, safety_score=0.1, is_high_risk=True)

        assert await emitter.emit_safety_event(event_factory(), safety) is False
        assert await emitter.emit_pattern_event(event_factory(), _pattern()) is False
