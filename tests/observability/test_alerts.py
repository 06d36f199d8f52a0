# tests/observability/test_alerts.py
"""Tests for alert events, the JSONL alert log and the telemetry sinks."""

import pytest

from llmsentinel.exceptions import TelemetryExportError
from llmsentinel.observability import (
    AlertEvent,
    AlertLog,
    AlertType,
    MetricPoint,
    MetricType,
    NullTelemetrySink,
    RegistryTelemetrySink,
    load_alerts,
)


def _alert(title="LLM Safety Alert: TOXIC"):
    return AlertEvent(title=title, text="details", alert_type=AlertType.ERROR, tags=["env:test"])


class TestAlertLog:

    def test_write_and_load(self, tmp_path):
        log = AlertLog(tmp_path / "alerts" / "alerts.jsonl")
        log.write(_alert("first"))
        log.write(_alert("second"))

        alerts = load_alerts(log.log_path)
        assert [a.title for a in alerts] == ["first", "second"]
        assert alerts[0].alert_type == AlertType.ERROR
        assert alerts[0].tags == ["env:test"]

    def test_load_missing_file(self, tmp_path):
        assert load_alerts(tmp_path / "nope.jsonl") == []

    def test_malformed_lines_skipped(self, tmp_path):
        path = tmp_path / "alerts.jsonl"
        path.write_text(_alert("ok").to_jsonl() + "\n{broken\n\n", encoding="utf-8")
        assert [a.title for a in load_alerts(path)] == ["ok"]

    def test_rotation(self, tmp_path):
        log = AlertLog(tmp_path / "alerts.jsonl", max_bytes=200, max_files=2)
        for i in range(20):
            log.write(_alert(f"alert {i}"))

        rotated = list(tmp_path.glob("alerts_*.jsonl"))
        assert 1 <= len(rotated) <= 2
        assert log.log_path.exists()

    def test_round_trip(self):
        alert = _alert()
        assert AlertEvent.from_jsonl(alert.to_jsonl()) == alert


class TestSinks:

    @pytest.mark.asyncio
    async def test_registry_sink_records_points(self):
        sink = RegistryTelemetrySink()
        await sink.submit_metrics([
            MetricPoint(name="llm.request.count", value=1, type=MetricType.COUNTER),
            MetricPoint(name="llm.latency_ms", value=250.0, type=MetricType.HISTOGRAM),
        ])
        assert sink.registry.counter("llm.request.count").get() == 1
        assert sink.registry.histogram("llm.latency_ms").mean() == 250.0

    @pytest.mark.asyncio
    async def test_registry_sink_writes_alert_log(self, tmp_path):
        sink = RegistryTelemetrySink(alert_log=AlertLog(tmp_path / "alerts.jsonl"))
        await sink.create_event(_alert())

        assert len(sink.recent_alerts) == 1
        assert len(load_alerts(tmp_path / "alerts.jsonl")) == 1

    @pytest.mark.asyncio
    async def test_recent_alerts_bounded(self):
        sink = RegistryTelemetrySink(recent_alerts_size=2)
        for i in range(5):
            await sink.create_event(_alert(f"a{i}"))
        assert [a.title for a in sink.recent_alerts] == ["a3", "a4"]

    @pytest.mark.asyncio
    async def test_alert_log_failure_raises_export_error(self, tmp_path):
        log = AlertLog(tmp_path / "alerts.jsonl")

        def fail(alert):
            raise OSError("read-only file system")

        log.write = fail
        sink = RegistryTelemetrySink(alert_log=log)

        with pytest.raises(TelemetryExportError) as exc_info:
            await sink.create_event(_alert())
        assert exc_info.value.sink_name == "registry"

    @pytest.mark.asyncio
    async def test_null_sink_accepts_everything(self):
        sink = NullTelemetrySink()
        await sink.submit_metrics([MetricPoint(name="x", value=1)])
        await sink.create_event(_alert())
        await sink.close()
