# src/llmsentinel/observability/__init__.py
"""
Metrics and alert export for the analyzer.
"""

from .alerts import AlertEvent, AlertLog, AlertType, load_alerts
from .emitter import TelemetryEmitter
from .metrics import MetricPoint, MetricsRegistry, MetricType, ProcessMetricsCollector
from .sink import BaseTelemetrySink, NullTelemetrySink, RegistryTelemetrySink

__all__ = [
    "AlertEvent",
    "AlertLog",
    "AlertType",
    "BaseTelemetrySink",
    "MetricPoint",
    "MetricType",
    "MetricsRegistry",
    "NullTelemetrySink",
    "ProcessMetricsCollector",
    "RegistryTelemetrySink",
    "TelemetryEmitter",
    "load_alerts",
]
