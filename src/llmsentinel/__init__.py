# src/llmsentinel/__init__.py
"""
LLM Sentinel - drift, safety, anomaly, cost and attack-pattern analysis for
LLM traffic telemetry.

The analyzer consumes TelemetryEvent messages published by an LLM gateway,
enriches each one (response drift against an endpoint baseline, safety
classification, drift anomaly detection), feeds the cross-event cost and
attack-pattern detectors, exports metrics and alerts, and persists the
enriched event.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import SentinelConfig, load_config
from .exceptions import (
    ClassifierError,
    ClassifierOutputError,
    ConfigError,
    EmbeddingError,
    InvalidInputError,
    MessageParseError,
    SentinelError,
    StorageError,
    TelemetryExportError,
)
from .models import (
    AnomalyResult,
    Baseline,
    DriftResult,
    EnrichedEvent,
    EventStatus,
    SafetyLabel,
    SafetyResult,
    TelemetryEvent,
)
from .service import SentinelService

try:
    __version__ = version("llmsentinel")
except PackageNotFoundError:
    __version__ = "0.0.0"


__all__ = [
    # ==========================================================================
    # Service & configuration
    # ==========================================================================
    "SentinelService",
    "SentinelConfig",
    "load_config",

    # ==========================================================================
    # Data Models
    # ==========================================================================
    "TelemetryEvent",
    "EventStatus",
    "SafetyLabel",
    "Baseline",
    "DriftResult",
    "SafetyResult",
    "AnomalyResult",
    "EnrichedEvent",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "SentinelError",
    "ConfigError",
    "InvalidInputError",
    "MessageParseError",
    "EmbeddingError",
    "ClassifierError",
    "ClassifierOutputError",
    "StorageError",
    "TelemetryExportError",

    "__version__",
]
