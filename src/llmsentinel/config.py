# src/llmsentinel/config.py
"""
Analyzer Configuration Models.

Pydantic models for every tunable the analysis pipeline consumes. The models
map one-to-one onto sections of a TOML file (``sentinel.toml``):

    environment = "prod"
    service_name = "sentinel-analyzer"

    [baseline]
    min_samples = 5
    learning_rate = 0.1
    quiet_period_seconds = 5.0
    force_flush_every = 10

    [anomaly]
    window_size = 50
    min_samples = 10
    z_threshold = 3.0

    [cost]
    history_size = 1000
    min_monthly_savings = 10.0

    [safety]
    high_risk_threshold = 0.5
    models = ["gemini-2.5-pro", "gemini-1.5-pro", "gemini-1.5-flash"]

    [embedding]
    model = "text-embedding-004"
    dimension = 768

    [storage]
    backend = "sqlite"
    path = "~/.local/share/llmsentinel/sentinel.db"

    [telemetry]
    alert_log_path = "~/.local/share/llmsentinel/alerts.jsonl"
    metrics_sample_every = 10

    [consumer]
    max_concurrency = 8

    [logging]
    console_enabled = false

Usage:
    >>> from llmsentinel.config import load_config
    >>> config = load_config("sentinel.toml")
    >>> config.baseline.learning_rate
    0.1

    >>> config = load_config(config_dict={"anomaly": {"z_threshold": 2.5}})
    >>> config.anomaly.z_threshold
    2.5
"""

from __future__ import annotations

import logging
import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

# Environment variables that override file/dict values: env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "SENTINEL_ENVIRONMENT": (None, "environment"),
    "SENTINEL_DB_PATH": ("storage", "path"),
    "SENTINEL_ALERT_LOG_PATH": ("telemetry", "alert_log_path"),
    "SENTINEL_LOG_LEVEL": ("logging", "console_level"),
    "GOOGLE_API_KEY": ("embedding", "api_key"),
}


# =============================================================================
# ENUMS
# =============================================================================


class StorageBackend(str, Enum):
    """Durable store implementation."""

    SQLITE = "sqlite"
    MEMORY = "memory"


# =============================================================================
# SECTION MODELS
# =============================================================================


class BaselineConfig(BaseModel):
    """Per-endpoint baseline maintenance and snapshotting."""

    min_samples: int = Field(default=5, ge=1, description="Samples before a baseline is ready")
    learning_rate: float = Field(
        default=0.1, gt=0.0, le=1.0, description="EMA weight given to each new sample"
    )
    quiet_period_seconds: float = Field(
        default=5.0, gt=0, description="Debounce delay before a baseline snapshot is written"
    )
    force_flush_every: int = Field(
        default=10, ge=1, description="Write a snapshot immediately every N-th sample"
    )
    flush_check_interval_seconds: float = Field(
        default=1.0, gt=0, description="How often the background flusher looks for due snapshots"
    )


class AnomalyConfig(BaseModel):
    """Rolling z-score detection over drift scores."""

    window_size: int = Field(default=50, ge=2, description="Drift scores kept per endpoint")
    min_samples: int = Field(default=10, ge=2, description="Samples needed before scoring")
    z_threshold: float = Field(default=3.0, gt=0, description="Absolute z-score that flags an anomaly")


class CostConfig(BaseModel):
    """Usage ledger and recommendation gating."""

    history_size: int = Field(default=1000, ge=1, description="Events retained for cost analysis")
    min_monthly_savings: float = Field(
        default=10.0, ge=0, description="Recommendations below this USD/month are dropped"
    )


class SafetyConfig(BaseModel):
    """Safety classification policy and model chain."""

    high_risk_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Scores below this are high risk"
    )
    models: list[str] = Field(
        default_factory=lambda: ["gemini-2.5-pro", "gemini-1.5-pro", "gemini-1.5-flash"],
        description="Classifier models tried in order before the keyword heuristics",
    )
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-model request timeout")
    api_key: str | None = Field(default=None, description="Google API key (falls back to embedding.api_key)")


class PatternConfig(BaseModel):
    """Attack pattern correlation window."""

    max_history_size: int = Field(default=5000, ge=1, description="Events kept for correlation")
    max_history_age_seconds: float = Field(
        default=3600.0, gt=0, description="Events older than this are dropped"
    )
    use_event_time: bool = Field(
        default=False, description="Measure windows from the newest event instead of the wall clock"
    )


class EmbeddingConfig(BaseModel):
    """Embedding provider, fallback chain and response cache."""

    model: str = Field(default="text-embedding-004", description="Primary embedding model")
    fallback_variants: list[str] = Field(
        default_factory=lambda: [
            "textembedding-gecko@003",
            "textembedding-gecko@001",
            "text-embedding-004",
        ],
        description="Models tried after the primary one fails",
    )
    dimension: int = Field(default=768, ge=1, description="Size of the degraded fallback vector")
    task_type: str = Field(default="RETRIEVAL_DOCUMENT", description="Embedding task type")
    cache_size: int = Field(default=1000, ge=0, description="Max cached embeddings (0 disables)")
    cache_ttl_seconds: float = Field(default=3600.0, gt=0, description="Cache entry lifetime")
    api_key: str | None = Field(default=None, description="Google API key (defaults to env)")

    @field_validator("task_type", mode="before")
    @classmethod
    def upper_task_type(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    def model_variants(self) -> list[str]:
        """Primary model followed by the fallbacks, without duplicates."""
        ordered = [self.model, *self.fallback_variants]
        return list(dict.fromkeys(ordered))


class StorageConfig(BaseModel):
    """Durable store selection."""

    backend: StorageBackend = Field(default=StorageBackend.SQLITE, description="sqlite or memory")
    path: str = Field(
        default="~/.local/share/llmsentinel/sentinel.db", description="SQLite database file"
    )
    events_table_name: str = Field(default="llm_events")
    baselines_table_name: str = Field(default="baselines")

    @field_validator("backend", mode="before")
    @classmethod
    def validate_backend(cls, v: Any) -> Any:
        if isinstance(v, str):
            return StorageBackend(v.lower())
        return v


class TelemetryConfig(BaseModel):
    """Metrics/alert export."""

    enabled: bool = Field(default=True, description="Master switch for metric and alert export")
    alert_log_path: str = Field(
        default="~/.local/share/llmsentinel/alerts.jsonl", description="JSONL file receiving alerts"
    )
    metrics_sample_every: int = Field(
        default=10, ge=1, description="Emit cache/cost/process metrics every N messages"
    )
    drift_alert_threshold: float = Field(
        default=0.2, ge=0.0, le=1.0, description="Drift above this increments llm.drift.count"
    )


class ConsumerConfig(BaseModel):
    """Message consumption."""

    max_concurrency: int = Field(default=8, ge=1, description="Messages processed at once")
    max_redeliveries: int = Field(
        default=5, ge=0, description="Redelivery attempts for a rejected message"
    )
    queue_size: int = Field(default=1000, ge=0, description="In-process queue capacity (0 = unbounded)")


class LoggingConfig(BaseModel):
    """Maps onto ``llmsentinel.logging_config.DEFAULT_LOGGING_CONFIG``."""

    console_enabled: bool = False
    console_level: str = "WARNING"
    file_enabled: bool = True
    file_level: str = "DEBUG"
    file_directory: str = "~/.local/share/llmsentinel/logs"
    file_mode: str = "per_run"
    display_min_level: str = "INFO"
    components: dict[str, str] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Dict for ``configure_logging``; empty component map keeps the defaults."""
        data = self.model_dump()
        if not data["components"]:
            data.pop("components")
        return data


# =============================================================================
# MAIN CONFIG MODEL
# =============================================================================


class SentinelConfig(BaseModel):
    """
    Complete analyzer configuration.

    Example:
        >>> config = SentinelConfig()
        >>> config.anomaly.window_size
        50
    """

    environment: str = Field(default="dev", description="Environment tag attached to metrics")
    service_name: str = Field(default="sentinel-analyzer", description="Service tag")

    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    anomaly: AnomalyConfig = Field(default_factory=AnomalyConfig)
    cost: CostConfig = Field(default_factory=CostConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# LOADING FUNCTIONS
# =============================================================================


def _apply_env_overrides(data: dict[str, Any], environ: dict[str, str]) -> dict[str, Any]:
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if not value:
            continue
        if section is None:
            data[key] = value
        else:
            target = data.setdefault(section, {})
            # An explicit value in the file wins over the ambient API key.
            if env_var == "GOOGLE_API_KEY" and target.get(key):
                continue
            target[key] = value
        logger.debug(f"Config override from environment: {env_var}")
    return data


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> SentinelConfig:
    """
    Load analyzer configuration.

    Sources are layered: defaults, then the TOML file, then ``config_dict``
    (shallow per-section merge), then environment overrides.

    Args:
        config_path: Optional path to a TOML file.
        config_dict: Optional dictionary of section overrides.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        Validated SentinelConfig.

    Raises:
        ConfigError: If the file is missing/unreadable or validation fails.
    """
    data: dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if config_dict:
        for key, value in config_dict.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value

    data = _apply_env_overrides(data, dict(os.environ) if environ is None else environ)

    try:
        return SentinelConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid analyzer configuration: {e}") from e
