# src/llmsentinel/models.py
"""
Core data models for the LLM Sentinel analyzer.

This module defines the Pydantic models exchanged between the pipeline
components: the inbound TelemetryEvent, the per-event analysis results
(drift, safety, anomaly), the Baseline owned by the baseline store, and the
EnrichedEvent that is persisted.

TelemetryEvent uses camelCase aliases because that is the wire format the
gateway publishes; Python code always uses the snake_case attribute names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(v: Any) -> Any:
    """Parse ISO strings (including a trailing 'Z') and make naive datetimes UTC."""
    if isinstance(v, str):
        try:
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            return v  # Let pydantic report the error
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class EventStatus(str, Enum):
    """Outcome of the LLM call as reported by the gateway."""
    SUCCESS = "success"
    ERROR = "error"


class SafetyLabel(str, Enum):
    """Closed set of safety categories for a prompt/response pair."""
    CLEAN = "CLEAN"
    TOXIC = "TOXIC"
    PII = "PII"
    JAILBREAK = "JAILBREAK"
    PROMPT_INJECTION = "PROMPT_INJECTION"
    RISKY = "RISKY"

    @classmethod
    def _missing_(cls, value: object):  # type: ignore[misc]
        """Case-insensitive lookup; unknown values are left to the caller."""
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class TelemetryEvent(BaseModel):
    """
    One LLM call as observed by the gateway.

    Only ``request_id`` and ``timestamp`` are required; every other attribute
    has a neutral default so partially populated events can still be analyzed.
    Instances are immutable.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        protected_namespaces=(),
    )

    request_id: str = Field(min_length=1, description="Unique id of the originating request.")
    timestamp: datetime = Field(description="When the LLM call completed (UTC).")
    endpoint: str = Field(default="unknown", description="Gateway endpoint, used as the baseline key.")
    method: str = Field(default="POST")

    prompt: str = Field(default="")
    prompt_length: Optional[int] = Field(default=None, ge=0)
    response: str = Field(default="")
    response_length: Optional[int] = Field(default=None, ge=0)

    model_name: str = Field(default="unknown")
    model_version: str = Field(default="")

    tokens_in: int = Field(default=0, ge=0)
    tokens_out: int = Field(default=0, ge=0)
    tokens_total: Optional[int] = Field(default=None, ge=0)

    latency_ms: float = Field(default=0.0, ge=0)
    status: EventStatus = Field(default=EventStatus.SUCCESS)
    error_message: Optional[str] = Field(default=None)

    environment: Optional[str] = Field(default=None)
    service: str = Field(default="unknown")

    @field_validator("timestamp", mode="before")
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> Any:
        return ensure_utc(v)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @model_validator(mode="after")
    def fill_derived_counts(self) -> "TelemetryEvent":
        # frozen model: derived defaults go through object.__setattr__
        if self.tokens_total is None:
            object.__setattr__(self, "tokens_total", self.tokens_in + self.tokens_out)
        if self.prompt_length is None:
            object.__setattr__(self, "prompt_length", len(self.prompt))
        if self.response_length is None:
            object.__setattr__(self, "response_length", len(self.response))
        return self

    @property
    def is_error(self) -> bool:
        return self.status == EventStatus.ERROR

    @property
    def has_response(self) -> bool:
        return bool(self.response)

    def to_wire(self) -> dict[str, Any]:
        """Serialize back to the camelCase JSON shape."""
        return self.model_dump(mode="json", by_alias=True)


class Baseline(BaseModel):
    """
    The running center of an endpoint's response embeddings.

    Attributes:
        endpoint: The endpoint key.
        embedding: EMA of all response embeddings seen for the endpoint.
        sample_count: Number of samples folded into the embedding.
        last_updated: Timestamp of the most recent sample's event.
        created_at: When the baseline was first created.
    """
    endpoint: str
    embedding: List[float]
    sample_count: int = Field(default=1, ge=1)
    last_updated: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("last_updated", "created_at", mode="before")
    @classmethod
    def ensure_utc_timestamps(cls, v: Any) -> Any:
        return ensure_utc(v)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class DriftResult(BaseModel):
    """Deviation of one response from its endpoint baseline."""
    similarity_score: float = Field(default=1.0, ge=0.0, le=1.0)
    drift_score: float = Field(default=0.0, ge=0.0, le=1.0)
    baseline_ready: bool = False
    baseline_id: Optional[str] = None
    processing_time_ms: Optional[float] = None


class SafetyResult(BaseModel):
    """Safety verdict for one prompt/response pair; score 1.0 means safe."""
    safety_label: SafetyLabel = SafetyLabel.CLEAN
    safety_score: float = Field(default=1.0, ge=0.0, le=1.0)
    is_high_risk: bool = False
    details: Optional[str] = None
    processing_time_ms: Optional[float] = None


class AnomalyResult(BaseModel):
    """Rolling z-score verdict for one drift score."""
    is_anomaly: bool = False
    z_score: float = 0.0
    threshold: float = 0.0
    mean: float = 0.0
    std_dev: float = 0.0


class EnrichedEvent(BaseModel):
    """A telemetry event together with its analysis results, as persisted."""
    event: TelemetryEvent
    drift: DriftResult
    safety: SafetyResult
    anomaly: AnomalyResult
    analyzed_at: datetime = Field(default_factory=utc_now)

    def to_row(self) -> dict[str, Any]:
        """Flatten into a single warehouse row."""
        row = self.event.to_wire()
        row.update({
            "driftScore": self.drift.drift_score,
            "similarityScore": self.drift.similarity_score,
            "baselineReady": self.drift.baseline_ready,
            "baselineId": self.drift.baseline_id,
            "safetyLabel": self.safety.safety_label.value,
            "safetyScore": self.safety.safety_score,
            "isHighRisk": self.safety.is_high_risk,
            "safetyDetails": self.safety.details,
            "isAnomaly": self.anomaly.is_anomaly,
            "zScore": self.anomaly.z_score,
            "analyzedAt": self.analyzed_at.isoformat(),
        })
        return row
