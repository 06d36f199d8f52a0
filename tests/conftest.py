# tests/conftest.py
"""
Shared fixtures for the analyzer test suite.

Provides an event factory with sensible defaults, a manually advanced
clock for the time-driven components, and fake embedding/classifier models
that never touch the network.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from llmsentinel.embedding.base import BaseEmbeddingModel
from llmsentinel.exceptions import EmbeddingError
from llmsentinel.models import SafetyLabel, TelemetryEvent
from llmsentinel.safety.base import Classification, SafetyModel

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticEmbedding(BaseEmbeddingModel):
    """Returns a fixed vector per text (or a default), counting calls."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default: Optional[List[float]] = None, name: str = "static"):
        self._vectors = vectors or {}
        self._default = default if default is not None else [1.0, 0.0, 0.0]
        self._name = name
        self.calls: List[str] = []

    @property
    def model_name(self) -> str:
        return self._name

    async def generate_embedding(self, text: str) -> List[float]:
        self.calls.append(text)
        return list(self._vectors.get(text, self._default))


class FailingEmbedding(BaseEmbeddingModel):
    """Always raises EmbeddingError."""

    def __init__(self, name: str = "failing"):
        self._name = name
        self.calls = 0

    @property
    def model_name(self) -> str:
        return self._name

    async def generate_embedding(self, text: str) -> List[float]:
        self.calls += 1
        raise EmbeddingError(model_name=self._name, message="service unavailable")


class StaticSafetyModel(SafetyModel):
    """Returns a fixed classification."""

    def __init__(self, label: SafetyLabel = SafetyLabel.CLEAN, score: float = 1.0, name: str = "static-safety"):
        self._classification = Classification(label=label, score=score, details=f"static {label.value}", model=name)
        self._name = name
        self.calls = 0

    @property
    def model_name(self) -> str:
        return self._name

    async def classify(self, prompt: str, response: str) -> Classification:
        self.calls += 1
        return self._classification


def make_event(offset_seconds: float = 0.0, **overrides: Any) -> TelemetryEvent:
    """Build a successful event at BASE_TIME + offset, with field overrides."""
    data: Dict[str, Any] = {
        "request_id": f"req-{offset_seconds:g}",
        "timestamp": BASE_TIME + timedelta(seconds=offset_seconds),
        "endpoint": "/v1/chat",
        "prompt": "What is the capital of France?",
        "response": "The capital of France is Paris.",
        "model_name": "gemini-1.5-pro",
        "tokens_in": 100,
        "tokens_out": 50,
        "latency_ms": 420.0,
    }
    data.update(overrides)
    return TelemetryEvent(**data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def event_factory():
    return make_event
