# src/llmsentinel/engines/cost.py
"""
Cost Optimization Engine.

Keeps a bounded ledger of recent events, extrapolates their cost to a
monthly estimate and produces ranked cost-saving recommendations:

- model downgrade (static table of cheaper alternatives)
- caching (based on the embedding cache hit rate, when known)
- prompt optimization (when average input size is large)

Extrapolation:
    window_hours   = span of retained event timestamps (min 0.1h; 1h if < 2 events)
    monthly_cost   = cost_per_event * events_per_hour * 24 * 30
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from enum import Enum
from typing import Callable, Deque

from pydantic import BaseModel, Field

from ..models import TelemetryEvent

logger = logging.getLogger(__name__)


# =============================================================================
# PRICING DATA
# =============================================================================

# USD per 1M tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gemini-2.0-flash-exp": {"input": 0.075, "output": 0.30},
    "gemini-2.0-flash-thinking-exp": {"input": 0.075, "output": 0.30},
    "gemini-1.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
    "gemini-pro": {"input": 0.50, "output": 1.50},
    "text-embedding-004": {"input": 0.01, "output": 0.0},
    "textembedding-gecko@003": {"input": 0.01, "output": 0.0},
    "textembedding-gecko@001": {"input": 0.01, "output": 0.0},
}
DEFAULT_PRICING_MODEL = "gemini-1.5-pro"
DEFAULT_ALTERNATIVE_PRICING_MODEL = "gemini-1.5-flash"

# Cheaper alternatives, best first
MODEL_ALTERNATIVES: dict[str, list[str]] = {
    "gemini-1.5-pro": ["gemini-1.5-flash", "gemini-2.0-flash-exp"],
    "gemini-pro": ["gemini-1.5-flash", "gemini-2.0-flash-exp"],
    "gemini-1.5-flash": ["gemini-2.0-flash-exp"],
}

HOURS_PER_MONTH = 24 * 30
TARGET_CACHE_HIT_RATE = 0.5
CACHE_SAVINGS_EFFICIENCY = 0.8
LOW_CACHE_HIT_RATE = 0.3
LARGE_PROMPT_TOKENS = 1000
PROMPT_REDUCTION_FACTOR = 0.2
PROMPT_INPUT_SHARE = 0.5


def get_pricing(model: str) -> dict[str, float]:
    return MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])


# =============================================================================
# MODELS
# =============================================================================


class RecommendationType(str, Enum):
    MODEL_DOWNGRADE = "model_downgrade"
    ENABLE_CACHING = "enable_caching"
    OPTIMIZE_PROMPTS = "optimize_prompts"


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class CostRecommendation(BaseModel):
    """One cost-saving action with its estimated monthly savings (USD)."""

    type: RecommendationType
    priority: RecommendationPriority
    estimated_savings: float = Field(ge=0)
    description: str
    action: str
    model: str | None = None
    alternative_model: str | None = None


class ModelUsage(BaseModel):
    """Aggregated usage for one model over the retained window."""

    requests: int = 0
    tokens: int = 0
    cost: float = 0.0


class CostAnalysis(BaseModel):
    """Result of :meth:`CostOptimizer.analyze_costs`."""

    current_cost: float = 0.0
    projected_cost: float = 0.0
    recommendations: list[CostRecommendation] = Field(default_factory=list)
    model_usage: dict[str, ModelUsage] = Field(default_factory=dict)
    cache_hit_rate: float | None = None
    window_hours: float = 0.0
    event_count: int = 0


# =============================================================================
# OPTIMIZER
# =============================================================================


class CostOptimizer:
    """
    Bounded usage ledger with recommendation logic.

    Args:
        history_size: Events retained for analysis.
        min_monthly_savings: Recommendations at or below this are dropped.
        cache_hit_rate_provider: Returns the current cache hit rate, or None
            when unknown. Absent provider means unknown.
    """

    def __init__(
        self,
        history_size: int = 1000,
        min_monthly_savings: float = 10.0,
        cache_hit_rate_provider: Callable[[], float | None] | None = None,
    ):
        self.history_size = history_size
        self.min_monthly_savings = min_monthly_savings
        self._cache_hit_rate_provider = cache_hit_rate_provider
        self._events: Deque[TelemetryEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def record_event(self, event: TelemetryEvent) -> None:
        with self._lock:
            self._events.append(event)

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    @staticmethod
    def cost_per_request(event: TelemetryEvent) -> float:
        """Dollar cost of a single event at list price."""
        pricing = get_pricing(event.model_name)
        return (event.tokens_in / 1_000_000) * pricing["input"] + (event.tokens_out / 1_000_000) * pricing["output"]

    def analyze_costs(self) -> CostAnalysis:
        with self._lock:
            events = list(self._events)
        if not events:
            return CostAnalysis()

        usage = self._model_usage(events)
        window_hours = self._window_hours(events)
        monthly_factor = HOURS_PER_MONTH / window_hours
        current_cost = sum(u.cost for u in usage.values()) * monthly_factor

        cache_hit_rate = self._cache_hit_rate()
        recommendations = self._recommendations(events, usage, monthly_factor, current_cost, cache_hit_rate)
        projected = max(0.0, current_cost - sum(r.estimated_savings for r in recommendations))

        return CostAnalysis(
            current_cost=current_cost,
            projected_cost=projected,
            recommendations=recommendations,
            model_usage=usage,
            cache_hit_rate=cache_hit_rate,
            window_hours=window_hours,
            event_count=len(events),
        )

    def _cache_hit_rate(self) -> float | None:
        if self._cache_hit_rate_provider is None:
            return None
        try:
            return self._cache_hit_rate_provider()
        except Exception as e:
            logger.warning(f"Could not read cache hit rate: {e}")
            return None

    def _model_usage(self, events: list[TelemetryEvent]) -> dict[str, ModelUsage]:
        usage: dict[str, ModelUsage] = {}
        for event in events:
            stats = usage.setdefault(event.model_name, ModelUsage())
            stats.requests += 1
            stats.tokens += event.tokens_total or 0
            stats.cost += self.cost_per_request(event)
        return usage

    @staticmethod
    def _window_hours(events: list[TelemetryEvent]) -> float:
        if len(events) < 2:
            return 1.0
        timestamps = [e.timestamp for e in events]
        hours = (max(timestamps) - min(timestamps)).total_seconds() / 3600
        return max(hours, 0.1)

    def _recommendations(
        self,
        events: list[TelemetryEvent],
        usage: dict[str, ModelUsage],
        monthly_factor: float,
        monthly_cost: float,
        cache_hit_rate: float | None,
    ) -> list[CostRecommendation]:
        recommendations: list[CostRecommendation] = []

        # Model downgrades
        for model, stats in usage.items():
            alternatives = MODEL_ALTERNATIVES.get(model)
            if not alternatives:
                continue
            alternative = alternatives[0]
            current = get_pricing(model)
            alt = MODEL_PRICING.get(alternative, MODEL_PRICING[DEFAULT_ALTERNATIVE_PRICING_MODEL])
            savings_per_1m = (current["input"] + current["output"]) / 2 - (alt["input"] + alt["output"]) / 2
            if savings_per_1m <= 0:
                continue
            savings = (stats.tokens / 1_000_000) * savings_per_1m * monthly_factor
            if savings > self.min_monthly_savings:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.MODEL_DOWNGRADE,
                    priority=RecommendationPriority.HIGH if savings > 100 else RecommendationPriority.MEDIUM,
                    estimated_savings=savings,
                    description=f"{model} is expensive. Consider using {alternative} for similar performance at lower cost.",
                    action=f"Switch {stats.requests} requests from {model} to {alternative}",
                    model=model,
                    alternative_model=alternative,
                ))

        # Caching
        if cache_hit_rate is None:
            savings = max(0.0, monthly_cost * TARGET_CACHE_HIT_RATE * CACHE_SAVINGS_EFFICIENCY)
            if savings > self.min_monthly_savings:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.ENABLE_CACHING,
                    priority=RecommendationPriority.MEDIUM,
                    estimated_savings=savings,
                    description="Response caching is not enabled. Enable caching to reduce redundant API calls.",
                    action="Enable response caching for repeated queries",
                ))
        elif cache_hit_rate < LOW_CACHE_HIT_RATE:
            savings = max(0.0, monthly_cost * (TARGET_CACHE_HIT_RATE - cache_hit_rate) * CACHE_SAVINGS_EFFICIENCY)
            if savings > self.min_monthly_savings:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.ENABLE_CACHING,
                    priority=RecommendationPriority.HIGH if savings > 50 else RecommendationPriority.MEDIUM,
                    estimated_savings=savings,
                    description=(f"Current cache hit rate is {cache_hit_rate * 100:.1f}%. "
                                 f"Increasing to 50%+ could save significant costs."),
                    action="Enable response caching for repeated queries",
                ))

        # Prompt optimization
        avg_tokens_in = sum(e.tokens_in for e in events) / len(events)
        if avg_tokens_in > LARGE_PROMPT_TOKENS:
            input_cost = sum(
                (stats.tokens * PROMPT_INPUT_SHARE / 1_000_000) * get_pricing(model)["input"]
                for model, stats in usage.items()
            )
            savings = input_cost * monthly_factor * PROMPT_REDUCTION_FACTOR
            if savings > self.min_monthly_savings:
                recommendations.append(CostRecommendation(
                    type=RecommendationType.OPTIMIZE_PROMPTS,
                    priority=RecommendationPriority.LOW,
                    estimated_savings=savings,
                    description=(f"Average prompt length is {avg_tokens_in:.0f} tokens. "
                                 f"Optimizing prompts could reduce input costs."),
                    action="Review and optimize prompts to reduce token usage",
                ))

        recommendations.sort(key=lambda r: (-r.priority.rank, -r.estimated_savings))
        return recommendations
