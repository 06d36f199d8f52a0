# src/llmsentinel/engines/safety.py
"""
Safety engine: turns a classifier verdict into a SafetyResult with a
high-risk flag.
"""

import logging
import time

from ..models import SafetyLabel, SafetyResult, TelemetryEvent
from ..safety.classifier import SafetyClassifier

logger = logging.getLogger(__name__)

# PII is reported but does not by itself make an event high risk.
HIGH_RISK_LABELS = frozenset({SafetyLabel.TOXIC, SafetyLabel.JAILBREAK, SafetyLabel.PROMPT_INJECTION})


class SafetyEngine:
    """
    Args:
        classifier: The classifier chain.
        high_risk_threshold: Scores strictly below this are high risk.
    """

    def __init__(self, classifier: SafetyClassifier, high_risk_threshold: float = 0.5):
        self._classifier = classifier
        self.high_risk_threshold = high_risk_threshold

    def is_high_risk(self, label: SafetyLabel, score: float) -> bool:
        return label in HIGH_RISK_LABELS or score < self.high_risk_threshold

    async def check_safety(self, event: TelemetryEvent) -> SafetyResult:
        start = time.perf_counter()

        if event.is_error or not event.has_response:
            return SafetyResult(processing_time_ms=(time.perf_counter() - start) * 1000)

        try:
            classification = await self._classifier.classify(event.prompt, event.response)
        except Exception as e:
            logger.error(f"Safety check failed for request '{event.request_id}': {e}", exc_info=True)
            return SafetyResult(
                details="Safety check failed, defaulting to CLEAN",
                processing_time_ms=(time.perf_counter() - start) * 1000,
            )

        return SafetyResult(
            safety_label=classification.label,
            safety_score=classification.score,
            is_high_risk=self.is_high_risk(classification.label, classification.score),
            details=classification.details,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
