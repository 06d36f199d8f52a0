# src/llmsentinel/safety/heuristics.py
"""
Keyword and regex safety heuristics.

The last link of the classifier chain: always available, never raises.
Checks run in a fixed order and the first match wins:

1. prompt-injection markers in the prompt
2. jailbreak phrasing in the prompt
3. PII patterns in prompt + response
4. toxic keywords in prompt or response
"""

import re
from typing import Pattern

from ..models import SafetyLabel
from .base import Classification, SafetyModel

INJECTION_MARKERS = ("ignore previous", "new instructions")
JAILBREAK_KEYWORDS = ("ignore", "forget", "override", "system", "instructions", "pretend", "act as")
TOXIC_KEYWORDS = ("hate", "kill", "violence", "attack")

PII_PATTERNS: dict[str, Pattern[str]] = {
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
}


class HeuristicSafetyModel(SafetyModel):
    """Rule-based classifier used when no model verdict is available."""

    @property
    def model_name(self) -> str:
        return "heuristic"

    def classify_sync(self, prompt: str, response: str) -> Classification:
        prompt_lower = prompt.lower()
        response_lower = response.lower()

        if any(marker in prompt_lower for marker in INJECTION_MARKERS):
            return Classification(label=SafetyLabel.PROMPT_INJECTION, score=0.4,
                                  details="Potential prompt injection detected", model=self.model_name)

        if any(kw in prompt_lower for kw in JAILBREAK_KEYWORDS):
            return Classification(label=SafetyLabel.JAILBREAK, score=0.3,
                                  details="Potential jailbreak attempt detected", model=self.model_name)

        combined = f"{prompt} {response}"
        matched = [name for name, pattern in PII_PATTERNS.items() if pattern.search(combined)]
        if matched:
            return Classification(label=SafetyLabel.PII, score=0.4,
                                  details=f"Potential PII detected ({', '.join(matched)})", model=self.model_name)

        if any(kw in prompt_lower or kw in response_lower for kw in TOXIC_KEYWORDS):
            return Classification(label=SafetyLabel.TOXIC, score=0.5,
                                  details="Potential toxic content detected", model=self.model_name)

        return Classification(label=SafetyLabel.CLEAN, score=1.0, model=self.model_name)

    async def classify(self, prompt: str, response: str) -> Classification:
        return self.classify_sync(prompt, response)
