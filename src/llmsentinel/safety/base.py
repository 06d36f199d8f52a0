# src/llmsentinel/safety/base.py
"""
Abstract Base Class for safety classification models.

A safety model labels one prompt/response pair with a SafetyLabel and a
score in [0, 1] where 1.0 means completely safe.
"""

import abc
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..models import SafetyLabel


class Classification(BaseModel):
    """A single model's verdict."""

    label: SafetyLabel
    score: float = Field(ge=0.0, le=1.0)
    details: Optional[str] = None
    model: Optional[str] = None

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v):
        if isinstance(v, (int, float)):
            return max(0.0, min(1.0, float(v)))
        return v


class SafetyModel(abc.ABC):
    """
    Interface implemented by every safety classification strategy.
    """

    @property
    @abc.abstractmethod
    def model_name(self) -> str:
        """Identifier used in logs and in ``Classification.model``."""

    @abc.abstractmethod
    async def classify(self, prompt: str, response: str) -> Classification:
        """
        Classify a prompt/response pair.

        Raises:
            ClassifierError: If the model cannot be reached or fails.
            ClassifierOutputError: If the model answered with an unusable verdict.
        """

    async def close(self) -> None:
        """Release any client resources. The default implementation does nothing."""
