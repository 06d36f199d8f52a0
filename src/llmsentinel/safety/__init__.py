# src/llmsentinel/safety/__init__.py
"""
Safety classification: model chain with keyword/regex fallback.
"""

from .base import Classification, SafetyModel
from .classifier import SafetyClassifier
from .heuristics import HeuristicSafetyModel

__all__ = ["Classification", "HeuristicSafetyModel", "SafetyClassifier", "SafetyModel"]
