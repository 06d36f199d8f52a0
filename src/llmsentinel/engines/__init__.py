# src/llmsentinel/engines/__init__.py
"""
Per-event analysis engines and cross-event detectors.
"""

from .anomaly import AnomalyDetector, AnomalyStats
from .cost import CostAnalysis, CostOptimizer, CostRecommendation
from .drift import DriftEngine
from .patterns import PatternDetection, PatternDetector, PatternStatistics, PatternType
from .safety import SafetyEngine

__all__ = [
    "AnomalyDetector",
    "AnomalyStats",
    "CostAnalysis",
    "CostOptimizer",
    "CostRecommendation",
    "DriftEngine",
    "PatternDetection",
    "PatternDetector",
    "PatternStatistics",
    "PatternType",
    "SafetyEngine",
]
