# src/llmsentinel/baseline/__init__.py
"""
Endpoint baselines and their snapshot policy.
"""

from .flush import DebouncedFlushPolicy, FlushPolicy
from .store import BaselineStore

__all__ = ["BaselineStore", "DebouncedFlushPolicy", "FlushPolicy"]
