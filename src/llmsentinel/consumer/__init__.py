# src/llmsentinel/consumer/__init__.py
"""
Message consumption: parsing, the analysis pipeline and the queue transport.
"""

from .message import InboundMessage, QueueMessage, parse_message
from .pipeline import AnalysisPipeline, PipelineStats
from .queue import ConsumerStats, QueueConsumer

__all__ = [
    "AnalysisPipeline",
    "ConsumerStats",
    "InboundMessage",
    "PipelineStats",
    "QueueConsumer",
    "QueueMessage",
    "parse_message",
]
