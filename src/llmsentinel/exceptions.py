# src/llmsentinel/exceptions.py
"""
Custom exceptions for the LLM Sentinel analyzer.

This module defines the hierarchy of exception classes used across the
analysis pipeline. The hierarchy mirrors how failures are handled:

- Collaborator failures (``EmbeddingError``, ``ClassifierError``,
  ``StorageError``, ``TelemetryExportError``) are absorbed by the component
  that owns the collaborator and replaced with a safe default.
- ``MessageParseError`` is the only error that escalates to the message
  acknowledgement decision (the message is rejected and redelivered).
- ``InvalidInputError`` signals a programming-contract violation such as
  comparing vectors of different lengths; it is never caught by the pipeline.
"""


class SentinelError(Exception):
    """Base class for all LLM Sentinel specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in LLM Sentinel."):
        super().__init__(message)

class ConfigError(SentinelError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class InvalidInputError(SentinelError):
    """Raised when a function receives arguments that violate its contract."""
    def __init__(self, message: str = "Invalid input."):
        super().__init__(message)

class MessageParseError(SentinelError):
    """Raised when an inbound message cannot be turned into a TelemetryEvent."""
    def __init__(self, message: str = "Invalid telemetry event.", message_id: str | None = None):
        self.message_id = message_id
        suffix = f" (message '{message_id}')" if message_id else ""
        super().__init__(f"{message}{suffix}")

class EmbeddingError(SentinelError):
    """Raised for errors related to embedding generation."""
    def __init__(self, model_name: str = "Unknown", message: str = "Embedding generation error."):
        self.model_name = model_name
        super().__init__(f"Error with embedding model '{model_name}': {message}")

class ClassifierError(SentinelError):
    """Raised when a safety classification model fails or returns unusable output."""
    def __init__(self, model_name: str = "Unknown", message: str = "Safety classification error."):
        self.model_name = model_name
        super().__init__(f"Error with safety model '{model_name}': {message}")

class StorageError(SentinelError):
    """Raised for errors related to durable storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class TelemetryExportError(SentinelError):
    """Raised when metrics or alert events cannot be delivered to a sink."""
    def __init__(self, sink_name: str = "Unknown", message: str = "Telemetry export error."):
        self.sink_name = sink_name
        super().__init__(f"Error with telemetry sink '{sink_name}': {message}")

class ClassifierOutputError(ClassifierError):
    """Raised when a safety model answers but its verdict cannot be parsed."""
    def __init__(self, model_name: str = "Unknown", message: str = "Unparseable classifier output."):
        super().__init__(model_name=model_name, message=message)
