# tests/test_exceptions.py
"""
Tests for the llmsentinel exception hierarchy.
"""

import pytest

from llmsentinel.exceptions import (
    ClassifierError,
    ClassifierOutputError,
    ConfigError,
    EmbeddingError,
    InvalidInputError,
    MessageParseError,
    SentinelError,
    StorageError,
    TelemetryExportError,
)


class TestSentinelError:

    def test_default_message(self):
        assert str(SentinelError()) == "An unspecified error occurred in LLM Sentinel."

    def test_custom_message(self):
        assert str(SentinelError("boom")) == "boom"

    def test_is_exception(self):
        assert issubclass(SentinelError, Exception)


@pytest.mark.parametrize(
    "exc_class",
    [ConfigError, InvalidInputError, MessageParseError, EmbeddingError,
     ClassifierError, StorageError, TelemetryExportError, ClassifierOutputError],
)
def test_inherits_sentinel_error(exc_class):
    assert issubclass(exc_class, SentinelError)
    with pytest.raises(SentinelError):
        raise exc_class()


class TestModelErrors:

    def test_embedding_error(self):
        err = EmbeddingError(model_name="text-embedding-004", message="quota exceeded")
        assert err.model_name == "text-embedding-004"
        assert str(err) == "Error with embedding model 'text-embedding-004': quota exceeded"

    def test_classifier_output_error_is_classifier_error(self):
        err = ClassifierOutputError(model_name="gemini-1.5-pro", message="no JSON")
        assert isinstance(err, ClassifierError)
        assert err.model_name == "gemini-1.5-pro"
        assert "no JSON" in str(err)

    def test_telemetry_export_error(self):
        err = TelemetryExportError(sink_name="registry", message="disk full")
        assert err.sink_name == "registry"
        assert str(err) == "Error with telemetry sink 'registry': disk full"


class TestMessageParseError:

    def test_with_message_id(self):
        err = MessageParseError("bad payload", message_id="m-1")
        assert err.message_id == "m-1"
        assert str(err) == "bad payload (message 'm-1')"

    def test_without_message_id(self):
        err = MessageParseError("bad payload")
        assert err.message_id is None
        assert str(err) == "bad payload"
