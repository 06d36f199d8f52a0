# tests/test_config.py
"""Tests for analyzer configuration loading and validation."""

import pytest

from llmsentinel.config import SentinelConfig, StorageBackend, load_config
from llmsentinel.exceptions import ConfigError


class TestDefaults:

    def test_default_values(self):
        config = SentinelConfig()
        assert config.environment == "dev"
        assert config.baseline.min_samples == 5
        assert config.baseline.learning_rate == 0.1
        assert config.anomaly.window_size == 50
        assert config.anomaly.z_threshold == 3.0
        assert config.safety.high_risk_threshold == 0.5
        assert config.storage.backend == StorageBackend.SQLITE
        assert config.consumer.max_redeliveries == 5

    def test_model_variants_deduplicated(self):
        config = SentinelConfig()
        variants = config.embedding.model_variants()
        assert variants[0] == "text-embedding-004"
        assert variants.count("text-embedding-004") == 1
        assert len(variants) == 3

    def test_logging_to_dict_keeps_default_components(self):
        assert "components" not in SentinelConfig().logging.to_dict()


class TestLoadConfig:

    def test_no_sources(self):
        config = load_config(environ={})
        assert config == SentinelConfig()

    def test_toml_file(self, tmp_path):
        path = tmp_path / "sentinel.toml"
        path.write_text(
            'environment = "prod"\n'
            "[anomaly]\n"
            "z_threshold = 2.5\n"
            "[storage]\n"
            'backend = "MEMORY"\n',
            encoding="utf-8",
        )
        config = load_config(path, environ={})
        assert config.environment == "prod"
        assert config.anomaly.z_threshold == 2.5
        assert config.anomaly.window_size == 50
        assert config.storage.backend == StorageBackend.MEMORY

    def test_dict_merges_per_section(self, tmp_path):
        path = tmp_path / "sentinel.toml"
        path.write_text("[anomaly]\nz_threshold = 2.5\n", encoding="utf-8")
        config = load_config(path, config_dict={"anomaly": {"window_size": 20}}, environ={})
        assert config.anomaly.z_threshold == 2.5
        assert config.anomaly.window_size == 20

    def test_environment_overrides(self):
        config = load_config(environ={
            "SENTINEL_ENVIRONMENT": "staging",
            "SENTINEL_DB_PATH": "/tmp/sentinel.db",
            "SENTINEL_LOG_LEVEL": "DEBUG",
            "GOOGLE_API_KEY": "env-key",
        })
        assert config.environment == "staging"
        assert config.storage.path == "/tmp/sentinel.db"
        assert config.logging.console_level == "DEBUG"
        assert config.embedding.api_key == "env-key"

    def test_explicit_api_key_wins(self):
        config = load_config(config_dict={"embedding": {"api_key": "file-key"}}, environ={"GOOGLE_API_KEY": "env-key"})
        assert config.embedding.api_key == "file-key"

    def test_task_type_uppercased(self):
        config = load_config(config_dict={"embedding": {"task_type": "semantic_similarity"}}, environ={})
        assert config.embedding.task_type == "SEMANTIC_SIMILARITY"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml", environ={})

    def test_malformed_toml(self, tmp_path):
        path = tmp_path / "sentinel.toml"
        path.write_text("[anomaly\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(path, environ={})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"baseline": {"learning_rate": 0.0}},
            {"baseline": {"learning_rate": 1.5}},
            {"anomaly": {"window_size": 1}},
            {"safety": {"high_risk_threshold": 2}},
            {"consumer": {"max_concurrency": 0}},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError, match="Invalid analyzer configuration"):
            load_config(config_dict=overrides, environ={})

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            load_config(config_dict={"storage": {"backend": "postgres"}}, environ={})
