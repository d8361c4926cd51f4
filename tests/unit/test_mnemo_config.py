"""
Unit tests for configuration loading.
"""

import pytest

from mnemo.config import MnemoConfig, load_config
from mnemo.core.exceptions import ConfigError


def write_yaml(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config(environ={})

        assert config.environment == "production"
        assert config.is_production
        assert config.crypto.iterations == 100_000
        assert config.chunking.target_tokens == 600
        assert config.chunking.overlap_tokens == 80
        assert config.mmr.lambda_ == 0.7
        assert config.mmr.max_results == 10
        assert config.worker.max_retries == 3
        assert config.worker.base_delay_seconds == 5.0
        assert config.retrieval.min_score == 0.3

    def test_development_iterations(self):
        config = load_config(environ={"MNEMO_ENV": "development"})
        assert config.environment == "development"
        assert config.crypto.iterations == 10_000

    def test_yaml_file(self, tmp_path):
        path = write_yaml(tmp_path, """
environment: development
chunking:
  target_tokens: 300
  overlap_tokens: 40
mmr:
  lambda: 0.5
embedding:
  provider: ollama
  model: all-minilm
""")
        config = load_config(path, environ={})

        assert config.chunking.target_tokens == 300
        assert config.mmr.lambda_ == 0.5
        assert config.embedding.provider == "ollama"
        assert config.embedding.model == "all-minilm"

    def test_explicit_iterations_kept(self, tmp_path):
        path = write_yaml(tmp_path, "environment: development\ncrypto:\n  iterations: 50000\n")
        assert load_config(path, environ={}).crypto.iterations == 50_000

    def test_env_overrides(self):
        config = load_config(environ={
            "MNEMO_KDF_ITERATIONS": "20000",
            "OLLAMA_BASE_URL": "http://gpu-box:11434",
            "OLLAMA_EMBED_MODEL": "nomic-embed-text",
            "OLLAMA_MODEL": "mistral",
            "MNEMO_LOG_LEVEL": "debug",
        })

        assert config.crypto.iterations == 20_000
        assert config.embedding.base_url == "http://gpu-box:11434"
        assert config.synthesizer.base_url == "http://gpu-box:11434"
        assert config.embedding.model == "nomic-embed-text"
        assert config.synthesizer.model == "mistral"
        assert config.logging.level == "debug"

    def test_env_beats_file(self, tmp_path):
        path = write_yaml(tmp_path, "embedding:\n  model: from-file\n")
        config = load_config(path, environ={"OLLAMA_EMBED_MODEL": "from-env"})
        assert config.embedding.model == "from-env"

    def test_empty_file(self, tmp_path):
        path = write_yaml(tmp_path, "")
        assert load_config(path, environ={}).environment == "production"

    def test_get_dotted(self):
        config = load_config(environ={})
        assert config.get("mmr.lambda_") == 0.7
        assert config.get("mmr.missing", "fallback") == "fallback"


class TestConfigErrors:
    """Invalid configuration raises ConfigError."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "absent.yaml", environ={})

    def test_invalid_yaml(self, tmp_path):
        path = write_yaml(tmp_path, "chunking: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path, environ={})

    def test_not_a_mapping(self, tmp_path):
        path = write_yaml(tmp_path, "- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(path, environ={})

    def test_unknown_section(self, tmp_path):
        path = write_yaml(tmp_path, "telemetry:\n  enabled: true\n")
        with pytest.raises(ConfigError, match="Unknown config sections"):
            load_config(path, environ={})

    def test_unknown_key(self, tmp_path):
        path = write_yaml(tmp_path, "mmr:\n  diversity: 0.2\n")
        with pytest.raises(ConfigError, match="Unknown key 'diversity'"):
            load_config(path, environ={})

    def test_non_integer_iterations(self):
        with pytest.raises(ConfigError, match="must be an integer"):
            load_config(environ={"MNEMO_KDF_ITERATIONS": "lots"})

    @pytest.mark.parametrize("yaml_text, message", [
        ("environment: staging\n", "environment must be one of"),
        ("crypto:\n  iterations: 10\n", "at least 1000"),
        ("chunking:\n  target_tokens: 100\n  overlap_tokens: 100\n", "overlap_tokens"),
        ("mmr:\n  lambda: 1.5\n", "mmr.lambda"),
        ("retrieval:\n  tone: cheerful\n", "tone"),
        ("worker:\n  max_retries: 0\n", "max_retries"),
        ("embedding:\n  provider: openai\n", "embedding provider"),
        ("logging:\n  level: LOUD\n", "log level"),
    ])
    def test_out_of_range(self, tmp_path, yaml_text, message):
        path = write_yaml(tmp_path, yaml_text)
        with pytest.raises(ConfigError, match=message):
            load_config(path, environ={})

    def test_validate_directly(self):
        config = MnemoConfig(environment="staging")
        with pytest.raises(ConfigError):
            config.validate()
