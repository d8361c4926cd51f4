"""
Configuration loader for mnemo.

Configuration is read once from an optional YAML file, overlaid with
environment variables, validated, and passed down explicitly. There is no
process-wide config object.

Example config.yaml:

    environment: development
    crypto:
      iterations: 10000
    chunking:
      target_tokens: 600
      overlap_tokens: 80
    mmr:
      lambda: 0.7
      max_results: 10
    embedding:
      provider: ollama
      model: all-minilm
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .core.exceptions import ConfigError
from .crypto.kdf import PBKDF2_SHA256, SCRYPT, KdfParams
from .jobs.queue import WorkerConfig
from .providers.base import EmbeddingConfig, SynthesizerConfig
from .retrieval.chunker import ChunkingPolicy
from .retrieval.mmr import MMRConfig
from .retrieval.orchestrator import RetrievalConfig


logger = logging.getLogger(__name__)

ENVIRONMENTS = ("development", "production")
DEFAULT_KDF_ITERATIONS = {"development": 10_000, "production": 100_000}
MIN_KDF_ITERATIONS = 1000

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "MNEMO_KDF_ITERATIONS": ("crypto", "iterations"),
    "OLLAMA_BASE_URL": ("embedding", "base_url"),
    "OLLAMA_EMBED_MODEL": ("embedding", "model"),
    "OLLAMA_MODEL": ("synthesizer", "model"),
    "MNEMO_LOG_LEVEL": ("logging", "level"),
}


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    structured: bool = False


@dataclass
class MnemoConfig:
    """
    Complete engine configuration.

    Attributes:
        environment: "development" or "production"
        crypto: KDF parameters for new vaults
        chunking: Chunking policy
        mmr: MMR parameters
        retrieval: Retrieval settings
        worker: Embedding queue settings
        embedding: Embedding provider settings
        synthesizer: Answer synthesizer settings
        logging: Logging settings
    """
    environment: str = "production"
    crypto: KdfParams = field(default_factory=KdfParams)
    chunking: ChunkingPolicy = field(default_factory=ChunkingPolicy)
    mmr: MMRConfig = field(default_factory=MMRConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    synthesizer: SynthesizerConfig = field(default_factory=SynthesizerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigError: On the first invalid value found
        """
        if self.environment not in ENVIRONMENTS:
            raise ConfigError(f"environment must be one of {ENVIRONMENTS}, got {self.environment}")

        if self.crypto.algorithm not in (PBKDF2_SHA256, SCRYPT):
            raise ConfigError(f"Unsupported KDF algorithm: {self.crypto.algorithm}")
        if self.crypto.iterations < MIN_KDF_ITERATIONS:
            raise ConfigError(f"crypto.iterations must be at least {MIN_KDF_ITERATIONS}")

        if self.chunking.target_tokens < 1:
            raise ConfigError("chunking.target_tokens must be at least 1")
        if not 0 <= self.chunking.overlap_tokens < self.chunking.target_tokens:
            raise ConfigError("chunking.overlap_tokens must be in [0, target_tokens)")
        if self.chunking.chars_per_token <= 0:
            raise ConfigError("chunking.chars_per_token must be positive")
        if self.chunking.max_chunks_per_entry < 1:
            raise ConfigError("chunking.max_chunks_per_entry must be at least 1")

        if not 0.0 <= self.mmr.lambda_ <= 1.0:
            raise ConfigError("mmr.lambda must be in [0, 1]")
        if self.mmr.max_results < 1:
            raise ConfigError("mmr.max_results must be at least 1")

        if self.retrieval.max_context_tokens < 1:
            raise ConfigError("retrieval.max_context_tokens must be at least 1")
        if self.retrieval.max_citations < 1:
            raise ConfigError("retrieval.max_citations must be at least 1")
        if not 0.0 <= self.retrieval.min_score <= 1.0:
            raise ConfigError("retrieval.min_score must be in [0, 1]")
        if self.retrieval.tone not in ("direct", "neutral"):
            raise ConfigError(f"Unknown retrieval.tone: {self.retrieval.tone}")

        if self.worker.batch_size < 1:
            raise ConfigError("worker.batch_size must be at least 1")
        if self.worker.max_retries < 1:
            raise ConfigError("worker.max_retries must be at least 1")
        if self.worker.base_delay_seconds < 0:
            raise ConfigError("worker.base_delay_seconds must be non-negative")

        if self.embedding.provider not in ("hashing", "ollama"):
            raise ConfigError(f"Unknown embedding provider: {self.embedding.provider}")
        if self.embedding.batch_size < 1:
            raise ConfigError("embedding.batch_size must be at least 1")
        if self.synthesizer.provider not in ("none", "ollama"):
            raise ConfigError(f"Unknown synthesizer provider: {self.synthesizer.provider}")

        if not isinstance(logging.getLevelName(str(self.logging.level).upper()), int):
            raise ConfigError(f"Unknown log level: {self.logging.level}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key, e.g. "mmr.lambda_"."""
        value: Any = self
        for part in key.split("."):
            if not hasattr(value, part):
                return default
            value = getattr(value, part)
        return value if value is not None else default


def _section(cls, data: Any, name: str, renames: Optional[Dict[str, str]] = None):
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config section '{name}' must be a mapping")

    renames = renames or {}
    known = {f.name for f in dataclasses.fields(cls)}
    kwargs = {}
    for key, value in data.items():
        attr = renames.get(key, key)
        if attr not in known:
            raise ConfigError(f"Unknown key '{key}' in config section '{name}'")
        kwargs[attr] = value

    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config section '{name}': {e}") from e


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    logger.info(f"Loading config from: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _apply_env_overrides(raw: Dict[str, Any], environ: Mapping[str, str]) -> None:
    env_name = environ.get("MNEMO_ENV")
    if env_name:
        raw["environment"] = env_name

    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        target = raw.setdefault(section, {})
        if key == "iterations":
            try:
                value = int(value)
            except ValueError as e:
                raise ConfigError(f"{var} must be an integer, got {value!r}") from e
        target[key] = value
        logger.debug(f"Config override from {var}")

    # One Ollama server serves both embedding and synthesis.
    base_url = environ.get("OLLAMA_BASE_URL")
    if base_url:
        raw.setdefault("synthesizer", {})["base_url"] = base_url


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MnemoConfig:
    """
    Build and validate the configuration.

    Args:
        path: Optional YAML file; defaults are used when omitted
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated MnemoConfig

    Raises:
        ConfigError: If the file is missing or invalid, or a value is out of range
    """
    raw = _read_yaml(Path(path)) if path else {}
    _apply_env_overrides(raw, os.environ if environ is None else environ)

    environment = raw.get("environment", "production")
    crypto = dict(raw.get("crypto") or {})
    crypto.setdefault("iterations", DEFAULT_KDF_ITERATIONS.get(environment, 100_000))

    known_sections = {
        "environment", "crypto", "chunking", "mmr", "retrieval",
        "worker", "embedding", "synthesizer", "logging",
    }
    unknown = set(raw) - known_sections
    if unknown:
        raise ConfigError(f"Unknown config sections: {sorted(unknown)}")

    config = MnemoConfig(
        environment=environment,
        crypto=_section(KdfParams, crypto, "crypto"),
        chunking=_section(ChunkingPolicy, raw.get("chunking"), "chunking"),
        mmr=_section(MMRConfig, raw.get("mmr"), "mmr", renames={"lambda": "lambda_"}),
        retrieval=_section(RetrievalConfig, raw.get("retrieval"), "retrieval"),
        worker=_section(WorkerConfig, raw.get("worker"), "worker"),
        embedding=_section(EmbeddingConfig, raw.get("embedding"), "embedding"),
        synthesizer=_section(SynthesizerConfig, raw.get("synthesizer"), "synthesizer"),
        logging=_section(LoggingConfig, raw.get("logging"), "logging"),
    )
    config.validate()
    return config
