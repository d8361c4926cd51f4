"""
Embedding and answer-synthesis providers.
"""

from .base import AnswerSynthesizer, EmbeddingConfig, EmbeddingPort, SynthesizerConfig
from .hashing import HashingEmbedder
from .ollama import OllamaClient, OllamaEmbedder, OllamaSynthesizer

__all__ = [
    "AnswerSynthesizer",
    "EmbeddingConfig",
    "EmbeddingPort",
    "HashingEmbedder",
    "OllamaClient",
    "OllamaEmbedder",
    "OllamaSynthesizer",
    "SynthesizerConfig",
    "build_embedder",
    "build_synthesizer",
]


def build_embedder(config: EmbeddingConfig) -> EmbeddingPort:
    """Create the embedder named by config.provider."""
    if config.provider == "hashing":
        return HashingEmbedder(
            dimensions=config.dimensions or 384,
            model=config.model,
            batch_size=config.batch_size,
        )
    if config.provider == "ollama":
        return OllamaEmbedder(config)
    raise ValueError(f"Unknown embedding provider: {config.provider}")


def build_synthesizer(config: SynthesizerConfig):
    """Create the synthesizer named by config.provider, or None for "none"."""
    if config.provider == "none":
        return None
    if config.provider == "ollama":
        return OllamaSynthesizer(config)
    raise ValueError(f"Unknown synthesizer provider: {config.provider}")
