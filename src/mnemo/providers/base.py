"""
Provider ports - the embedding function and the answer synthesizer.

Both are external to the engine. The engine only relies on the contracts
defined here.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..core.exceptions import ProcessingError, ValidationError

if TYPE_CHECKING:
    from ..retrieval.prompt import QAPrompt


logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """
    Embedding provider configuration.

    Attributes:
        provider: "hashing" (local, offline) or "ollama"
        model: Model identifier; dimensionality is fixed per model
        dimensions: Expected vector size (pinned by the first response if None)
        batch_size: Maximum texts per provider call
        base_url: Provider base URL (ollama)
        timeout_seconds: Request timeout (ollama)
    """
    provider: str = "hashing"
    model: str = "all-MiniLM-L6-v2"
    dimensions: Optional[int] = 384
    batch_size: int = 8
    base_url: str = "http://localhost:11434"
    timeout_seconds: int = 120


@dataclass
class SynthesizerConfig:
    """
    Answer synthesizer configuration.

    Attributes:
        provider: "none" (retrieval only) or "ollama"
        model: Chat model name
        base_url: Provider base URL
        timeout_seconds: Request timeout
        temperature: Sampling temperature
    """
    provider: str = "none"
    model: str = "llama3.2"
    base_url: str = "http://localhost:11434"
    timeout_seconds: int = 120
    temperature: float = 0.0


class EmbeddingPort(ABC):
    """
    Asynchronous text -> vector function.

    Subclasses implement _embed_group(); embed_batch() takes care of
    grouping, ordering and the dimensionality contract.

    Example:
        >>> embedder = HashingEmbedder(dimensions=64)
        >>> vectors = await embedder.embed_batch(["first", "second"])
    """

    def __init__(self, model: str, dimensions: Optional[int] = None, batch_size: int = 8):
        if batch_size < 1:
            raise ValidationError(f"batch_size must be at least 1, got {batch_size}")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed texts in order, at most batch_size per provider call.

        Returns:
            One vector per input text, in input order

        Raises:
            ProcessingError: If the provider fails, returns the wrong number
                of vectors, or changes dimensionality
        """
        vectors: List[List[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            group = list(texts[offset:offset + self.batch_size])
            result = await self._embed_group(group)

            if len(result) != len(group):
                raise ProcessingError(
                    f"Embedding count mismatch: expected {len(group)}, got {len(result)}"
                )

            for vector in result:
                self._check_dimensions(vector)
                vectors.append([float(v) for v in vector])

        return vectors

    def _check_dimensions(self, vector: Sequence[float]) -> None:
        if self.dimensions is None:
            self.dimensions = len(vector)
            logger.info(f"Pinned {self.model} dimensionality to {self.dimensions}")
        elif len(vector) != self.dimensions:
            raise ProcessingError(
                f"Dimension mismatch for {self.model}: expected {self.dimensions}, got {len(vector)}"
            )

    @abstractmethod
    async def _embed_group(self, texts: List[str]) -> List[List[float]]:
        """Embed one group of at most batch_size texts."""
        ...


class AnswerSynthesizer(ABC):
    """Produces a strict-JSON answer from a QA prompt."""

    @abstractmethod
    async def synthesize(self, prompt: "QAPrompt") -> str:
        """Return the raw reply text."""
        ...
