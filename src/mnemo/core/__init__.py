"""
Core subpackage for mnemo.

Contains types, exceptions, and logging utilities.
"""

from .types import (
    ChunkSpan,
    Citation,
    EmbeddingJob,
    EmbeddingVector,
    EncryptedBlob,
    JobStatus,
    KEKResult,
    MMRCandidate,
    RetrievalCandidate,
    TextChunk,
    WrappedKey,
)
from .exceptions import (
    AuthenticationError,
    ConfigError,
    MnemoError,
    ProcessingError,
    ProviderError,
    QueueTerminalError,
    SecurityError,
    SynthesisError,
    ValidationError,
    VaultLockedError,
)

__all__ = [
    # Types
    "ChunkSpan",
    "Citation",
    "EmbeddingJob",
    "EmbeddingVector",
    "EncryptedBlob",
    "JobStatus",
    "KEKResult",
    "MMRCandidate",
    "RetrievalCandidate",
    "TextChunk",
    "WrappedKey",
    # Exceptions
    "AuthenticationError",
    "ConfigError",
    "MnemoError",
    "ProcessingError",
    "ProviderError",
    "QueueTerminalError",
    "SecurityError",
    "SynthesisError",
    "ValidationError",
    "VaultLockedError",
]
