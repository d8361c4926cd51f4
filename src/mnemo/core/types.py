"""
Core data types for mnemo.

Uses dataclasses for every record that crosses a module boundary. Records
that are immutable once created (chunks, candidates, citations, blobs) are
frozen.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import uuid


# Closed set of value kinds allowed in candidate metadata.
MetadataValue = Union[str, int, float, bool, datetime, None, Tuple[str, ...]]
Metadata = Mapping[str, MetadataValue]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class KEKResult:
    """
    Key-Encryption-Key derived from a passphrase.

    Attributes:
        salt: KDF salt (persisted with the user record)
        kek: Derived key bytes (memory only, never persisted)
    """
    salt: bytes
    kek: bytes = field(repr=False)


@dataclass(frozen=True)
class WrappedKey:
    """A DEK encrypted under a KEK, with the nonce used for wrapping."""
    wrapped: bytes
    nonce: bytes


@dataclass(frozen=True)
class EncryptedBlob:
    """Output of every AEAD seal. The nonce is single-use per key."""
    cipher: bytes
    nonce: bytes


@dataclass(frozen=True)
class ChunkSpan:
    """A raw chunk produced by chunk_text: entry-relative offsets plus text."""
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class TextChunk:
    """
    A contiguous, offset-addressable slice of an entry.

    Invariant: source_text[start:end].strip() == text.

    Attributes:
        id: Deterministic chunk identifier
        entry_id: Entry the chunk was cut from
        start: Start character offset in the decrypted entry text
        end: End character offset (exclusive)
        text: Chunk text
        tags: Lower-cased tags (entry tags plus extracted #tags/@mentions)
        importance: Heuristic importance in [0, 1]
        occurred_at: When the entry occurred (for time filters and decay)
    """
    id: str
    entry_id: str
    start: int
    end: int
    text: str
    tags: Tuple[str, ...] = ()
    importance: float = 0.0
    occurred_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "tags": list(self.tags),
            "importance": self.importance,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextChunk":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            entry_id=data["entry_id"],
            start=data["start"],
            end=data["end"],
            text=data["text"],
            tags=tuple(data.get("tags", ())),
            importance=data.get("importance", 0.0),
            occurred_at=parse_datetime(data.get("occurred_at")),
        )


@dataclass
class EmbeddingVector:
    """
    Embedding of a single chunk.

    Attributes:
        id: Unique identifier for this vector
        chunk_id: Chunk the vector represents
        model: Embedding model identifier
        dims: Dimensionality (fixed per model)
        values: The vector components
        created_at: When the vector was produced
    """
    chunk_id: str
    model: str
    values: List[float]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    @property
    def dims(self) -> int:
        return len(self.values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "chunk_id": self.chunk_id,
            "model": self.model,
            "dims": self.dims,
            "values": self.values,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class MMRCandidate:
    """
    A candidate for MMR selection.

    relevance is computed fresh per query and never cached across queries.
    """
    id: str
    text: str
    relevance: float = 0.0
    metadata: Metadata = field(default_factory=dict)


@dataclass(frozen=True)
class RetrievalCandidate:
    """A stored chunk together with its embedding, as handed over by the store."""
    chunk: TextChunk
    vector: List[float]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetrievalCandidate":
        """Create from a {"chunk": {...}, "vector": [...]} dictionary."""
        return cls(chunk=TextChunk.from_dict(data["chunk"]), vector=list(data["vector"]))


@dataclass(frozen=True)
class Citation:
    """
    Pointer from an answer to a source span.

    Offsets are character positions in the decrypted entry text.
    """
    chunk_id: str
    entry_id: str
    start: int
    end: int
    score: float

    def to_wire(self) -> Dict[str, Any]:
        """Citation wire shape handed to and from the answer synthesizer."""
        return {"entryId": self.entry_id, "start": self.start, "end": self.end}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "chunk_id": self.chunk_id,
            "entry_id": self.entry_id,
            "start": self.start,
            "end": self.end,
            "score": self.score,
        }


class JobStatus(str, Enum):
    """Status of an embedding job."""
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass
class EmbeddingJob:
    """
    A chunk-then-embed job owned by the queue until it reaches a terminal state.

    Attributes:
        id: Job identifier
        entry_id: Entry whose content is chunked and embedded
        content: Decrypted entry text (memory only)
        priority: Higher runs sooner
        retries: Failures so far
        status: Current state
        occurred_at: Entry timestamp, copied onto chunks
        tags: Entry tags, copied onto chunks
        last_error: Message of the most recent failure
    """
    entry_id: str
    content: str = field(repr=False)
    priority: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    retries: int = 0
    status: JobStatus = JobStatus.QUEUED
    occurred_at: Optional[datetime] = None
    tags: Tuple[str, ...] = ()
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
