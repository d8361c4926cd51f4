"""
Chunker - Split entry text into offset-addressable retrieval units.

Implements sentence-aware chunking with:
- Token-estimated chunk size and word overlap
- Exact source offsets (text[start:end] is the chunk text)
- Deterministic chunk IDs
- Maximum chunks per entry
- Tag extraction and an importance heuristic
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.exceptions import ValidationError
from ..core.types import ChunkSpan, TextChunk
from ..core.utils import generate_chunk_id
from .tokens import CHUNK_ESTIMATOR, CharRatioEstimator

logger = logging.getLogger(__name__)

SENTENCE_END = re.compile(r"[.!?]+\s*")
WORD = re.compile(r"\S+")
TAG = re.compile(r"#\w+|@\w+")

# Fraction of overlap_tokens carried over as words into the next chunk.
OVERLAP_WORD_RATIO = 0.8

Span = Tuple[int, int]


@dataclass
class ChunkingPolicy:
    """
    Chunking parameters.

    Attributes:
        target_tokens: Maximum estimated tokens per chunk
        overlap_tokens: Overlap budget; ceil(overlap_tokens * 0.8) words are carried over
        chars_per_token: Character ratio used for estimation
        max_chunks_per_entry: Hard cap on chunks per entry
        version: Policy version, part of every chunk id
    """
    target_tokens: int = 600
    overlap_tokens: int = 80
    chars_per_token: float = 3.0
    max_chunks_per_entry: int = 1000
    version: str = "1.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "target_tokens": self.target_tokens,
            "overlap_tokens": self.overlap_tokens,
            "chars_per_token": self.chars_per_token,
            "max_chunks_per_entry": self.max_chunks_per_entry,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkingPolicy":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            target_tokens=int(data.get("target_tokens", defaults.target_tokens)),
            overlap_tokens=int(data.get("overlap_tokens", defaults.overlap_tokens)),
            chars_per_token=float(data.get("chars_per_token", defaults.chars_per_token)),
            max_chunks_per_entry=int(
                data.get("max_chunks_per_entry", defaults.max_chunks_per_entry)
            ),
            version=str(data.get("version", defaults.version)),
        )


class Chunker:
    """
    Chunks entry text into TextChunk records.

    Produces deterministic chunks with stable IDs for reproducible indexing.

    Example:
        >>> chunker = Chunker(ChunkingPolicy(target_tokens=200, overlap_tokens=20))
        >>> chunks = chunker.chunk_entry("entry-1", "Long journal text...")
    """

    def __init__(self, policy: Optional[ChunkingPolicy] = None):
        """
        Initialize the chunker.

        Args:
            policy: Chunking policy (uses default if not provided)
        """
        self.policy = policy or ChunkingPolicy()
        self.estimator = CharRatioEstimator(self.policy.chars_per_token)

    def chunk_entry(
        self,
        entry_id: str,
        text: str,
        occurred_at: Optional[datetime] = None,
        tags: Iterable[str] = (),
    ) -> List[TextChunk]:
        """
        Split an entry into chunks.

        Args:
            entry_id: Entry the text belongs to
            text: Decrypted entry text
            occurred_at: Entry timestamp, copied onto every chunk
            tags: Entry-level tags, merged with tags found in each chunk

        Returns:
            List of TextChunk objects in source order
        """
        spans = chunk_text(
            text,
            target_tokens=self.policy.target_tokens,
            overlap_tokens=self.policy.overlap_tokens,
            estimator=self.estimator,
        )

        if len(spans) > self.policy.max_chunks_per_entry:
            logger.warning(
                f"Entry {entry_id} has {len(spans)} chunks, "
                f"limiting to {self.policy.max_chunks_per_entry}"
            )
            spans = spans[:self.policy.max_chunks_per_entry]

        entry_tags = [t.lower() for t in tags]
        chunks = []
        for i, span in enumerate(spans):
            chunk_id = generate_chunk_id(
                entry_id=entry_id,
                chunk_index=i,
                start_offset=span.start,
                end_offset=span.end,
                policy_version=self.policy.version,
            )
            chunks.append(
                TextChunk(
                    id=chunk_id,
                    entry_id=entry_id,
                    start=span.start,
                    end=span.end,
                    text=span.text,
                    tags=_merge_tags(entry_tags, extract_tags(span.text)),
                    importance=score_importance(span.text),
                    occurred_at=occurred_at,
                )
            )

        logger.debug(f"Created {len(chunks)} chunks from entry {entry_id}")
        return chunks


def chunk_text(
    text: str,
    target_tokens: int = 600,
    overlap_tokens: int = 80,
    estimator: Optional[CharRatioEstimator] = None,
) -> List[ChunkSpan]:
    """
    Split text into overlapping, sentence-aligned chunks.

    Sentences accumulate until adding the next one would exceed target_tokens.
    Each new chunk starts with the trailing words of the previous chunk.
    Sentences longer than the target are split at word boundaries, and a word
    longer than the target is cut by characters.

    Args:
        text: Text content to chunk
        target_tokens: Maximum estimated tokens per chunk
        overlap_tokens: Overlap budget between consecutive chunks
        estimator: Token estimator (3 characters per token if omitted)

    Returns:
        List of ChunkSpan with text == text[start:end]

    Raises:
        ValidationError: If target_tokens <= 0 or overlap_tokens < 0
    """
    if target_tokens <= 0:
        raise ValidationError("target_tokens must be positive")

    if overlap_tokens < 0:
        raise ValidationError("overlap_tokens must be non-negative")

    if not text or not text.strip():
        return []

    estimator = estimator or CHUNK_ESTIMATOR

    def fits(start: int, end: int) -> bool:
        return estimator.estimate(text[start:end]) <= target_tokens

    units: List[Span] = []
    for sentence in _sentence_spans(text):
        if fits(*sentence):
            units.append(sentence)
        else:
            units.extend(_split_long_sentence(text, sentence, target_tokens, estimator))

    overlap_words = math.ceil(overlap_tokens * OVERLAP_WORD_RATIO)

    spans: List[Span] = []
    current: Optional[Span] = None
    for unit_start, unit_end in units:
        if current is None:
            current = (unit_start, unit_end)
            continue

        if fits(current[0], unit_end):
            current = (current[0], unit_end)
            continue

        spans.append(current)
        seed_start = _overlap_start(text, current, unit_end, overlap_words, fits)
        current = (seed_start if seed_start is not None else unit_start, unit_end)

    if current is not None:
        spans.append(current)

    return [ChunkSpan(start=s, end=e, text=text[s:e]) for s, e in spans]


def validate_chunks(chunks: Sequence[ChunkSpan], source: str) -> bool:
    """Check that every chunk's offsets address its text in source."""
    for chunk in chunks:
        if chunk.start < 0 or chunk.end > len(source) or chunk.start > chunk.end:
            return False
        if source[chunk.start:chunk.end].strip() != chunk.text:
            return False
    return True


def extract_tags(text: str) -> List[str]:
    """Find #hashtags and @mentions, lower-cased, in order of appearance."""
    return [m.lower() for m in TAG.findall(text)]


def score_importance(text: str) -> float:
    """
    Heuristic importance in [0, 1].

    Weighs length (40%), question marks (30%), exclamation marks (20%) and
    the share of capital letters (10%).
    """
    if not text:
        return 0.0

    length = min(len(text) / 1000, 1.0)
    questions = text.count("?") / 10
    exclamations = text.count("!") / 10
    caps = sum(1 for c in text if "A" <= c <= "Z") / len(text)

    score = length * 0.4 + questions * 0.3 + exclamations * 0.2 + caps * 0.1
    return min(score, 1.0)


def _merge_tags(entry_tags: List[str], found: List[str]) -> Tuple[str, ...]:
    merged: List[str] = []
    for tag in entry_tags + found:
        if tag not in merged:
            merged.append(tag)
    return tuple(merged)


def _strip_span(text: str, start: int, end: int) -> Optional[Span]:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start == end:
        return None
    return (start, end)


def _sentence_spans(text: str) -> List[Span]:
    """Sentence spans ending after their terminator run, whitespace trimmed."""
    spans = []
    pos = 0
    for match in SENTENCE_END.finditer(text):
        span = _strip_span(text, pos, match.end())
        if span:
            spans.append(span)
        pos = match.end()

    tail = _strip_span(text, pos, len(text))
    if tail:
        spans.append(tail)
    return spans


def _split_long_sentence(
    text: str,
    sentence: Span,
    target_tokens: int,
    estimator: CharRatioEstimator,
) -> List[Span]:
    pieces: List[Span] = []
    current: Optional[Span] = None
    max_chars = max(1, estimator.chars_for(target_tokens))

    for match in WORD.finditer(text, sentence[0], sentence[1]):
        word_start, word_end = match.span()

        if estimator.estimate(text[word_start:word_end]) > target_tokens:
            if current is not None:
                pieces.append(current)
                current = None
            for cut in range(word_start, word_end, max_chars):
                pieces.append((cut, min(cut + max_chars, word_end)))
            continue

        if current is None:
            current = (word_start, word_end)
        elif estimator.estimate(text[current[0]:word_end]) <= target_tokens:
            current = (current[0], word_end)
        else:
            pieces.append(current)
            current = (word_start, word_end)

    if current is not None:
        pieces.append(current)
    return pieces


def _overlap_start(text: str, previous: Span, next_end: int, overlap_words: int, fits) -> Optional[int]:
    """
    Start offset of the overlap seed for the chunk that follows previous.

    Takes up to overlap_words trailing words of previous, never all of them,
    and fewer when seed plus the next unit would exceed the target.
    """
    if overlap_words <= 0:
        return None

    starts = [m.start() for m in WORD.finditer(text, previous[0], previous[1])]
    count = min(overlap_words, len(starts) - 1)
    while count > 0:
        seed_start = starts[-count]
        if fits(seed_start, next_end):
            return seed_start
        count -= 1
    return None
