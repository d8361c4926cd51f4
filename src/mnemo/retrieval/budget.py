"""
Token budget enforcement for context snippets.

Implements deterministic packing rules so assembled context fits the
synthesizer's window:
- Highest-scored snippets first
- Truncation at a sentence boundary, else a word boundary, else a hard cut
- A minimum viable snippet size so degenerate fragments are never packed
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..core.exceptions import ValidationError
from .tokens import BUDGET_ESTIMATOR, CharRatioEstimator

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"

# A sentence boundary is used if it falls beyond this share of the window,
# otherwise a word boundary beyond WORD_CUT_RATIO.
SENTENCE_CUT_RATIO = 0.7
WORD_CUT_RATIO = 0.8


@dataclass(frozen=True)
class Snippet:
    """
    A scored piece of text offered for packing. key identifies its source.

    overhead is the token cost of whatever is rendered around the text
    (a block header, quotes) and is charged together with it.
    """
    key: str
    text: str
    score: float
    overhead: int = 0


@dataclass(frozen=True)
class PackedSnippet:
    """
    A snippet accepted into the context.

    Attributes:
        key: Source identifier carried over from the Snippet
        text: Packed text, a prefix of the original snippet text
        score: Snippet score
        tokens: Estimated tokens of text
        truncated: Whether text was shortened to fit
    """
    key: str
    text: str
    score: float
    tokens: int
    truncated: bool = False


def truncate_text(
    text: str,
    max_tokens: int,
    estimator: Optional[CharRatioEstimator] = None,
) -> str:
    """
    Truncate text to fit within max_tokens.

    Prefers the last sentence terminator past 70% of the character window,
    then the last space past 80%, then a hard cut. The result is always a
    prefix of text.

    Args:
        text: Text to truncate
        max_tokens: Token budget
        estimator: Token estimator (4 characters per token if omitted)

    Returns:
        text unchanged if it fits, otherwise a shorter prefix
    """
    estimator = estimator or BUDGET_ESTIMATOR
    max_chars = estimator.chars_for(max_tokens)

    if len(text) <= max_chars:
        return text

    window = text[:max_chars]
    last_sentence_end = max(window.rfind("."), window.rfind("!"), window.rfind("?"))
    if last_sentence_end > max_chars * SENTENCE_CUT_RATIO:
        return text[:last_sentence_end + 1]

    last_space = window.rfind(" ")
    if last_space > max_chars * WORD_CUT_RATIO:
        return text[:last_space]

    return window


def pack_snippets(
    snippets: Sequence[Snippet],
    max_tokens: int,
    min_snippet_tokens: int = 20,
    estimator: Optional[CharRatioEstimator] = None,
) -> List[PackedSnippet]:
    """
    Pack snippets into a token budget, highest score first.

    A snippet that fits is taken whole. A snippet that does not fit is
    truncated when more than min_snippet_tokens remain (or when nothing has
    been packed yet), and packing stops after a truncation. Otherwise the
    snippet is skipped and smaller ones may still fit. Each separator between
    packed snippets is charged one token, and each snippet its own overhead.

    Args:
        snippets: Candidate snippets (input order breaks score ties)
        max_tokens: Total token budget
        min_snippet_tokens: Smallest remaining budget worth truncating into
        estimator: Token estimator (4 characters per token if omitted)

    Returns:
        Packed snippets in score order

    Raises:
        ValidationError: If max_tokens < 1
    """
    if max_tokens < 1:
        raise ValidationError(f"max_tokens must be at least 1, got {max_tokens}")

    estimator = estimator or BUDGET_ESTIMATOR
    separator_tokens = estimator.estimate(BLOCK_SEPARATOR)

    packed: List[PackedSnippet] = []
    remaining = max_tokens

    for snippet in sorted(snippets, key=lambda s: s.score, reverse=True):
        text = snippet.text.strip()
        if not text:
            continue

        overhead = (separator_tokens if packed else 0) + snippet.overhead
        available = remaining - overhead
        tokens = estimator.estimate(text)

        if tokens <= available:
            packed.append(PackedSnippet(snippet.key, text, snippet.score, tokens))
            remaining = available - tokens
            continue

        if available > min_snippet_tokens or (not packed and available > 0):
            cut = truncate_text(text, available, estimator).rstrip()
            if cut:
                packed.append(
                    PackedSnippet(snippet.key, cut, snippet.score, estimator.estimate(cut), True)
                )
                logger.debug(f"Truncated snippet {snippet.key} to {len(cut)} characters")
            break

        logger.debug(f"Skipped snippet {snippet.key}: {tokens} tokens, {available} left")

    return packed


def enforce_token_budget(
    snippets: str,
    max_tokens: int,
    min_snippet_tokens: int = 50,
    estimator: Optional[CharRatioEstimator] = None,
) -> str:
    """
    Enforce a token budget on pre-joined context text.

    Blocks separated by blank lines are kept in order until one does not
    fit; that block is truncated if more than min_snippet_tokens remain and
    everything after it is dropped.

    Args:
        snippets: Blocks joined with blank lines
        max_tokens: Total token budget
        min_snippet_tokens: Smallest remaining budget worth truncating into
        estimator: Token estimator (4 characters per token if omitted)

    Returns:
        The bounded text
    """
    if not snippets or not snippets.strip():
        return snippets

    estimator = estimator or BUDGET_ESTIMATOR
    if estimator.estimate(snippets) <= max_tokens:
        return snippets

    kept: List[str] = []
    remaining = max_tokens
    for block in snippets.split(BLOCK_SEPARATOR):
        overhead = estimator.estimate(BLOCK_SEPARATOR) if kept else 0
        available = remaining - overhead
        tokens = estimator.estimate(block)

        if tokens <= available:
            kept.append(block)
            remaining = available - tokens
            continue

        if available > min_snippet_tokens:
            cut = truncate_text(block, available, estimator)
            if cut.strip():
                kept.append(cut)
        break

    return BLOCK_SEPARATOR.join(kept)
