"""
Retrieval subpackage.

Chunking, diversity-aware selection, context budgeting and prompt assembly.
"""

from .budget import PackedSnippet, Snippet, enforce_token_budget, pack_snippets, truncate_text
from .chunker import Chunker, ChunkingPolicy, chunk_text, validate_chunks
from .mmr import MMRConfig, MMRResult, MMRSelector, cosine_similarity, rerank_by_time
from .orchestrator import (
    QueryFilters,
    QueryRequest,
    QueryResult,
    RetrievalConfig,
    RetrievalOrchestrator,
    filter_candidates,
)
from .prompt import QAPrompt, build_context_blocks, build_empty_context_prompt, build_qa_prompt
from .tokens import CharRatioEstimator

__all__ = [
    "CharRatioEstimator",
    "Chunker",
    "ChunkingPolicy",
    "MMRConfig",
    "MMRResult",
    "MMRSelector",
    "PackedSnippet",
    "QAPrompt",
    "QueryFilters",
    "QueryRequest",
    "QueryResult",
    "RetrievalConfig",
    "RetrievalOrchestrator",
    "Snippet",
    "build_context_blocks",
    "build_empty_context_prompt",
    "build_qa_prompt",
    "chunk_text",
    "cosine_similarity",
    "enforce_token_budget",
    "filter_candidates",
    "pack_snippets",
    "rerank_by_time",
    "truncate_text",
    "validate_chunks",
]
