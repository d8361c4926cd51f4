"""
Retrieval orchestrator - question in, cited context (and optionally an answer) out.

Pipeline:
1. Embed the question
2. Filter candidates (tags, time range, importance)
3. MMR selection
4. Token-budget packing
5. Citations with entry-relative offsets and a confidence score
6. Prompt assembly and optional answer synthesis
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.exceptions import ValidationError
from ..core.logging import CorrelationContext, log_with_context
from ..core.types import Citation, MMRCandidate, RetrievalCandidate
from .budget import Snippet, pack_snippets
from .mmr import MMRConfig, MMRSelector
from .prompt import (
    NOT_ENOUGH_CONTEXT,
    ContextSnippet,
    QAPrompt,
    block_frame,
    build_context_blocks,
    build_empty_context_prompt,
    build_qa_prompt,
    parse_synthesis_reply,
)
from .tokens import BUDGET_ESTIMATOR

logger = logging.getLogger(__name__)


@dataclass
class RetrievalConfig:
    """
    Retrieval settings.

    Attributes:
        max_context_tokens: Token budget for the rendered context blocks
        min_snippet_tokens: Smallest remaining budget worth truncating into
        max_citations: Citation count at which confidence stops growing
        min_score: Selected candidates below this relevance are dropped
        tone: Prompt tone, "direct" or "neutral"
    """
    max_context_tokens: int = 1500
    min_snippet_tokens: int = 20
    max_citations: int = 5
    min_score: float = 0.3
    tone: str = "neutral"

    def validate(self) -> None:
        """Raise ValidationError if settings are out of range."""
        if self.max_context_tokens < 1:
            raise ValidationError("max_context_tokens must be at least 1")
        if self.min_snippet_tokens < 0:
            raise ValidationError("min_snippet_tokens must be non-negative")
        if self.max_citations < 1:
            raise ValidationError("max_citations must be at least 1")
        if not 0.0 <= self.min_score <= 1.0:
            raise ValidationError("min_score must be in [0, 1]")
        if self.tone not in ("direct", "neutral"):
            raise ValidationError(f"Unknown tone: {self.tone}")


@dataclass
class QueryFilters:
    """
    Candidate filters. Unset filters are skipped; set filters are ANDed.

    Attributes:
        tags: Keep candidates with at least one of these tags (case-insensitive)
        time_range: Inclusive (start, end) on the chunk's occurred_at
        min_importance: Keep candidates with importance >= this
    """
    tags: Optional[Sequence[str]] = None
    time_range: Optional[Tuple[datetime, datetime]] = None
    min_importance: Optional[float] = None


@dataclass
class QueryRequest:
    """A retrieval query."""
    question: str
    filters: Optional[QueryFilters] = None
    query_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class QueryResult:
    """
    Outcome of a query.

    Attributes:
        query_id: Query identifier
        answer: Synthesized answer, or the fixed empty-context answer
        citations: One citation per packed snippet, in packing order
        confidence: Retrieval confidence in [0, 1]
        context: Rendered context blocks
        prompt: The prompt built for the synthesizer
        answer_citations: Synthesizer citations that fall inside packed spans
        model_confidence: Confidence reported by the synthesizer, if called
    """
    query_id: str
    answer: Optional[str]
    citations: List[Citation] = field(default_factory=list)
    confidence: float = 0.0
    context: str = ""
    prompt: Optional[QAPrompt] = None
    answer_citations: List[Citation] = field(default_factory=list)
    model_confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "query_id": self.query_id,
            "answer": self.answer,
            "citations": [c.to_dict() for c in self.citations],
            "confidence": self.confidence,
            "context": self.context,
            "answer_citations": [c.to_wire() for c in self.answer_citations],
            "model_confidence": self.model_confidence,
        }


def filter_candidates(
    candidates: Sequence[RetrievalCandidate],
    filters: Optional[QueryFilters],
) -> List[RetrievalCandidate]:
    """Apply tag, time range and importance filters, preserving order."""
    if filters is None:
        return list(candidates)

    wanted_tags = {t.lower() for t in filters.tags} if filters.tags else None

    kept = []
    for candidate in candidates:
        chunk = candidate.chunk

        if wanted_tags is not None:
            if not wanted_tags.intersection(t.lower() for t in chunk.tags):
                continue

        if filters.time_range is not None:
            start, end = filters.time_range
            if chunk.occurred_at is None or not start <= chunk.occurred_at <= end:
                continue

        if filters.min_importance is not None and chunk.importance < filters.min_importance:
            continue

        kept.append(candidate)
    return kept


class RetrievalOrchestrator:
    """
    Runs retrieval queries over candidates supplied by the store.

    Holds no state across queries.

    Example:
        >>> orchestrator = RetrievalOrchestrator(embedder, synthesizer=None)
        >>> result = await orchestrator.query(QueryRequest("Where did I go?"), candidates)
        >>> [c.to_wire() for c in result.citations]
    """

    def __init__(
        self,
        embedder: Any,
        synthesizer: Any = None,
        mmr_config: Optional[MMRConfig] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            embedder: EmbeddingPort used to embed the question
            synthesizer: Optional AnswerSynthesizer; retrieval only if None
            mmr_config: MMR parameters
            config: Retrieval settings
        """
        self.embedder = embedder
        self.synthesizer = synthesizer
        self.selector = MMRSelector(mmr_config)
        self.config = config or RetrievalConfig()
        self.config.validate()

    async def query(
        self,
        request: QueryRequest,
        candidates: Sequence[RetrievalCandidate],
    ) -> QueryResult:
        """
        Answer a question from candidate chunks.

        An empty or fully filtered candidate set yields the fixed
        "Not enough context" answer with confidence 0, never an error.

        Raises:
            ProcessingError: If the question cannot be embedded
            SynthesisError: If the synthesizer reply is malformed
        """
        with CorrelationContext(query_id=request.query_id):
            query_vector = await self.embedder.embed(request.question)

            survivors = filter_candidates(candidates, request.filters)
            by_id = {c.chunk.id: c for c in survivors}

            mmr_candidates = [
                MMRCandidate(
                    id=c.chunk.id,
                    text=c.chunk.text,
                    metadata={
                        "entry_id": c.chunk.entry_id,
                        "occurred_at": c.chunk.occurred_at,
                        "tags": c.chunk.tags,
                        "importance": c.chunk.importance,
                    },
                )
                for c in survivors
            ]
            selection = self.selector.select(
                query_vector,
                mmr_candidates,
                {c.chunk.id: c.vector for c in survivors},
            )
            selected = [c for c in selection.selected if c.relevance >= self.config.min_score]

            log_with_context(
                logger, logging.INFO,
                f"Query: {len(candidates)} candidates, {len(survivors)} after filters, "
                f"{len(selected)} selected",
            )

            # Block numbers never exceed len(selected), so framing each snippet
            # with that index bounds the rendered header cost.
            last_index = len(selected)
            packed = pack_snippets(
                [
                    Snippet(
                        key=c.id,
                        text=c.text,
                        score=c.relevance,
                        overhead=BUDGET_ESTIMATOR.estimate(
                            block_frame(
                                last_index,
                                by_id[c.id].chunk.entry_id,
                                by_id[c.id].chunk.occurred_at,
                                by_id[c.id].chunk.tags,
                            )
                        ),
                    )
                    for c in selected
                ],
                max_tokens=self.config.max_context_tokens,
                min_snippet_tokens=self.config.min_snippet_tokens,
            )

            citations = []
            context_snippets = []
            for item in packed:
                chunk = by_id[item.key].chunk
                end = chunk.start + len(item.text) if item.truncated else chunk.end
                citations.append(
                    Citation(
                        chunk_id=chunk.id,
                        entry_id=chunk.entry_id,
                        start=chunk.start,
                        end=end,
                        score=_clamp(item.score),
                    )
                )
                context_snippets.append(
                    ContextSnippet(
                        entry_id=chunk.entry_id,
                        start=chunk.start,
                        end=end,
                        text=item.text,
                        score=item.score,
                        occurred_at=chunk.occurred_at,
                        tags=chunk.tags,
                    )
                )

            if not context_snippets:
                return QueryResult(
                    query_id=request.query_id,
                    answer=NOT_ENOUGH_CONTEXT,
                    prompt=build_empty_context_prompt(request.question),
                )

            confidence = self._confidence([c.relevance for c in selected])
            context = build_context_blocks(context_snippets)
            prompt = build_qa_prompt(context, request.question, self.config.tone)

            result = QueryResult(
                query_id=request.query_id,
                answer=None,
                citations=citations,
                confidence=confidence,
                context=context,
                prompt=prompt,
            )

            if self.synthesizer is not None:
                await self._synthesize(result, prompt, citations)

            return result

    def _confidence(self, scores: List[float]) -> float:
        if not scores:
            return 0.0
        mean = sum(scores) / len(scores)
        coverage = min(len(scores) / self.config.max_citations, 1.0)
        return _clamp(mean * coverage)

    async def _synthesize(
        self,
        result: QueryResult,
        prompt: QAPrompt,
        citations: List[Citation],
    ) -> None:
        raw = await self.synthesizer.synthesize(prompt)
        reply = parse_synthesis_reply(raw)

        kept = []
        for entry_id, start, end in reply.citations:
            source = _covering_citation(citations, entry_id, start, end)
            if source is None:
                logger.warning(
                    f"Dropping synthesizer citation outside packed context: "
                    f"{entry_id} [{start}, {end})"
                )
                continue
            kept.append(
                Citation(
                    chunk_id=source.chunk_id,
                    entry_id=entry_id,
                    start=start,
                    end=end,
                    score=source.score,
                )
            )

        result.answer = reply.answer
        result.answer_citations = kept
        result.model_confidence = reply.confidence


def _covering_citation(
    citations: List[Citation],
    entry_id: str,
    start: int,
    end: int,
) -> Optional[Citation]:
    for citation in citations:
        if citation.entry_id == entry_id and citation.start <= start <= end <= citation.end:
            return citation
    return None


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)
