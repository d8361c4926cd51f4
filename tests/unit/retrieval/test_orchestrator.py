"""
Unit tests for the retrieval orchestrator.

Uses a fake embedder that maps the question to a fixed vector and a fake
synthesizer that returns a canned reply.
"""

import asyncio
import json
from datetime import datetime, timezone

import pytest

from mnemo.core.exceptions import SynthesisError, ValidationError
from mnemo.providers.base import AnswerSynthesizer, EmbeddingPort
from mnemo.retrieval.orchestrator import (
    QueryFilters,
    QueryRequest,
    RetrievalConfig,
    RetrievalOrchestrator,
    filter_candidates,
)
from mnemo.retrieval.prompt import NOT_ENOUGH_CONTEXT
from mnemo.retrieval.tokens import BUDGET_ESTIMATOR


class FixedEmbedder(EmbeddingPort):
    """Embeds every text to the same vector."""

    def __init__(self, vector):
        super().__init__(model="fixed", dimensions=len(vector))
        self.vector = list(vector)
        self.calls = 0

    async def _embed_group(self, texts):
        self.calls += 1
        return [list(self.vector) for _ in texts]


class CannedSynthesizer(AnswerSynthesizer):
    """Returns a fixed reply and records prompts."""

    def __init__(self, reply):
        self.reply = reply
        self.prompts = []

    async def synthesize(self, prompt):
        self.prompts.append(prompt)
        return self.reply


def run_query(orchestrator, question, candidates, filters=None):
    return asyncio.run(orchestrator.query(QueryRequest(question, filters=filters), candidates))


class TestEmptyContext:
    """Queries with nothing to cite."""

    def test_no_candidates(self):
        synthesizer = CannedSynthesizer("{}")
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]), synthesizer)

        result = run_query(orchestrator, "Where did I run?", [])

        assert result.answer == NOT_ENOUGH_CONTEXT
        assert result.citations == []
        assert result.confidence == 0.0
        assert "No relevant information found." in result.prompt.user
        assert synthesizer.prompts == []

    def test_low_relevance_dropped(self, candidate_factory):
        """Candidates under min_score do not count as context."""
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [candidate_factory("c1", "Unrelated words.", [0.0, 1.0])]

        result = run_query(orchestrator, "Where did I run?", candidates)

        assert result.answer == NOT_ENOUGH_CONTEXT
        assert result.confidence == 0.0

    def test_everything_filtered(self, candidate_factory):
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [candidate_factory("c1", "Ran along the river.", [1.0, 0.0])]

        result = run_query(
            orchestrator, "Where?", candidates, QueryFilters(tags=["#work"])
        )
        assert result.answer == NOT_ENOUGH_CONTEXT


class TestCitations:
    """Citation offsets and confidence."""

    def test_entry_relative_offsets(self, candidate_factory):
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [candidate_factory("c1", "Ran along the river.", [1.0, 0.0], start=100)]

        result = run_query(orchestrator, "Where did I run?", candidates)

        assert result.answer is None
        assert len(result.citations) == 1
        citation = result.citations[0]
        assert (citation.entry_id, citation.start, citation.end) == ("entry-1", 100, 120)
        assert citation.to_wire() == {"entryId": "entry-1", "start": 100, "end": 120}
        assert citation.score == pytest.approx(1.0)
        assert "Ran along the river." in result.context

    def test_truncated_citation_shrinks(self, candidate_factory):
        """A truncated snippet cites only the packed prefix."""
        config = RetrievalConfig(max_context_tokens=19)
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]), config=config)
        candidates = [candidate_factory("c1", "x" * 100, [1.0, 0.0], start=50)]

        result = run_query(orchestrator, "Where?", candidates)

        citation = result.citations[0]
        assert (citation.start, citation.end) == (50, 90)

    def test_block_headers_count_against_budget(self, candidate_factory):
        """Headers, quotes and separators fit inside max_context_tokens."""
        config = RetrievalConfig(max_context_tokens=30)
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]), config=config)
        candidates = [
            candidate_factory(
                "c1",
                "We drove to the coast and walked the cliffs until the light went. " * 2,
                [1.0, 0.0],
                entry_id="entry-with-a-long-identifier",
                tags=("travel", "family"),
            )
        ]

        result = run_query(orchestrator, "Where did we walk?", candidates)

        assert len(result.citations) == 1
        assert result.context.startswith(
            "1. Entry entry-with-a-long-identifier (unknown date) [travel, family]:"
        )
        assert BUDGET_ESTIMATOR.estimate(result.context) <= 30

    def test_several_blocks_within_budget(self, candidate_factory):
        config = RetrievalConfig(max_context_tokens=60)
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]), config=config)
        candidates = [
            candidate_factory(
                f"c{i}", f"Note {i} about the garden and the tomatoes.", [1.0, 0.05 * i],
                entry_id=f"entry-{i}", start=10 * i, tags=("#garden",),
            )
            for i in range(4)
        ]

        result = run_query(orchestrator, "Garden?", candidates)

        assert result.citations
        assert BUDGET_ESTIMATOR.estimate(result.context) <= 60

    def test_confidence_scales_with_coverage(self, candidate_factory):
        """Two perfect matches out of five citations give 0.4."""
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [
            candidate_factory("c1", "First match.", [1.0, 0.0]),
            candidate_factory("c2", "Second match.", [1.0, 0.0], start=20),
        ]

        result = run_query(orchestrator, "Match?", candidates)

        assert len(result.citations) == 2
        assert result.confidence == pytest.approx(0.4)

    def test_confidence_in_range(self, candidate_factory):
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [
            candidate_factory(f"c{i}", f"Snippet number {i}.", [1.0, 0.1 * i], start=30 * i)
            for i in range(8)
        ]

        result = run_query(orchestrator, "Anything?", candidates)
        assert 0.0 <= result.confidence <= 1.0
        for citation in result.citations:
            assert 0.0 <= citation.score <= 1.0

    def test_result_to_dict(self, candidate_factory):
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]))
        candidates = [candidate_factory("c1", "Ran along the river.", [1.0, 0.0])]

        data = run_query(orchestrator, "Where?", candidates).to_dict()

        assert data["citations"][0]["chunk_id"] == "c1"
        assert data["answer"] is None
        json.dumps(data)


class TestFilters:
    """Tests for filter_candidates."""

    def test_tags_case_insensitive(self, candidate_factory):
        candidates = [
            candidate_factory("c1", "a", [1.0], tags=("#run",)),
            candidate_factory("c2", "b", [1.0], tags=("#work",)),
        ]
        kept = filter_candidates(candidates, QueryFilters(tags=["#RUN"]))
        assert [c.chunk.id for c in kept] == ["c1"]

    def test_time_range_inclusive(self, candidate_factory):
        may = datetime(2024, 5, 1, tzinfo=timezone.utc)
        june = datetime(2024, 6, 1, tzinfo=timezone.utc)
        candidates = [
            candidate_factory("c1", "a", [1.0], occurred_at=may),
            candidate_factory("c2", "b", [1.0], occurred_at=june),
            candidate_factory("c3", "c", [1.0]),
        ]
        kept = filter_candidates(candidates, QueryFilters(time_range=(may, may)))
        assert [c.chunk.id for c in kept] == ["c1"]

    def test_min_importance(self, candidate_factory):
        candidates = [
            candidate_factory("c1", "a", [1.0], importance=0.2),
            candidate_factory("c2", "b", [1.0], importance=0.6),
        ]
        kept = filter_candidates(candidates, QueryFilters(min_importance=0.5))
        assert [c.chunk.id for c in kept] == ["c2"]

    def test_filters_are_anded(self, candidate_factory):
        candidates = [
            candidate_factory("c1", "a", [1.0], tags=("#run",), importance=0.2),
            candidate_factory("c2", "b", [1.0], tags=("#run",), importance=0.9),
        ]
        kept = filter_candidates(candidates, QueryFilters(tags=["#run"], min_importance=0.5))
        assert [c.chunk.id for c in kept] == ["c2"]

    def test_no_filters(self, candidate_factory):
        candidates = [candidate_factory("c1", "a", [1.0])]
        assert filter_candidates(candidates, None) == candidates


class TestSynthesis:
    """Answer synthesis through the synthesizer port."""

    def test_answer_and_covered_citations(self, candidate_factory):
        reply = json.dumps({
            "answer": "Along the river.",
            "citations": [
                {"entryId": "entry-1", "start": 100, "end": 110},
                {"entryId": "entry-1", "start": 0, "end": 5},
                {"entryId": "entry-9", "start": 100, "end": 110},
            ],
            "confidence": 0.9,
        })
        synthesizer = CannedSynthesizer(reply)
        orchestrator = RetrievalOrchestrator(FixedEmbedder([1.0, 0.0]), synthesizer)
        candidates = [candidate_factory("c1", "Ran along the river.", [1.0, 0.0], start=100)]

        result = run_query(orchestrator, "Where did I run?", candidates)

        assert result.answer == "Along the river."
        assert [(c.entry_id, c.start, c.end) for c in result.answer_citations] == [
            ("entry-1", 100, 110)
        ]
        assert result.answer_citations[0].chunk_id == "c1"
        assert result.model_confidence == pytest.approx(0.9)
        assert len(synthesizer.prompts) == 1
        assert "Ran along the river." in synthesizer.prompts[0].user

    def test_malformed_reply(self, candidate_factory):
        orchestrator = RetrievalOrchestrator(
            FixedEmbedder([1.0, 0.0]), CannedSynthesizer("I think you ran.")
        )
        candidates = [candidate_factory("c1", "Ran along the river.", [1.0, 0.0])]

        with pytest.raises(SynthesisError):
            run_query(orchestrator, "Where did I run?", candidates)


class TestConfig:
    """Tests for RetrievalConfig validation."""

    @pytest.mark.parametrize("config", [
        RetrievalConfig(max_context_tokens=0),
        RetrievalConfig(max_citations=0),
        RetrievalConfig(min_score=1.5),
        RetrievalConfig(tone="cheerful"),
    ])
    def test_invalid(self, config):
        with pytest.raises(ValidationError):
            RetrievalOrchestrator(FixedEmbedder([1.0]), config=config)
