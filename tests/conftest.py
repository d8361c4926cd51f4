"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mnemo.core.types import RetrievalCandidate, TextChunk  # noqa: E402
from mnemo.crypto.kdf import KdfParams  # noqa: E402
from mnemo.jobs.scheduler import ManualClock  # noqa: E402
from mnemo.providers.hashing import HashingEmbedder  # noqa: E402


logger = logging.getLogger(__name__)


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fast_kdf() -> KdfParams:
    """Cheapest KDF parameters config validation allows, to keep tests quick."""
    return KdfParams(iterations=1000)


@pytest.fixture
def manual_clock() -> ManualClock:
    """Fixture providing a clock that only moves when told to."""
    return ManualClock()


@pytest.fixture
def hashing_embedder() -> HashingEmbedder:
    """Fixture providing a small deterministic embedder."""
    return HashingEmbedder(dimensions=64)


@pytest.fixture
def journal_text() -> str:
    """A short multi-sentence journal entry."""
    return (
        "Went for a run by the river this morning. The water was high after the storm! "
        "Met Sam at the bakery and we talked about the trip to Lisbon. "
        "Should I book the train or fly? #travel @sam"
    )


def make_candidate(
    chunk_id: str,
    text: str,
    vector,
    entry_id: str = "entry-1",
    start: int = 0,
    tags=(),
    importance: float = 0.5,
    occurred_at=None,
) -> RetrievalCandidate:
    """Build a RetrievalCandidate whose offsets span text from start."""
    chunk = TextChunk(
        id=chunk_id,
        entry_id=entry_id,
        start=start,
        end=start + len(text),
        text=text,
        tags=tuple(tags),
        importance=importance,
        occurred_at=occurred_at,
    )
    return RetrievalCandidate(chunk=chunk, vector=list(vector))


@pytest.fixture
def candidate_factory():
    """Fixture exposing make_candidate."""
    return make_candidate


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
