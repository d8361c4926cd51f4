"""
MMR Selector - Diversity-aware reranking of retrieval candidates.

Implements:
- Cosine similarity scoring
- Greedy Maximal Marginal Relevance selection
- Deterministic tie-breaks (input order)
- Optional recency rerank
"""

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from ..core.exceptions import ValidationError
from ..core.types import MMRCandidate, utc_now

logger = logging.getLogger(__name__)

# Half-life of the recency boost, in hours.
RECENCY_HALF_LIFE_HOURS = 24.0


def cosine_similarity(vec_a: List[float], vec_b: List[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Cosine similarity score between -1 and 1

    Raises:
        ValueError: If vectors have different dimensions or are empty
    """
    if not vec_a or not vec_b:
        raise ValueError("Vectors cannot be empty")

    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector dimensions must match: {len(vec_a)} != {len(vec_b)}")

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    # Handle zero vectors
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    return dot_product / (magnitude_a * magnitude_b)


@dataclass
class MMRConfig:
    """
    MMR parameters.

    Attributes:
        lambda_: Relevance weight in [0, 1]; 1 is pure relevance, 0 pure diversity
        max_results: Maximum number of candidates to select
    """
    lambda_: float = 0.7
    max_results: int = 10

    def validate(self) -> None:
        """Raise ValidationError if parameters are out of range."""
        if not 0.0 <= self.lambda_ <= 1.0:
            raise ValidationError(f"lambda must be in [0, 1], got {self.lambda_}")
        if self.max_results < 1:
            raise ValidationError(f"max_results must be at least 1, got {self.max_results}")


@dataclass
class MMRResult:
    """
    Outcome of an MMR selection.

    Attributes:
        selected: Candidates in selection order, each carrying its relevance
        scores: Candidate id -> relevance for every scored candidate
    """
    selected: List[MMRCandidate] = field(default_factory=list)
    scores: Dict[str, float] = field(default_factory=dict)

    @property
    def ids(self) -> List[str]:
        return [c.id for c in self.selected]


class MMRSelector:
    """
    Greedy MMR selector.

    At each step picks the remaining candidate maximising
    lambda * relevance - (1 - lambda) * max_similarity_to_selected.

    Example:
        >>> selector = MMRSelector(MMRConfig(lambda_=0.5, max_results=2))
        >>> result = selector.select(query_vec, candidates, {"a": vec_a, "b": vec_b})
    """

    def __init__(self, config: Optional[MMRConfig] = None):
        self.config = config or MMRConfig()
        self.config.validate()

    def select(
        self,
        query_vector: List[float],
        candidates: Sequence[MMRCandidate],
        vectors_by_id: Mapping[str, List[float]],
    ) -> MMRResult:
        """
        Select a relevant and diverse subset of candidates.

        Args:
            query_vector: Embedding of the query
            candidates: Candidates in a stable order (earlier wins ties)
            vectors_by_id: Candidate id -> embedding

        Returns:
            MMRResult with at most min(max_results, len(candidates)) items

        Raises:
            ValidationError: If the query vector is empty
        """
        if not query_vector:
            raise ValidationError("Query vector cannot be empty")

        pool = []
        scores: Dict[str, float] = {}
        for candidate in candidates:
            vector = vectors_by_id.get(candidate.id)
            if not vector or len(vector) != len(query_vector):
                logger.warning(
                    f"Skipping candidate {candidate.id}: missing or mismatched vector"
                )
                continue
            relevance = cosine_similarity(query_vector, vector)
            scores[candidate.id] = relevance
            pool.append((replace(candidate, relevance=relevance), vector))

        lam = self.config.lambda_
        selected: List[MMRCandidate] = []
        selected_vectors: List[List[float]] = []

        while pool and len(selected) < self.config.max_results:
            best_index = -1
            best_score = -math.inf

            for i, (candidate, vector) in enumerate(pool):
                penalty = 0.0
                for chosen in selected_vectors:
                    penalty = max(penalty, cosine_similarity(vector, chosen))

                score = lam * candidate.relevance - (1 - lam) * penalty
                if score > best_score:
                    best_score = score
                    best_index = i

            candidate, vector = pool.pop(best_index)
            selected.append(candidate)
            selected_vectors.append(vector)

        logger.debug(f"MMR selected {len(selected)} of {len(candidates)} candidates")
        return MMRResult(selected=selected, scores=scores)


def _recency(occurred_at: Optional[datetime], now: datetime) -> float:
    if occurred_at is None:
        return 0.0
    age_hours = max((now - occurred_at).total_seconds() / 3600.0, 0.0)
    return 0.5 ** (age_hours / RECENCY_HALF_LIFE_HOURS)


def rerank_by_time(
    items: Sequence[MMRCandidate],
    time_weight: float = 0.3,
    now: Optional[datetime] = None,
) -> List[MMRCandidate]:
    """
    Blend relevance with recency and re-sort.

    score' = score * (1 - w) + 0.5 ** (age_hours / 24) * w, where the age is
    taken from metadata["occurred_at"]. Items without a timestamp get no
    recency boost. Ties keep their incoming order.

    Args:
        items: Candidates with relevance already set
        time_weight: Weight w of the recency term in [0, 1]
        now: Reference time (defaults to the current UTC time)

    Returns:
        New candidates carrying the blended score as relevance
    """
    if not 0.0 <= time_weight <= 1.0:
        raise ValidationError(f"time_weight must be in [0, 1], got {time_weight}")

    now = now or utc_now()
    rescored = []
    for item in items:
        occurred_at = item.metadata.get("occurred_at")
        if not isinstance(occurred_at, datetime):
            occurred_at = None
        blended = item.relevance * (1 - time_weight) + _recency(occurred_at, now) * time_weight
        rescored.append(replace(item, relevance=blended))

    return sorted(rescored, key=lambda c: c.relevance, reverse=True)
