"""
Token estimation.

The engine never runs a real tokenizer. Token counts are estimated from
character length, which is good enough for chunk sizing and context budgets.
"""

import math


class CharRatioEstimator:
    """
    Estimates tokens as ceil(len(text) / chars_per_token).

    The chunker sizes chunks at 3 characters per token; the context budget
    counts 4 characters per token.
    """

    def __init__(self, chars_per_token: float = 4.0):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        """Estimated token count of text (0 for empty text)."""
        return math.ceil(len(text) / self.chars_per_token)

    def chars_for(self, tokens: int) -> int:
        """Largest character count whose estimate does not exceed tokens."""
        return max(0, int(tokens * self.chars_per_token))

    def __repr__(self) -> str:
        return f"CharRatioEstimator(chars_per_token={self.chars_per_token})"


CHUNK_ESTIMATOR = CharRatioEstimator(3.0)
BUDGET_ESTIMATOR = CharRatioEstimator(4.0)
