"""
Feature-hashing embedder.

A deterministic, dependency-free embedding for offline use and tests.
Texts sharing words get similar vectors; it has no semantic understanding.
"""

import hashlib
import math
import re
from typing import List

from .base import EmbeddingPort

TOKEN = re.compile(r"\w+")


class HashingEmbedder(EmbeddingPort):
    """
    Hashes lower-cased word tokens into a fixed number of signed buckets and
    L2-normalises the result. Empty text embeds to the zero vector.
    """

    def __init__(self, dimensions: int = 384, model: str = "hashing-v1", batch_size: int = 8):
        super().__init__(model=model, dimensions=dimensions, batch_size=batch_size)
        self.size = dimensions

    def vectorize(self, text: str) -> List[float]:
        vector = [0.0] * self.size
        for token in TOKEN.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.size
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def _embed_group(self, texts: List[str]) -> List[List[float]]:
        return [self.vectorize(text) for text in texts]
