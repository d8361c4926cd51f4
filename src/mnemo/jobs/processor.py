"""
Embedding job processor - chunk an entry, then embed its chunks.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ..core.exceptions import MnemoError, ProcessingError
from ..core.types import EmbeddingJob, EmbeddingVector, TextChunk
from ..providers.base import EmbeddingPort
from ..retrieval.chunker import Chunker

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingJobResult:
    """
    Output of a successful job, handed to success listeners for storage.

    Attributes:
        job: The finished job
        chunks: Chunks cut from the entry
        vectors: One vector per chunk, in chunk order
    """
    job: EmbeddingJob
    chunks: List[TextChunk] = field(default_factory=list)
    vectors: List[EmbeddingVector] = field(default_factory=list)


class EmbeddingJobProcessor:
    """
    Runs one job: chunk the content, embed every chunk.

    Any failure surfaces as ProcessingError so the queue can retry it.
    """

    def __init__(self, chunker: Chunker, embedder: EmbeddingPort):
        self.chunker = chunker
        self.embedder = embedder

    async def process(self, job: EmbeddingJob) -> EmbeddingJobResult:
        """
        Process a job.

        Raises:
            ProcessingError: If chunking or embedding fails
        """
        try:
            chunks = self.chunker.chunk_entry(
                job.entry_id,
                job.content,
                occurred_at=job.occurred_at,
                tags=job.tags,
            )
            values = await self.embedder.embed_batch([c.text for c in chunks])
        except ProcessingError:
            raise
        except (MnemoError, ValueError, OSError) as e:
            raise ProcessingError(f"Embedding job {job.id} failed: {e}") from e

        vectors = [
            EmbeddingVector(chunk_id=chunk.id, model=self.embedder.model, values=vector)
            for chunk, vector in zip(chunks, values)
        ]
        logger.debug(f"Job {job.id}: embedded {len(vectors)} chunks")
        return EmbeddingJobResult(job=job, chunks=chunks, vectors=vectors)
