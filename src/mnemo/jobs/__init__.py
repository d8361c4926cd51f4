"""
Asynchronous embedding jobs.
"""

from .processor import EmbeddingJobProcessor, EmbeddingJobResult
from .queue import EmbeddingJobQueue, QueueStatus, WorkerConfig
from .scheduler import Clock, ManualClock, MonotonicClock, RetryScheduler

__all__ = [
    "Clock",
    "EmbeddingJobProcessor",
    "EmbeddingJobQueue",
    "EmbeddingJobResult",
    "ManualClock",
    "MonotonicClock",
    "QueueStatus",
    "RetryScheduler",
    "WorkerConfig",
]
