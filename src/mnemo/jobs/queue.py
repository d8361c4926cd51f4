"""
Embedding job queue.

A priority queue of chunk-then-embed jobs with:
- Priority-first ordering, insertion order among equal priorities
- At most one in-flight batch of up to batch_size concurrent jobs
- Per-job failure isolation
- Exponential backoff retries on an injectable clock
- Success, retry and failure notifications

Failures are never raised to the caller of add_job. A job that exhausts its
retries ends in FAILED and is reported through on_failure listeners with a
QueueTerminalError.
"""

import asyncio
import heapq
import inspect
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..core.exceptions import ProcessingError, QueueTerminalError
from ..core.logging import CorrelationContext, log_with_context
from ..core.types import EmbeddingJob, JobStatus
from ..utils.retry import RetryConfig, calculate_delay
from .processor import EmbeddingJobResult
from .scheduler import Clock, MonotonicClock, RetryScheduler

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


@dataclass
class WorkerConfig:
    """
    Queue worker settings.

    Attributes:
        batch_size: Jobs processed concurrently per batch
        max_retries: Failures allowed before a job is terminal
        base_delay_seconds: Delay before the first retry; doubles per retry
        job_timeout_seconds: Optional per-job timeout
    """
    batch_size: int = 8
    max_retries: int = 3
    base_delay_seconds: float = 5.0
    job_timeout_seconds: Optional[float] = None


@dataclass
class QueueStatus:
    """Snapshot of the queue."""
    queued: int
    scheduled_retries: int
    processing: bool
    next_job: Optional[str] = None


class EmbeddingJobQueue:
    """
    Asynchronous embedding job queue.

    Example:
        >>> queue = EmbeddingJobQueue(EmbeddingJobProcessor(chunker, embedder))
        >>> queue.on_success(store_vectors)
        >>> queue.add_job("entry-1", text, priority=5)
        >>> await queue.drain()
    """

    def __init__(
        self,
        processor: Any,
        config: Optional[WorkerConfig] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the queue.

        Args:
            processor: Object with an async process(job) method
            config: Worker settings (uses defaults if not provided)
            clock: Time source for retry delays (real time if not provided)
        """
        self.processor = processor
        self.config = config or WorkerConfig()
        if self.config.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.config.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.clock = clock or MonotonicClock()
        self.backoff = RetryConfig.for_jobs(self.config.max_retries, self.config.base_delay_seconds)
        self.scheduler: RetryScheduler[EmbeddingJob] = RetryScheduler(self.clock)

        self._heap: List[Tuple[int, int, EmbeddingJob]] = []
        self._sequence = itertools.count()
        self._jobs: Dict[str, EmbeddingJob] = {}
        self._processing = False
        self._idle: Optional[asyncio.Event] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        self._success_listeners: List[Listener] = []
        self._failure_listeners: List[Listener] = []
        self._retry_listeners: List[Listener] = []

    # Listener registration

    def on_success(self, callback: Listener) -> None:
        """Register callback(result: EmbeddingJobResult). May be sync or async."""
        self._success_listeners.append(callback)

    def on_failure(self, callback: Listener) -> None:
        """Register callback(job, error: QueueTerminalError). May be sync or async."""
        self._failure_listeners.append(callback)

    def on_retry(self, callback: Listener) -> None:
        """Register callback(job, error, delay_seconds). May be sync or async."""
        self._retry_listeners.append(callback)

    # Queue operations

    def add_job(
        self,
        entry_id: str,
        content: str,
        priority: int = 0,
        occurred_at: Optional[datetime] = None,
        tags: Iterable[str] = (),
    ) -> str:
        """
        Enqueue a job.

        Processing starts on its own when called from within a running event
        loop; otherwise call process_queue() or drain().

        Returns:
            The new job id
        """
        job = EmbeddingJob(
            entry_id=entry_id,
            content=content,
            priority=priority,
            occurred_at=occurred_at,
            tags=tuple(tags),
        )
        self._jobs[job.id] = job
        self._push(job)
        log_with_context(
            logger, logging.DEBUG, f"Queued job {job.id} (priority {priority})",
            job_id=job.id, entry_id=entry_id,
        )
        if self._wakeup is not None:
            self._wakeup.set()
        self._kick()
        return job.id

    def get_job(self, job_id: str) -> Optional[EmbeddingJob]:
        """
        Look up a job by id, including finished jobs.

        Finished jobs keep their status and error but not their content.
        """
        return self._jobs.get(job_id)

    def status(self) -> QueueStatus:
        """Current queue counts and the id of the job that would run next."""
        next_job = self._heap[0][2].id if self._heap else None
        return QueueStatus(
            queued=len(self._heap),
            scheduled_retries=len(self.scheduler),
            processing=self._processing,
            next_job=next_job,
        )

    def clear(self) -> int:
        """
        Drop every queued and scheduled job. The in-flight batch completes.

        Returns:
            Number of jobs dropped
        """
        dropped = [entry[2] for entry in self._heap] + self.scheduler.pending()
        self._heap.clear()
        self.scheduler.clear()
        for job in dropped:
            self._jobs.pop(job.id, None)
        if dropped:
            logger.info(f"Cleared {len(dropped)} pending jobs")
        return len(dropped)

    async def drain(self) -> None:
        """Wait until the queue and the retry scheduler are both empty."""
        while True:
            if self._processing and self._idle is not None:
                await self._idle.wait()
                continue
            if not self._heap and not len(self.scheduler):
                return
            await self.process_queue()

    async def process_queue(self) -> None:
        """
        Process jobs until nothing is queued or scheduled.

        Only one call processes at a time; concurrent calls return at once.
        While only retries are pending, jobs added by add_job start without
        waiting for the next retry to fall due.
        """
        if self._processing:
            return

        self._processing = True
        self._idle = asyncio.Event()
        self._wakeup = asyncio.Event()
        try:
            while True:
                self._release_due_retries()

                if self._heap:
                    await self._run_batch(self._pop_batch())
                    continue

                wait = self.scheduler.seconds_until_next()
                if wait is None:
                    break
                await self._wait_for_work(wait)
        finally:
            self._processing = False
            self._wakeup = None
            self._idle.set()

    # Internals

    def _push(self, job: EmbeddingJob) -> None:
        heapq.heappush(self._heap, (-job.priority, next(self._sequence), job))

    def _pop_batch(self) -> List[EmbeddingJob]:
        batch = []
        while self._heap and len(batch) < self.config.batch_size:
            batch.append(heapq.heappop(self._heap)[2])
        return batch

    def _kick(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if not self._processing and (self._task is None or self._task.done()):
            self._task = loop.create_task(self.process_queue())

    async def _wait_for_work(self, seconds: float) -> None:
        """Sleep until the next retry is due or add_job queues a new job."""
        self._wakeup.clear()
        sleeper = asyncio.ensure_future(self.clock.sleep(seconds))
        waker = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waker):
                task.cancel()
            await asyncio.gather(sleeper, waker, return_exceptions=True)

    def _release_due_retries(self) -> None:
        for job in self.scheduler.pop_due():
            job.status = JobStatus.QUEUED
            self._push(job)

    async def _run_batch(self, batch: List[EmbeddingJob]) -> None:
        for job in batch:
            job.status = JobStatus.PROCESSING

        outcomes = await asyncio.gather(
            *(self._run_job(job) for job in batch),
            return_exceptions=True,
        )

        interrupted: List[Tuple[EmbeddingJob, BaseException]] = []
        for job, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                await self._handle_failure(job, outcome)
            elif isinstance(outcome, BaseException):
                interrupted.append((job, outcome))
            else:
                await self._handle_success(job, outcome)

        if interrupted:
            # Cancelled or interrupted jobs go back on the queue untouched.
            for job, _ in interrupted:
                job.status = JobStatus.QUEUED
                self._push(job)
            logger.warning(f"Requeued {len(interrupted)} interrupted jobs")
            raise interrupted[0][1]

    async def _run_job(self, job: EmbeddingJob) -> EmbeddingJobResult:
        timeout = self.config.job_timeout_seconds
        with CorrelationContext(job_id=job.id, entry_id=job.entry_id, attempt=job.retries + 1):
            log_with_context(logger, logging.DEBUG, "Processing job")
            if timeout is None:
                return await self.processor.process(job)
            try:
                return await asyncio.wait_for(self.processor.process(job), timeout)
            except asyncio.TimeoutError as e:
                raise ProcessingError(f"Job {job.id} timed out after {timeout}s") from e

    async def _handle_success(self, job: EmbeddingJob, result: EmbeddingJobResult) -> None:
        job.status = JobStatus.SUCCEEDED
        job.last_error = None
        log_with_context(
            logger, logging.INFO, f"Job {job.id} succeeded",
            job_id=job.id, entry_id=job.entry_id,
        )
        await self._notify(self._success_listeners, result)
        job.content = ""

    async def _handle_failure(self, job: EmbeddingJob, error: Exception) -> None:
        job.retries += 1
        job.last_error = str(error)
        retryable = getattr(error, "retryable", True)

        if retryable and job.retries < self.config.max_retries:
            delay = calculate_delay(job.retries - 1, self.backoff)
            job.status = JobStatus.RETRYING
            self.scheduler.schedule(job, delay)
            log_with_context(
                logger, logging.WARNING,
                f"Job {job.id} failed ({error}); retry {job.retries} in {delay:.1f}s",
                job_id=job.id, entry_id=job.entry_id, attempt=job.retries,
            )
            await self._notify(self._retry_listeners, job, error, delay)
            return

        job.status = JobStatus.FAILED
        terminal = QueueTerminalError(job.id, job.retries, error)
        log_with_context(
            logger, logging.ERROR, str(terminal),
            job_id=job.id, entry_id=job.entry_id, attempt=job.retries,
        )
        await self._notify(self._failure_listeners, job, terminal)
        job.content = ""

    async def _notify(self, listeners: List[Listener], *args: Any) -> None:
        for listener in listeners:
            try:
                outcome = listener(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Queue listener {listener!r} raised: {e}")
