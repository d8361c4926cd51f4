"""
Retry scheduling driven by an injectable clock.

The scheduler only keeps track of when jobs become due again. The queue
decides what to do with them, so retry timing can be tested with ManualClock
and no wall-clock waits.
"""

import asyncio
import heapq
import itertools
import time
from typing import Generic, List, Optional, Tuple, TypeVar


T = TypeVar("T")


class Clock:
    """Time source used by the queue and the retry scheduler."""

    def now(self) -> float:
        raise NotImplementedError

    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class MonotonicClock(Clock):
    """Real time: time.monotonic() and asyncio.sleep()."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


class ManualClock(Clock):
    """
    Test clock. Time only moves through advance() or sleep(), and sleep()
    returns immediately after moving time forward.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleeps: List[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(seconds, 0.0))
        await asyncio.sleep(0)


class RetryScheduler(Generic[T]):
    """
    Delay queue of items keyed by due time.

    Items with equal due times come out in the order they were scheduled.
    """

    def __init__(self, clock: Clock):
        self.clock = clock
        self._heap: List[Tuple[float, int, T]] = []
        self._counter = itertools.count()

    def schedule(self, item: T, delay_seconds: float) -> float:
        """Schedule item to become due after delay_seconds. Returns the due time."""
        due = self.clock.now() + max(delay_seconds, 0.0)
        heapq.heappush(self._heap, (due, next(self._counter), item))
        return due

    def pop_due(self) -> List[T]:
        """Remove and return every item whose due time has passed."""
        now = self.clock.now()
        due = []
        while self._heap and self._heap[0][0] <= now:
            due.append(heapq.heappop(self._heap)[2])
        return due

    def seconds_until_next(self) -> Optional[float]:
        """Seconds until the earliest item is due, or None if nothing is scheduled."""
        if not self._heap:
            return None
        return max(self._heap[0][0] - self.clock.now(), 0.0)

    def pending(self) -> List[T]:
        """Scheduled items in due order."""
        return [entry[2] for entry in sorted(self._heap)]

    def clear(self) -> int:
        """Drop every scheduled item. Returns how many were dropped."""
        count = len(self._heap)
        self._heap.clear()
        return count

    def __len__(self) -> int:
        return len(self._heap)
