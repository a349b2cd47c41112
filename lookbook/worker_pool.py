"""Bounded asyncio worker pool.

A fixed number of worker tasks pull items from a shared queue.  Taking an
item is ``Queue.get_nowait()``, which never suspends, so two workers can
never claim the same item.  An exception raised for one item is stored as
that item's outcome; sibling workers keep going.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class Outcome(Generic[T, R]):
    index: int
    item: T
    result: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkerPool:
    """Run an async function over items with at most *size* in flight."""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Worker pool size must be >= 1, got {size}")
        self.size = size
        self.in_flight = 0
        self.peak_in_flight = 0

    async def _worker(self, queue: asyncio.Queue, fn, outcomes: list) -> None:
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                outcomes[index] = Outcome(index, item, result=await fn(item, index))
            except Exception as exc:
                logger.debug("Item %d failed: %s", index, exc)
                outcomes[index] = Outcome(index, item, error=exc)
            finally:
                self.in_flight -= 1

    async def map(self, items: Iterable[T],
                  fn: Callable[[T, int], Awaitable[R]]) -> list[Outcome[T, R]]:
        """Apply *fn(item, index)* to every item; outcomes keep input order."""
        items = list(items)
        queue: asyncio.Queue = asyncio.Queue()
        for pair in enumerate(items):
            queue.put_nowait(pair)

        outcomes: list[Any] = [None] * len(items)
        workers = [
            asyncio.create_task(self._worker(queue, fn, outcomes))
            for _ in range(min(self.size, len(items)))
        ]
        if workers:
            await asyncio.gather(*workers)
        return outcomes
