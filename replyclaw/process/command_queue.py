"""Process-wide fairness queue for agent command runs."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")

OnWait = Callable[[int, int], None]


class CommandQueue:
    """
    FIFO queue bounding how many agent commands run at once.

    Tasks beyond `max_concurrency` wait in arrival order. When a task had to
    wait at least `warn_after_ms`, `on_wait(waited_ms, ahead)` is called right
    before it starts, where `ahead` is the number of tasks that were running
    or queued in front of it when it was enqueued.
    """

    def __init__(self, max_concurrency: int = 1, warn_after_ms: int = 0):
        self.max_concurrency = max(1, int(max_concurrency))
        self.warn_after_ms = max(0, int(warn_after_ms))
        self._active = 0
        self._pending: deque[asyncio.Future[None]] = deque()

    @property
    def active(self) -> int:
        """Number of tasks currently running."""
        return self._active

    @property
    def queued(self) -> int:
        """Number of tasks waiting for a slot."""
        return sum(1 for fut in self._pending if not fut.done())

    async def enqueue(
        self,
        task: Callable[[], Awaitable[T]],
        on_wait: OnWait | None = None,
        warn_after_ms: int | None = None,
    ) -> T:
        enqueued_at = time.monotonic()
        waited = False
        ahead = 0
        if self._active >= self.max_concurrency or self.queued:
            waited = True
            ahead = self._active + self.queued
            fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._pending.append(fut)
            try:
                await fut
            except asyncio.CancelledError:
                if fut.done() and not fut.cancelled():
                    # The slot was handed over just before cancellation.
                    self._release()
                else:
                    fut.cancel()
                raise
        else:
            self._active += 1

        waited_ms = int((time.monotonic() - enqueued_at) * 1000)
        threshold = self.warn_after_ms if warn_after_ms is None else max(0, int(warn_after_ms))
        if waited and waited_ms >= threshold:
            logger.debug(f"Command queued for {waited_ms}ms ({ahead} ahead)")
            if on_wait is not None:
                try:
                    on_wait(waited_ms, ahead)
                except Exception as e:
                    logger.warning(f"Queue wait callback failed: {e}")

        try:
            return await task()
        finally:
            self._release()

    def _release(self) -> None:
        while self._pending:
            fut = self._pending.popleft()
            if not fut.done():
                # Hand the slot straight to the next waiter.
                fut.set_result(None)
                return
        self._active = max(0, self._active - 1)


_default_queue: CommandQueue | None = None


def get_command_queue() -> CommandQueue:
    """Return the shared process-wide queue."""
    global _default_queue
    if _default_queue is None:
        _default_queue = CommandQueue()
    return _default_queue


def configure_command_queue(max_concurrency: int = 1, warn_after_ms: int = 0) -> CommandQueue:
    """Replace the shared queue (call once at startup, before any runs)."""
    global _default_queue
    _default_queue = CommandQueue(max_concurrency=max_concurrency, warn_after_ms=warn_after_ms)
    return _default_queue


async def enqueue_command(
    task: Callable[[], Awaitable[T]],
    on_wait: OnWait | None = None,
) -> T:
    """Run task through the shared queue."""
    return await get_command_queue().enqueue(task, on_wait=on_wait)
