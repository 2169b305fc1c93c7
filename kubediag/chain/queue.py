"""Bounded work queue of Abnormal keys with delayed re-enqueue.

Keys may be duplicated or stale; consumers re-fetch the live object before
acting, so the queue does no deduplication and keeps no retry count.
"""

from __future__ import annotations

import asyncio

import structlog

from kubediag.models.abnormal import NamespacedName

_log = structlog.get_logger(component="chain.queue")

DEFAULT_QUEUE_SIZE = 1000
DEFAULT_RETRY_DELAY_SECONDS = 30.0


class QueueFullError(Exception):
    """Raised when a key cannot be enqueued because the queue is saturated."""


class AbnormalQueue:
    """FIFO of Abnormal keys feeding one stage engine.

    Args:
        name:    Used in log lines.
        maxsize: Capacity; ``put`` raises QueueFullError beyond it.
    """

    def __init__(self, name: str, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self.name = name
        self._queue: asyncio.Queue[NamespacedName] = asyncio.Queue(maxsize=maxsize)
        self._timers: set[asyncio.TimerHandle] = set()
        self._closed = False

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def put(self, key: NamespacedName) -> None:
        """Enqueue *key* immediately.

        Raises:
            QueueFullError: the queue is at capacity or closed.
        """
        if self._closed:
            raise QueueFullError(f"{self.name} queue is closed")
        try:
            self._queue.put_nowait(key)
        except asyncio.QueueFull as exc:
            raise QueueFullError(f"{self.name} queue is full ({self._queue.maxsize} items)") from exc

    def put_after(self, key: NamespacedName, delay: float = DEFAULT_RETRY_DELAY_SECONDS) -> None:
        """Schedule *key* to be enqueued after *delay* seconds.

        A put that fails when the timer fires is logged and dropped.
        """
        if self._closed:
            raise QueueFullError(f"{self.name} queue is closed")
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _fire() -> None:
            assert handle is not None
            self._timers.discard(handle)
            try:
                self.put(key)
            except QueueFullError as exc:
                _log.error("delayed_enqueue_failed", queue=self.name, abnormal=str(key), error=str(exc))

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)

    async def get(self) -> NamespacedName:
        return await self._queue.get()

    def close(self) -> None:
        """Cancel pending delayed puts and refuse new ones."""
        self._closed = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
