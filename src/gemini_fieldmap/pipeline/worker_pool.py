"""Fixed-size async worker pool draining a bounded queue."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
import logging

log = logging.getLogger(__name__)

_STOP = object()


class BoundedWorkerPool[T]:
    """Runs ``handler`` over items with at most ``size`` running at once.

    The queue holds at most ``2 * size`` items so the producer never races far
    ahead of the workers. Workers run inside a ``TaskGroup``: cancelling
    ``run`` cancels every worker, and ``finally`` blocks in the handler run as
    part of that cancellation. A handler exception cancels the remaining
    workers and propagates as an ``ExceptionGroup``, so handlers are expected
    to report per-item failures as data.
    """

    def __init__(self, size: int, *, queue_size: int | None = None) -> None:
        """Create a pool.

        Args:
            size: Number of workers (and the concurrency ceiling).
            queue_size: Queue capacity; defaults to ``2 * size``.
        """
        if size < 1:
            raise ValueError("size must be >= 1")
        self.size = size
        self._queue_size = queue_size if queue_size is not None else 2 * size
        self.active = 0
        self.peak_active = 0

    async def run(
        self,
        items: Sequence[T],
        handler: Callable[[T], Awaitable[None]],
    ) -> None:
        """Process every item; returns once all handlers have finished."""
        if not items:
            return
        workers = min(self.size, len(items))
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=self._queue_size)

        async def produce() -> None:
            for item in items:
                await queue.put(item)
            for _ in range(workers):
                await queue.put(_STOP)

        async def work() -> None:
            while True:
                item = await queue.get()
                if item is _STOP:
                    return
                self.active += 1
                self.peak_active = max(self.peak_active, self.active)
                try:
                    await handler(item)  # type: ignore[arg-type]
                finally:
                    self.active -= 1

        log.debug("Starting %d worker(s) for %d item(s)", workers, len(items))
        async with asyncio.TaskGroup() as tg:
            tg.create_task(produce())
            for _ in range(workers):
                tg.create_task(work())
