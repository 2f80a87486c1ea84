"""Bounded in-process queue that runs webhook payloads on worker tasks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

PayloadHandler = Callable[[object], Awaitable[None]]


@dataclass
class EventQueue:
    """Accept payloads without blocking and hand them to a worker pool."""

    handler: PayloadHandler
    maxsize: int = 1000
    workers: int = 4
    _queue: asyncio.Queue[object] = field(init=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self._queue = asyncio.Queue(maxsize=self.maxsize)

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Spawn worker tasks on the running loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"event-worker-{index}")
            for index in range(max(1, self.workers))
        ]
        logger.info("Started %s event workers", len(self._tasks))

    async def stop(self) -> None:
        """Cancel workers; payloads still queued are dropped."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if not self._queue.empty():
            logger.warning(
                "Dropped %s queued payloads on shutdown", self._queue.qsize()
            )

    def enqueue(self, payload: object) -> bool:
        """Queue a payload; return False when the queue is full."""
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("Event queue full (%s payloads)", self._queue.qsize())
            return False
        return True

    def qsize(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every queued payload has been handled."""
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            payload = await self._queue.get()
            try:
                await self.handler(payload)
            except Exception:
                logger.exception("Event worker %s failed to process payload", index)
            finally:
                self._queue.task_done()
