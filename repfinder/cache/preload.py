"""Predictive preloading behind foreground work.

Background jobs (committee lookups the caller did not ask for yet) are
queued on a bounded priority queue and drained by a small pool of
workers. Workers wait on the ForegroundGate before each job, so they
only run while no foreground resolution is in flight.

Both classes may outlive an event loop (one asyncio.run per CLI call).
Their asyncio primitives are rebuilt when the running loop changes; they
must not be shared by two loops at the same time.
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class ForegroundGate:
    """Counts in-flight foreground resolutions; idle when the count is zero."""

    def __init__(self):
        self._active = 0
        self._idle: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def active(self) -> int:
        return self._active

    @contextmanager
    def hold(self):
        self._active += 1
        if self._idle is not None:
            self._idle.clear()
        try:
            yield
        finally:
            self._active -= 1
            if self._active == 0 and self._idle is not None:
                self._idle.set()

    async def wait_idle(self) -> None:
        loop = asyncio.get_running_loop()
        if self._idle is None or loop is not self._loop:
            self._loop = loop
            self._idle = asyncio.Event()
            if self._active == 0:
                self._idle.set()
        await self._idle.wait()


class PreloadQueue:
    """Bounded, de-duplicating priority queue of background jobs.

    Args:
        handler: ``async handler(*args)`` run for each job.
        gate: ForegroundGate the workers yield to.
        max_queue: Queue capacity; submissions beyond it are dropped.
        workers: Number of background workers.
    """

    def __init__(
        self,
        handler: Callable[..., Awaitable[None]],
        gate: ForegroundGate,
        max_queue: int = 256,
        workers: int = 1,
    ):
        self.handler = handler
        self.gate = gate
        self.workers = workers
        self.max_queue = max_queue
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue(maxsize=max_queue)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[str] = set()
        self._counter = itertools.count()
        self._tasks: list[asyncio.Task] = []
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def submit(self, priority: int, key: str, *args) -> bool:
        """Queue a job; lower priority numbers run first.

        Returns:
            False if a job with the same key is already queued or the queue is full.
        """
        if key in self._pending:
            return False
        try:
            self._queue.put_nowait((priority, next(self._counter), key, args))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Preload queue full, dropping %s", key)
            return False
        self._pending.add(key)
        return True

    def start(self) -> None:
        """Start the workers on the running event loop (idempotent).

        On a new loop, jobs still queued from the previous one carry over.
        """
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            self._rebind(loop)
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"preload-worker-{i}")
            for i in range(self.workers)
        ]
        logger.debug("Started %d preload worker(s)", self.workers)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._loop is not asyncio.get_running_loop():
            # Workers started on an earlier loop ended with it.
            self._tasks = []
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def _rebind(self, loop: asyncio.AbstractEventLoop) -> None:
        queue: asyncio.PriorityQueue = asyncio.PriorityQueue(maxsize=self.max_queue)
        while not self._queue.empty():
            queue.put_nowait(self._queue.get_nowait())
        self._queue = queue
        self._tasks = []
        self._loop = loop

    async def _worker(self, index: int) -> None:
        while True:
            priority, _, key, args = await self._queue.get()
            try:
                await self.gate.wait_idle()
                await self.handler(*args)
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failed += 1
                logger.exception("Preload job %s failed (worker %d)", key, index)
            finally:
                self._pending.discard(key)
                self._queue.task_done()
