"""
Execution Engine - Work Queue.

============================================================
PURPOSE
============================================================
Accept, enqueue, ack, process.

The webhook acknowledges a signal once its execution job is
queued. A fixed pool of workers drains the bounded queue;
a full queue refuses new work instead of growing.

- submit() never blocks: ServiceBusyError when full
- One failing job never stops a worker
- stop() drains queued jobs before cancelling workers

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from core.exceptions import ServiceBusyError


logger = logging.getLogger(__name__)


JobFactory = Callable[[], Awaitable[object]]


@dataclass
class Job:
    name: str
    run: JobFactory


class ExecutionQueue:
    """Bounded asyncio work queue with a fixed worker pool."""

    def __init__(self, maxsize: int = 100, workers: int = 2):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        if workers <= 0:
            raise ValueError("workers must be positive")
        self._maxsize = maxsize
        self._worker_count = workers
        self._queue: Optional["asyncio.Queue[Job]"] = None
        self._workers: List[asyncio.Task] = []
        self._processed = 0
        self._failed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def stats(self) -> dict:
        return {
            "running": self.running,
            "pending": self.pending,
            "capacity": self._maxsize,
            "workers": self._worker_count,
            "processed": self._processed,
            "failed": self._failed,
        }

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"execution-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info(f"Execution queue started ({self._worker_count} workers, capacity {self._maxsize})")

    async def stop(self, drain: bool = True) -> None:
        if not self.running:
            return
        if drain and self._queue is not None:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(f"Execution queue stopped (processed={self._processed}, failed={self._failed})")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        if self._queue is not None:
            await self._queue.join()

    # --------------------------------------------------------
    # SUBMISSION
    # --------------------------------------------------------

    def submit(self, name: str, run: JobFactory) -> None:
        """
        Queue a job.

        Raises:
            ServiceBusyError if the queue is full or not running
        """
        if self._queue is None or not self.running:
            raise ServiceBusyError("Execution queue is not running")
        try:
            self._queue.put_nowait(Job(name=name, run=run))
        except asyncio.QueueFull:
            logger.warning(f"Execution queue full, refusing job {name}")
            raise ServiceBusyError(
                "Execution queue is full, retry later",
                details={"capacity": self._maxsize},
            )
        logger.debug(f"Job queued: {name} (pending={self._queue.qsize()})")

    # --------------------------------------------------------
    # WORKER
    # --------------------------------------------------------

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        while True:
            job = await self._queue.get()
            try:
                await job.run()
                self._processed += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self._failed += 1
                logger.exception(f"Job {job.name} failed in worker {index}")
            finally:
                self._queue.task_done()
