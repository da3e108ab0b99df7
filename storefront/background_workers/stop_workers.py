import asyncio
from typing import List, Optional
from storefront import logger
from storefront.background_workers.base_worker import SENTINEL


class ExitBgWorkers:
    """Graceful stop for a BaseWorker pool.

    Optionally lets the queue drain, then posts one sentinel per consumer and
    waits for each loop. Loops that overrun `worker_wait_timeout` are cancelled.
    """

    def __init__(self, queue: asyncio.Queue, worker_loops: List[asyncio.Task], drain_timeout: float = 30.0,
                 worker_wait_timeout: float = 30.0, join_timeout: float = 5.0):
        self.queue = queue
        self.worker_loops = worker_loops
        self.drain_timeout = drain_timeout
        self.worker_wait_timeout = worker_wait_timeout
        self.join_timeout = join_timeout

    async def _drain(self):
        try:
            await asyncio.wait_for(self.queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("workers.drain_timeout", extra={"pending": self.queue.qsize()})

    async def _stop_loop(self, task: asyncio.Task):
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.worker_wait_timeout)
            return
        except asyncio.TimeoutError:
            logger.warning("workers.stop_timeout", extra={"task": task.get_name()})
        await stop_task(task, self.join_timeout)

    async def shutdown(self, *, drain_first: bool = True) -> None:
        if not self.worker_loops:
            return
        if drain_first:
            await self._drain()
        for _ in self.worker_loops:
            await self.queue.put(SENTINEL)
        for task in self.worker_loops:
            await self._stop_loop(task)
        logger.info("workers.stopped", extra={"count": len(self.worker_loops)})
        self.worker_loops.clear()


async def stop_task(task: Optional[asyncio.Task], timeout: float = 10.0) -> None:
    """Cancel a long running loop task and wait for it to unwind."""
    if task is None or task.done():
        return
    task.cancel()
    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.CancelledError:
        pass
    except asyncio.TimeoutError:
        logger.error("workers.cancel_failed", extra={"task": task.get_name()})
