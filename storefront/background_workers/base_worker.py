import asyncio
from typing import Any, Dict, List, Optional
from storefront import logger

SENTINEL = None  # queue sentinel


class BaseWorker():
    """Pool of asyncio consumers over one bounded queue.

    Subclasses implement `task_executor`. A `None` item stops one consumer.
    """
    name = "worker"

    def __init__(self, workers_count: int = 2, max_queue_size: int = 1000):
        self.queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue(maxsize=max_queue_size)
        self.worker_loops: List[asyncio.Task] = []
        self.workers_count: int = workers_count
        self._processed = 0

    async def __call__(self):
        if not self.worker_loops:
            for i in range(self.workers_count):
                cur_worker_name = f"{self.name}:{i+1}"
                worker_loop = asyncio.create_task(self._worker_loop(cur_worker_name))
                logger.info("worker.started", extra={"worker": cur_worker_name})
                self.worker_loops.append(worker_loop)

    async def _worker_loop(self, cur_worker_name):
        while True:
            qitem = await self.queue.get()
            try:
                if qitem is SENTINEL:
                    logger.info("worker.sentinel_received", extra={"worker": cur_worker_name})
                    break
                try:
                    await self.task_executor(qitem, cur_worker_name)
                    self._processed += 1
                except Exception:
                    logger.exception("worker.handler_failed", extra={"worker": cur_worker_name,
                                                                     "event": qitem.get("event")})
            finally:
                # always mark done for each get()
                self.queue.task_done()

    async def task_executor(self, task: Dict[str, Any], wname: str) -> None:
        raise NotImplementedError
