import asyncio
from typing import Any, Dict
from storefront import logger
from storefront.background_workers.base_worker import BaseWorker
from storefront.background_workers.stop_workers import ExitBgWorkers
from storefront.notifications.notifier import Notifier

ORDER_CONFIRMED = "order_confirmed"
ORDER_UNPLACED = "order_unplaced"


class NotificationDispatcher(BaseWorker):
    """Fire-and-forget notifications, delivered off the request path."""
    name = "notify"

    def __init__(self, notifier: Notifier, workers_count: int = 2, max_queue_size: int = 1000):
        super().__init__(workers_count=workers_count, max_queue_size=max_queue_size)
        self.notifier = notifier

    def enqueue(self, event: str, data: Dict[str, Any]) -> bool:
        try:
            self.queue.put_nowait({"event": event, "data": data})
            return True
        except asyncio.QueueFull:
            logger.error("notify.queue_full", extra={"event": event})
        except Exception as e:
            logger.error("notify.enqueue_failed", extra={"event": event, "error": str(e)})
        return False

    async def task_executor(self, task: Dict[str, Any], wname: str) -> None:
        event = task["event"]
        if event == ORDER_CONFIRMED:
            await self.notifier.order_confirmed(task["data"])
        elif event == ORDER_UNPLACED:
            await self.notifier.order_unplaced(task["data"])
        else:
            logger.warning("notify.unknown_event", extra={"event": event, "worker": wname})

    async def shutdown(self, drain_first: bool = True):
        await ExitBgWorkers(self.queue, self.worker_loops, drain_timeout=10.0).shutdown(drain_first=drain_first)
