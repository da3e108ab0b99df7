import asyncio
from datetime import timedelta
from typing import Any, Callable, Dict
from storefront import logger
from storefront.common.custom_exceptions import InsufficientStockError, StockNotFoundError
from storefront.common.utils import now
from storefront.notifications.dispatcher import ORDER_CONFIRMED, ORDER_UNPLACED
from storefront.orders.repository import (fetch_order_items, mark_order_unplaced, pending_orders_with_failed_payment,
                                          record_payment_result, stale_upi_payments)
from storefront.orders.services import confirm_order_with_stock, confirmation_payload
from storefront.schema.full_schema import Orders, PaymentStatus


class ReconciliationJob:
    """Resolves UPI orders whose payment webhook never arrived.

    Each sweep asks the gateway about PENDING/INITIATED UPI payments older than
    the grace period. Every order runs in its own session so one failure never
    aborts the sweep.
    """

    def __init__(self, session_factory: Callable[[], Any], gateway, dispatcher=None,
                 *, interval_seconds: int = 3600, grace_seconds: int = 3600):
        self.session_factory = session_factory
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.grace_seconds = grace_seconds
        self._stop = False

    def stop(self):
        self._stop = True

    async def run(self):
        logger.info("reconcile.loop.started", extra={"interval": self.interval_seconds})
        while not self._stop:
            try:
                await self.run_once()
            except Exception:
                logger.exception("reconcile.sweep_failed")
            await asyncio.sleep(self.interval_seconds)
        logger.info("reconcile.loop.stopped")

    async def run_once(self) -> Dict[str, int]:
        cutoff = now() - timedelta(seconds=self.grace_seconds)
        stats = {"checked": 0, "confirmed": 0, "unplaced": 0, "untouched": 0, "errors": 0}

        async with self.session_factory() as session:
            candidates = await stale_upi_payments(session, cutoff)

        for order_id, order_number in candidates:
            stats["checked"] += 1
            try:
                outcome = await self.reconcile_order(order_id, order_number)
                stats[outcome] += 1
            except Exception:
                stats["errors"] += 1
                logger.exception("reconcile.order_failed", extra={"order_number": order_number})

        async with self.session_factory() as session:
            failed = await pending_orders_with_failed_payment(session, cutoff)
        for order_id in failed:
            try:
                async with self.session_factory() as session:
                    if await mark_order_unplaced(session, order_id):
                        stats["unplaced"] += 1
                    await session.commit()
            except Exception:
                stats["errors"] += 1
                logger.exception("reconcile.unplace_failed", extra={"order_id": order_id})

        logger.info("reconcile.sweep.done", extra=stats)
        return stats

    async def reconcile_order(self, order_id: int, order_number: str) -> str:
        result = await self.gateway.check_order_status(order_number)

        async with self.session_factory() as session:
            if result is None or result.is_failure:
                await record_payment_result(session, order_id, PaymentStatus.FAILED)
                unplaced = await mark_order_unplaced(session, order_id)
                await session.commit()
                logger.info("reconcile.order.unplaced", extra={"order_number": order_number,
                                                               "gateway_found": result is not None})
                if unplaced:
                    order = await session.get(Orders, order_id)
                    self._notify(ORDER_UNPLACED, confirmation_payload(order))
                return "unplaced"

            if not result.is_success:
                logger.info("reconcile.order.undecided", extra={"order_number": order_number,
                                                                "gateway_status": result.status})
                return "untouched"

            await record_payment_result(session, order_id, PaymentStatus.COMPLETED, transaction_id=result.utr)
            await session.commit()

            items = [{"product_id": it.product_id, "variant_label": it.variant_label, "quantity": it.quantity}
                     for it in await fetch_order_items(session, order_id)]
            try:
                order = await confirm_order_with_stock(session, order_id, items)
                await session.commit()
            except (InsufficientStockError, StockNotFoundError) as e:
                await session.rollback()
                logger.error("reconcile.order.stock_commit_failed",
                             extra={"order_number": order_number, "reason": e.message, "details": e.details})
                return "untouched"

            if order is None:
                return "untouched"
            logger.info("reconcile.order.confirmed", extra={"order_number": order_number})
            self._notify(ORDER_CONFIRMED, confirmation_payload(order))
            return "confirmed"

    def _notify(self, event: str, data: Dict[str, Any]):
        if self.dispatcher is not None:
            self.dispatcher.enqueue(event, data)
