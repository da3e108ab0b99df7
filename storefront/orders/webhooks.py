from typing import Any, Dict
from urllib.parse import parse_qsl
import orjson
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.common.custom_exceptions import (InsufficientStockError, NotFoundError, StockCommitError,
                                                 StockNotFoundError, ValidationError)
from storefront.common.utils import success_response
from storefront.db.dependencies import get_dispatcher, get_ledger, get_session
from storefront.inventory.ledger import ReservationLedger
from storefront.notifications.dispatcher import ORDER_CONFIRMED
from storefront.orders.constants import WEBHOOK_SUCCESS_STATUS
from storefront.orders.repository import record_payment_result
from storefront.orders.services import confirm_order_with_stock, confirmation_payload
from storefront.schema.full_schema import PaymentStatus


async def read_webhook_payload(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    ctype = request.headers.get("content-type", "")
    if "application/json" in ctype:
        try:
            data = orjson.loads(body)
        except orjson.JSONDecodeError:
            raise ValidationError("Malformed webhook body")
        return data if isinstance(data, dict) else {}
    return dict(parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True))


async def release_holds(ledger: ReservationLedger, items, order_number: str):
    for it in items:
        try:
            await ledger.release(it["product_id"], it["variant_label"], it["quantity"])
        except Exception as e:
            # durable stock is already committed, a stale hold only expires later
            logger.warning("webhook.release_failed", extra={"order_number": order_number,
                                                            "product_id": it["product_id"], "error": str(e)})


async def settle_upi_payment(session, ledger: ReservationLedger, dispatcher, payload: Dict[str, Any]) -> Dict[str, Any]:
    token = payload.get("remark1") or ""
    if not isinstance(token, str):
        raise ValidationError("Verification token must be a string")
    token = token.strip()
    if not token:
        raise ValidationError("Missing verification token")
    status = payload.get("status")
    if status is not None and not isinstance(status, str):
        raise ValidationError("Payment status must be a string")
    utr = payload.get("utr")
    if utr is not None and not isinstance(utr, str):
        raise ValidationError("Transaction reference must be a string")

    snapshot = await ledger.load_snapshot(token)
    if snapshot is None:
        logger.warning("webhook.snapshot_missing", extra={"gateway_order_id": payload.get("order_id")})
        raise NotFoundError("Reservation not found or expired")

    order_id = int(snapshot["order_id"])
    order_number = snapshot.get("order_number")
    is_success = status == WEBHOOK_SUCCESS_STATUS
    pay_status = PaymentStatus.COMPLETED if is_success else PaymentStatus.FAILED

    updated = await record_payment_result(session, order_id, pay_status, transaction_id=utr or token)
    await session.commit()
    logger.info("webhook.payment_recorded", extra={"order_number": order_number, "payment_status": pay_status.name,
                                                   "rewritten": bool(updated)})

    if not is_success:
        return {"success": True, "message": "Payment not successful"}

    items = snapshot.get("items") or []
    try:
        order = await confirm_order_with_stock(session, order_id, items)
        await session.commit()
    except (InsufficientStockError, StockNotFoundError) as e:
        await session.rollback()
        logger.error("webhook.settlement.failed", extra={"order_number": order_number, "reason": e.message,
                                                         "details": e.details})
        raise StockCommitError("Stock could not be committed for this order",
                               details={"order_number": order_number}) from e

    if order is not None:
        await release_holds(ledger, items, order_number)
        dispatcher.enqueue(ORDER_CONFIRMED, confirmation_payload(order))
        logger.info("webhook.settlement.confirmed", extra={"order_number": order_number})

    await ledger.delete_snapshot(token)
    return {"success": True, "message": "Payment processed successfully"}


async def clover_upi_webhook(request: Request, session: AsyncSession = Depends(get_session),
                             ledger: ReservationLedger = Depends(get_ledger), dispatcher=Depends(get_dispatcher)):
    payload = await read_webhook_payload(request)
    logger.info("webhook.received", extra={"gateway_order_id": payload.get("order_id"),
                                           "gateway_status": payload.get("status")})
    result = await settle_upi_payment(session, ledger, dispatcher, payload)
    return success_response(result)
