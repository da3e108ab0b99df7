import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.common.custom_exceptions import NotFoundError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_gateway, get_ledger, get_redis, get_session
from storefront.identity.dependencies import AuthenticatedUser, require_user
from storefront.inventory.availability import AvailabilityCalculator
from storefront.orders.models import CheckoutRequest
from storefront.orders.repository import fetch_customer_order, fetch_order_items, fetch_payment, list_customer_orders
from storefront.orders.services import checkout_cod, checkout_upi
from storefront.orders.utils import serialize_order

orders_router = APIRouter()


@orders_router.post("/checkout/upi")
async def place_upi_order(payload: CheckoutRequest, user: AuthenticatedUser = Depends(require_user),
                          session: AsyncSession = Depends(get_session), redis_client=Depends(get_redis),
                          ledger=Depends(get_ledger), gateway=Depends(get_gateway)):
    logger.info("checkout.upi.attempt", extra={"user_id": user.user_id, "lines": len(payload.items)})
    calculator = AvailabilityCalculator(ledger)
    data = await checkout_upi(session, redis_client, calculator, ledger, gateway, user, payload)
    return success_response(data, status_code=status.HTTP_201_CREATED)


@orders_router.post("/checkout/cod")
async def place_cod_order(payload: CheckoutRequest, user: AuthenticatedUser = Depends(require_user),
                          session: AsyncSession = Depends(get_session), redis_client=Depends(get_redis),
                          ledger=Depends(get_ledger)):
    logger.info("checkout.cod.attempt", extra={"user_id": user.user_id, "lines": len(payload.items)})
    calculator = AvailabilityCalculator(ledger)
    data = await checkout_cod(session, redis_client, calculator, user, payload)
    return success_response(data, status_code=status.HTTP_201_CREATED)


@orders_router.get("")
async def my_orders(limit: int = Query(20, ge=1, le=100), offset: int = Query(0, ge=0),
                    user: AuthenticatedUser = Depends(require_user), session: AsyncSession = Depends(get_session)):
    rows = await list_customer_orders(session, user.user_id, limit=limit, offset=offset)
    orders = []
    for order, payment in rows:
        items = await fetch_order_items(session, order.id)
        orders.append(serialize_order(order, items, payment))
    return success_response({"orders": orders, "limit": limit, "offset": offset})


@orders_router.get("/{order_public_id}")
async def order_detail(order_public_id: uuid.UUID, user: AuthenticatedUser = Depends(require_user),
                       session: AsyncSession = Depends(get_session)):
    order = await fetch_customer_order(session, user.user_id, order_public_id)
    if order is None:
        raise NotFoundError("Order not found")
    items = await fetch_order_items(session, order.id)
    payment = await fetch_payment(session, order.id)
    return success_response({"order": serialize_order(order, items, payment)})
