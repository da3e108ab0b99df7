import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import and_, delete, select, tuple_, update
from storefront.common.utils import now
from storefront.schema.full_schema import (CartItem, Customer, OrderItem, Orders, OrderStatus, Payment,
                                           PaymentMethod, PaymentStatus, Product)


async def fetch_customer(session, user_id: int) -> Optional[Customer]:
    return await session.get(Customer, user_id)


async def fetch_active_products(session, public_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Product]:
    public_ids = list(set(public_ids))
    if not public_ids:
        return {}
    stmt = select(Product).where(Product.public_id.in_(public_ids), Product.is_active.is_(True),
                                 Product.deleted_at.is_(None))
    res = await session.execute(stmt)
    return {p.public_id: p for p in res.scalars().all()}


async def fetch_cart_quantities(session, owner_key: str) -> Dict[Tuple[int, str], int]:
    stmt = select(CartItem.product_id, CartItem.variant_label, CartItem.quantity).where(CartItem.owner_key == owner_key)
    res = await session.execute(stmt)
    return {(int(r.product_id), r.variant_label): int(r.quantity) for r in res.all()}


async def remove_cart_lines(session, owner_key: str, keys: List[Tuple[int, str]]) -> int:
    if not keys:
        return 0
    stmt = delete(CartItem).where(CartItem.owner_key == owner_key,
                                  tuple_(CartItem.product_id, CartItem.variant_label).in_(keys))
    res = await session.execute(stmt)
    return res.rowcount


async def place_order_with_items(session, order_values: Dict[str, Any], lines: List[Dict[str, Any]]) -> Orders:
    order = Orders(**order_values)
    session.add(order)
    await session.flush()   # raises IntegrityError on an order_number clash

    for ln in lines:
        session.add(OrderItem(
            order_id=order.id,
            product_id=ln["product_id"],
            variant_label=ln["variant_label"],
            quantity=ln["quantity"],
            unit_price=ln["unit_price"],
            subtotal=ln["unit_price"] * ln["quantity"],
            product_name=ln["product_name"],
            product_description=ln.get("product_description"),
            product_image_url=ln.get("product_image_url"),
            product_category=ln.get("product_category"),
        ))
    await session.flush()
    return order


async def create_payment(session, order_id: int, method: PaymentMethod, status: PaymentStatus, amount: int,
                         paid_at: Optional[datetime] = None) -> Payment:
    payment = Payment(order_id=order_id, method=method.value, status=status.value, amount=amount, paid_at=paid_at)
    session.add(payment)
    await session.flush()
    return payment


async def set_payment_gateway_meta(session, order_id: int, meta: Dict[str, Any]):
    await session.execute(update(Payment).where(Payment.order_id == order_id).values(gateway_meta=meta, updated_at=now()))


async def record_payment_result(session, order_id: int, status: PaymentStatus,
                                transaction_id: Optional[str] = None) -> int:
    """Write a settled payment status. A COMPLETED payment is never rewritten."""
    values = {"status": status.value, "updated_at": now()}
    if transaction_id is not None:
        values["transaction_id"] = transaction_id
    if status == PaymentStatus.COMPLETED:
        values["paid_at"] = now()
    stmt = (update(Payment)
            .where(and_(Payment.order_id == order_id, Payment.status != PaymentStatus.COMPLETED.value))
            .values(**values))
    res = await session.execute(stmt)
    return res.rowcount


async def lock_order(session, order_id: int) -> Optional[Orders]:
    stmt = (select(Orders).where(Orders.id == order_id).with_for_update()
            .execution_options(populate_existing=True))
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def mark_order_unplaced(session, order_id: int) -> int:
    stmt = (update(Orders)
            .where(and_(Orders.id == order_id, Orders.status == OrderStatus.PENDING.value))
            .values(status=OrderStatus.UNPLACED.value, updated_at=now()))
    res = await session.execute(stmt)
    return res.rowcount


async def fetch_order_items(session, order_id: int) -> List[OrderItem]:
    res = await session.execute(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
    return list(res.scalars().all())


async def fetch_payment(session, order_id: int) -> Optional[Payment]:
    res = await session.execute(select(Payment).where(Payment.order_id == order_id))
    return res.scalar_one_or_none()


async def list_customer_orders(session, customer_id: int, limit: int = 20, offset: int = 0):
    stmt = (select(Orders, Payment)
            .join(Payment, Payment.order_id == Orders.id, isouter=True)
            .where(Orders.customer_id == customer_id)
            .order_by(Orders.created_at.desc(), Orders.id.desc())
            .limit(limit).offset(offset))
    res = await session.execute(stmt)
    return res.all()


async def fetch_customer_order(session, customer_id: int, public_id: uuid.UUID) -> Optional[Orders]:
    stmt = select(Orders).where(Orders.public_id == public_id, Orders.customer_id == customer_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def stale_upi_payments(session, cutoff: datetime, limit: int = 200) -> List[Tuple[int, str]]:
    """(order id, order number) of UPI orders still awaiting a payment outcome."""
    stmt = (select(Orders.id, Orders.order_number)
            .join(Payment, Payment.order_id == Orders.id)
            .where(Payment.method == PaymentMethod.UPI.value,
                   Payment.status.in_([PaymentStatus.PENDING.value, PaymentStatus.INITIATED.value]),
                   Orders.created_at <= cutoff)
            .order_by(Orders.created_at)
            .limit(limit))
    res = await session.execute(stmt)
    return [(int(r.id), r.order_number) for r in res.all()]


async def pending_orders_with_failed_payment(session, cutoff: datetime, limit: int = 200) -> List[int]:
    stmt = (select(Orders.id)
            .join(Payment, Payment.order_id == Orders.id)
            .where(Orders.status == OrderStatus.PENDING.value,
                   Payment.status == PaymentStatus.FAILED.value,
                   Orders.created_at <= cutoff)
            .limit(limit))
    res = await session.execute(stmt)
    return [int(r) for r in res.scalars().all()]
