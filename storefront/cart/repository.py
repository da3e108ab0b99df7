import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from storefront.common.custom_exceptions import NotFoundError
from storefront.schema.full_schema import CartItem, Product, ProductVariant

MAX_ITEM_QTY = 1000


async def get_product_variant(session, product_pid: uuid.UUID, label: str) -> Dict[str, Any]:
    stmt = (select(Product.id, Product.name, ProductVariant.id.label("variant_id"))
            .join(ProductVariant, (ProductVariant.product_id == Product.id) & (ProductVariant.label == label),
                  isouter=True)
            .where(Product.public_id == product_pid, Product.is_active.is_(True), Product.deleted_at.is_(None)))
    res = await session.execute(stmt)
    row = res.one_or_none()
    if not row:
        raise NotFoundError("Product not found")
    if row.variant_id is None:
        raise NotFoundError(f"Variant {label} not available for {row.name}")
    return {"id": int(row.id), "name": row.name, "variant_label": label}


async def find_cart_item(session, owner_key: str, product_id: int, label: str) -> Optional[CartItem]:
    stmt = select(CartItem).where(CartItem.owner_key == owner_key, CartItem.product_id == product_id,
                                  CartItem.variant_label == label)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_owned_cart_item(session, owner_key: str, item_id: int) -> CartItem:
    item = await session.get(CartItem, item_id)
    if item is None or item.owner_key != owner_key:
        raise NotFoundError("Cart item not found")
    return item


async def add_item_to_cart(session, owner_key: str, product_id: int, label: str, quantity: int):
    """Insert a line or bump an existing one. Returns (item, created)."""
    existing = await find_cart_item(session, owner_key, product_id, label)
    if existing:
        existing.quantity = min(existing.quantity + quantity, MAX_ITEM_QTY)
        session.add(existing)
        await session.flush()
        return existing, False

    item = CartItem(owner_key=owner_key, product_id=product_id, variant_label=label, quantity=quantity)
    session.add(item)
    try:
        await session.flush()
        return item, True
    except IntegrityError:
        # concurrent add of the same line won the insert
        await session.rollback()
        existing = await find_cart_item(session, owner_key, product_id, label)
        existing.quantity = min(existing.quantity + quantity, MAX_ITEM_QTY)
        session.add(existing)
        await session.flush()
        return existing, False


async def set_item_quantity(session, item: CartItem, quantity: int) -> CartItem:
    item.quantity = quantity
    session.add(item)
    await session.flush()
    return item


async def remove_cart_item(session, owner_key: str, item_id: int) -> int:
    res = await session.execute(delete(CartItem).where(CartItem.id == item_id, CartItem.owner_key == owner_key))
    return res.rowcount


async def remove_cart_items_by_ids(session, ids: List[int]) -> int:
    if not ids:
        return 0
    res = await session.execute(delete(CartItem).where(CartItem.id.in_(ids)))
    return res.rowcount


async def fetch_cart_lines(session, owner_key: str) -> List[Dict[str, Any]]:
    stmt = (select(CartItem.id, CartItem.quantity, CartItem.variant_label, Product.id.label("product_id"),
                   Product.public_id, Product.name, Product.price, Product.image_url, Product.is_active,
                   Product.deleted_at)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.owner_key == owner_key)
            .order_by(CartItem.created_at, CartItem.id))
    res = await session.execute(stmt)
    return [dict(r._mapping) for r in res.all()]


async def fetch_owner_items(session, owner_key: str) -> List[CartItem]:
    stmt = select(CartItem).where(CartItem.owner_key == owner_key).order_by(CartItem.created_at, CartItem.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def count_cart(session, owner_key: str) -> Dict[str, int]:
    """Line count and summed quantity, ignoring delisted products."""
    stmt = (select(func.count(CartItem.id), func.coalesce(func.sum(CartItem.quantity), 0))
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.owner_key == owner_key, Product.is_active.is_(True), Product.deleted_at.is_(None)))
    lines, quantity = (await session.execute(stmt)).one()
    return {"lines": int(lines), "count": int(quantity)}


async def clear_cart(session, owner_key: str) -> int:
    res = await session.execute(delete(CartItem).where(CartItem.owner_key == owner_key))
    return res.rowcount
