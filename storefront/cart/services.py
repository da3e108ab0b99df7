from typing import Any, Dict, Iterable, List
from storefront import logger
from storefront.cart.repository import MAX_ITEM_QTY, fetch_cart_lines, fetch_owner_items, remove_cart_items_by_ids
from storefront.config.settings import config_settings
from storefront.common.custom_exceptions import CartValidationError
from storefront.inventory.availability import AvailabilityCalculator
from storefront.inventory.constants import StockAction, StockStatus
from storefront.orders.repository import fetch_active_products


async def ensure_quantity_available(session, calculator: AvailabilityCalculator, product_id: int, label: str,
                                    name: str, quantity: int):
    avail = (await calculator.for_variants(session, [(product_id, label)])).get((product_id, label))
    available = avail.available if avail else 0
    if quantity > available:
        raise CartValidationError(f"Only {available} left for {name} ({label})",
                                  details={"variant_label": label, "requested": quantity, "available": available})


async def cart_overview(session, calculator: AvailabilityCalculator, owner_key: str) -> Dict[str, Any]:
    """Cart lines classified against live availability.

    Out of stock and delisted lines are dropped from the cart as a side effect.
    """
    rows = await fetch_cart_lines(session, owner_key)
    availability = await calculator.for_variants(session, [(r["product_id"], r["variant_label"]) for r in rows])

    items: List[Dict[str, Any]] = []
    removed: List[Dict[str, Any]] = []
    subtotal = 0
    needs_action = False
    low_stock = False
    reserved_lines = 0

    for r in rows:
        key = (r["product_id"], r["variant_label"])
        avail = availability.get(key)
        available = avail.available if avail else 0
        reserved = avail.reserved if avail else 0
        delisted = not r["is_active"] or r["deleted_at"] is not None
        cls = calculator.classify(r["quantity"], 0 if delisted else available)

        if cls.status == StockStatus.OUT_OF_STOCK:
            removed.append({"id": r["id"], "product_name": r["name"], "variant_label": r["variant_label"],
                            "message": f"{r['name']} ({r['variant_label']}) is out of stock and was removed"})
            continue

        message = cls.message
        if cls.status == StockStatus.QUANTITY_EXCEEDED:
            needs_action = True
            message = (f"Only {available} available ({reserved} reserved by others). "
                       f"Please reduce quantity to {available}.")
        elif cls.status == StockStatus.LOW_STOCK_WARNING:
            low_stock = True
        if reserved > 0:
            reserved_lines += 1

        line_total = int(r["price"]) * int(r["quantity"])
        subtotal += line_total
        items.append({
            "id": r["id"],
            "product_id": str(r["public_id"]),
            "product_name": r["name"],
            "image_url": r["image_url"],
            "variant_label": r["variant_label"],
            "quantity": r["quantity"],
            "unit_price": int(r["price"]),
            "line_total": line_total,
            "stock": {
                "status": cls.status.value,
                "action": cls.action.value,
                "available": available,
                "reserved_by_others": reserved,
                "message": message,
            },
        })

    if removed:
        await remove_cart_items_by_ids(session, [r["id"] for r in removed])
        await session.commit()
        logger.info("cart.out_of_stock_removed", extra={"owner": owner_key, "count": len(removed)})

    if needs_action:
        overall = "requires_action"
    elif low_stock:
        overall = "low_stock_warning"
    else:
        overall = "ready"

    return {
        "items": items,
        "removed_items": removed,
        "summary": {
            "overall_status": overall,
            "total_items": sum(it["quantity"] for it in items),
            "subtotal": subtotal,
            "can_checkout": bool(items) and not needs_action,
            "reservation_info": {
                "lines_with_active_reservations": reserved_lines,
                "reservation_window_minutes": config_settings.RESERVATION_TTL_SECONDS // 60,
            },
        },
    }


_CHECK_MESSAGES = {
    "ready": "Your cart is ready for checkout.",
    "low_stock_warning": "Some items have limited stock. Complete your purchase soon!",
    "requires_action": "Some items need attention before checkout.",
}


def _unavailable_line(ref, code: str, message: str) -> Dict[str, Any]:
    return {"product_id": str(ref.product_id), "variant_label": ref.variant_label, "status": code,
            "action": StockAction.REMOVE.value, "can_checkout": False, "message": message}


async def check_cart_products(session, calculator: AvailabilityCalculator, owner_key: str,
                              refs: Iterable[Any]) -> Dict[str, Any]:
    """Pre-checkout look at the given lines: in the cart, still listed, and how much is left."""
    refs = list(refs)
    products = await fetch_active_products(session, [r.product_id for r in refs])
    in_cart = {(r["product_id"], r["variant_label"]): r for r in await fetch_cart_lines(session, owner_key)}
    keys = [(products[r.product_id].id, r.variant_label) for r in refs if r.product_id in products]
    availability = await calculator.for_variants(session, keys)

    lines: List[Dict[str, Any]] = []
    subtotal = 0
    reserved_total = 0
    needs_action = False
    low_stock = False
    for ref in refs:
        product = products.get(ref.product_id)
        if product is None:
            lines.append(_unavailable_line(ref, "PRODUCT_NOT_FOUND", "Product not found or no longer available."))
            needs_action = True
            continue
        key = (product.id, ref.variant_label)
        avail = availability.get(key)
        if avail is None:
            lines.append(_unavailable_line(ref, "VARIANT_NOT_FOUND",
                                           f"Size {ref.variant_label} is no longer available."))
            needs_action = True
            continue
        row = in_cart.get(key)
        if row is None:
            lines.append(_unavailable_line(ref, "ITEM_NOT_IN_CART", "Item not found in your cart."))
            needs_action = True
            continue

        quantity = int(row["quantity"])
        cls = calculator.classify(quantity, avail.available)
        message = cls.message
        if cls.status == StockStatus.OUT_OF_STOCK:
            needs_action = True
            if avail.reserved > 0:
                message = "This item is currently reserved by other customers and unavailable."
        elif cls.status == StockStatus.QUANTITY_EXCEEDED:
            needs_action = True
            message = (f"Only {avail.available} available ({avail.reserved} reserved by others). "
                       f"Please reduce quantity to {avail.available}.")
        else:
            low_stock = low_stock or cls.status == StockStatus.LOW_STOCK_WARNING
            subtotal += int(product.price) * quantity
        reserved_total += avail.reserved

        lines.append({
            "product_id": str(ref.product_id),
            "variant_label": ref.variant_label,
            "status": cls.status.value,
            "action": cls.action.value,
            "can_checkout": cls.action == StockAction.PROCEED,
            "message": message,
            "cart_item_id": row["id"],
            "stock": {"stock": avail.stock, "reserved_by_others": avail.reserved, "available": avail.available,
                      "cart_quantity": quantity},
        })

    if needs_action:
        overall = "requires_action"
    elif low_stock:
        overall = "low_stock_warning"
    else:
        overall = "ready"
    return {
        "items": lines,
        "summary": {
            "overall_status": overall,
            "can_checkout": not needs_action,
            "message": _CHECK_MESSAGES[overall],
            "subtotal": subtotal,
            "needs_attention": sum(1 for ln in lines if not ln["can_checkout"]),
            "reserved_total": reserved_total,
        },
    }


async def merge_guest_cart(session, guest_key: str, user_key: str) -> Dict[str, int]:
    """Fold a guest cart into the user's cart after login.

    Lines the user already has are summed (capped at MAX_ITEM_QTY), the rest
    change owner. The guest cart is empty afterwards.
    """
    guest_items = await fetch_owner_items(session, guest_key)
    if not guest_items:
        return {"moved": 0, "combined": 0}
    mine = {(it.product_id, it.variant_label): it for it in await fetch_owner_items(session, user_key)}

    moved = combined = 0
    for g in guest_items:
        existing = mine.get((g.product_id, g.variant_label))
        if existing is None:
            g.owner_key = user_key
            session.add(g)
            moved += 1
            continue
        existing.quantity = min(existing.quantity + g.quantity, MAX_ITEM_QTY)
        session.add(existing)
        await session.delete(g)
        combined += 1
    await session.flush()
    logger.info("cart.guest_merged", extra={"owner": user_key, "moved": moved, "combined": combined})
    return {"moved": moved, "combined": combined}
