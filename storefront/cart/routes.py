from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.cart.models import CartItemInput, CartItemQuantity, CheckProductsRequest
from storefront.cart.repository import (add_item_to_cart, clear_cart, count_cart, find_cart_item, get_owned_cart_item,
                                        get_product_variant, remove_cart_item, set_item_quantity)
from storefront.cart.services import (cart_overview, check_cart_products, ensure_quantity_available,
                                      merge_guest_cart)
from storefront.common.custom_exceptions import NotFoundError, ValidationError
from storefront.common.utils import success_response
from storefront.db.dependencies import get_ledger, get_session
from storefront.identity.dependencies import (GUEST_HEADER, AuthenticatedUser, GuestSession, Identity, cart_owner_key,
                                              require_user, resolve_identity)
from storefront.inventory.availability import AvailabilityCalculator
from storefront.schema.full_schema import Product

carts_router = APIRouter()


@carts_router.get("")
async def view_cart(identity: Identity = Depends(resolve_identity), session: AsyncSession = Depends(get_session),
                    ledger=Depends(get_ledger)):
    data = await cart_overview(session, AvailabilityCalculator(ledger), cart_owner_key(identity))
    return success_response(data)


@carts_router.post("/items")
async def add_to_cart(payload: CartItemInput, identity: Identity = Depends(resolve_identity),
                      session: AsyncSession = Depends(get_session), ledger=Depends(get_ledger)):
    owner_key = cart_owner_key(identity)
    product = await get_product_variant(session, payload.product_id, payload.variant_label)

    existing = await find_cart_item(session, owner_key, product["id"], payload.variant_label)
    wanted = payload.quantity + (existing.quantity if existing else 0)
    await ensure_quantity_available(session, AvailabilityCalculator(ledger), product["id"], payload.variant_label,
                                    product["name"], wanted)

    item, created = await add_item_to_cart(session, owner_key, product["id"], payload.variant_label, payload.quantity)
    await session.commit()
    logger.info("cart.item_added", extra={"owner": owner_key, "product_id": product["id"], "new_line": created})

    resp = {
        "item": {
            "id": item.id,
            "product_id": str(payload.product_id),
            "variant_label": item.variant_label,
            "quantity": item.quantity,
            "created": created,
        },
    }
    return success_response(resp, status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@carts_router.patch("/items/{item_id}")
async def update_cart_item(item_id: int, payload: CartItemQuantity, identity: Identity = Depends(resolve_identity),
                           session: AsyncSession = Depends(get_session), ledger=Depends(get_ledger)):
    owner_key = cart_owner_key(identity)
    item = await get_owned_cart_item(session, owner_key, item_id)
    product = await session.get(Product, item.product_id)
    await ensure_quantity_available(session, AvailabilityCalculator(ledger), item.product_id, item.variant_label,
                                    product.name, payload.quantity)
    item = await set_item_quantity(session, item, payload.quantity)
    await session.commit()
    return success_response({"item": {"id": item.id, "variant_label": item.variant_label, "quantity": item.quantity}})


@carts_router.delete("/items/{item_id}")
async def delete_cart_item(item_id: int, identity: Identity = Depends(resolve_identity),
                           session: AsyncSession = Depends(get_session)):
    removed = await remove_cart_item(session, cart_owner_key(identity), item_id)
    if not removed:
        raise NotFoundError("Cart item not found")
    await session.commit()
    return success_response({"message": "item removed", "id": item_id})


@carts_router.get("/count")
async def cart_count(identity: Identity = Depends(resolve_identity), session: AsyncSession = Depends(get_session)):
    return success_response(await count_cart(session, cart_owner_key(identity)))


@carts_router.delete("/clear")
async def clear_all_items(identity: Identity = Depends(resolve_identity), session: AsyncSession = Depends(get_session)):
    owner_key = cart_owner_key(identity)
    removed = await clear_cart(session, owner_key)
    if not removed:
        raise NotFoundError("Cart is already empty")
    await session.commit()
    logger.info("cart.cleared", extra={"owner": owner_key, "lines": removed})
    return success_response({"message": "cart cleared", "removed": removed})


@carts_router.post("/check-products")
async def check_products(payload: CheckProductsRequest, identity: Identity = Depends(resolve_identity),
                         session: AsyncSession = Depends(get_session), ledger=Depends(get_ledger)):
    data = await check_cart_products(session, AvailabilityCalculator(ledger), cart_owner_key(identity),
                                     payload.items)
    return success_response(data)


@carts_router.post("/merge")
async def merge_guest_items(request: Request, user: AuthenticatedUser = Depends(require_user),
                            session: AsyncSession = Depends(get_session)):
    sid = request.headers.get(GUEST_HEADER)
    if not sid:
        raise ValidationError(f"Missing {GUEST_HEADER} header")
    result = await merge_guest_cart(session, cart_owner_key(GuestSession(session_id=sid)), cart_owner_key(user))
    await session.commit()
    return success_response(result)
