from typing import Any, Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from storefront import logger
from storefront.common.custom_exceptions import (AppError, CartValidationError, DeliveryUnavailableError,
                                                 InternalError, NotFoundError, ReservationError, ValidationError)
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.identity.dependencies import AuthenticatedUser, cart_owner_key
from storefront.inventory.availability import AvailabilityCalculator
from storefront.inventory.ledger import ReservationLedger, new_verification_token
from storefront.inventory.repository import commit_stock
from storefront.orders.constants import COD_SUCCESS_MESSAGE, UPI_SUCCESS_MESSAGE
from storefront.orders.models import CheckoutRequest
from storefront.orders.repository import (create_payment, fetch_active_products, fetch_cart_quantities,
                                          fetch_customer, lock_order, place_order_with_items, remove_cart_lines,
                                          set_payment_gateway_meta)
from storefront.orders.utils import generate_order_number
from storefront.pricing.services import calculate_order_pricing, get_delivery_settings
from storefront.schema.full_schema import OrderStatus, PaymentMethod, PaymentStatus


async def validate_checkout_lines(session, calculator: AvailabilityCalculator, owner_key: str,
                                  payload: CheckoutRequest) -> List[Dict[str, Any]]:
    """Resolve requested lines against catalog, cart and live availability.

    The first failing line aborts the checkout. Nothing is reserved here.
    """
    seen = set()
    for it in payload.items:
        k = (it.product_id, it.variant_label)
        if k in seen:
            raise ValidationError(f"Duplicate item {it.product_id} ({it.variant_label})")
        seen.add(k)

    products = await fetch_active_products(session, [it.product_id for it in payload.items])
    cart = await fetch_cart_quantities(session, owner_key)

    lines = []
    for it in payload.items:
        product = products.get(it.product_id)
        if product is None:
            raise CartValidationError(f"Product {it.product_id} not found or inactive",
                                      details={"product_id": str(it.product_id)})
        lines.append({
            "product_id": product.id,
            "product_public_id": str(product.public_id),
            "variant_label": it.variant_label,
            "quantity": it.quantity,
            "unit_price": int(product.price),
            "product_name": product.name,
            "product_description": product.description,
            "product_image_url": product.image_url,
            "product_category": product.category,
        })

    availability = await calculator.for_variants(session, [(ln["product_id"], ln["variant_label"]) for ln in lines])
    for ln in lines:
        key = (ln["product_id"], ln["variant_label"])
        name, label = ln["product_name"], ln["variant_label"]
        avail = availability.get(key)
        if avail is None:
            raise CartValidationError(f"Variant {label} not available for {name}",
                                      details={"product_id": ln["product_public_id"], "variant_label": label})
        if key not in cart:
            raise CartValidationError(f"Product {name} with size {label} not in cart",
                                      details={"product_id": ln["product_public_id"], "variant_label": label})
        if cart[key] != ln["quantity"]:
            raise CartValidationError(f"Quantity for {name} ({label}) does not match cart",
                                      details={"product_id": ln["product_public_id"], "variant_label": label,
                                               "requested": ln["quantity"], "in_cart": cart[key]})
        if avail.available < ln["quantity"]:
            raise CartValidationError(f"Only {avail.available} left for {name} ({label})",
                                      details={"product_id": ln["product_public_id"], "variant_label": label,
                                               "requested": ln["quantity"], "available": avail.available})
    return lines


def _order_values(user: AuthenticatedUser, customer, payload: CheckoutRequest, method: PaymentMethod,
                  subtotal: int, delivery_fee: int, total: int) -> Dict[str, Any]:
    addr = payload.address
    return {
        "customer_id": user.user_id,
        "status": OrderStatus.PENDING.value,
        "payment_method": method.value,
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "total_amount": total,
        "customer_name": customer.name if customer else None,
        "customer_email": customer.email if customer else None,
        "customer_phone": customer.phone if customer else None,
        "shipping_full_name": addr.full_name,
        "shipping_phone": addr.phone,
        "shipping_phone2": addr.alternate_phone,
        "shipping_line1": addr.line1,
        "shipping_line2": addr.line2,
        "shipping_landmark": addr.landmark,
        "shipping_city": addr.city,
        "shipping_state": addr.state,
        "shipping_country": addr.country,
        "shipping_zip_code": addr.zip_code,
    }


async def create_order_records(session, order_values: Dict[str, Any], lines: List[Dict[str, Any]],
                               method: PaymentMethod, owner_key: Optional[str] = None):
    """Insert order, items and payment in one transaction, regenerating the
    order number on a unique clash. COD also commits durable stock and clears
    the purchased cart lines inside the same transaction.
    """
    max_attempts = config_settings.ORDER_NUMBER_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        values = dict(order_values, order_number=generate_order_number())
        try:
            if method == PaymentMethod.COD:
                await commit_stock(session, lines)
            order = await place_order_with_items(session, values, lines)
            if method == PaymentMethod.COD:
                payment = await create_payment(session, order.id, method, PaymentStatus.COMPLETED,
                                               order.total_amount, paid_at=None)
                await remove_cart_lines(session, owner_key, [(ln["product_id"], ln["variant_label"]) for ln in lines])
            else:
                payment = await create_payment(session, order.id, method, PaymentStatus.INITIATED, order.total_amount)
            await session.commit()
            return order, payment
        except IntegrityError as e:
            await session.rollback()
            if "order_number" not in str(e.orig):
                logger.error("checkout.order_insert_failed", extra={"error": str(e.orig)})
                raise InternalError("Could not create order") from e
            logger.warning("checkout.order_number_collision", extra={"attempt": attempt,
                                                                     "order_number": values["order_number"]})
        except Exception:
            await session.rollback()
            raise
    raise InternalError("Could not generate a unique order number",
                        details={"attempts": max_attempts})


async def _priced(session, redis_client, lines, zip_code):
    subtotal = sum(ln["unit_price"] * ln["quantity"] for ln in lines)
    settings = await get_delivery_settings(session, redis_client)
    pricing = calculate_order_pricing(settings, subtotal, zip_code)
    if not pricing.can_deliver:
        raise DeliveryUnavailableError(pricing.message, details={"zip_code": zip_code})
    return pricing


async def checkout_cod(session, redis_client, calculator: AvailabilityCalculator,
                       user: AuthenticatedUser, payload: CheckoutRequest) -> Dict[str, Any]:
    owner_key = cart_owner_key(user)
    lines = await validate_checkout_lines(session, calculator, owner_key, payload)
    pricing = await _priced(session, redis_client, lines, payload.address.zip_code)
    customer = await fetch_customer(session, user.user_id)

    values = _order_values(user, customer, payload, PaymentMethod.COD,
                           pricing.subtotal, pricing.delivery_fee, pricing.final_total)
    order, _ = await create_order_records(session, values, lines, PaymentMethod.COD, owner_key)

    logger.info("checkout.cod.placed", extra={"order_number": order.order_number, "amount": order.total_amount})
    return {
        "order_id": str(order.public_id),
        "order_number": order.order_number,
        "amount": order.total_amount,
        "message": COD_SUCCESS_MESSAGE,
    }


async def checkout_upi(session, redis_client, calculator: AvailabilityCalculator, ledger: ReservationLedger,
                       gateway, user: AuthenticatedUser, payload: CheckoutRequest) -> Dict[str, Any]:
    owner_key = cart_owner_key(user)
    lines = await validate_checkout_lines(session, calculator, owner_key, payload)
    pricing = await _priced(session, redis_client, lines, payload.address.zip_code)
    customer = await fetch_customer(session, user.user_id)

    stock_items = [{"product_id": ln["product_id"], "variant_label": ln["variant_label"],
                    "quantity": ln["quantity"]} for ln in lines]
    await ledger.reserve(stock_items)
    logger.info("checkout.upi.reserved", extra={"lines": len(stock_items), "user_id": user.user_id})

    values = _order_values(user, customer, payload, PaymentMethod.UPI,
                           pricing.subtotal, pricing.delivery_fee, pricing.final_total)
    try:
        order, _ = await create_order_records(session, values, lines, PaymentMethod.UPI)
    except AppError:
        # no order exists for these holds, hand them back now instead of waiting for expiry
        for it in stock_items:
            try:
                await ledger.release(it["product_id"], it["variant_label"], it["quantity"])
            except Exception as e:
                logger.warning("checkout.upi.release_failed", extra={"error": str(e)})
        raise

    token = new_verification_token()
    snapshot = {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": user.user_id,
        "amount": order.total_amount,
        "items": stock_items,
    }
    try:
        await ledger.save_snapshot(token, snapshot)
    except Exception as e:
        logger.error("checkout.upi.snapshot_failed", extra={"order_number": order.order_number, "error": str(e)})
        raise ReservationError("Could not start payment, please retry",
                               details={"order_number": order.order_number}) from e

    payment_url = await gateway.create_order(
        customer_phone=payload.address.phone,
        amount=order.total_amount,
        order_id=order.order_number,
        callback_token=token,
    )

    await set_payment_gateway_meta(session, order.id, {"payment_url": payment_url})
    await remove_cart_lines(session, owner_key, [(ln["product_id"], ln["variant_label"]) for ln in lines])
    await session.commit()

    logger.info("checkout.upi.initiated", extra={"order_number": order.order_number, "amount": order.total_amount})
    return {
        "order_id": str(order.public_id),
        "order_number": order.order_number,
        "amount": order.total_amount,
        "payment_url": payment_url,
        "message": UPI_SUCCESS_MESSAGE,
    }


async def confirm_order_with_stock(session, order_id: int, items: List[Dict[str, Any]]):
    """Lock the order, commit durable stock and flip it to CONFIRMED.

    Returns the confirmed order, or None when it already left PENDING
    (duplicate delivery). Caller commits or rolls back.
    """
    order = await lock_order(session, order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    if order.status != OrderStatus.PENDING.value:
        logger.info("order.confirm.skipped", extra={"order_number": order.order_number,
                                                    "status": OrderStatus(order.status).name})
        return None
    await commit_stock(session, items)
    order.status = OrderStatus.CONFIRMED.value
    order.confirmed_at = now()
    order.updated_at = now()
    session.add(order)
    await session.flush()
    return order


def confirmation_payload(order) -> Dict[str, Any]:
    return {
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "total_amount": order.total_amount,
    }
