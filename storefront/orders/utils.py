import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional
from storefront.common.utils import as_utc, now
from storefront.orders.constants import BASE36_ALPHABET, ORDER_NUMBER_PREFIX, ORDER_NUMBER_RANDOM_LEN
from storefront.schema.full_schema import OrderStatus, PaymentStatus


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("negative value")
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(BASE36_ALPHABET[r])
    return "".join(reversed(out))


def generate_order_number(at: Optional[datetime] = None) -> str:
    """ORD-YYYYMMDD-<epoch ms base36><3 random base36>, upper case."""
    at = at or now()
    ms = int(at.timestamp() * 1000)
    rand = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(ORDER_NUMBER_RANDOM_LEN))
    return f"{ORDER_NUMBER_PREFIX}-{at.strftime('%Y%m%d')}-{to_base36(ms)}{rand}"


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_order(order, items: List[Any], payment=None) -> Dict[str, Any]:
    return {
        "order_id": str(order.public_id),
        "order_number": order.order_number,
        "status": OrderStatus(order.status).name,
        "payment_method": order.payment_method,
        "payment_status": PaymentStatus(payment.status).name if payment is not None else None,
        "subtotal": order.subtotal,
        "delivery_fee": order.delivery_fee,
        "total_amount": order.total_amount,
        "shipping": {
            "full_name": order.shipping_full_name,
            "phone": order.shipping_phone,
            "alternate_phone": order.shipping_phone2,
            "line1": order.shipping_line1,
            "line2": order.shipping_line2,
            "landmark": order.shipping_landmark,
            "city": order.shipping_city,
            "state": order.shipping_state,
            "country": order.shipping_country,
            "zip_code": order.shipping_zip_code,
        },
        "items": [
            {
                "product_name": it.product_name,
                "variant_label": it.variant_label,
                "quantity": it.quantity,
                "unit_price": it.unit_price,
                "subtotal": it.subtotal,
                "image_url": it.product_image_url,
                "category": it.product_category,
            } for it in items
        ],
        "created_at": _iso(order.created_at),
        "confirmed_at": _iso(order.confirmed_at),
    }
