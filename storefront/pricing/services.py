from typing import Any, Dict, Optional
from storefront.cache.cache_get_n_set import cache_get_or_set, invalidate
from storefront.config.settings import config_settings
from storefront.pricing.models import PricingResult
from storefront.pricing.repository import fetch_active_settings, replace_active_settings

DELIVERY_SETTINGS_KEY = "settings:delivery"


def calculate_order_pricing(settings: Optional[Dict[str, Any]], subtotal: int,
                            zip_code: Optional[str] = None) -> PricingResult:
    subtotal = int(subtotal)
    if not settings:
        return PricingResult(can_deliver=False, subtotal=subtotal, final_total=subtotal,
                             message="No pricing configuration found")

    allowed = settings.get("allowed_zip_codes") or []
    if allowed and (zip_code or "").strip() not in allowed:
        return PricingResult(can_deliver=False, subtotal=subtotal, final_total=subtotal,
                             message=f"Delivery not available to zip code: {zip_code}")

    if not settings.get("take_delivery_fee"):
        return PricingResult(can_deliver=True, subtotal=subtotal, final_total=subtotal,
                             message="No delivery fee")

    threshold = int(settings.get("free_delivery_threshold") or 0)
    if settings.get("check_threshold") and subtotal >= threshold:
        return PricingResult(can_deliver=True, subtotal=subtotal, free_delivery_applied=True,
                             final_total=subtotal, message=f"Free delivery applied (order above ${threshold})")

    fee = int(settings.get("delivery_fee") or 0)
    return PricingResult(can_deliver=True, subtotal=subtotal, delivery_fee=fee, final_total=subtotal + fee,
                         message=f"Delivery fee: ${fee}")


async def get_delivery_settings(session, redis_client) -> Optional[Dict[str, Any]]:
    async def _load():
        return await fetch_active_settings(session)

    return await cache_get_or_set(redis_client, DELIVERY_SETTINGS_KEY,
                                  config_settings.DELIVERY_SETTINGS_CACHE_TTL, _load)


async def quote(session, redis_client, subtotal: int, zip_code: Optional[str]) -> PricingResult:
    settings = await get_delivery_settings(session, redis_client)
    return calculate_order_pricing(settings, subtotal, zip_code)


async def update_delivery_settings(session, redis_client, values: Dict[str, Any]) -> Dict[str, Any]:
    stored = await replace_active_settings(session, values)
    await session.commit()
    await invalidate(redis_client, DELIVERY_SETTINGS_KEY)
    return stored
