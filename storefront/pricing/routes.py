from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from storefront import logger
from storefront.common.utils import success_response
from storefront.db.dependencies import get_redis, get_session
from storefront.identity.dependencies import require_admin
from storefront.pricing.models import DeliverySettingsIn
from storefront.pricing.services import get_delivery_settings, quote, update_delivery_settings

delivery_public_router = APIRouter()
delivery_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@delivery_public_router.get("/quote")
async def delivery_quote(subtotal: int = Query(..., ge=0), zip_code: Optional[str] = Query(None),
                         session: AsyncSession = Depends(get_session), redis_client=Depends(get_redis)):
    result = await quote(session, redis_client, subtotal, zip_code)
    return success_response(result.model_dump())


@delivery_admin_router.get("/delivery")
async def read_delivery_settings(session: AsyncSession = Depends(get_session), redis_client=Depends(get_redis)):
    settings = await get_delivery_settings(session, redis_client)
    return success_response({"settings": settings})


@delivery_admin_router.put("/delivery")
async def write_delivery_settings(payload: DeliverySettingsIn, session: AsyncSession = Depends(get_session),
                                  redis_client=Depends(get_redis)):
    stored = await update_delivery_settings(session, redis_client, payload.model_dump())
    logger.info("admin.delivery_settings.updated", extra={"settings": stored})
    return success_response({"message": "delivery settings updated", "settings": stored},
                            status_code=status.HTTP_200_OK)
