from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from storefront import logger
from storefront.common.utils import success_response
from storefront.db.dependencies import get_redis, get_session

home_router = APIRouter()


@home_router.get("/health")
async def health_check(session: AsyncSession = Depends(get_session), redis_client=Depends(get_redis)):
    checks = {"database": "ok", "redis": "ok"}
    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health.database_failed", extra={"error": str(e)})
        checks["database"] = "error"
    try:
        await redis_client.ping()
    except Exception as e:
        # reservations fail open, a redis outage degrades but does not stop the service
        logger.warning("health.redis_failed", extra={"error": str(e)})
        checks["redis"] = "degraded"

    code = status.HTTP_200_OK if checks["database"] == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE
    return success_response({"status": "healthy" if code == 200 else "unhealthy", "checks": checks}, status_code=code)
