import redis.asyncio as redis
from storefront.config.settings import config_settings

REDIS_LOCK_TIMEOUT = 5   # seconds


def build_redis(url: str = None) -> redis.Redis:
    return redis.Redis.from_url(
        url or config_settings.REDIS_URL,
        decode_responses=False,
        socket_timeout=config_settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=config_settings.REDIS_SOCKET_TIMEOUT)
