import asyncio
import uuid
from typing import Any, Awaitable, Callable
from storefront import logger
from storefront.cache._cache import REDIS_LOCK_TIMEOUT
from storefront.cache.utils import deserialize, lock_key, release_lock, serialize


async def _read(redis_client, key: str):
    raw = await redis_client.get(key)
    if raw is None:
        return None
    try:
        return deserialize(raw)
    except Exception:
        await redis_client.delete(key)
        return None


async def cache_get_or_set(redis_client, key: str, ttl: int, loader: Callable[[], Awaitable[Any]],
                           lock_timeout: int = REDIS_LOCK_TIMEOUT) -> Any:
    """Read-through cache with a short redis lock against dogpiles.

    A redis outage never fails the caller, the loader result is returned uncached.
    `None` results are not cached.
    """
    try:
        cached = await _read(redis_client, key)
    except Exception as e:
        logger.warning("cache.read_failed", extra={"key": key, "error": str(e)})
        return await loader()
    if cached is not None:
        return cached

    lock = lock_key(key)
    token = uuid.uuid4().hex
    try:
        locked = await redis_client.set(lock, token, nx=True, ex=lock_timeout)
    except Exception as e:
        logger.warning("cache.lock_failed", extra={"key": key, "error": str(e)})
        return await loader()

    if locked:
        try:
            # another worker may have filled it between our miss and the lock
            cached = await _read(redis_client, key)
            if cached is not None:
                return cached
            value = await loader()
            if value is not None:
                try:
                    await redis_client.set(key, serialize(value), ex=ttl)
                except Exception as e:
                    logger.warning("cache.write_failed", extra={"key": key, "error": str(e)})
            return value
        finally:
            await release_lock(redis_client, lock, token)

    # someone else is computing, poll briefly then compute ourselves
    waited = 0.0
    interval = 0.05
    while waited < lock_timeout + 1:
        await asyncio.sleep(interval)
        waited += interval
        try:
            cached = await _read(redis_client, key)
        except Exception:
            break
        if cached is not None:
            return cached
    return await loader()


async def invalidate(redis_client, key: str):
    try:
        await redis_client.delete(key)
    except Exception as e:
        logger.warning("cache.invalidate_failed", extra={"key": key, "error": str(e)})
