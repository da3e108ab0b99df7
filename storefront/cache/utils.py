from typing import Any
import orjson
from storefront import logger

KEY_SEPARATOR = ":"

# compare-and-delete so a caller never frees a lock another caller re-acquired after expiry
_UNLOCK_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
  return redis.call("DEL", KEYS[1])
end
return 0
"""


def build_key(*parts: Any) -> str:
    return KEY_SEPARATOR.join(str(p) for p in parts if p not in (None, ""))


def lock_key(key: str) -> str:
    return build_key(key, "lock")


def serialize(value: Any) -> bytes:
    return orjson.dumps(value)


def deserialize(raw: bytes) -> Any:
    return orjson.loads(raw)


async def release_lock(redis_client, key: str, token: str) -> bool:
    try:
        return bool(await redis_client.eval(_UNLOCK_SCRIPT, 1, key, token))
    except Exception as e:
        # the lock still expires on its own
        logger.warning("cache.unlock_failed", extra={"key": key, "error": str(e)})
        return False
