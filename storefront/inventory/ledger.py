import secrets
from typing import Any, Dict, Iterable, List, Optional, Tuple
from storefront import logger
from storefront.cache.utils import build_key, deserialize, serialize
from storefront.common.custom_exceptions import ReservationError
from storefront.inventory.constants import RESERVATION_KEY_PREFIX, SNAPSHOT_KEY_PREFIX


# DECRBY, DEL at zero and TTL repair as one atomic step
RELEASE_SCRIPT = """
local left = redis.call("DECRBY", KEYS[1], ARGV[1])
if left <= 0 then
  redis.call("DEL", KEYS[1])
  return 0
end
if tonumber(ARGV[2]) > 0 and redis.call("TTL", KEYS[1]) < 0 then
  redis.call("EXPIRE", KEYS[1], ARGV[2])
end
return left
"""


def reservation_key(product_id: int, label: str) -> str:
    return build_key(RESERVATION_KEY_PREFIX, str(product_id), label)


def snapshot_key(token: str) -> str:
    return build_key(SNAPSHOT_KEY_PREFIX, token)


def new_verification_token() -> str:
    return secrets.token_hex(16)


def _as_int(raw) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bytes):
        raw = raw.decode()
    return int(raw)


class ReservationLedger:
    """Soft, expiring stock holds kept in redis.

    Holds are advisory: they reduce what other shoppers see as available while a
    UPI payment is in flight. Durable stock only moves on commit.
    """

    def __init__(self, redis, reservation_ttl: int = 1800, snapshot_ttl: int = 2100):
        self.redis = redis
        self.reservation_ttl = reservation_ttl
        self.snapshot_ttl = snapshot_ttl

    async def reserve(self, items: Iterable[Dict[str, Any]]) -> None:
        applied: List[Tuple[str, int]] = []
        for it in items:
            key = reservation_key(it["product_id"], it["variant_label"])
            q = int(it["quantity"])
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.incrby(key, q)
                    pipe.expire(key, self.reservation_ttl)
                    await pipe.execute()
                applied.append((key, q))
            except Exception as e:
                logger.error("ledger.reserve_failed", extra={"key": key, "error": str(e)})
                await self._rollback(applied)
                raise ReservationError("Could not reserve stock, please retry",
                                       details={"product_id": it["product_id"],
                                                "variant_label": it["variant_label"]}) from e
        logger.info("ledger.reserved", extra={"lines": len(applied)})

    async def _rollback(self, applied: List[Tuple[str, int]]):
        for key, q in applied:
            try:
                await self._release_key(key, q)
            except Exception as e:
                # the hold still expires with its ttl
                logger.warning("ledger.rollback_failed", extra={"key": key, "error": str(e)})

    async def release(self, product_id: int, label: str, quantity: int) -> int:
        """Drop `quantity` from a hold. Returns what is still reserved."""
        return await self._release_key(reservation_key(product_id, label), int(quantity))

    async def _release_key(self, key: str, quantity: int) -> int:
        # DECRBY keeps the existing ttl, a key without one gets the fallback window
        left = await self.redis.eval(RELEASE_SCRIPT, 1, key, quantity, self.reservation_ttl)
        return max(0, _as_int(left))

    async def reserved_quantity(self, product_id: int, label: str) -> int:
        try:
            value = _as_int(await self.redis.get(reservation_key(product_id, label)))
        except Exception as e:
            logger.warning("ledger.read_failed", extra={"product_id": product_id, "variant_label": label,
                                                        "error": str(e)})
            return 0
        return max(0, value)

    async def reserved_quantities(self, keys: Iterable[Tuple[int, str]]) -> Dict[Tuple[int, str], int]:
        keys = list(dict.fromkeys((int(p), str(l)) for p, l in keys))
        if not keys:
            return {}
        try:
            raw = await self.redis.mget([reservation_key(p, l) for p, l in keys])
        except Exception as e:
            logger.warning("ledger.read_failed", extra={"keys": len(keys), "error": str(e)})
            return {k: 0 for k in keys}
        return {k: max(0, _as_int(v)) for k, v in zip(keys, raw)}

    async def save_snapshot(self, token: str, snapshot: Dict[str, Any]) -> None:
        await self.redis.set(snapshot_key(token), serialize(snapshot), ex=self.snapshot_ttl)

    async def load_snapshot(self, token: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(snapshot_key(token))
        if raw is None:
            return None
        return deserialize(raw)

    async def delete_snapshot(self, token: str) -> None:
        await self.redis.delete(snapshot_key(token))
