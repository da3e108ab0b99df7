import math
from typing import Any, Dict, List, Optional, Tuple
from redis.exceptions import ConnectionError as RedisConnectionError
from storefront.common.custom_exceptions import GatewayError
from storefront.inventory.ledger import RELEASE_SCRIPT
from storefront.notifications.notifier import Notifier
from storefront.payments.gateway import GatewayOrderStatus


def _to_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode()


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands the service uses.

    Time is virtual: `advance(seconds)` moves the clock so TTL expiry can be
    exercised without sleeping.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}
        self.clock = 0.0
        self.down = False
        self.fail_incr_keys = set()
        self.evals: List[str] = []

    # helpers -------------------------------------------------------------------------------
    def advance(self, seconds: float):
        self.clock += seconds

    def _check(self):
        if self.down:
            raise RedisConnectionError("redis unavailable")

    def _alive(self, key):
        item = self._data.get(key)
        if item is None:
            return None
        value, exp = item
        if exp is not None and exp <= self.clock:
            del self._data[key]
            return None
        return item

    def raw_int(self, key) -> Optional[int]:
        item = self._alive(key)
        return None if item is None else int(item[0])

    # commands ------------------------------------------------------------------------------
    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        return None

    async def get(self, key):
        self._check()
        item = self._alive(key)
        return None if item is None else item[0]

    async def mget(self, keys: List[str]):
        self._check()
        return [await self.get(k) for k in keys]

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and self._alive(key) is not None:
            return None
        exp = self.clock + ex if ex else None
        self._data[key] = (_to_bytes(value), exp)
        return True

    def _incr(self, key, amount: int) -> int:
        if key in self.fail_incr_keys:
            raise RedisConnectionError(f"write to {key} failed")
        item = self._alive(key)
        current, exp = (int(item[0]), item[1]) if item else (0, None)
        current += int(amount)
        self._data[key] = (_to_bytes(current), exp)
        return current

    async def incrby(self, key, amount: int):
        self._check()
        return self._incr(key, amount)

    async def decrby(self, key, amount: int):
        self._check()
        return self._incr(key, -int(amount))

    def _expire(self, key, seconds: int) -> bool:
        item = self._alive(key)
        if item is None:
            return False
        self._data[key] = (item[0], self.clock + seconds)
        return True

    async def expire(self, key, seconds: int):
        self._check()
        return self._expire(key, seconds)

    async def ttl(self, key):
        self._check()
        item = self._alive(key)
        if item is None:
            return -2
        if item[1] is None:
            return -1
        return int(math.ceil(item[1] - self.clock))

    async def delete(self, *keys):
        self._check()
        removed = 0
        for k in keys:
            if self._alive(k) is not None:
                del self._data[k]
                removed += 1
        return removed

    async def eval(self, script, numkeys, *args):
        self._check()
        self.evals.append(script)
        if script == RELEASE_SCRIPT:
            key, amount, window = args[0], int(args[1]), int(args[2])
            left = self._incr(key, -amount)
            if left <= 0:
                del self._data[key]
                return 0
            if window > 0 and self._data[key][1] is None:
                self._expire(key, window)
            return left
        # compare-and-delete lock release
        key, token = args[0], args[1]
        item = self._alive(key)
        if item is not None and item[0] == _to_bytes(token):
            del self._data[key]
            return 1
        return 0

    def pipeline(self, transaction: bool = True):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self._ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self._ops = []
        return False

    def incrby(self, key, amount):
        self._ops.append(("incrby", key, amount))
        return self

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))
        return self

    async def execute(self):
        self.redis._check()
        # MULTI/EXEC: a failing command aborts the whole block before anything is applied
        for op, key, _ in self._ops:
            if op == "incrby" and key in self.redis.fail_incr_keys:
                raise RedisConnectionError(f"write to {key} failed")
        out = []
        for op, key, arg in self._ops:
            if op == "incrby":
                out.append(self.redis._incr(key, arg))
            else:
                out.append(self.redis._expire(key, arg))
        self._ops = []
        return out


class FakeGateway:
    """Scripted payment gateway."""

    def __init__(self):
        self.created: List[Dict[str, Any]] = []
        self.statuses: Dict[str, Optional[GatewayOrderStatus]] = {}
        self.fail_create = False
        self.status_errors = set()

    async def create_order(self, customer_phone: str, amount: int, order_id: str, callback_token: str) -> str:
        if self.fail_create:
            raise GatewayError("Payment gateway unreachable")
        self.created.append({"customer_phone": customer_phone, "amount": amount, "order_id": order_id,
                             "callback_token": callback_token})
        return f"https://pay.example.test/{order_id}"

    async def check_order_status(self, order_id: str) -> Optional[GatewayOrderStatus]:
        if order_id in self.status_errors:
            raise GatewayError("Payment gateway unreachable")
        return self.statuses.get(order_id)

    def token_for(self, order_number: str) -> str:
        for call in self.created:
            if call["order_id"] == order_number:
                return call["callback_token"]
        raise KeyError(order_number)


class RecordingNotifier(Notifier):

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def order_confirmed(self, data):
        self.events.append(("order_confirmed", data))

    async def order_unplaced(self, data):
        self.events.append(("order_unplaced", data))
