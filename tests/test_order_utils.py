import re
from datetime import datetime, timezone
from storefront.orders.utils import generate_order_number, to_base36

ORDER_NUMBER_RE = re.compile(r"^ORD-\d{8}-[0-9A-Z]+$")


def test_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    assert to_base36(1_700_000_000_000) == "LOYW3V28"


def test_order_number_layout():
    at = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
    number = generate_order_number(at)

    assert ORDER_NUMBER_RE.match(number)
    assert number.startswith("ORD-20261019-")
    suffix = number.split("-")[2]
    assert suffix[:-3] == to_base36(int(at.timestamp() * 1000))


def test_order_numbers_differ_within_the_same_millisecond():
    at = datetime(2026, 10, 19, tzinfo=timezone.utc)
    numbers = {generate_order_number(at) for _ in range(30)}
    assert len(numbers) > 1
