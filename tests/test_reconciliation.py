from datetime import timedelta
import pytest
from sqlalchemy import select, update
from storefront.background_workers.reconciliation import ReconciliationJob
from storefront.common.utils import now
from storefront.config.settings import config_settings
from storefront.notifications.dispatcher import NotificationDispatcher
from storefront.payments.gateway import GatewayOrderStatus
from storefront.schema.full_schema import Orders, OrderStatus, Payment, PaymentStatus, ProductVariant
from tests.fakes import RecordingNotifier
from tests.helpers import add_to_cart, checkout, line, url_prefix, webhook_form


async def place_upi(ac_client, catalog, headers, label="S", quantity=1):
    tshirt = catalog["tshirt"]
    await add_to_cart(ac_client, headers, tshirt, label, quantity)
    resp = await checkout(ac_client, headers, "upi", [line(tshirt, label, quantity)])
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["order_number"]


async def age_orders(session_maker, hours=2):
    async with session_maker() as s:
        await s.execute(update(Orders).values(created_at=now() - timedelta(hours=hours)))
        await s.commit()


async def outcome(session_maker, order_number):
    async with session_maker() as s:
        order = (await s.execute(select(Orders).where(Orders.order_number == order_number))).scalar_one()
        payment = (await s.execute(select(Payment).where(Payment.order_id == order.id))).scalar_one()
        return OrderStatus(order.status), PaymentStatus(payment.status)


async def stock(session_maker, product_id, label):
    async with session_maker() as s:
        res = await s.execute(select(ProductVariant.stock).where(ProductVariant.product_id == product_id,
                                                                 ProductVariant.label == label))
        return res.scalar_one()


@pytest.fixture
def dispatcher():
    # workers are not started, enqueued events stay inspectable on the queue
    return NotificationDispatcher(RecordingNotifier())


@pytest.fixture
def job(session_maker, gateway, dispatcher):
    return ReconciliationJob(session_maker, gateway, dispatcher, interval_seconds=3600, grace_seconds=3600)


def queued_events(dispatcher):
    events = []
    while not dispatcher.queue.empty():
        events.append(dispatcher.queue.get_nowait()["event"])
    return events


@pytest.mark.asyncio
async def test_paid_order_without_webhook_is_confirmed(ac_client, catalog, gateway, session_maker, job, dispatcher):
    number = await place_upi(ac_client, catalog, catalog["alice_headers"], quantity=2)
    await age_orders(session_maker)
    gateway.statuses[number] = GatewayOrderStatus(status="SUCCESS", txn_status="COMPLETED", utr="UTR1")

    stats = await job.run_once()

    assert stats["confirmed"] == 1
    assert await outcome(session_maker, number) == (OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)
    assert await stock(session_maker, catalog["tshirt"].id, "S") == 8
    assert queued_events(dispatcher) == ["order_confirmed"]


@pytest.mark.asyncio
async def test_unknown_order_is_unplaced(ac_client, catalog, gateway, session_maker, job, dispatcher):
    number = await place_upi(ac_client, catalog, catalog["alice_headers"])
    await age_orders(session_maker)

    await job.run_once()

    assert await outcome(session_maker, number) == (OrderStatus.UNPLACED, PaymentStatus.FAILED)
    assert await stock(session_maker, catalog["tshirt"].id, "S") == 10
    assert queued_events(dispatcher) == ["order_unplaced"]


@pytest.mark.asyncio
async def test_failed_and_undecided_outcomes(ac_client, catalog, gateway, session_maker, job):
    failed = await place_upi(ac_client, catalog, catalog["alice_headers"])
    waiting = await place_upi(ac_client, catalog, catalog["bob_headers"])
    await age_orders(session_maker)
    gateway.statuses[failed] = GatewayOrderStatus(status="FAILURE", txn_status="FAILURE")
    gateway.statuses[waiting] = GatewayOrderStatus(status="PENDING")

    stats = await job.run_once()

    assert stats["untouched"] == 1
    assert await outcome(session_maker, failed) == (OrderStatus.UNPLACED, PaymentStatus.FAILED)
    assert await outcome(session_maker, waiting) == (OrderStatus.PENDING, PaymentStatus.INITIATED)


@pytest.mark.asyncio
async def test_recent_orders_are_left_alone(ac_client, catalog, gateway, session_maker, job):
    number = await place_upi(ac_client, catalog, catalog["alice_headers"])

    stats = await job.run_once()

    assert stats["checked"] == 0
    assert await outcome(session_maker, number) == (OrderStatus.PENDING, PaymentStatus.INITIATED)


@pytest.mark.asyncio
async def test_one_failing_order_does_not_stop_the_sweep(ac_client, catalog, gateway, session_maker, job):
    broken = await place_upi(ac_client, catalog, catalog["alice_headers"])
    paid = await place_upi(ac_client, catalog, catalog["bob_headers"])
    await age_orders(session_maker)
    gateway.status_errors.add(broken)
    gateway.statuses[paid] = GatewayOrderStatus(status="SUCCESS")

    stats = await job.run_once()

    assert stats["errors"] == 1
    assert await outcome(session_maker, broken) == (OrderStatus.PENDING, PaymentStatus.INITIATED)
    assert await outcome(session_maker, paid) == (OrderStatus.CONFIRMED, PaymentStatus.COMPLETED)


@pytest.mark.asyncio
async def test_paid_order_without_stock_stays_pending(ac_client, catalog, gateway, session_maker, job,
                                                      admin_enabled):
    tshirt = catalog["tshirt"]
    number = await place_upi(ac_client, catalog, catalog["alice_headers"], label="M", quantity=2)
    await ac_client.put(f"{url_prefix}/admin/products/{tshirt.public_id}/stock", headers=admin_enabled,
                        json={"product_stocks": [{"stock_name": "M", "stock": 1}]})
    await age_orders(session_maker)
    gateway.statuses[number] = GatewayOrderStatus(status="SUCCESS")

    await job.run_once()

    assert await outcome(session_maker, number) == (OrderStatus.PENDING, PaymentStatus.COMPLETED)
    assert await stock(session_maker, tshirt.id, "M") == 1


@pytest.mark.asyncio
async def test_pending_order_with_failed_payment_is_unplaced(ac_client, catalog, gateway, session_maker, job):
    number = await place_upi(ac_client, catalog, catalog["alice_headers"])
    resp = await ac_client.post(config_settings.WEBHOOK_PATH,
                                data=webhook_form(gateway.token_for(number), "FAILURE", number))
    assert resp.status_code == 200
    await age_orders(session_maker)

    stats = await job.run_once()

    assert stats["checked"] == 0
    assert await outcome(session_maker, number) == (OrderStatus.UNPLACED, PaymentStatus.FAILED)
