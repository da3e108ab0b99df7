import pytest
from sqlalchemy import select
from storefront.config.settings import config_settings
from storefront.inventory.ledger import reservation_key, snapshot_key
from storefront.schema.full_schema import OrderItem, Orders, OrderStatus, Payment, PaymentStatus, ProductVariant
from tests.helpers import add_to_cart, checkout, line, url_prefix, webhook_form

webhook_path = config_settings.WEBHOOK_PATH


async def place_upi(ac_client, catalog, gateway, label="S", quantity=1, headers=None):
    headers = headers or catalog["alice_headers"]
    tshirt = catalog["tshirt"]
    await add_to_cart(ac_client, headers, tshirt, label, quantity)
    resp = await checkout(ac_client, headers, "upi", [line(tshirt, label, quantity)])
    assert resp.status_code == 201, resp.text
    number = resp.json()["data"]["order_number"]
    return number, gateway.token_for(number)


async def state(session_maker, order_number):
    """Order, payment and durable stock of the variant the order bought."""
    async with session_maker() as s:
        order = (await s.execute(select(Orders).where(Orders.order_number == order_number))).scalar_one()
        payment = (await s.execute(select(Payment).where(Payment.order_id == order.id))).scalar_one()
        item = (await s.execute(select(OrderItem).where(OrderItem.order_id == order.id))).scalars().first()
        stock = (await s.execute(select(ProductVariant.stock).where(ProductVariant.product_id == item.product_id,
                                                                    ProductVariant.label == item.variant_label)
                                 )).scalar_one()
        return order, payment, stock


@pytest.mark.asyncio
async def test_successful_payment_commits_hold(ac_client, app, catalog, gateway, fake_redis, session_maker, notifier):
    tshirt = catalog["tshirt"]
    number, token = await place_upi(ac_client, catalog, gateway, quantity=2)
    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) == 2

    resp = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["success"] is True

    order, payment, stock = await state(session_maker, number)
    assert order.status == OrderStatus.CONFIRMED.value
    assert order.confirmed_at is not None
    assert payment.status == PaymentStatus.COMPLETED.value
    assert payment.transaction_id == token
    assert payment.paid_at is not None
    assert stock == 8
    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) is None
    assert await fake_redis.get(snapshot_key(token)) is None

    await app.state.notifications.queue.join()
    assert notifier.events == [("order_confirmed", {"order_number": number, "customer_name": "Alice",
                                                    "customer_email": "alice@example.com", "total_amount": 1000})]


@pytest.mark.asyncio
async def test_release_only_subtracts_this_orders_hold(ac_client, catalog, gateway, fake_redis):
    tshirt = catalog["tshirt"]
    number, token = await place_upi(ac_client, catalog, gateway, quantity=2)
    await place_upi(ac_client, catalog, gateway, quantity=3, headers=catalog["bob_headers"])
    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) == 5

    resp = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert resp.status_code == 200, resp.text

    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) == 3


@pytest.mark.asyncio
async def test_duplicate_delivery_is_idempotent(ac_client, catalog, gateway, ledger, session_maker):
    number, token = await place_upi(ac_client, catalog, gateway)
    snapshot = await ledger.load_snapshot(token)

    first = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert first.status_code == 200

    # retry after the snapshot is gone
    again = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert again.status_code == 404

    # a duplicate that raced past the snapshot lookup finds the order already confirmed
    await ledger.save_snapshot(token, snapshot)
    raced = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert raced.status_code == 200

    order, payment, stock = await state(session_maker, number)
    assert order.status == OrderStatus.CONFIRMED.value
    assert stock == 9


@pytest.mark.asyncio
async def test_failed_payment_leaves_order_and_stock(ac_client, catalog, gateway, fake_redis, session_maker):
    tshirt = catalog["tshirt"]
    number, token = await place_upi(ac_client, catalog, gateway)

    resp = await ac_client.post(webhook_path, data=webhook_form(token, status="FAILURE", order_id=number))

    assert resp.status_code == 200
    assert resp.json()["data"] == {"success": True, "message": "Payment not successful"}
    order, payment, stock = await state(session_maker, number)
    assert order.status == OrderStatus.PENDING.value
    assert payment.status == PaymentStatus.FAILED.value
    assert stock == 10
    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) == 1


@pytest.mark.asyncio
async def test_late_failure_never_rewrites_completed_payment(ac_client, catalog, gateway, ledger, session_maker):
    number, token = await place_upi(ac_client, catalog, gateway)
    snapshot = await ledger.load_snapshot(token)
    await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))

    await ledger.save_snapshot(token, snapshot)
    resp = await ac_client.post(webhook_path, data=webhook_form(token, status="FAILURE", order_id=number))

    assert resp.status_code == 200
    _, payment, _ = await state(session_maker, number)
    assert payment.status == PaymentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_missing_token_is_rejected(ac_client, catalog):
    resp = await ac_client.post(webhook_path, data={"order_id": "ORD-1", "status": "SUCCESS"})
    assert resp.status_code == 400
    assert resp.json()["error"]["details"]["message"] == "Missing verification token"


@pytest.mark.asyncio
async def test_non_string_webhook_fields_are_rejected(ac_client, catalog, gateway, session_maker):
    resp = await ac_client.post(webhook_path, json={"status": "SUCCESS", "remark1": 123})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    assert resp.json()["error"]["details"]["message"] == "Verification token must be a string"

    number, token = await place_upi(ac_client, catalog, gateway)
    resp = await ac_client.post(webhook_path, json={"order_id": number, "status": ["SUCCESS"], "remark1": token})
    assert resp.status_code == 400
    assert resp.json()["error"]["details"]["message"] == "Payment status must be a string"

    order, payment, _ = await state(session_maker, number)
    assert order.status == OrderStatus.PENDING.value
    assert payment.status == PaymentStatus.INITIATED.value


@pytest.mark.asyncio
async def test_unknown_or_expired_token(ac_client, catalog, gateway, fake_redis, session_maker):
    resp = await ac_client.post(webhook_path, data=webhook_form("0" * 32))
    assert resp.status_code == 404
    assert resp.json()["error"]["details"]["message"] == "Reservation not found or expired"

    number, token = await place_upi(ac_client, catalog, gateway)
    fake_redis.advance(2101)
    resp = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))
    assert resp.status_code == 404
    order, payment, _ = await state(session_maker, number)
    assert order.status == OrderStatus.PENDING.value
    assert payment.status == PaymentStatus.INITIATED.value


@pytest.mark.asyncio
async def test_json_body_is_accepted(ac_client, catalog, gateway, session_maker):
    number, token = await place_upi(ac_client, catalog, gateway)

    resp = await ac_client.post(webhook_path, json=webhook_form(token, order_id=number))

    assert resp.status_code == 200, resp.text
    order, _, _ = await state(session_maker, number)
    assert order.status == OrderStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_stock_shortfall_rolls_back_settlement(ac_client, catalog, gateway, fake_redis, session_maker,
                                                     admin_enabled):
    tshirt = catalog["tshirt"]
    number, token = await place_upi(ac_client, catalog, gateway, quantity=2)

    # durable stock shrinks under the hold
    resp = await ac_client.put(f"{url_prefix}/admin/products/{tshirt.public_id}/stock", headers=admin_enabled,
                               json={"product_stocks": [{"stock_name": "S", "stock": 1}]})
    assert resp.status_code == 200, resp.text

    resp = await ac_client.post(webhook_path, data=webhook_form(token, order_id=number))

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "STOCK_COMMIT_FAILED"
    order, payment, stock = await state(session_maker, number)
    assert order.status == OrderStatus.PENDING.value
    assert stock == 1
    # payment outcome is recorded for manual resolution, the hold stays until it expires
    assert payment.status == PaymentStatus.COMPLETED.value
    assert fake_redis.raw_int(reservation_key(tshirt.id, "S")) == 2


@pytest.mark.asyncio
async def test_settlements_never_oversell(ac_client, catalog, gateway, fake_redis, session_maker, admin_enabled):
    tshirt = catalog["tshirt"]
    placed = [await place_upi(ac_client, catalog, gateway, label="M", quantity=1,
                              headers=catalog[f"{who}_headers"]) for who in ("alice", "bob")]

    # both holds fit, then an admin correction leaves a single unit
    await ac_client.put(f"{url_prefix}/admin/products/{tshirt.public_id}/stock", headers=admin_enabled,
                        json={"product_stocks": [{"stock_name": "M", "stock": 1}]})

    codes = [(await ac_client.post(webhook_path, data=webhook_form(t, order_id=n))).status_code for n, t in placed]

    assert sorted(codes) == [200, 500]
    async with session_maker() as s:
        stock = (await s.execute(select(ProductVariant.stock).where(ProductVariant.product_id == tshirt.id,
                                                                    ProductVariant.label == "M"))).scalar_one()
    assert stock == 0
