import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from storefront.config.admin_config import admin_config
from storefront.db.connection import build_session_maker
from storefront.inventory.ledger import ReservationLedger
from storefront.main import create_app
from storefront.schema.full_schema import Customer, DeliverySetting, Product, ProductVariant
from tests.fakes import FakeGateway, FakeRedis, RecordingNotifier

ADMIN_SECRET = "test-admin-secret"


@pytest.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool,
                              connect_args={"check_same_thread": False})
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def ledger(fake_redis):
    return ReservationLedger(fake_redis, reservation_ttl=1800, snapshot_ttl=2100)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def admin_enabled(monkeypatch):
    monkeypatch.setattr(admin_config, "ENABLE_ADMIN", True)
    monkeypatch.setattr(admin_config, "ADMIN_SECRET", ADMIN_SECRET)
    return {"X-Admin-Secret": ADMIN_SECRET}


@pytest.fixture
async def app(engine, fake_redis, gateway, notifier):
    application = create_app(engine=engine, redis_client=fake_redis, gateway=gateway, notifier=notifier,
                             run_reconciliation=False)
    async with LifespanManager(application):
        yield application


@pytest.fixture
async def ac_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def catalog(session_maker):
    """Two customers, one tshirt with S/M/L variants and a delivery configuration.

    Stock: S=10, M=2, L=0. Price 500, flat fee 50, free delivery from 1000.
    """
    async with session_maker() as session:
        alice = Customer(name="Alice", email="alice@example.com", phone="9000000001")
        bob = Customer(name="Bob", email="bob@example.com", phone="9000000002")
        tshirt = Product(name="Orange Tee", description="Summer orange vibe tshirt", price=500,
                         image_url="https://img.example.test/tee.png", category="tshirts")
        hidden = Product(name="Retired Tee", price=300, is_active=False)
        session.add_all([alice, bob, tshirt, hidden])
        await session.flush()
        session.add_all([
            ProductVariant(product_id=tshirt.id, label="S", stock=10),
            ProductVariant(product_id=tshirt.id, label="M", stock=2),
            ProductVariant(product_id=tshirt.id, label="L", stock=0),
            ProductVariant(product_id=hidden.id, label="M", stock=5),
            DeliverySetting(take_delivery_fee=True, check_threshold=True, delivery_fee=50,
                            free_delivery_threshold=1000, allowed_zip_codes=["560001", "560002"]),
        ])
        await session.commit()
        return {
            "alice": alice,
            "bob": bob,
            "tshirt": tshirt,
            "hidden": hidden,
            "alice_headers": {"X-User-Id": str(alice.public_id)},
            "bob_headers": {"X-User-Id": str(bob.public_id)},
        }

