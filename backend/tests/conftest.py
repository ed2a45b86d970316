"""
Pytest configuration and shared fixtures for the delivery order core tests.

Provides an in-memory SQLite session, seeded users and a restaurant, an
order factory, a recording real-time transport, and an HTTP client bound to
the app with the test session injected.
"""
import json
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from domain.actor import Actor
from domain.enums import ActorRole

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"

MENU = [
    {"name": "Taco", "price": 10.0},
    {"name": "Burrito", "price": 25.0},
    {"name": "Nachos", "price": 12.5},
]


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    import db_models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


# ── Seed Data ────────────────────────────────────────────────────────


async def _add_user(db: AsyncSession, user_id: str, role: str, name: str):
    from db_models import User

    user = User(id=user_id, role=role, name=name, email=f"{user_id}@example.com")
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession):
    return await _add_user(db_session, "cust-1", "client", "Carla Customer")


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession):
    return await _add_user(db_session, "cust-2", "client", "Oscar Other")


@pytest_asyncio.fixture
async def dispatcher(db_session: AsyncSession):
    return await _add_user(db_session, "admin-1", "admin", "Dana Dispatcher")


@pytest_asyncio.fixture
async def driver_a(db_session: AsyncSession):
    return await _add_user(db_session, "driver-a", "driver", "Alex Courier")


@pytest_asyncio.fixture
async def driver_b(db_session: AsyncSession):
    return await _add_user(db_session, "driver-b", "driver", "Blair Courier")


@pytest_asyncio.fixture
async def restaurant(db_session: AsyncSession):
    from db_models import Restaurant

    r = Restaurant(id="rest-1", name="Holy Tacos", address="1 Main St", menu_json=json.dumps(MENU))
    db_session.add(r)
    await db_session.commit()
    return r


@pytest.fixture
def customer_actor(customer) -> Actor:
    return Actor(customer.id, ActorRole.CLIENT)


@pytest.fixture
def other_customer_actor(other_customer) -> Actor:
    return Actor(other_customer.id, ActorRole.CLIENT)


@pytest.fixture
def admin_actor(dispatcher) -> Actor:
    return Actor(dispatcher.id, ActorRole.ADMIN)


@pytest.fixture
def driver_a_actor(driver_a) -> Actor:
    return Actor(driver_a.id, ActorRole.DRIVER)


@pytest.fixture
def driver_b_actor(driver_b) -> Actor:
    return Actor(driver_b.id, ActorRole.DRIVER)


@pytest.fixture
def make_order(db_session: AsyncSession, customer, restaurant):
    """
    Factory: create a committed order for `customer`.

    The default basket (3 burritos) totals 75.00 + 25.00 delivery = 100.00.
    """
    from services import order_store

    async def _make(*, paid: bool = True, items=None, customer_id: str | None = None):
        order = await order_store.create_order(
            db_session,
            customer_id=customer_id or customer.id,
            restaurant=restaurant,
            items=items or [{"name": "Burrito", "quantity": 3}],
            delivery_address="42 Elm Street",
        )
        if paid:
            order = await order_store.set_payment_status(db_session, order, paid=True)
        await db_session.commit()
        return order

    return _make


# ── Real-time Fixtures ───────────────────────────────────────────────


class RecordingTransport:
    """Real-time transport that records every send instead of delivering it."""

    def __init__(self):
        self.sent: list[tuple[str, str | None, str, dict]] = []

    async def send_to_user(self, user_id, event_name, payload):
        self.sent.append(("user", user_id, event_name, payload))
        return 1

    async def broadcast_to_dispatchers(self, event_name, payload):
        self.sent.append(("dispatchers", None, event_name, payload))
        return 1

    async def send_to_order_channel(self, order_id, event_name, payload):
        self.sent.append(("order", order_id, event_name, payload))
        return 1

    def events_for_user(self, user_id: str) -> list[str]:
        return [name for channel, key, name, _ in self.sent if channel == "user" and key == user_id]

    def dispatcher_events(self) -> list[str]:
        return [name for channel, _, name, _ in self.sent if channel == "dispatchers"]


class FakeSocket:
    """Delivery target standing in for a WebSocket."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[dict] = []

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.messages.append(data)

    @property
    def event_names(self) -> list[str]:
        return [m["event"] for m in self.messages]


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def notifier(transport):
    from services.notification_service import NotificationDispatcher

    return NotificationDispatcher(transport)


# ── HTTP Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def auth_headers():
    from middleware.auth import issue_access_token

    def _headers(actor: Actor) -> dict:
        token = issue_access_token(user_id=actor.user_id, role=actor.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def client(db_session: AsyncSession):
    """HTTP client against the app, with get_db bound to the test session and a fresh registry."""
    from main import app, install_realtime

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    install_realtime(app)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    await app.state.notifier.drain()
    app.dependency_overrides.clear()
