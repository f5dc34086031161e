"""
Pytest fixtures for test database, client, authentication and webhooks.

Each test gets its own SQLite file so separate sessions can race against
each other the way concurrent requests do. Redis is disabled, tickets are
written under tmp_path and the webhook secret is a fixed test value.
"""

import hashlib
import hmac
import json
import os
import tempfile
import time
from datetime import timedelta
from typing import AsyncGenerator, Optional

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["TICKETS_DIR"] = tempfile.mkdtemp(prefix="mess-tickets-")
os.environ.pop("STRIPE_SECRET_KEY", None)

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mess_booking.main import app
from mess_booking.db.base import Base
from mess_booking.db.session import get_db
from mess_booking.core.security import create_access_token, hash_password
from mess_booking.models.user import User, UserRole
from mess_booking.services.booking_service import service_today
from mess_booking.services.payment_gateway import NullGateway, get_payment_gateway
from mess_booking.services.ticket_service import TicketGenerator, get_ticket_generator

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
TEST_PASSWORD = "testpassword123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


def tomorrow() -> str:
    return (service_today() + timedelta(days=1)).isoformat()


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header (t=<ts>,v1=<hmac-sha256>) for a payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_event(
    booking_id,
    event_type: str = "checkout.session.completed",
    payment_status: str = "paid",
    event_id: str = "evt_test_1",
) -> bytes:
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": "cs_test_123",
                "object": "checkout.session",
                "payment_status": payment_status,
                "metadata": {"bookingId": str(booking_id)},
            }
        },
    }).encode("utf-8")


@pytest.fixture
def tickets_dir(tmp_path) -> str:
    return str(tmp_path / "tickets")


@pytest.fixture
def ticket_generator(tickets_dir) -> TicketGenerator:
    return TicketGenerator(tickets_dir)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a per-test SQLite file, yield a session factory, dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, ticket_generator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a fresh DB session per request, like get_db in production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ticket_generator] = lambda: ticket_generator
    app.dependency_overrides.setdefault(get_payment_gateway, lambda: NullGateway())

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(session: AsyncSession, email: str, name: str, role: UserRole) -> User:
    user = User(
        name=name,
        email=email,
        student_id=f"S-{name.upper()}",
        hashed_password=TEST_PASSWORD_HASH,
        role=role.value,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "test@example.com", "asha", UserRole.STUDENT)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "other@example.com", "ravi", UserRole.STUDENT)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _create_user(db_session, "admin@example.com", "warden", UserRole.ADMIN)


def _headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return _headers(test_user)


@pytest.fixture
def other_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest.fixture
def deliver_webhook(client: AsyncClient):
    """POST a signed payment event to the webhook endpoint."""

    async def deliver(payload: bytes, signature: Optional[str] = None):
        headers = {"Content-Type": "application/json"}
        headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
        return await client.post("/api/v1/webhook", content=payload, headers=headers)

    return deliver


@pytest.fixture
def create_booking(client: AsyncClient, auth_headers: dict):
    """Create a booking as test_user and return its id."""

    async def create(meal_type: str = "lunch", persons: int = 2, date: Optional[str] = None,
                     headers: Optional[dict] = None) -> int:
        response = await client.post(
            "/api/v1/bookings/",
            json={"date": date or tomorrow(), "mealType": meal_type, "persons": persons},
            headers=headers or auth_headers,
        )
        assert response.status_code == 201, response.text
        return response.json()["booking_id"]

    return create
