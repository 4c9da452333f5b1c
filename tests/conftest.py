import os
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, time, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

# Settings are read at import time; keep tests runnable without a .env
os.environ.setdefault("DATABASE_URL", "sqlite:///./clinic_booking_dev.db")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("REDIS_PORT", "6379")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

from clinic_booking.config import settings  # noqa: E402
from clinic_booking.core.redis_client import get_redis_client  # noqa: E402
from clinic_booking.core.security import create_access_token  # noqa: E402
from clinic_booking.database import (  # noqa: E402
    get_db,
    serialize_sqlite_transactions,
    to_async_url,
)
from clinic_booking.dependencies import get_clock  # noqa: E402
from clinic_booking.main import app  # noqa: E402
from clinic_booking.models import (  # noqa: E402
    metadata,
    patients,
    provider_services,
    providers,
    schedule_rules,
    services,
)


class FrozenClock:
    """Clinic clock that only moves when a test advances it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    """Clock set to the Friday before the test Monday."""
    return FrozenClock(datetime(2030, 1, 4, 12, 0))


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Engine on TEST_DATABASE_URL when set, otherwise on a fresh SQLite file.

    Tables are created from the models' metadata and dropped afterwards.
    """
    url = os.getenv("TEST_DATABASE_URL")
    if url:
        if url == settings.database_url:
            pytest.exit("TEST_DATABASE_URL must not point at the application database")
        engine = create_async_engine(to_async_url(url), poolclass=NullPool)
    else:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
            poolclass=NullPool,
            connect_args={"timeout": 15},
        )
        serialize_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need several independent sessions."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis stand-in: cache misses and the first request of a rate limit window."""
    redis_client = MagicMock()
    redis_client.get.return_value = None
    redis_client.pipeline.return_value.execute.return_value = [True, 1]
    redis_client.scan_iter.return_value = []
    return redis_client


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    mock_redis: MagicMock,
    clock: FrozenClock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: mock_redis
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def provider(db_session: AsyncSession) -> dict:
    """Active provider."""
    provider_id = uuid4()
    await db_session.execute(
        insert(providers).values(
            id=provider_id,
            full_name="Dra. Ana Torres Medina",
            specialty="Dermatology",
            is_active=True,
        )
    )
    await db_session.commit()
    return {"id": provider_id, "full_name": "Dra. Ana Torres Medina"}


@pytest_asyncio.fixture
async def service(db_session: AsyncSession, provider: dict) -> dict:
    """Active service offered by the provider."""
    service_id = uuid4()
    await db_session.execute(
        insert(services).values(
            id=service_id,
            name="Dermatology consultation",
            price=800,
            deposit_percentage=50,
            duration_minutes=60,
            is_active=True,
        )
    )
    await db_session.execute(
        insert(provider_services).values(provider_id=provider["id"], service_id=service_id)
    )
    await db_session.commit()
    return {"id": service_id, "name": "Dermatology consultation"}


@pytest.fixture
def make_rule(db_session: AsyncSession) -> Callable:
    """Insert a schedule rule; Monday 09:00-11:00 with 60 minute slots by default."""

    async def _make_rule(
        provider_id,
        service_id=None,
        day_of_week: int = 1,
        start: time = time(9, 0),
        end: time = time(11, 0),
        duration: int = 60,
        is_active: bool = True,
    ):
        rule_id = uuid4()
        await db_session.execute(
            insert(schedule_rules).values(
                id=rule_id,
                provider_id=provider_id,
                service_id=service_id,
                day_of_week=day_of_week,
                start_time=start,
                end_time=end,
                slot_duration_minutes=duration,
                is_active=is_active,
            )
        )
        await db_session.commit()
        return rule_id

    return _make_rule


@pytest_asyncio.fixture
async def monday_rule(make_rule: Callable, provider: dict, service: dict):
    """Provider-wide rule: Monday 09:00-11:00, 60 minute slots."""
    return await make_rule(provider["id"])


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession) -> dict:
    """Registered patient."""
    patient_id = uuid4()
    await db_session.execute(
        insert(patients).values(
            id=patient_id,
            full_name="Maria Lopez Garcia",
            birth_date=date(1990, 5, 17),
            gender="female",
            phone="5512345678",
            is_active=True,
        )
    )
    await db_session.commit()
    return {"id": patient_id, "full_name": "Maria Lopez Garcia", "phone": "5512345678"}


def make_token(role: str, actor_id=None) -> str:
    """Signed access token carrying an actor id and role."""
    return create_access_token(
        data={"sub": str(actor_id or uuid4()), "role": role},
        expires_delta=timedelta(minutes=30),
    )


@pytest.fixture
def auth_headers():
    """Build authentication headers for a role and optional actor id."""

    def _headers(role: str, actor_id=None) -> dict:
        return {"Authorization": f"Bearer {make_token(role, actor_id)}"}

    return _headers


@pytest.fixture
def staff_id():
    """Id of the receptionist acting in staff tests."""
    return uuid4()


@pytest.fixture
def staff_headers(staff_id) -> dict:
    """Authentication headers for a receptionist."""
    return {"Authorization": f"Bearer {make_token('receptionist', staff_id)}"}


@pytest.fixture
def booking_payload() -> Callable:
    """Build a booking completion body for a hold token."""

    def _payload(hold_token: str, phone: str = "5512345678", **overrides) -> dict:
        payload = {
            "hold_token": hold_token,
            "booking_for_self": True,
            "patient": {
                "full_name": "Maria Lopez Garcia",
                "birth_date": "1990-05-17",
                "gender": "female",
                "phone": phone,
                "email": "maria@example.com",
            },
            "is_first_visit": True,
            "payment_evidence": {
                "storage_ref": "uploads/payments/transfer-0001.jpg",
                "filename": "transfer.jpg",
                "mime_type": "image/jpeg",
                "size_bytes": 245_000,
            },
        }
        payload.update(overrides)
        return payload

    return _payload
