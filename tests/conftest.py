from datetime import date, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.main import app
from app.api.deps import get_settings_service
from app.core.security import create_access_token
from app.db import models  # noqa: F401
from app.db.session import get_session
from app.schemas.booking import BookingCreate
from app.schemas.user import Actor
from app.services.settings_service import SettingsService


class InMemorySettingsStore:
    """Stands in for the Redis settings store."""

    def __init__(self):
        self.values = {}

    async def get_setting(self, key):
        return self.values.get(key)

    async def set_setting(self, key, value):
        self.values[key] = value


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so that separate sessions really run concurrently
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vetconsult.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings_store():
    return InMemorySettingsStore()


@pytest_asyncio.fixture
async def client(session_factory, settings_store):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings_service] = lambda: SettingsService(settings_store)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def owner():
    return Actor(user_id=uuid4(), role="pet_owner", name="Jamie Rivera")


@pytest.fixture
def vet():
    return Actor(user_id=uuid4(), role="veterinarian", name="Sam Okafor")


@pytest.fixture
def admin():
    return Actor(user_id=uuid4(), role="admin", name="Admin")


def access_token(actor: Actor) -> str:
    return create_access_token({"sub": str(actor.user_id), "role": actor.role, "name": actor.name})


def auth_headers(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {access_token(actor)}"}


def booking_request(vet: Actor, day: date = None, start: str = "10:00", end: str = "10:30") -> BookingCreate:
    return BookingCreate(
        veterinarian_id=vet.user_id,
        scheduled_date=day or (date.today() + timedelta(days=3)),
        time_slot_start=start,
        time_slot_end=end,
        booking_type="video_call",
        priority="normal",
        reason_for_visit="Limping on front left leg"
    )


def slot_datetime(day: date, slot: str) -> datetime:
    return datetime.combine(day, datetime.strptime(slot, "%H:%M").time())
