"""
Shared fixtures: a fresh SQLite database per test, the FastAPI app wired to
it, a mock SMS provider, an in-memory verification store and a settable
clock.
"""

import os
import tempfile

# Settings are read once at import time; configure them first.
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["VERIFICATION_BACKEND"] = "memory"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["DATA_DIRECTORY"] = tempfile.mkdtemp(prefix="restaurante-test-")
os.environ["JWT_SECRET"] = "test-secret"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from restaurante.core.security import create_access_token, hash_password
from restaurante.database import build_engine, get_db, init_db
from restaurante.dependencies import get_clock
from restaurante.main import app
from restaurante.models import Category, Dish, User, UserRole
from restaurante.services.notifications import MockNotificationService, get_notification_service
from restaurante.services.verification import MemoryVerificationStore, get_verification_store

CLIENT_PHONE = "+525511111111"
ADMIN_PHONE = "+525599999999"
PASSWORD = "secreto123"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(bind=engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return MockNotificationService(failure_rate=0.0, min_latency=0, max_latency=0)


@pytest.fixture
def store():
    return MemoryVerificationStore()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
async def client(session_maker, notifier, store, clock):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_verification_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# SEED DATA
# =============================================================================

@pytest.fixture
async def catalog(db):
    """Two categories and three dishes."""
    tacos = Category(name="Tacos")
    drinks = Category(name="Bebidas", image=b"\x89PNG-category")
    db.add_all([tacos, drinks])
    await db.flush()

    dishes = [
        Dish(name="Taco al pastor", description="Con piña", price=Decimal("25.50"), category_id=tacos.id),
        Dish(name="Taco de suadero", price=Decimal("30.00"), category_id=tacos.id, image=b"jpeg-bytes"),
        Dish(name="Horchata", price=Decimal("20.00"), category_id=drinks.id),
    ]
    db.add_all(dishes)
    await db.commit()
    return {"categories": [tacos, drinks], "dishes": dishes}


async def _create_user(db, name: str, phone: str, role: UserRole = UserRole.CLIENT) -> User:
    user = User(name=name, phone=phone, password_hash=hash_password(PASSWORD), role=role)
    db.add(user)
    await db.commit()
    return user


def _bearer(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.phone, user.role.value, expires_minutes=60)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def shopper(db):
    return await _create_user(db, "Ana", CLIENT_PHONE)


@pytest.fixture
async def admin(db):
    return await _create_user(db, "Admin", ADMIN_PHONE, role=UserRole.ADMIN)


@pytest.fixture
def shopper_headers(shopper):
    return _bearer(shopper)


@pytest.fixture
def admin_headers(admin):
    return _bearer(admin)


@pytest.fixture
def make_user(db):
    """Create extra users: `await make_user("Luis", "+525522222222")`."""
    async def factory(name: str, phone: str, role: UserRole = UserRole.CLIENT) -> User:
        return await _create_user(db, name, phone, role)
    return factory


@pytest.fixture
def auth_headers():
    return _bearer
