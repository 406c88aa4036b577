"""
Shared fixtures: an in-memory database, a fake Redis, an HTTP client
bound to the app, and a small marketplace (partner, staff, customer, car).
"""

import pytest
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
import backend.app.core.redis_client as redis_client_module
from backend.app.models.car import Car
from backend.app.models.car_enums import ApprovalStatus
from backend.app.models.enums import UserRole, PartnerMemberRole
from backend.app.models.partner import Partner, PartnerMember
from backend.app.models.user import User


@event.listens_for(Pool, "connect")
def enforce_sqlite_foreign_keys(dbapi_conn, connection_record):
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class FakeRedis:
    """The slice of redis.asyncio.Redis the app touches. TTLs are recorded, never enforced."""

    def __init__(self):
        self.counters = {}
        self.ttls = {}

    async def ping(self):
        return True

    async def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key, seconds):
        if key not in self.counters:
            return False
        self.ttls[key] = seconds
        return True

    async def flushdb(self):
        self.counters.clear()
        self.ttls.clear()

    async def aclose(self):
        await self.flushdb()


@pytest.fixture(scope="session")
def redis_client_session():
    return FakeRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Route the app's database and Redis to the test doubles for the whole run."""
    real_redis = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def test_db():
        async with TestingSessionLocal() as session:
            yield session

    async def test_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = test_db
    app.dependency_overrides[get_redis] = test_redis
    yield
    app.dependency_overrides.clear()
    redis_client_module.redis_client = real_redis


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Fresh schema and empty counters for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await redis_client_session.flushdb()
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# ---------------------------------------------------------------------------
# Marketplace fixtures
# ---------------------------------------------------------------------------

def identity(user: User, partner_id: int = None) -> dict:
    """Token payload for a user, as the identity provider would issue it."""
    return {
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "partner_id": partner_id,
    }


def auth_headers(user: User, partner_id: int = None) -> dict:
    token = create_access_token(data=identity(user, partner_id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def partner(db_session):
    partner = Partner(name="Halla Rent-a-Car", phone="064-700-1000", commission_rate=Decimal("10.00"))
    db_session.add(partner)
    await db_session.commit()
    return partner


@pytest.fixture
async def other_partner(db_session):
    partner = Partner(name="Seogwipo Motors", phone="064-700-2000", commission_rate=Decimal("12.50"))
    db_session.add(partner)
    await db_session.commit()
    return partner


@pytest.fixture
async def partner_admin(db_session, partner):
    user = User(email="staff@halla.test", username="halla_staff", role=UserRole.PARTNER_ADMIN)
    db_session.add(user)
    await db_session.flush()
    db_session.add(PartnerMember(partner_id=partner.id, user_id=user.id, role=PartnerMemberRole.ADMIN))
    await db_session.commit()
    return user


@pytest.fixture
async def platform_owner(db_session):
    user = User(email="owner@platform.test", username="platform_owner", role=UserRole.PLATFORM_OWNER)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def customer(db_session):
    user = User(email="kim@example.com", username="kim", phone="010-1234-5678", role=UserRole.CUSTOMER)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def car(db_session, partner):
    car = Car(
        partner_id=partner.id,
        brand="Hyundai",
        model="Avante",
        year=2024,
        price_per_day=Decimal("1000"),
        approval_status=ApprovalStatus.APPROVED,
    )
    db_session.add(car)
    await db_session.commit()
    return car


@pytest.fixture
def partner_identity(partner_admin, partner):
    return identity(partner_admin, partner.id)


@pytest.fixture
def admin_identity(platform_owner):
    return identity(platform_owner)


@pytest.fixture
def customer_identity(customer):
    return identity(customer)


@pytest.fixture
def make_headers():
    """Bearer headers for a user: make_headers(user, partner_id=None)."""
    return auth_headers


@pytest.fixture
def car_id(car):
    # Plain id, safe to use after a rollback has expired the Car instance
    return car.id
