"""Test configuration and fixtures"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from bookflow.main import app
from bookflow.database import Base, get_db
from bookflow.booking.hours import local_to_utc
from bookflow.models.tenant import Tenant, RestaurantSettings, DepositPolicy, RestaurantTable
from bookflow.models.user import User, UserRole
from bookflow.payments.gateways import get_gateway
from bookflow.api.auth import create_access_token, get_password_hash


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TIMEZONE = "America/New_York"

HOURS = {
    # monday is missing: closed
    "tuesday": {"open": "17:00", "close": "22:00"},
    "wednesday": {"open": "17:00", "close": "22:00"},
    "thursday": {"open": "17:00", "close": "22:00"},
    "friday": {"open": "17:00", "close": "23:00"},
    "saturday": {"open": "12:00", "close": "23:00"},
    "sunday": {"closed": True},
}

TABLES = [("T1", 2), ("T2", 2), ("T3", 4), ("T4", 4), ("T5", 6)]


def upcoming(weekday: int, min_days: int = 2) -> date:
    """Next date falling on weekday (0=Monday) at least min_days away"""
    day = date.today() + timedelta(days=min_days)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


def slot_at(service_date: date, hhmm: str):
    """Tenant-local wall time on a date as an aware UTC datetime"""
    hours, minutes = hhmm.split(":")
    return local_to_utc(service_date, int(hours) * 60 + int(minutes), TIMEZONE)


GUEST = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "+1 (415) 555-0123",
}


@pytest.fixture
def next_tuesday() -> date:
    return upcoming(1)


@pytest.fixture
def next_monday() -> date:
    return upcoming(0)


@pytest.fixture(autouse=True)
def fresh_gateway():
    """Each test starts with an empty mock processor"""
    get_gateway.cache_clear()
    yield
    get_gateway.cache_clear()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    """Create test database session"""
    async with session_factory() as session:
        yield session


async def make_tenant(
    db,
    slug: str,
    approval_mode: str = "auto",
    deposits: bool = False,
    tables=TABLES,
) -> Tenant:
    tenant = Tenant(
        id=uuid4(),
        slug=slug,
        name=f"Test Restaurant {slug}",
        timezone=TIMEZONE,
        currency="USD",
    )
    db.add(tenant)
    await db.flush()

    db.add(RestaurantSettings(
        tenant_id=tenant.id,
        address="123 Test St",
        hours_json=dict(HOURS),
        approval_mode=approval_mode,
        max_party_size=12,
        reservation_slot_minutes=30,
        default_duration_minutes=120,
        buffer_minutes=10,
        pacing_cap=0,
    ))
    db.add(DepositPolicy(
        tenant_id=tenant.id,
        enabled=deposits,
        default_amount=Decimal("25.00"),
        large_party_threshold=6,
        large_party_amount=Decimal("50.00"),
        show_policy_label=True,
    ))
    for name, capacity in tables:
        db.add(RestaurantTable(tenant_id=tenant.id, name=name, capacity=capacity))

    await db.commit()
    return tenant


@pytest.fixture
async def test_tenant(test_db):
    """Auto-confirming tenant without deposits"""
    return await make_tenant(test_db, "auto-bistro")


@pytest.fixture
async def manual_tenant(test_db):
    """Tenant whose bookings wait for staff approval"""
    return await make_tenant(test_db, "manual-trattoria", approval_mode="manual")


@pytest.fixture
async def deposit_tenant(test_db):
    """Tenant requiring deposits for parties of 6+"""
    return await make_tenant(test_db, "deposit-grill", deposits=True)


async def make_user(db, email: str, role: UserRole, tenant_id=None) -> User:
    user = User(
        id=uuid4(),
        tenant_id=tenant_id,
        email=email,
        hashed_password=get_password_hash("testpass123"),
        full_name=email.split("@")[0].title(),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
async def test_user(test_db, test_tenant):
    """Restaurant admin of test_tenant"""
    return await make_user(test_db, "owner@example.com", UserRole.RESTAURANT_ADMIN, test_tenant.id)


@pytest.fixture
async def viewer_user(test_db, test_tenant):
    return await make_user(test_db, "viewer@example.com", UserRole.STAFF_VIEWER, test_tenant.id)


@pytest.fixture
async def test_admin_user(test_db):
    """Create a super admin user"""
    return await make_user(test_db, "admin@example.com", UserRole.SUPER_ADMIN)


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def auth_headers(test_user):
    return bearer(test_user)


@pytest.fixture
def viewer_headers(viewer_user):
    return bearer(viewer_user)


@pytest.fixture
def admin_headers(test_admin_user):
    return bearer(test_admin_user)


@pytest.fixture
async def client(test_db):
    """Create test client with overridden database"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def place_hold(client, tenant, slot_time, party_size=2, key="booking:test-key"):
    return await client.post(
        f"/public/tenants/{tenant.id}/holds",
        json={"party_size": party_size, "slot": {"time": slot_time.isoformat()}},
        headers={"Idempotency-Key": key},
    )


async def confirm_hold(client, tenant, hold_id, key="booking:test-key", guest=None, deposit=None):
    return await client.post(
        f"/public/tenants/{tenant.id}/reservations/confirm",
        json={"hold_id": str(hold_id), "guest_details": guest or GUEST, "deposit": deposit},
        headers={"Idempotency-Key": key},
    )


async def make_booking(client, tenant, service_date, hhmm="19:00", party_size=2, key=None):
    """Hold and confirm a slot through the public API; returns the confirm response body"""
    key = key or f"booking:{uuid4()}"
    hold = await place_hold(client, tenant, slot_at(service_date, hhmm), party_size=party_size, key=key)
    assert hold.status_code == 200, hold.text
    response = await confirm_hold(client, tenant, hold.json()["hold_id"], key=key)
    assert response.status_code == 200, response.text
    return response.json()
