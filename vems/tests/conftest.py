"""
Centralized Test Configuration.

Every test gets a fresh in-memory SQLite database and an in-memory Redis
double. Users are created straight in the database; tests log in through
the API to get a token.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from vems.app.main import app
from vems.app.db.session import get_db, Base
from vems.app.core.redis_client import get_redis
import vems.app.core.redis_client as redis_client_module
from vems.app.models.department import Department
from vems.app.models.vendor import Vendor, VendorContactPerson
from vems.app.models.vehicle import Vehicle
from vems.app.models.stop import Stop
from vems.app.models.enums import UserType, DriverStatus, UserStatus
from vems.app.services.permissions import ensure_default_permissions, SUPER_ADMIN_ROLE
from vems.app.services.assignment_history import start_vehicle_driver_assignment
from vems.tests.helpers import create_user, login, ADMIN_PASSWORD, EMPLOYEE_PASSWORD

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def setex(self, key, seconds, value):
        self.store[key] = value
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
async def session_factory(mock_redis):
    """
    Fresh database per test.

    A new in-memory engine replaces dropping tables, which SQLite cannot do
    cleanly with the users/departments foreign key cycle.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    yield factory

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    """Shared session for fixture data creation."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def role_ids(db_session):
    """Default permission catalogue and roles; maps role name to id."""
    return await ensure_default_permissions(db_session)


@pytest.fixture
async def admin_user(db_session, role_ids):
    """Administrator holding the Super Admin role (not a superuser flag)."""
    return await create_user(
        db_session, role_ids, SUPER_ADMIN_ROLE,
        name="Admin User",
        username="admin",
        email="admin@vems.com",
        password=ADMIN_PASSWORD,
        user_type=UserType.ADMIN,
    )


@pytest.fixture
async def admin_headers(client, admin_user):
    return await login(client, "admin", ADMIN_PASSWORD)


@pytest.fixture
async def employee_user(db_session, role_ids):
    return await create_user(
        db_session, role_ids, "Employee",
        name="Plain Employee",
        username="employee",
        email="employee@vems.com",
        password=EMPLOYEE_PASSWORD,
    )


@pytest.fixture
async def employee_headers(client, employee_user):
    return await login(client, "employee", EMPLOYEE_PASSWORD)


@pytest.fixture
async def department(db_session):
    dept = Department(name="Operations", code="OPS", location="Head Office")
    db_session.add(dept)
    await db_session.commit()
    await db_session.refresh(dept)
    return dept


@pytest.fixture
async def driver(db_session, role_ids):
    return await create_user(
        db_session, role_ids, "Driver",
        name="Driver One",
        username="driver1",
        email="driver1@vems.com",
        user_type=UserType.DRIVER,
        driving_license_no="DL-0001",
        driver_status=DriverStatus.AVAILABLE,
        status=UserStatus.ACTIVE,
    )


@pytest.fixture
async def second_driver(db_session, role_ids):
    return await create_user(
        db_session, role_ids, "Driver",
        name="Driver Two",
        username="driver2",
        email="driver2@vems.com",
        user_type=UserType.DRIVER,
        driving_license_no="DL-0002",
        driver_status=DriverStatus.AVAILABLE,
    )


@pytest.fixture
async def vendor(db_session):
    row = Vendor(name="Rent Co", email="info@rentco.com")
    db_session.add(row)
    await db_session.flush()
    db_session.add(VendorContactPerson(vendor_id=row.id, name="Contact One", is_primary=True))
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
async def vehicle(db_session, vendor, driver):
    """Vehicle with an open driver assignment, as the create endpoint leaves it."""
    row = Vehicle(
        brand="Toyota",
        model="Hiace",
        registration_number="DHA-1111",
        capacity=10,
        vendor_id=vendor.id,
        driver_id=driver.id,
    )
    db_session.add(row)
    await db_session.flush()
    await start_vehicle_driver_assignment(db_session, row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
async def stops(db_session):
    rows = [
        Stop(name="Gulshan", latitude=23.7925, longitude=90.4078),
        Stop(name="Banani", latitude=23.7937, longitude=90.4066),
        Stop(name="Airport", latitude=23.8513, longitude=90.4081),
        Stop(name="Depot"),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    for row in rows:
        await db_session.refresh(row)
    return rows
