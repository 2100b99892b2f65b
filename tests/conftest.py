"""
Shared fixtures.

Settings are read once and cached, so the environment is pinned before
anything from gestro is imported.
"""

import os

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EXPORT_TO_EXCEL"] = "false"
os.environ["SIMULATION_STEP_DELAY"] = "0"
os.environ["DEBUG"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from gestro.api.deps import get_feed, get_gateway, get_notification_center, get_session_factory
from gestro.core.config import get_settings
from gestro.database import Base, get_db
from gestro.main import app
from gestro.models import Category, Product, Profile, Table, TableStatus, UserRole
from gestro.services.context import ServiceContext
from gestro.services.notifications import StaffNotificationCenter
from gestro.services.payment import MockPaymentService
from gestro.services.realtime import InMemoryChangeFeed


def auth_headers(user_id: str, email: str = None, name: str = None) -> dict:
    headers = {"X-User-Id": user_id}
    if email:
        headers["X-User-Email"] = email
    if name:
        headers["X-User-Name"] = name
    return headers


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def ctx(session, feed):
    return ServiceContext(session=session, feed=feed, settings=get_settings())


@pytest.fixture
def gateway():
    return MockPaymentService(failure_rate=0.0, min_latency=0, max_latency=0)


@pytest.fixture
def center():
    return StaffNotificationCenter(limit=50)


# =============================================================================
# SEED DATA
# =============================================================================

@pytest_asyncio.fixture
async def customer(session):
    profile = Profile(id="user-ana", email="ana@example.com", name="Ana", phone="+15550000001")
    session.add(profile)
    await session.commit()
    return profile


@pytest_asyncio.fixture
async def staff(session):
    profile = Profile(id="user-staff", email="staff@example.com", name="Sam", role=UserRole.STAFF)
    session.add(profile)
    await session.commit()
    return profile


@pytest_asyncio.fixture
async def menu(session):
    """Two mains and a drink; the drink is unavailable."""
    mains = Category(name="Mains", order_position=1)
    drinks = Category(name="Drinks", order_position=2)
    session.add_all([mains, drinks])
    await session.flush()

    pizza = Product(name="Pizza Margherita", description="Tomato and mozzarella", price=12.0, category_id=mains.id)
    pasta = Product(name="Pasta Carbonara", description="Egg, guanciale, pecorino", price=9.5, category_id=mains.id)
    lemonade = Product(name="Lemonade", price=3.0, category_id=drinks.id, is_available=False)
    session.add_all([pizza, pasta, lemonade])
    await session.commit()

    return {"mains": mains, "drinks": drinks, "pizza": pizza, "pasta": pasta, "lemonade": lemonade}


@pytest_asyncio.fixture
async def tables(session):
    """Table 1 seats 2, table 2 seats 4, table 3 seats 6 but is under maintenance."""
    rows = [
        Table(table_number=1, capacity=2, location="Window"),
        Table(table_number=2, capacity=4, location="Terrace"),
        Table(table_number=3, capacity=6, status=TableStatus.MAINTENANCE),
    ]
    session.add_all(rows)
    await session.commit()
    return rows


# =============================================================================
# HTTP CLIENT
# =============================================================================

@pytest_asyncio.fixture
async def client(session_factory, feed, gateway, center):
    async def override_get_db():
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feed] = lambda: feed
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notification_center] = lambda: center

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
