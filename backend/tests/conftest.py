"""
Pytest configuration and shared fixtures for the Bugsymart backend tests.

Provides an in-memory SQLite session, a fresh broadcaster per test, an
httpx client wired to the FastAPI app, and bearer-token helpers.
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"

from main import app  # noqa: E402
from database import Base, get_db  # noqa: E402
from deps import get_broadcaster  # noqa: E402
from domain.enums import Role  # noqa: E402
from middleware.auth import AuthClaims, issue_access_token  # noqa: E402
from services.broadcaster import InMemoryBroadcaster  # noqa: E402


BUYER_ID = "buyer-b1"
SELLER_ID = "seller-s1"
RIDER_ID = "rider-r1"
OTHER_RIDER_ID = "rider-r2"
ADMIN_ID = "admin-a1"


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


@pytest.fixture
def broadcaster() -> InMemoryBroadcaster:
    return InMemoryBroadcaster()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, broadcaster: InMemoryBroadcaster):
    """
    httpx client against the app with the test DB and broadcaster.

    The lifespan does not run, so no background dispatcher is started.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Auth Helpers ─────────────────────────────────────────────────────


def auth_headers(user_id: str, role: Role | str) -> dict:
    """Authorization header with a valid JWT for the given user."""
    token = issue_access_token(user_id=user_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def buyer_claims() -> AuthClaims:
    return AuthClaims(user_id=BUYER_ID, role=Role.BUYER)


@pytest.fixture
def seller_claims() -> AuthClaims:
    return AuthClaims(user_id=SELLER_ID, role=Role.SELLER)


@pytest.fixture
def rider_claims() -> AuthClaims:
    return AuthClaims(user_id=RIDER_ID, role=Role.RIDER)


@pytest.fixture
def admin_claims() -> AuthClaims:
    return AuthClaims(user_id=ADMIN_ID, role=Role.ADMIN)


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture
async def placed_order(db_session: AsyncSession):
    """A pending order from BUYER_ID to SELLER_ID, committed."""
    from services import order_service

    order = await order_service.create_order(
        db_session,
        buyer_id=BUYER_ID,
        seller_id=SELLER_ID,
        items=[{"product_id": "prod-1", "quantity": 2, "price": 12.5}],
        total_amount=25.0,
        shipping_address={"street": "1 Main St", "city": "Pune", "state": "MH", "zip_code": "411001", "phone": "555"},
        payment_method="cod",
    )
    await db_session.commit()
    return order


@pytest_asyncio.fixture
async def assigned_delivery(db_session: AsyncSession, placed_order, seller_claims):
    """placed_order with RIDER_ID assigned, committed."""
    from services import delivery_service

    delivery = await delivery_service.assign_rider(
        db_session,
        order_id=placed_order.id,
        rider_id=RIDER_ID,
        claims=seller_claims,
        pickup={"latitude": 18.52, "longitude": 73.85, "address": "Warehouse"},
        dropoff={"latitude": 18.55, "longitude": 73.90, "address": "1 Main St"},
    )
    await db_session.commit()
    return delivery
