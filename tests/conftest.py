"""
Test infrastructure for the Article Platform API.

Strategy
--------
- SQLite in-memory via aiosqlite, so no Postgres instance is needed in CI.
- StaticPool forces all async tasks to share the same in-memory database
  connection; SQLite in-memory databases are connection-scoped and a new
  connection would see an empty database.
- ``PRAGMA foreign_keys`` is switched on for the test engine too, so
  deleting an article cascades to likes, saves and tag links as it does on
  Postgres.
- The app's get_db dependency is overridden so every request (including the
  access-policy dependencies) uses the test session factory.
- All tables are created fresh before each test and dropped after.
- The Redis cache is disabled by setting cache._redis = None; the
  CacheManager turns reads into misses and writes into no-ops.
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.database import Base, get_db, install_sqlite_foreign_keys
from app.main import app
from app.middleware import install_query_counter
from app.models import UserRole
from app.services import auth_service, user_service

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)
install_sqlite_foreign_keys(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)

PASSWORD = "Password123!"


# ---------------------------------------------------------------------------
# Dependency override
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for seeding data and asserting database state."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _create_user(email: str, role: UserRole, first_name: str, last_name: str):
    async with async_session_test() as session:
        user = await user_service.create_user(
            session,
            email=email,
            password=PASSWORD,
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        await session.commit()
    return user


@pytest_asyncio.fixture
async def admin_user():
    return await _create_user("admin@example.com", UserRole.ADMIN, "Admin", "Root")


@pytest_asyncio.fixture
async def regular_user():
    return await _create_user("alice@example.com", UserRole.USER, "Alice", "Smith")


@pytest_asyncio.fixture
async def admin_headers(admin_user) -> dict:
    return {"Authorization": f"Bearer {auth_service.issue_token(admin_user)}"}


@pytest_asyncio.fixture
async def user_headers(regular_user) -> dict:
    return {"Authorization": f"Bearer {auth_service.issue_token(regular_user)}"}


@pytest_asyncio.fixture
async def create_article(async_client: AsyncClient, admin_headers: dict):
    """Factory creating an article through the admin API; returns its JSON."""

    async def _create(**overrides) -> dict:
        payload = {
            "title": "Sample Article",
            "body": "Sample body text",
            "category": "tech",
            "tags": ["python"],
            "isPublished": True,
        }
        payload.update(overrides)
        resp = await async_client.post("/api/articles", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _create
