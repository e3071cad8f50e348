import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from guestgate.core.auth import ClientContext
from guestgate.core.config import settings
from guestgate.core.rate_limiting import MemoryRateLimitStore, RateLimiter
from guestgate.models.base import Base

# In-memory SQLite shared by every session of a test (StaticPool = one
# connection). Postgres-only behavior lives in tests/integration.
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Separate Postgres database for integration tests
TEST_POSTGRES_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user IDs (consistent across tests for predictable assertions)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
USER_B_ID = uuid.UUID("00000000-0000-0000-0000-000000000099")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_CLIENT = ClientContext(ip_address="203.0.113.7", user_agent="pytest-agent/1.0")


class FakeClock:
    """Manually advanced monotonic clock for rate limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require a real Postgres connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory test database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session.

    Fixtures commit their rows so the API client's sessions can see them.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Domain Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession):
    """Staff user who belongs to test_org."""
    from guestgate.models import User

    user = User(id=TEST_USER_ID, email="planner@example.com", full_name="Pat Planner")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def user_b(db_session: AsyncSession):
    """Second staff user with no memberships (cross-tenant tests)."""
    from guestgate.models import User

    user = User(id=USER_B_ID, email="outsider@example.com")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def test_org(db_session: AsyncSession, test_user):
    """PLANNER organization with test_user as admin."""
    from guestgate.models import Organization, OrganizationMember

    org = Organization(name="Blue Door Events", type="PLANNER")
    db_session.add(org)
    await db_session.flush()
    db_session.add(
        OrganizationMember(org_id=org.id, user_id=test_user.id, role="admin")
    )
    await db_session.commit()
    return org


@pytest_asyncio.fixture
async def test_project(db_session: AsyncSession, test_org):
    """Project owned by test_org."""
    from guestgate.models import Project

    project = Project(owner_org_id=test_org.id, name="Sam & Alex Wedding")
    db_session.add(project)
    await db_session.commit()
    return project


@pytest.fixture
def mock_mailer() -> AsyncMock:
    """Mailer double recording every send."""
    return AsyncMock()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock driving the test rate limiter."""
    return FakeClock()


@pytest.fixture
def test_rate_limiter(fake_clock: FakeClock) -> RateLimiter:
    """Fresh sliding-window limiter per test."""
    return RateLimiter(MemoryRateLimitStore(clock=fake_clock), enabled=True)


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app_client(
    session_factory,
    mock_mailer: AsyncMock,
    test_rate_limiter: RateLimiter,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated HTTP client wired to the test database.

    Sets up:
    - get_db / get_session_factory overrides on the test engine
    - mock_mailer in place of Resend
    - test_rate_limiter in place of the process-wide limiter
    """
    from guestgate.api.deps import get_mailer
    from guestgate.core.database import get_db, get_session_factory
    from guestgate.core.rate_limiting import get_rate_limiter
    from guestgate.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_mailer] = lambda: mock_mailer
    app.dependency_overrides[get_rate_limiter] = lambda: test_rate_limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def session_token(db_session: AsyncSession, test_user) -> str:
    """Raw session token for test_user."""
    from guestgate.services import session_service

    token, _ = await session_service.create_session(
        db_session, user_id=test_user.id, client=TEST_CLIENT
    )
    await db_session.commit()
    return token


@pytest_asyncio.fixture
async def client(
    app_client: AsyncClient,
    session_token: str,
    test_project,  # noqa: ARG001 - ensures org + project exist
) -> AsyncClient:
    """HTTP client authenticated as test_user via Bearer token."""
    app_client.headers["Authorization"] = f"Bearer {session_token}"
    return app_client


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def auth_settings() -> Iterator[None]:
    """Use the test secret and plain-HTTP cookies.

    httpx does not send Secure cookies to http://test.
    """
    original_secret = settings.auth_secret
    original_secure = settings.auth_cookie_secure
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.auth_cookie_secure = False

    yield

    settings.auth_secret = original_secret
    settings.auth_cookie_secure = original_secure


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable the global slowapi cap during tests.

    Per-endpoint sliding-window limits stay on through test_rate_limiter.

    Yields:
        None (autouse fixture).
    """
    from guestgate.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
