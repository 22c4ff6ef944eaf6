import socket
import uuid
from collections.abc import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import Settings
from app.core.rate_limiting import limiter
from app.core.tokens import TokenConfig, TokenPair, TokenService
from app.models.account import Account, AccountRole
from app.models.base import Base
from app.services.session_service import claims_for
from tests.fakes import FakeSession, FakeStore, fake_session_factory

# Security: These are test-only secrets. Production uses real secrets from env.
TEST_ACCESS_SECRET = "test-access-secret-that-is-at-least-32-chars"  # nosec B105  # gitleaks:allow
TEST_REFRESH_SECRET = "test-refresh-secret-that-is-at-least-32-chars"  # nosec B105  # gitleaks:allow

TEST_FRONTEND_URL = "http://frontend.test"

# Fixed account ids (consistent across tests for predictable auth)
PLAYER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_PLAYER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")


def make_settings(**overrides) -> Settings:
    """Build Settings for tests, ignoring any local .env file."""
    values = {
        "environment": "test",
        "jwt_access_secret": SecretStr(TEST_ACCESS_SECRET),
        "jwt_refresh_secret": SecretStr(TEST_REFRESH_SECRET),
        "google_client_id": "test-google-client-id",
        "google_client_secret": SecretStr("test-google-client-secret"),
        "discord_client_id": "test-discord-client-id",
        "discord_client_secret": SecretStr("test-discord-client-secret"),
        "twitch_client_id": "test-twitch-client-id",
        "twitch_client_secret": SecretStr("test-twitch-client-secret"),
        "frontend_url": TEST_FRONTEND_URL,
        "backend_url": "http://test",
        "oauth_state_cookie_secure": False,
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def token_service(test_settings: Settings) -> TokenService:
    """Token service sharing secrets with the test app."""
    return TokenService(TokenConfig.from_settings(test_settings))


def issue_tokens(token_service: TokenService, account: Account) -> TokenPair:
    """Issue a real token pair for an account."""
    return token_service.issue_pair(claims_for(account))


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# In-memory Store Fixtures
# =============================================================================


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> FakeStore:
    """In-memory store wired in place of both repositories."""
    fake = FakeStore()
    fake.install(monkeypatch)
    return fake


@pytest.fixture
def fake_db(store: FakeStore) -> FakeSession:
    return FakeSession(store)


@pytest.fixture
def player(store: FakeStore) -> Account:
    """A player account with a single Google identity."""
    return store.add_account(
        account_id=PLAYER_ID,
        email="player@example.com",
        username="Player One",
        provider="google",
        provider_subject_id="google-player-1",
    )


@pytest.fixture
def other_player(store: FakeStore) -> Account:
    return store.add_account(
        account_id=OTHER_PLAYER_ID,
        email="other@example.com",
        username="Player Two",
        provider="discord",
        provider_subject_id="discord-player-2",
    )


@pytest.fixture
def admin(store: FakeStore) -> Account:
    return store.add_account(
        account_id=ADMIN_ID,
        email="admin@example.com",
        username="Arena Admin",
        provider="twitch",
        provider_subject_id="twitch-admin-3",
        role=AccountRole.ADMIN,
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings: Settings, store: FakeStore) -> FastAPI:
    """Application wired to the in-memory store."""
    from app.main import create_app

    return create_app(test_settings, session_factory=fake_session_factory(store))


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without credentials. Redirects are not followed."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=False,
    ) as ac:
        yield ac


@pytest.fixture
def player_headers(token_service: TokenService, player: Account) -> dict[str, str]:
    return bearer(issue_tokens(token_service, player).access_token)


@pytest.fixture
def other_player_headers(
    token_service: TokenService, other_player: Account
) -> dict[str, str]:
    return bearer(issue_tokens(token_service, other_player).access_token)


@pytest.fixture
def admin_headers(token_service: TokenService, admin: Account) -> dict[str, str]:
    return bearer(issue_tokens(token_service, admin).access_token)


# =============================================================================
# PostgreSQL Fixtures
# =============================================================================


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

    Called by fixtures that require database connection.
    Provides clear skip message to help diagnose CI/local issues.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    settings = make_settings()
    test_database_url = settings.database_url.replace(
        settings.database_name, f"{settings.database_name}_test"
    )
    engine = create_async_engine(test_database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> Iterator[None]:
    """Clear rate limit counters between tests.

    Rate limiting is enabled per app from settings; tests that exercise it
    build their own app with rate_limit_enabled=True.

    Yields:
        None (autouse fixture).
    """
    limiter.reset()
    yield
    limiter.reset()
    limiter.enabled = False
