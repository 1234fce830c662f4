"""Pytest fixtures."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.database import Base, get_session
from app.main import app
from app.models.identity import Identity
from app.routers.health import get_health_checker
from app.services.identities import set_whitelist, upsert_identity_from_oauth
from app.services.tokens import TokenService, get_token_service
from app.services.vault import get_signing_keys, reset_key_caches

TEST_ENCRYPTION_KEY = "test-master-key-0123456789abcdefghijklmnop"
TEST_KDF_ITERATIONS = 1_000


class MutableClock:
    """Settable UTC clock for token expiry tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(scope="session")
def rsa_private_pem() -> bytes:
    """Generate one signing key for the whole run.

    Returns
    -------
    bytes
        PKCS#8 PEM private key.
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _clear_caches() -> None:
    get_settings.cache_clear()
    reset_key_caches()
    get_token_service.cache_clear()
    get_health_checker.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, rsa_private_pem: bytes
) -> Iterator[None]:
    """Reset cached settings and point key material at the temp directory.

    Parameters
    ----------
    tmp_path : Path
        Temporary path fixture.
    monkeypatch : pytest.MonkeyPatch
        Environment monkeypatch helper.
    rsa_private_pem : bytes
        Shared signing key.

    Yields
    ------
    None
        Applies environment overrides for each test.
    """
    private_path = tmp_path / "jwt_private.pem"
    private_path.write_bytes(rsa_private_pem)
    _clear_caches()
    monkeypatch.setenv("GATEWAY_JWT_PRIVATE_KEY_PATH", str(private_path))
    monkeypatch.setenv("GATEWAY_JWT_PUBLIC_KEY_PATH", str(tmp_path / "jwt_public.pem"))
    monkeypatch.setenv("GATEWAY_TOKEN_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    monkeypatch.setenv("GATEWAY_TOKEN_ENCRYPTION_KDF_ITERATIONS", str(TEST_KDF_ITERATIONS))
    monkeypatch.setenv("GATEWAY_GITHUB_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("GATEWAY_GITHUB_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("GATEWAY_GITHUB_TOKEN_URL", "https://github.test/login/oauth/access_token")
    monkeypatch.setenv("GATEWAY_GITHUB_REFRESH_BACKOFF_SECONDS", "0")
    yield
    _clear_caches()


@pytest.fixture()
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Create a SQLite-backed session factory with the schema in place.

    Parameters
    ----------
    tmp_path : Path
        Temporary directory for the test database.

    Yields
    ------
    async_sessionmaker[AsyncSession]
        Factory bound to a fresh database.
    """
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(database_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Yield a session on the test database."""
    async with session_factory() as active_session:
        yield active_session


@pytest.fixture()
def clock() -> MutableClock:
    """Return a clock pinned to a whole second."""
    return MutableClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def token_service(clock: MutableClock) -> TokenService:
    """Return a token service driven by the test clock."""
    return TokenService(get_settings(), get_signing_keys(), clock=clock)


@pytest.fixture()
def make_identity(
    session: AsyncSession,
) -> Callable[..., Awaitable[Identity]]:
    """Return a factory that stores a committed identity.

    Parameters
    ----------
    session : AsyncSession
        Active database session.

    Returns
    -------
    Callable[..., Awaitable[Identity]]
        Async factory accepting GitHub id, whitelist flag and token fields.
    """

    async def _make(
        github_user_id: int = 1001,
        *,
        whitelisted: bool = True,
        access_token: str = "gho_initial",
        refresh_token: str | None = "ghr_initial",
        expires_in: int | None = 8 * 3600,
    ) -> Identity:
        identity = await upsert_identity_from_oauth(
            session,
            github_user_id=github_user_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
        )
        if whitelisted:
            await set_whitelist(session, identity.id, True)
        await session.commit()
        return identity

    return _make


@pytest.fixture()
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    token_service: TokenService,
) -> AsyncIterator[AsyncClient]:
    """Create a test HTTP client backed by SQLite.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Factory for request sessions.
    token_service : TokenService
        Token service driven by the test clock.

    Yields
    ------
    AsyncClient
        Configured test client.
    """

    async def _override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as request_session:
            yield request_session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_token_service] = lambda: token_service
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
