"""Pytest configuration and fixtures for backend tests.

Storage Handling:
- The relational store is a throwaway SQLite database (aiosqlite), one file
  per test session, with tables created and dropped around every test
- The revocation store is an in-memory fakeredis instance per test
- Token expiry and lockout windows run on a controllable clock
"""

import base64
import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import fakeredis
import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables before importing todoauth modules
TEST_JWT_SECRET = base64.b64encode(b"k" * 48).decode()
TEST_JWT_ISSUER = "todo-auth-test"
ACCESS_TTL_SECONDS = 900
REFRESH_TTL_SECONDS = 7 * 24 * 3600

_db_path = os.path.join(tempfile.gettempdir(), f"todoauth_test_{os.getpid()}.db")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{_db_path}"

os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["JWT_ISSUER"] = TEST_JWT_ISSUER
os.environ["JWT_ACCESS_TOKEN_EXPIRATION"] = str(ACCESS_TTL_SECONDS)
os.environ["JWT_REFRESH_TOKEN_EXPIRATION"] = str(REFRESH_TTL_SECONDS)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_URL"] = "redis://localhost:6399/0"
os.environ["MAX_LOGIN_ATTEMPTS"] = "5"
os.environ["ACCOUNT_LOCKOUT_DURATION"] = "3600"

# Test user credentials
TEST_USERNAME = "alice"
TEST_EMAIL = "alice@example.com"
TEST_PASSWORD = "correct-horse-battery"

# Upstream base URLs the gateway proxies to in tests
AUTH_UPSTREAM_URL = "http://auth-service"
TASK_UPSTREAM_URL = "http://task-service"


def pytest_sessionfinish(session, exitstatus):
    """Remove the SQLite file when tests finish."""
    if os.path.exists(_db_path):
        os.remove(_db_path)


# --- Clock ---


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        # Whole seconds, since JWT timestamps are whole seconds
        self.current = start or datetime.now(UTC).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs: float) -> None:
        self.current += timedelta(seconds=seconds, **kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# --- Collaborators ---


@pytest.fixture
def codec(clock):
    """Token codec with the test settings and the frozen clock."""
    from todoauth.core import settings
    from todoauth.services.tokens import TokenCodec

    return TokenCodec.from_settings(settings, clock=clock)


@pytest.fixture
def lockout_policy(clock):
    from todoauth.services.lockout import LockoutPolicy

    return LockoutPolicy(
        max_attempts=5,
        lockout_duration=timedelta(hours=1),
        clock=clock,
    )


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """In-memory Redis, isolated per test."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def revocation(fake_redis, codec):
    from todoauth.services.revocation import RevocationStore

    return RevocationStore(fake_redis, codec)


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a SQLite engine with a fresh schema for each test."""
    from todoauth.models import BaseModel

    engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def auth_service(db_session, codec, revocation, lockout_policy):
    from todoauth.services.auth import AuthService

    return AuthService(db_session, codec, revocation, lockout_policy)


# --- App Clients ---


def override_auth_app(app, db_session, fake_redis, codec, lockout_policy) -> None:
    """Point the auth app's dependencies at the test stores."""
    from todoauth.api.deps import get_lockout_policy, get_token_codec
    from todoauth.core.database import get_db
    from todoauth.core.redis import get_redis

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_token_codec] = lambda: codec
    app.dependency_overrides[get_lockout_policy] = lambda: lockout_policy


@pytest_asyncio.fixture(scope="function")
async def auth_app(db_session, fake_redis, codec, lockout_policy):
    """The auth service app wired to the test stores."""
    from todoauth.main import app

    override_auth_app(app, db_session, fake_redis, codec, lockout_policy)
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(auth_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for the auth service."""
    transport = ASGITransport(app=auth_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test User objects."""
    from todoauth.services.users import UserService

    async def _create_user(
        username: str = TEST_USERNAME,
        email: str | None = None,
        password: str = TEST_PASSWORD,
        **kwargs,
    ):
        user = await UserService(db_session).create(
            username=username,
            email=email or f"{username}@example.com",
            password=password,
        )
        for field, value in kwargs.items():
            setattr(user, field, value)
        await db_session.commit()
        return user

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory):
    """Create the default test user."""
    return await user_factory()


@pytest.fixture
def auth_tokens(test_user, codec):
    """Access/refresh tokens for the test user (refresh token not in the ledger)."""
    return {
        "access_token": codec.issue_access_token(test_user),
        "refresh_token": codec.issue_refresh_token(test_user),
    }


@pytest.fixture
def auth_headers(auth_tokens) -> dict[str, str]:
    """Headers with JWT token for authenticated requests."""
    return {"Authorization": f"Bearer {auth_tokens['access_token']}"}


# --- Gateway ---


def create_echo_app(name: str) -> FastAPI:
    """Upstream stand-in that reports back what the gateway sent it.

    ``?status=<code>`` sets the response status. Responses carry two
    Set-Cookie headers and a hop-by-hop Keep-Alive header.
    """
    app = FastAPI()
    app.state.calls = 0

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    async def echo(request: Request, path: str) -> JSONResponse:
        app.state.calls += 1
        body = await request.body()
        response = JSONResponse(
            status_code=int(request.query_params.get("status", 200)),
            content={
                "service": name,
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query,
                "headers": [[k, v] for k, v in request.headers.items()],
                "body": body.decode(),
            },
            headers={"X-Upstream": name, "Keep-Alive": "timeout=5"},
        )
        response.headers.append("set-cookie", "a=1")
        response.headers.append("set-cookie", "b=2")
        return response

    return app


def build_gateway(revocation, auth_upstream: FastAPI, task_upstream: FastAPI):
    """Gateway app whose proxy reaches the given ASGI apps in-process."""
    from todoauth.gateway import create_gateway_app
    from todoauth.services.proxy import ServiceProxy

    client = httpx.AsyncClient(
        mounts={
            AUTH_UPSTREAM_URL: ASGITransport(app=auth_upstream),
            TASK_UPSTREAM_URL: ASGITransport(app=task_upstream),
        }
    )
    proxy = ServiceProxy(AUTH_UPSTREAM_URL, TASK_UPSTREAM_URL, client=client)
    return create_gateway_app(revocation=revocation, proxy=proxy)


@pytest.fixture
def auth_echo() -> FastAPI:
    return create_echo_app("auth")


@pytest.fixture
def task_echo() -> FastAPI:
    return create_echo_app("tasks")


@pytest_asyncio.fixture
async def gateway_client(revocation, auth_echo, task_echo) -> AsyncGenerator[AsyncClient, None]:
    """Client for a gateway in front of two echo upstreams."""
    app = build_gateway(revocation, auth_echo, task_echo)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://gateway") as client:
        yield client
    await app.state.proxy.close()


@pytest.fixture
def gateway_factory():
    """``build_gateway`` for tests that need their own revocation store or upstreams."""
    return build_gateway
