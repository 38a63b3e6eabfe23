"""Test fixtures — a fresh SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a server DB:

1. Each test gets its own database file under tmp_path (aiosqlite)
2. The app is built by the real factory, create_app(settings), so the
   token service, engine and session factory are the production ones
3. Tables come from Base.metadata.create_all — no migrations needed
4. Requests and the `db_session` fixture use separate sessions, like
   separate processes would. Commit in the test before calling the API.

This gives us fast, isolated tests without any cross-test pollution.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sparklink.config import Settings
from sparklink.db.models import Base, User
from sparklink.main import create_app

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
PASSWORD = "secure_password_123"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'sparklink.db'}",
        jwt_secret=TEST_SECRET,
        bcrypt_rounds=4,
        environment="test",
        google_client_id="test-client-id",
        google_client_secret="test-client-secret",
    )


@pytest_asyncio.fixture()
async def app(settings):
    """The application, with its schema created on the test database."""
    application = create_app(settings)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield application
    application.dependency_overrides.clear()
    await application.state.engine.dispose()


@pytest_asyncio.fixture()
async def db_session(app):
    """A session on the same database the app uses."""
    async with app.state.session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ─── Helpers ─────────────────────────────────────────────


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


def unique_username(prefix: str = "user") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def register_and_login(client, email=None, username=None, password=PASSWORD):
    """Register a password account, log in, return (user_json, token)."""
    email = email or unique_email()
    r = await client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "username": username},
    )
    assert r.status_code == 201, r.text
    r = await client.post(
        "/api/auth/login", json={"email": email, "password": password}
    )
    assert r.status_code == 200, r.text
    body = r.json()
    return body["user"], body["token"]


@pytest_asyncio.fixture()
async def user_token(client):
    """A logged-in regular user: (user_json, token)."""
    return await register_and_login(client, username=unique_username())


@pytest_asyncio.fixture()
async def admin_token(client, db_session):
    """A logged-in admin: (user_json, token)."""
    user, token = await register_and_login(client, username=unique_username("admin"))
    row = await db_session.get(User, uuid.UUID(user["id"]))
    row.is_admin = True
    await db_session.commit()
    return user, token
