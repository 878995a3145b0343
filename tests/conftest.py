"""Pytest configuration and fixtures."""
import os

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Settings are read at import time; these must be in place before importing app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["OAUTH_LINK_POLICY"] = "reject"
os.environ["GOOGLE_CLIENT_ID"] = "google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "google-client-secret"
os.environ["GITHUB_CLIENT_ID"] = "github-client-id"
os.environ["GITHUB_CLIENT_SECRET"] = "github-client-secret"

from app.core.security import TokenSigner, get_token_signer  # noqa: E402
from app.crud.crud_user import user as crud_user  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import get_db  # noqa: E402
from app.models import refresh_token, user  # noqa: E402,F401
from app.schemas.user import UserCreate  # noqa: E402

ALICE_EMAIL = "alice@example.com"
ALICE_PASSWORD = "Wonderland1!"


@pytest.fixture
async def test_engine(tmp_path):
    """One SQLite file per test so several sessions can race on it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        connect_args={"timeout": 10},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def signer() -> TokenSigner:
    return get_token_signer()


@pytest.fixture
async def alice(db_session):
    return await crud_user.create(db_session, obj_in=UserCreate(email=ALICE_EMAIL, password=ALICE_PASSWORD))


@pytest.fixture
async def client(session_factory):
    """HTTP client against the app, with get_db bound to the test database."""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    # https: the refresh cookie is Secure
    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as ac:
        yield ac
    app.dependency_overrides.clear()
