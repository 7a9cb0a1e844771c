# tests/conftest.py — Shared test fixtures
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"

from models import Base, User
from auth import AuthService, CurrentUser, LinkShareAuth, current_user_from_model
from database import get_db_session, make_session_factory
from file_storage import FileStorage, get_file_storage
from openid import OpenIDProviderCache
from main import app

TEST_PASSWORD = "TestPassword123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = make_session_factory(db_engine)
    async with session_factory() as session:
        yield session


@pytest.fixture
def file_storage(tmp_path):
    return FileStorage(str(tmp_path / "files"))


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, file_storage):
    """HTTP test client with overridden DB and file storage dependencies"""
    session_factory = make_session_factory(db_engine)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: file_storage
    # ASGITransport does not run the lifespan
    app.state.openid_providers = OpenIDProviderCache([], enabled=False)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, username: str) -> User:
    user = User(
        username=username,
        email=f"{username}@donelist.dev",
        name=username.capitalize(),
        password_hash=AuthService.hash_password(TEST_PASSWORD),
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a test user"""
    return await _make_user(db_session, "alice")


@pytest_asyncio.fixture
async def other_user(db_session):
    return await _make_user(db_session, "bob")


@pytest_asyncio.fixture
async def third_user(db_session):
    return await _make_user(db_session, "carol")


def as_principal(user: User) -> CurrentUser:
    return current_user_from_model(user)


def link_share_principal(share) -> LinkShareAuth:
    return LinkShareAuth(
        share_id=share.id,
        hash=share.hash,
        list_id=share.list_id,
        right=share.right,
        shared_by_id=share.shared_by_id,
    )


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token(AuthService.user_token_data(user))
    return {"Authorization": f"Bearer {token}"}


def get_link_share_headers(share) -> dict:
    token = AuthService.create_link_share_token(share)
    return {"Authorization": f"Bearer {token}"}
