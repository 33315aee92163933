"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.main import app
from src.core.database import Base, build_engine, get_db_session
from src.middleware.auth import create_access_token
from src.models import Account, AccountKind, AccountRole, AccountStatus
from src.schemas.account import AccountSnapshot
from src.services.account_state_machine import Actor

# Test database URL (using SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed evaluation time used by service-level tests
NOW = datetime(2026, 3, 15, 12, 0, 0)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    File-backed database for tests that run several sessions at once.

    Each session gets its own connection, so concurrent transactions really
    contend for the database write lock.
    """
    file_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'account_core.db'}", echo=False)
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(
        file_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    await file_engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory):
    """Create a test client with database dependency override."""

    async def get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = get_test_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_account_record(session: AsyncSession, **fields) -> AccountSnapshot:
    """
    Insert an account directly, bypassing the lifecycle, and commit it.

    Returns a detached snapshot, so tests can keep using it after a service
    call rolls back and expires the session's instances.
    """
    kind = fields.pop("kind", AccountKind.INFLUENCER.value)
    status = fields.pop("status", AccountStatus.ACTIVE.value)
    if status == AccountStatus.DELETION_REQUESTED.value:
        fields.setdefault("deletion_requested_at", NOW - timedelta(days=1))
    if kind == AccountKind.COMPANY.value:
        fields.setdefault("follower_search_limit", 10000)

    account = Account(
        id=fields.pop("id", uuid.uuid4()),
        email=fields.pop("email", f"{uuid.uuid4().hex[:10]}@example.com"),
        kind=kind,
        status=status,
        role=fields.pop("role", AccountRole.USER.value),
        **fields,
    )
    session.add(account)
    await session.commit()
    return AccountSnapshot.from_account(account)


@pytest.fixture
def make_account(db_session):
    """Factory for accounts in any status."""

    async def _make(**fields) -> AccountSnapshot:
        return await create_account_record(db_session, **fields)

    return _make


@pytest_asyncio.fixture
async def admin(make_account) -> AccountSnapshot:
    return await make_account(role=AccountRole.ADMIN.value, kind=AccountKind.COMPANY.value, email="admin@example.com")


@pytest.fixture
def admin_actor(admin) -> Actor:
    return Actor(account_id=admin.id, role=AccountRole.ADMIN.value)


def auth_headers_for(account_id: uuid.UUID, email: str = "user@example.com") -> dict:
    """Bearer token headers for a principal."""
    token = create_access_token({"sub": str(account_id), "email": email})
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json"
    }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def auth_headers():
    """Factory for bearer token headers of an account."""

    def _headers(account: AccountSnapshot) -> dict:
        return auth_headers_for(account.id, account.email)

    return _headers


@pytest.fixture
def insert_account():
    """Account factory usable with any session, including file-backed ones."""
    return create_account_record
