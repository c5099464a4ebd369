"""
Global pytest fixtures for the CloudForge test suite.

Provides:
- Async database session with SQLite in-memory
- FastAPI async test client sharing that session
- Identity header fixtures for each role
- Linked account factories
"""
import os

# Set test environment BEFORE any app imports
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENCRYPTION_KEY"] = "32-byte-long-test-encryption-key"
os.environ["FEDERATION_CACHE_ENABLED"] = "false"
os.environ.pop("AWS_ENDPOINT_URL", None)

from typing import AsyncGenerator
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

import app.models  # noqa: F401 - registers ORM mappings


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine():
    """In-memory SQLite engine shared by every connection of one test."""
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator:
    """Create database tables and provide async session."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from app.shared.db.base import Base

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def db(db_session):
    """Alias for db_session to match API tests."""
    return db_session


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def store(db_session):
    from app.modules.accounts.domain.store import LinkedAccountStore

    return LinkedAccountStore(db_session)


@pytest.fixture
def account_factory(store):
    """Create linked accounts with sequential 12-digit ids."""
    from app.models.linked_account import StateTrigger, VerificationState

    counter = {"n": 0}

    async def _create(
        state: VerificationState = VerificationState.PENDING,
        display_name: str | None = None,
        external_id: str | None = None,
    ):
        counter["n"] += 1
        account_id = f"{100000000000 + counter['n']:012d}"
        account = await store.create(
            external_account_id=account_id,
            display_name=display_name or f"account-{counter['n']}",
            role_arn=f"arn:aws:iam::{account_id}:role/CloudForgeReadOnly",
            external_id=external_id,
        )
        if state in (VerificationState.VERIFIED, VerificationState.FAILED):
            await store.record_verification(account, state == VerificationState.VERIFIED)
        elif state == VerificationState.DISABLED:
            account.apply_transition(VerificationState.DISABLED, StateTrigger.DISABLE)
            await store.db.commit()
        return account

    return _create


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================

@pytest.fixture
def app():
    """Use the real CloudForge app for API tests."""
    from app.main import app as cloudforge_app

    return cloudforge_app


@pytest.fixture
def mock_provider():
    """Federation provider stand-in injected into API dependencies."""
    provider = MagicMock()
    provider.settings = MagicMock(FEDERATION_SESSION_PREFIX="CloudForge")
    provider.session = MagicMock()
    return provider


@pytest_asyncio.fixture
async def async_client(app, db, mock_provider) -> AsyncGenerator:
    """Async test client for FastAPI. Overrides get_db to share the test session."""
    from httpx import AsyncClient, ASGITransport
    from app.shared.core.dependencies import get_federation_provider
    from app.shared.db.session import get_db

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_federation_provider] = lambda: mock_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_federation_provider, None)


# ============================================================================
# Identity Fixtures
# ============================================================================

def _identity(role: str) -> dict[str, str]:
    return {"X-CloudForge-User": f"{role}@example.com", "X-CloudForge-Role": role}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return _identity("admin")


@pytest.fixture
def developer_headers() -> dict[str, str]:
    return _identity("developer")


@pytest.fixture
def viewer_headers() -> dict[str, str]:
    return _identity("viewer")
