"""
Test fixtures for the Tavern Ledger test suite.

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - client: Async HTTP test client (unauthenticated)
  - registered_user / authenticated_client / user_id: a signed-up user and a
    client carrying their bearer token
  - other_user_headers: Authorization headers for a second user, for
    cross-user tests (pass as headers=... on individual requests)
  - ledger_user / other_ledger_user: users inserted directly, for
    service-level tests that call payment_service without HTTP
  - seed_transaction: factory that inserts a Transaction with any status,
    type or created_at, for states no endpoint produces

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) gives every test a clean database.
  - get_db is overridden so the app talks to the test database exactly the
    way it talks to the real one.
"""

import os
import uuid
from datetime import datetime, timezone
from decimal import Decimal

# Settings are read at import time; SECRET_KEY has no default
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from tavern_ledger.database import Base, get_db
from tavern_ledger.main import app, rate_limiter
from tavern_ledger.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionType,
    generate_transaction_id,
)
from tavern_ledger.models.user import User


TEST_DATABASE_URL = "sqlite+aiosqlite://"


async def signup(client: AsyncClient, email: str, display_name: str) -> dict:
    """Register through the real endpoint and return the response's data block."""
    response = await client.post(
        "/api/auth/signup",
        json={"email": email, "password": "QuestPass123!", "display_name": display_name},
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    return response.json()["data"]


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_engine):
    """Async HTTP test client with the test database injected."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    # Request counters are process-wide; every test starts with a fresh window
    rate_limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest_asyncio.fixture
async def registered_user(client):
    return await signup(client, "adventurer@example.com", "Aria")


@pytest_asyncio.fixture
async def authenticated_client(client, registered_user):
    """Test client whose every request carries the registered user's token."""
    client.headers["Authorization"] = f"Bearer {registered_user['token']}"
    return client


@pytest_asyncio.fixture
async def user_id(registered_user):
    return uuid.UUID(registered_user["user_id"])


@pytest_asyncio.fixture
async def other_user_headers(client):
    """Headers for a second user. Use per request so the default user stays intact."""
    data = await signup(client, "rival@example.com", "Brom")
    return {"Authorization": f"Bearer {data['token']}"}


async def _insert_user(session: AsyncSession, email: str) -> User:
    user = User(email=email, hashed_password="unused", display_name=email.split("@")[0])
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def ledger_user(db_session):
    return await _insert_user(db_session, "ledger@example.com")


@pytest_asyncio.fixture
async def other_ledger_user(db_session):
    return await _insert_user(db_session, "other@example.com")


@pytest_asyncio.fixture
async def seed_transaction(db_session):
    """
    Insert a Transaction directly and commit it.

        txn = await seed_transaction(user_id, amount="25.00",
                                     status=TransactionStatus.ON_HOLD)
    """

    async def _seed(
        owner_id: uuid.UUID,
        amount="10.00",
        txn_type: TransactionType = TransactionType.PAYMENT,
        status: TransactionStatus = TransactionStatus.PENDING,
        description: str = "Seeded transaction",
        created_at: datetime | None = None,
    ) -> Transaction:
        txn = Transaction(
            transaction_id=generate_transaction_id(txn_type),
            user_id=owner_id,
            amount=Decimal(amount),
            type=txn_type,
            status=status,
            description=description,
            created_at=created_at or datetime.now(timezone.utc),
        )
        db_session.add(txn)
        await db_session.commit()
        return txn

    return _seed
