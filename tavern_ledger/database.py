"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - UTCDateTime: column type that reads timestamps back as aware UTC
  - get_db(): FastAPI dependency that provides a session per request
  - store_operation(): Turns driver failures into StoreError

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits
  on success and rolls back on exception. Ledger operations that need a
  write to survive a later failure (see payment_service.release_payment)
  commit explicitly before continuing.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from tavern_ledger.config import settings
from tavern_ledger.exceptions import StoreError

logger = logging.getLogger(__name__)


# echo=True in debug mode logs all SQL statements.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False prevents lazy-load errors after commit —
# without this, accessing attributes on a committed object would trigger
# a synchronous DB call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    DateTime that always comes back timezone-aware in UTC.

    SQLite drops the offset on storage, so values read back are naive; they
    were written as UTC and get UTC re-attached here. Naive values written
    in are taken as UTC too.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        return as_utc(value)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        return as_utc(value)


def as_utc(value: datetime | None) -> datetime | None:
    """Aware UTC for any datetime; naive values are assumed to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any exception,
    then closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextmanager
def store_operation(operation: str):
    """
    Wrap one or more awaited store calls and re-raise driver failures as
    StoreError(operation). Nothing is retried here.

        with store_operation("create payment"):
            db.add(txn)
            await db.flush()
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store call failed while trying to %s", operation)
        raise StoreError(operation) from exc
