"""
Shared pytest fixtures.

Tests run against a file-backed SQLite database (via aiosqlite) so no live
Postgres instance is needed.  Each test gets a fresh database file.

SQLite has no row locks and ignores FOR UPDATE.  Every transaction here opens
with BEGIN IMMEDIATE instead, which takes the database write lock up front and
serializes the allocator's read-modify-write the same way the row lock does on
Postgres.  Consequence for tests: a session that has executed anything holds
the write lock until it commits or rolls back, so finish one session before
using another.

Environment overrides are applied before importing app modules so that
Settings() picks them up.
"""
import os

# Set test environment BEFORE importing any app module
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("CLINIC_TIMEZONE", "Africa/Johannesburg")
os.environ.setdefault("DB_LOCK_TIMEOUT_MS", "0")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.models.base import Base
from app.models.user import User
from app.models.sequence import InvoiceSequence  # noqa: F401 — registers model
from app.models.invoice import Invoice, InvoiceItem  # noqa: F401


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        # Hand transaction control to the "begin" hook below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def patient_user(db_session: AsyncSession) -> User:
    """Create and return a persisted PATIENT user."""
    user = User(
        full_name="Thandi Mokoena",
        email="thandi@test.local",
        role="PATIENT",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    """Create and return a persisted STAFF user."""
    user = User(
        full_name="Front Desk",
        email="frontdesk@test.local",
        role="STAFF",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def client(db_session: AsyncSession):
    """AsyncClient for the FastAPI app with the DB dependency pointed at the test database."""
    from app.main import app
    from app.core.db import get_db

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
