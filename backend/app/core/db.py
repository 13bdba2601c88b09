"""
Async SQLAlchemy engine + session dependency.

Usage in FastAPI endpoints:
    async def my_endpoint(db: AsyncSession = Depends(get_db)):
        ...

Invoice creation holds a row lock on invoice_sequences for the rest of its
transaction.  DB_LOCK_TIMEOUT_MS bounds how long a competing request waits for
that lock before PostgreSQL aborts it.
"""
import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy import text

from app.core.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()


def _connect_args() -> dict:
    if not _settings.db_lock_timeout_ms:
        return {}
    return {"server_settings": {"lock_timeout": str(_settings.db_lock_timeout_ms)}}


engine = create_async_engine(
    _settings.database_url,
    pool_size=5,
    max_overflow=2,
    pool_pre_ping=True,
    echo=_settings.is_development,
    connect_args=_connect_args(),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency — yields an async DB session."""
    async with AsyncSessionLocal() as session:
        yield session


async def check_db_connection() -> bool:
    """Return True if the database is reachable."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        return False
