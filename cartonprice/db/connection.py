"""Engine and session lifecycle for cartonprice.

One engine per process, created lazily from `DBConfig`. PostgreSQL (asyncpg)
gets a connection pool; SQLite (aiosqlite) gets foreign keys and a busy
timeout so concurrent first-of-day rate writes wait instead of failing.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cartonprice.config import DBConfig, get_config
from cartonprice.db.models import Base

SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def _build_engine(db_config: DBConfig) -> AsyncEngine:
    if _is_sqlite(db_config.url):
        engine = create_async_engine(db_config.url, echo=db_config.echo)

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
            cursor.close()

        return engine

    return create_async_engine(
        db_config.url,
        echo=db_config.echo,
        pool_size=db_config.pool_size,
        max_overflow=db_config.pool_max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def get_engine() -> AsyncEngine:
    """Process-wide async engine.

    Raises:
        KeyError: If DATABASE_URL is not configured
    """
    global _engine

    if _engine is None:
        _engine = _build_engine(get_config().db)

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        # Rows stay readable after commit (routes serialize them afterwards)
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Unit of work: commit on clean exit, roll back and re-raise otherwise.

    Usage:
        async with get_session() as session:
            item, quote = await PricingService(session).quote("KT-1001")
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(drop: bool = False) -> None:
    """Create all tables; with drop=True, drop them first."""
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine (application shutdown, end of a CLI command)."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
