"""Database connection and session management (async SQLAlchemy).

The engine is created on first use so the in-memory cache backend never
needs a database driver.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..config.settings import get_settings
from ..models.database import Base

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine, _session_maker
    if _engine is None:
        _engine = create_async_engine(get_settings().database_url, echo=False, future=True)
        _session_maker = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _engine


def session_factory() -> AsyncSession:
    """Create a new AsyncSession (caller must close)."""
    get_engine()
    assert _session_maker is not None
    return _session_maker()


async def init_db() -> None:
    """Create tables."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
