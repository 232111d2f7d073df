"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request credential lookups, dependency injection via
FastAPI. The engine is built once in the app lifespan (init_engine) and torn
down on shutdown (dispose_engine). The page store and the credential store
share this one pool; nothing else opens connections.
"""

from typing import AsyncIterator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from wikiserver.config import settings

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(
    url: str,
    *,
    driver: str = "",
    pool_size: int = 30,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async engine for the configured database.

    Learn: an in-memory SQLite database only exists for the lifetime of
    its connection, so it gets a StaticPool (one shared connection).
    Everything else gets a regular queue pool of pool_size connections.
    """
    db_url = make_url(url)
    if driver:
        db_url = db_url.set(drivername=f"{db_url.get_backend_name()}+{driver}")

    if db_url.get_backend_name() == "sqlite":
        if db_url.database in (None, "", ":memory:"):
            return create_async_engine(
                db_url,
                echo=echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_async_engine(db_url, echo=echo)

    return create_async_engine(
        db_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=0,
    )


async def init_engine(url: Optional[str] = None) -> AsyncEngine:
    """Build the process-wide engine and session factory."""
    global _engine, _session_factory
    _engine = build_engine(
        url or settings.database_url,
        driver=settings.database_driver,
        pool_size=settings.db_pool_size,
        echo=settings.debug,
    )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return _engine


async def dispose_engine() -> None:
    """Close every pooled connection."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_engine() first.")
    return _engine


def session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_engine() first.")
    return _session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()
