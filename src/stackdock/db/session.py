from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stackdock.config import Settings, get_settings
from stackdock.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_engine(settings: Settings) -> AsyncEngine:
    """Create an engine; pool sizing only applies to server databases."""
    options: dict[str, Any] = {"echo": settings.debug}
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
    return create_async_engine(settings.database_url, **options)


def init_engine(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Initialise the process-wide engine lazily and return its session factory."""

    global _engine, _session_factory

    if _engine is None:
        _engine = build_engine(settings or get_settings())
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)

    assert _session_factory is not None
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an async database session."""

    factory = _session_factory or init_engine()
    async with factory() as session:
        yield session


async def create_schema(engine: AsyncEngine) -> None:
    """Create the category tables (development and tests; production uses Alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
