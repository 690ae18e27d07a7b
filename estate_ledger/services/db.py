"""Database connection and session management."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from estate_ledger.config import get_settings
from estate_ledger.models import Base


def create_engine_for_url(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite uses StaticPool so in-memory databases survive across connections.

    Args:
        database_url: Async SQLAlchemy URL (e.g., "sqlite+aiosqlite:///./estate_ledger.db")
        echo: Log SQL statements

    Returns:
        AsyncEngine bound to the database
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by all services."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all ledger tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session for the configured database.

    Example:
        ```python
        async for session in get_async_session():
            result = await WaterBillGenerator(session).generate(period_id, readings)
        ```
    """
    settings = get_settings()
    engine = create_engine_for_url(settings.database_url, echo=settings.database_echo)
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


__all__ = [
    "create_engine_for_url",
    "create_session_factory",
    "get_async_session",
    "init_models",
]
