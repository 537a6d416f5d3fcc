"""Database engine and session management — no global state."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession


def create_engine(database_url: str, *, timeout: float = 30.0) -> AsyncEngine:
    """Create async engine with dialect-appropriate settings.

    Supports PostgreSQL (asyncpg), SQLite (aiosqlite), and MySQL (aiomysql).
    ``timeout`` bounds connecting and waiting for a pooled connection, so a
    stuck database surfaces as an error instead of a hung request.
    """
    if database_url.startswith("sqlite"):
        kwargs = dict(
            poolclass=StaticPool if ":memory:" in database_url else NullPool,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    else:
        connect_args = {}
        if database_url.startswith("postgresql+asyncpg"):
            connect_args["timeout"] = timeout
        elif database_url.startswith("mysql+aiomysql"):
            connect_args["connect_timeout"] = int(timeout)
        kwargs = dict(
            poolclass=AsyncAdaptedQueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=timeout,
            connect_args=connect_args,
        )

    return create_async_engine(database_url, echo=False, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Get an async database session (context manager for service/controller logic).

    Commits on success, rolls back on any exception. Security side effects
    that must survive a failure are committed by the operation itself before
    it raises.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
