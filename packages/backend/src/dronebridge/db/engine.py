"""Async SQLAlchemy engine and session factory.

One engine, shared by the API routes (per-request sessions via `get_db`)
and the telemetry store (one short session per existence check or
append). PostgreSQL gets a bounded pool; a SQLite URL (local runs
without a database server) uses SQLAlchemy's default pool.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dronebridge.config import settings


def engine_options(database_url: str) -> dict:
    options = {"echo": settings.debug}
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(pool_size=5, max_overflow=15, pool_pre_ping=True)
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
