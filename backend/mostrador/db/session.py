from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mostrador.core.config import settings


def engine_options(url: str) -> dict[str, Any]:
    """
    Postgres (asyncpg) gets pre-ping + periodic recycling; the local SQLite file
    has no server side to go stale.
    """
    options: dict[str, Any] = {"echo": False}
    if make_url(url).get_backend_name() != "sqlite":
        options["pool_pre_ping"] = True
        options["pool_recycle"] = 300
    return options


# CLEAN URL: asyncpg rejects sslmode/channel_binding query params.
DATABASE_URL_ASYNC = settings.DATABASE_URL_ASYNC_CLEAN

engine: AsyncEngine = create_async_engine(DATABASE_URL_ASYNC, **engine_options(DATABASE_URL_ASYNC))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    One AsyncSession per request, shared by the gates and the handler.

    Handlers commit explicitly. A request that fails mid-transaction is rolled
    back here, which also releases any membership rows it locked.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
