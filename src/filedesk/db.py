"""Async engine and session plumbing for the metadata store."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from filedesk.config import get_settings


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)
    return create_async_engine(database_url, echo=False, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are handed to the index bridge after commit, so keep them loaded
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(get_settings().database_url)
async_session_factory = build_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session."""
    async with async_session_factory() as session:
        yield session
