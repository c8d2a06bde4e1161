from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from trivia_duels.core.config import get_settings


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = build_engine(get_settings().database_url)
SessionLocal = build_session_factory(engine)


async def dispose_engine() -> None:
    await engine.dispose()
