"""SQLAlchemy async engine and session utilities."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from apiserver.core.config import Settings
from apiserver.db.base import Base


@lru_cache
def _get_async_engine(database_url: str, database_echo: bool) -> AsyncEngine:
    return create_async_engine(database_url, echo=database_echo, future=True)


@lru_cache
def _get_session_maker(database_url: str, database_echo: bool) -> async_sessionmaker:
    engine = _get_async_engine(database_url, database_echo)
    return async_sessionmaker(engine, expire_on_commit=False)


def get_async_engine(settings: Settings) -> AsyncEngine:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return _get_async_engine(settings.database_url, settings.database_echo)


def get_session_maker(settings: Settings) -> async_sessionmaker:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return _get_session_maker(settings.database_url, settings.database_echo)


async def create_all(settings: Settings) -> None:
    """Create missing tables; used at startup when auto-create is enabled."""

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    from apiserver.db import models  # noqa: F401 -- register tables on the metadata

    engine = get_async_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
