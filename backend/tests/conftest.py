import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apiserver.core.config import Settings, get_settings
from apiserver.db import models
from apiserver.db.base import Base
from apiserver.deps import get_rate_limiter
from apiserver.main import app
from apiserver.services.rate_limit import SlidingWindowRateLimiter
from apiserver.services.seed import default_identities, seed


@dataclass
class SeededDb:
    url: str
    group_ids: dict[str, int]


@pytest.fixture
def anyio_backend() -> str:
    """Force anyio-based tests to run with asyncio backend only."""

    return "asyncio"


async def _prepare(db_url: str) -> dict[str, int]:
    engine = create_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    await seed(session_maker, default_identities())
    async with session_maker() as session:
        groups = (await session.execute(select(models.Group))).scalars().all()
        group_ids = {g.name: g.id for g in groups}
    await engine.dispose()
    return group_ids


@pytest.fixture
def seeded_db(tmp_path: Path) -> SeededDb:
    db_url = "sqlite+aiosqlite:///" + str(tmp_path / "apiserver.db")
    return SeededDb(url=db_url, group_ids=asyncio.run(_prepare(db_url)))


@pytest.fixture
def limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(120, sweep_interval_seconds=None)


@pytest.fixture
def settings(seeded_db: SeededDb) -> Settings:
    return Settings(database_url=seeded_db.url, audit_enabled=True)


@pytest.fixture(name="client")
def client_fixture(settings: Settings, limiter: SlidingWindowRateLimiter) -> Iterator[TestClient]:
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_settings, None)
        app.dependency_overrides.pop(get_rate_limiter, None)
