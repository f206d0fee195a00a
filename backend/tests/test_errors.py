"""Tests for unexpected failures inside guarded routes."""
from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import create_async_engine

from apiserver.db import models
from apiserver.deps import get_access_repository
from apiserver.main import app


ADMIN_KEY = "admin-api-key-789"
VIEWER_KEY = "test-api-key-123"


class _BrokenRepository:
    async def update_rate_limit(self, access_id: str, rate_limit: int) -> object:
        raise RuntimeError("database unavailable")


def _bearer(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


async def _drop_table(db_url: str, table: str) -> None:
    engine = create_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.execute(text(f"DROP TABLE {table}"))
    await engine.dispose()


async def _audit_rows(db_url: str) -> list:
    engine = create_async_engine(db_url)
    async with engine.connect() as conn:
        rows = (await conn.execute(select(models.AuditLog.__table__))).all()
    await engine.dispose()
    return list(rows)


def test_database_failure_is_json_500_and_audited(client: TestClient, seeded_db) -> None:
    asyncio.run(_drop_table(seeded_db.url, "access"))

    resp = client.get("/v1/profile", headers={**_bearer(VIEWER_KEY), "X-Request-Id": "boom-1"})
    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json() == {"status": "error", "message": "Internal Server Error"}
    assert resp.headers["X-Request-Id"] == "boom-1"

    rows = asyncio.run(_audit_rows(seeded_db.url))
    failed = [row for row in rows if row.request_id == "boom-1"]
    assert len(failed) == 1
    assert failed[0].status_code == 500
    assert failed[0].path == "/v1/profile"
    assert failed[0].actor_type == "anonymous"


def test_failure_after_admission_keeps_rate_limit_headers(client: TestClient) -> None:
    app.dependency_overrides[get_access_repository] = lambda: _BrokenRepository()
    try:
        resp = client.put(
            "/v1/access/some-id/rate-limit",
            json={"rate_limit": 5},
            headers=_bearer(ADMIN_KEY),
        )
    finally:
        app.dependency_overrides.pop(get_access_repository, None)

    assert resp.status_code == 500
    assert resp.json() == {"status": "error", "message": "Internal Server Error"}
    assert resp.headers["X-RateLimit-Limit"] == "1000"
    assert resp.headers["X-RateLimit-Remaining"] == "999"

    listing = client.get("/v1/audit-logs", params={"status_code": 500}, headers=_bearer(ADMIN_KEY))
    logs = listing.json()["data"]["logs"]
    assert len(logs) == 1
    assert logs[0]["actor_type"] == "access"
    assert logs[0]["path"] == "/v1/access/some-id/rate-limit"
