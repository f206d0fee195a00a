"""Tests for the authenticate -> rate limit -> permission pipeline."""
from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from apiserver.core.errors import PermissionDenied, Unauthenticated
from apiserver.security import extract_bearer_token, require_any_permission
from apiserver.services.credentials import GroupInfo, Identity
from apiserver.services.rate_limit import SlidingWindowRateLimiter


ADMIN_KEY = "admin-api-key-789"
VIEWER_KEY = "test-api-key-123"
EXPIRED_KEY = "test-api-key-456"


def _bearer(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


def _provision(client: TestClient, group_id: int | None, **fields: object) -> str:
    body = {"name": "Limited", "email": "limited@example.com", "group_id": group_id, **fields}
    resp = client.post("/v1/access", json=body, headers=_bearer(ADMIN_KEY))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["api_key"]


@pytest.mark.parametrize(
    ("headers", "message"),
    [
        ({}, "Authorization header is required"),
        ({"Authorization": "Basic YWRtaW46c2VjcmV0"}, "Invalid authorization format. Use Bearer token"),
        ({"Authorization": "bearer " + VIEWER_KEY}, "Invalid authorization format. Use Bearer token"),
        (_bearer("unknown-key"), "Invalid or expired token"),
        ({"Authorization": "Bearer  " + VIEWER_KEY}, "Invalid or expired token"),
        (_bearer(EXPIRED_KEY), "Invalid or expired token"),
    ],
)
def test_authentication_failures(client: TestClient, headers: dict, message: str) -> None:
    resp = client.get("/v1/profile", headers=headers)
    assert resp.status_code == 401
    assert resp.json() == {"status": "error", "message": message}
    assert "X-RateLimit-Limit" not in resp.headers


def test_failed_authentication_does_not_touch_limiter(
    client: TestClient, limiter: SlidingWindowRateLimiter
) -> None:
    for _ in range(3):
        assert client.get("/v1/profile", headers=_bearer(EXPIRED_KEY)).status_code == 401
    assert limiter.usage(EXPIRED_KEY) == 0
    assert len(limiter) == 0


def test_admitted_request_carries_rate_limit_headers(client: TestClient) -> None:
    before = int(time.time())
    resp = client.get("/v1/profile", headers=_bearer(VIEWER_KEY))
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "120"
    assert resp.headers["X-RateLimit-Remaining"] == "119"
    assert before <= int(resp.headers["X-RateLimit-Reset"]) <= int(time.time())

    data = resp.json()["data"]
    assert data["email"] == "john@example.com"
    assert data["group"]["name"] == "Viewer"
    assert data["status"] == "Active"


def test_quota_exhaustion_returns_429(client: TestClient, seeded_db) -> None:
    key = _provision(client, seeded_db.group_ids["Viewer"], rate_limit=3)

    remaining = []
    for _ in range(3):
        resp = client.get("/v1/profile", headers=_bearer(key))
        assert resp.status_code == 200
        remaining.append(resp.headers["X-RateLimit-Remaining"])
    assert remaining == ["2", "1", "0"]

    resp = client.get("/v1/profile", headers=_bearer(key))
    assert resp.status_code == 429
    assert resp.json() == {"status": "error", "message": "Rate limit exceeded. Try again later."}
    assert resp.headers["X-RateLimit-Limit"] == "3"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["X-RateLimit-Reset"].isdigit()

    # Other keys keep their own windows
    assert client.get("/v1/profile", headers=_bearer(VIEWER_KEY)).status_code == 200


def test_rejected_requests_are_not_counted(
    client: TestClient, seeded_db, limiter: SlidingWindowRateLimiter
) -> None:
    key = _provision(client, seeded_db.group_ids["Viewer"], rate_limit=1)
    assert client.get("/v1/profile", headers=_bearer(key)).status_code == 200
    for _ in range(5):
        assert client.get("/v1/profile", headers=_bearer(key)).status_code == 429
    assert limiter.usage(key) == 1


def test_insufficient_permission_is_403_with_headers(client: TestClient) -> None:
    resp = client.get("/v1/audit-logs", headers=_bearer(VIEWER_KEY))
    assert resp.status_code == 403
    assert resp.json() == {"status": "error", "message": "Access denied: Insufficient permissions"}
    # Admitted by the limiter before the permission check failed
    assert resp.headers["X-RateLimit-Remaining"] == "119"


def test_identity_without_group_is_403(client: TestClient) -> None:
    key = _provision(client, None)
    resp = client.get("/v1/profile", headers=_bearer(key))
    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied: No group assigned"


def test_extract_bearer_token() -> None:
    assert extract_bearer_token("Bearer abc") == "abc"
    # The token is passed on verbatim; surrounding spaces are part of it
    assert extract_bearer_token("Bearer  abc ") == " abc "
    assert extract_bearer_token("Bearer    ") == "   "

    cases = [
        (None, "Authorization header is required"),
        ("", "Authorization header is required"),
        ("Token abc", "Invalid authorization format. Use Bearer token"),
        ("Bearer", "Invalid authorization format. Use Bearer token"),
        ("Bearer ", "Token is required"),
    ]
    for header, message in cases:
        with pytest.raises(Unauthenticated) as excinfo:
            extract_bearer_token(header)
        assert excinfo.value.message == message


def _request_with(identity: Identity | None) -> Request:
    request = Request({"type": "http", "method": "GET", "path": "/", "headers": [], "state": {}})
    if identity is not None:
        request.state.identity = identity
    return request


@pytest.mark.anyio
async def test_require_any_permission() -> None:
    identity = Identity(
        id="1",
        name="n",
        email="n@example.com",
        key_prefix="sk-abcde",
        rate_limit=10,
        group=GroupInfo(id=1, name="Ops"),
        permissions=frozenset({("audit", "read")}),
    )
    gate = require_any_permission([("access", "manage"), ("audit", "read")])
    assert await gate(_request_with(identity)) is identity

    with pytest.raises(PermissionDenied):
        await require_any_permission([("access", "manage")])(_request_with(identity))

    with pytest.raises(Unauthenticated) as excinfo:
        await gate(_request_with(None))
    assert excinfo.value.message == "User not authenticated"
