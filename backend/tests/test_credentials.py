"""Tests for API key resolution against the access table."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from apiserver.core.errors import Unauthenticated
from apiserver.core.status import Status
from apiserver.db import models
from apiserver.services.access import AccessRepository
from apiserver.services.credentials import (
    CredentialResolver,
    generate_api_key,
    hash_api_key,
    mask_api_key,
)


ADMIN_KEY = "admin-api-key-789"
VIEWER_KEY = "test-api-key-123"
EXPIRED_KEY = "test-api-key-456"


def _session_maker(db_url: str) -> tuple[AsyncEngine, async_sessionmaker]:
    engine = create_async_engine(db_url)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


@pytest.mark.anyio
async def test_resolves_admin_with_group_permissions(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        identity = await CredentialResolver(session_maker).resolve(ADMIN_KEY)
    finally:
        await engine.dispose()

    assert identity.email == "admin@example.com"
    assert identity.rate_limit == 1000
    assert identity.expired_date is None
    assert identity.group is not None and identity.group.name == "Admin"
    assert identity.has_permission("access", "manage")
    assert identity.has_any_permission([("nope", "x"), ("audit", "read")])
    assert identity.key_prefix == ADMIN_KEY[:8]


@pytest.mark.anyio
async def test_viewer_with_future_expiry_is_accepted(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        identity = await CredentialResolver(session_maker).resolve(VIEWER_KEY)
    finally:
        await engine.dispose()

    assert identity.group is not None and identity.group.name == "Viewer"
    assert identity.permissions == frozenset({("profile", "read"), ("general", "read")})
    assert identity.expired_date is not None
    assert identity.expired_date > datetime.now(timezone.utc)


@pytest.mark.anyio
@pytest.mark.parametrize("key", [EXPIRED_KEY, "not-a-real-key"])
async def test_expired_and_unknown_keys_are_rejected(seeded_db, key: str) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        with pytest.raises(Unauthenticated) as excinfo:
            await CredentialResolver(session_maker).resolve(key)
    finally:
        await engine.dispose()
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid or expired token"


@pytest.mark.anyio
async def test_empty_key_is_rejected(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        with pytest.raises(Unauthenticated) as excinfo:
            await CredentialResolver(session_maker).resolve("")
    finally:
        await engine.dispose()
    assert excinfo.value.message == "Token is required"


@pytest.mark.anyio
async def test_expiry_instant_itself_is_rejected(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        identity = await CredentialResolver(session_maker).resolve(VIEWER_KEY)
        expires = identity.expired_date
        assert expires is not None

        just_before = CredentialResolver(session_maker, clock=lambda: expires - timedelta(seconds=1))
        assert (await just_before.resolve(VIEWER_KEY)).id == identity.id

        at_expiry = CredentialResolver(session_maker, clock=lambda: expires)
        with pytest.raises(Unauthenticated):
            await at_expiry.resolve(VIEWER_KEY)
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_inactive_identity_is_rejected(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        resolver = CredentialResolver(session_maker)
        identity = await resolver.resolve(VIEWER_KEY)
        await AccessRepository(session_maker).set_active(identity.id, False)
        with pytest.raises(Unauthenticated):
            await resolver.resolve(VIEWER_KEY)

        await AccessRepository(session_maker).set_active(identity.id, True)
        assert (await resolver.resolve(VIEWER_KEY)).id == identity.id
    finally:
        await engine.dispose()


@pytest.mark.anyio
async def test_inactive_group_and_permissions_are_dropped(seeded_db) -> None:
    engine, session_maker = _session_maker(seeded_db.url)
    try:
        async with session_maker() as session:
            await session.execute(
                update(models.Permission)
                .where(models.Permission.resource == "general")
                .values(status_id=Status.INACTIVE)
            )
            await session.commit()
        viewer = await CredentialResolver(session_maker).resolve(VIEWER_KEY)
        assert viewer.permissions == frozenset({("profile", "read")})

        async with session_maker() as session:
            await session.execute(
                update(models.Group)
                .where(models.Group.id == seeded_db.group_ids["Viewer"])
                .values(status_id=Status.INACTIVE)
            )
            await session.commit()
        viewer = await CredentialResolver(session_maker).resolve(VIEWER_KEY)
        assert viewer.group is None
        assert viewer.permissions == frozenset()
    finally:
        await engine.dispose()


def test_key_helpers() -> None:
    key = generate_api_key()
    assert key.startswith("sk-")
    assert len(key) == 3 + 43
    assert generate_api_key() != key

    assert hash_api_key("abc") == hash_api_key("abc")
    assert len(hash_api_key("abc")) == 64
    assert mask_api_key("test-api-key-123") == "test-api****"
    assert mask_api_key("short") == "short"
