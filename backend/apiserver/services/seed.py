"""Idempotent seeding of permissions, groups and sample API identities."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from apiserver.core.status import Status
from apiserver.db import models
from apiserver.services.credentials import KEY_PREFIX_LENGTH, hash_api_key

logger = logging.getLogger(__name__)

# (resource, action, description)
PERMISSIONS: tuple[tuple[str, str, str], ...] = (
    ("profile", "read", "View own profile"),
    ("general", "read", "Read general resources"),
    ("audit", "read", "View audit logs"),
    ("audit", "manage", "Clean up audit logs"),
    ("access", "manage", "Provision and manage API keys"),
)

GROUPS: dict[str, tuple[str, tuple[tuple[str, str], ...]]] = {
    "Admin": ("Full access", tuple((r, a) for r, a, _ in PERMISSIONS)),
    "Viewer": ("Read-only access", (("profile", "read"), ("general", "read"))),
}


@dataclass(frozen=True, slots=True)
class SeedIdentity:
    name: str
    email: str
    api_key: str
    group: str
    rate_limit: int
    expired_date: datetime | None = None


def default_identities(
    *,
    admin_key: str = "admin-api-key-789",
    viewer_key: str = "test-api-key-123",
    expired_key: str = "test-api-key-456",
    now: datetime | None = None,
) -> list[SeedIdentity]:
    now = now or datetime.now(timezone.utc)
    return [
        SeedIdentity("Admin User", "admin@example.com", admin_key, "Admin", 1000),
        SeedIdentity(
            "John Doe", "john@example.com", viewer_key, "Viewer", 120, now + timedelta(days=90)
        ),
        SeedIdentity(
            "Jane Smith", "jane@example.com", expired_key, "Viewer", 60, now - timedelta(days=30)
        ),
    ]


def permission_name(resource: str, action: str) -> str:
    return f"{resource}:{action}"


async def seed(
    session_maker: async_sessionmaker, identities: Sequence[SeedIdentity]
) -> dict[str, int]:
    """Insert what is missing; existing identities are re-activated.

    Returns the number of rows created per table.
    """

    created = {"permissions": 0, "groups": 0, "access": 0}
    async with session_maker() as session:
        permissions = await _ensure_permissions(session, created)
        groups = await _ensure_groups(session, permissions, created)
        await _ensure_identities(session, groups, identities, created)
        await session.commit()
    logger.info("Seed complete", extra=created)
    return created


async def _ensure_permissions(
    session: AsyncSession, created: dict[str, int]
) -> dict[tuple[str, str], models.Permission]:
    existing = {
        (p.resource, p.action): p
        for p in (await session.execute(select(models.Permission))).scalars()
    }
    for resource, action, description in PERMISSIONS:
        if (resource, action) in existing:
            continue
        perm = models.Permission(
            name=permission_name(resource, action),
            description=description,
            resource=resource,
            action=action,
            status_id=Status.ACTIVE,
        )
        session.add(perm)
        existing[(resource, action)] = perm
        created["permissions"] += 1
    await session.flush()
    return existing


async def _ensure_groups(
    session: AsyncSession,
    permissions: dict[tuple[str, str], models.Permission],
    created: dict[str, int],
) -> dict[str, models.Group]:
    stmt = select(models.Group).options(selectinload(models.Group.permissions))
    existing = {g.name: g for g in (await session.execute(stmt)).scalars()}
    for name, (description, pairs) in GROUPS.items():
        group = existing.get(name)
        if group is None:
            group = models.Group(
                name=name, description=description, status_id=Status.ACTIVE, permissions=[]
            )
            session.add(group)
            existing[name] = group
            created["groups"] += 1
        have = {(p.resource, p.action) for p in group.permissions}
        for pair in pairs:
            if pair not in have:
                group.permissions.append(permissions[pair])
    await session.flush()
    return existing


async def _ensure_identities(
    session: AsyncSession,
    groups: dict[str, models.Group],
    identities: Iterable[SeedIdentity],
    created: dict[str, int],
) -> None:
    for item in identities:
        row = (
            await session.execute(select(models.Access).where(models.Access.email == item.email))
        ).scalar_one_or_none()
        if row is not None:
            logger.info("Identity exists, re-activating", extra={"email": item.email})
            row.status_id = Status.ACTIVE
            row.rate_limit = item.rate_limit
            continue
        session.add(
            models.Access(
                id=str(uuid.uuid4()),
                name=item.name,
                email=item.email,
                api_key_hash=hash_api_key(item.api_key),
                key_prefix=item.api_key[:KEY_PREFIX_LENGTH],
                group_id=groups[item.group].id,
                expired_date=item.expired_date,
                rate_limit=item.rate_limit,
                status_id=Status.ACTIVE,
            )
        )
        created["access"] += 1
    await session.flush()


__all__ = ["GROUPS", "PERMISSIONS", "SeedIdentity", "default_identities", "permission_name", "seed"]
