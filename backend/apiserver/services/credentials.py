"""API key credentials: hashing, issuance and resolution to an Identity."""
from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from apiserver.core.errors import Unauthenticated
from apiserver.core.status import Status, is_active
from apiserver.db import models

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "sk-"
KEY_PREFIX_LENGTH = 8


@dataclass(frozen=True, slots=True)
class GroupInfo:
    id: int
    name: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated principal behind an API key."""

    id: str
    name: str
    email: str
    key_prefix: str
    rate_limit: int
    group: GroupInfo | None = None
    permissions: frozenset[tuple[str, str]] = field(default_factory=frozenset)
    expired_date: datetime | None = None
    status_id: int = Status.ACTIVE

    def has_permission(self, resource: str, action: str) -> bool:
        return (resource, action) in self.permissions

    def has_any_permission(self, pairs: Iterable[tuple[str, str]]) -> bool:
        return any(pair in self.permissions for pair in pairs)


def hash_api_key(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    """Return a fresh ``sk-`` prefixed key with 256 bits of entropy."""

    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def mask_api_key(plaintext: str) -> str:
    if len(plaintext) > KEY_PREFIX_LENGTH:
        return plaintext[:KEY_PREFIX_LENGTH] + "****"
    return plaintext


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def identity_from_row(row: models.Access, *, default_rate_limit: int) -> Identity:
    group: GroupInfo | None = None
    permissions: frozenset[tuple[str, str]] = frozenset()
    if row.group is not None and is_active(row.group.status_id):
        group = GroupInfo(id=row.group.id, name=row.group.name, description=row.group.description)
        permissions = frozenset(
            (p.resource, p.action)
            for p in row.group.permissions
            if is_active(p.status_id)
        )
    rate_limit = row.rate_limit if row.rate_limit and row.rate_limit > 0 else default_rate_limit
    return Identity(
        id=row.id,
        name=row.name,
        email=row.email,
        key_prefix=row.key_prefix,
        rate_limit=rate_limit,
        group=group,
        permissions=permissions,
        expired_date=as_utc(row.expired_date) if row.expired_date else None,
        status_id=row.status_id,
    )


class CredentialResolver:
    """Resolve presented API keys against the ``access`` table.

    Lookup is a pure read: an identity is returned only when it exists, is
    active, and either never expires or expires strictly after now.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        *,
        default_rate_limit: int = 120,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_maker = session_maker
        self._default_rate_limit = default_rate_limit
        self._clock = clock

    async def resolve(self, api_key: str) -> Identity:
        if not api_key:
            raise Unauthenticated("Token is required")

        stmt = (
            select(models.Access)
            .options(selectinload(models.Access.group).selectinload(models.Group.permissions))
            .where(
                models.Access.api_key_hash == hash_api_key(api_key),
                models.Access.status_id == Status.ACTIVE,
            )
        )
        async with self._session_maker() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                logger.info("Unknown or inactive API key", extra={"api_key": mask_api_key(api_key)})
                raise Unauthenticated()
            if row.expired_date is not None and as_utc(row.expired_date) <= self._clock():
                logger.info(
                    "Expired API key",
                    extra={"access_id": row.id, "api_key": mask_api_key(api_key)},
                )
                raise Unauthenticated()
            return identity_from_row(row, default_rate_limit=self._default_rate_limit)


__all__ = [
    "CredentialResolver",
    "GroupInfo",
    "Identity",
    "as_utc",
    "generate_api_key",
    "hash_api_key",
    "identity_from_row",
    "mask_api_key",
]
