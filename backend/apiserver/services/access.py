"""Persistence for API identities (the ``access`` table)."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from apiserver.core.errors import Conflict, NotFound
from apiserver.core.status import Status
from apiserver.db import models
from apiserver.services.credentials import (
    KEY_PREFIX_LENGTH,
    Identity,
    as_utc,
    generate_api_key,
    hash_api_key,
    identity_from_row,
)

logger = logging.getLogger(__name__)


class AccessRepository:
    def __init__(self, session_maker: async_sessionmaker, *, default_rate_limit: int = 120) -> None:
        self._session_maker = session_maker
        self._default_rate_limit = default_rate_limit

    async def create(
        self,
        *,
        name: str,
        email: str,
        group_id: int | None = None,
        rate_limit: int | None = None,
        expired_date: datetime | None = None,
        api_key: str | None = None,
    ) -> tuple[Identity, str]:
        """Provision an identity and return it with its plaintext key.

        The plaintext is not stored and cannot be recovered later.
        """

        plaintext = api_key or generate_api_key()
        async with self._session_maker() as session:
            if group_id is not None:
                group = await session.get(models.Group, group_id)
                if group is None or group.status_id != Status.ACTIVE:
                    raise NotFound("Group not found")
            row = models.Access(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                api_key_hash=hash_api_key(plaintext),
                key_prefix=plaintext[:KEY_PREFIX_LENGTH],
                group_id=group_id,
                expired_date=as_utc(expired_date) if expired_date else None,
                rate_limit=rate_limit or self._default_rate_limit,
                status_id=Status.ACTIVE,
            )
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise Conflict("Email is already registered") from exc
            identity = await self._load(session, row.id, include_inactive=False)
        logger.info("Provisioned API identity", extra={"access_id": identity.id, "email": email})
        return identity, plaintext

    async def get(self, access_id: str, *, include_inactive: bool = False) -> Identity:
        async with self._session_maker() as session:
            return await self._load(session, access_id, include_inactive=include_inactive)

    async def update_expired_date(self, access_id: str, expired_date: datetime | None) -> Identity:
        return await self._update(
            access_id, expired_date=as_utc(expired_date) if expired_date else None
        )

    async def update_rate_limit(self, access_id: str, rate_limit: int) -> Identity:
        return await self._update(access_id, rate_limit=rate_limit)

    async def set_active(self, access_id: str, active: bool) -> Identity:
        status_id = Status.ACTIVE if active else Status.INACTIVE
        return await self._update(access_id, include_inactive=True, status_id=int(status_id))

    async def _update(self, access_id: str, *, include_inactive: bool = False, **values: object) -> Identity:
        async with self._session_maker() as session:
            row = await self._get_row(session, access_id, include_inactive=include_inactive)
            for attr, value in values.items():
                setattr(row, attr, value)
            await session.commit()
            return await self._load(session, access_id, include_inactive=True)

    async def _load(self, session: AsyncSession, access_id: str, *, include_inactive: bool) -> Identity:
        row = await self._get_row(session, access_id, include_inactive=include_inactive)
        return identity_from_row(row, default_rate_limit=self._default_rate_limit)

    async def _get_row(
        self, session: AsyncSession, access_id: str, *, include_inactive: bool
    ) -> models.Access:
        stmt = (
            select(models.Access)
            .options(selectinload(models.Access.group).selectinload(models.Group.permissions))
            .where(models.Access.id == access_id)
            .execution_options(populate_existing=True)
        )
        if not include_inactive:
            stmt = stmt.where(models.Access.status_id == Status.ACTIVE)
        row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFound("User not found")
        return row


__all__ = ["AccessRepository"]
