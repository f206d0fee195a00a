"""SQL-backed audit logger and repository.

One row per request with actor, path, method, status code and timings.
Cleanup is a soft delete: rows are flagged inactive, never removed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from apiserver.core.status import Status
from apiserver.db import models

SENSITIVE_HEADERS = frozenset(
    {"authorization", "cookie", "set-cookie", "x-api-key", "x-auth-token"}
)
MAX_LIST_LIMIT = 1000


@dataclass(slots=True)
class AuditRecord:
    actor_type: str
    actor_id: str
    request_id: str
    method: str
    path: str
    status_code: int
    user_email: str | None = None
    api_key: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    request_headers: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: int | None = None


@dataclass(slots=True)
class AuditLogFilter:
    access_id: str | None = None
    user_email: str | None = None
    method: str | None = None
    path: str | None = None
    status_code: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int = 50
    offset: int = 0


def filter_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


class AuditSQLLogger:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self._session_maker = session_maker

    async def log(self, record: AuditRecord) -> None:
        async with self._session_maker() as session:
            session.add(
                models.AuditLog(
                    actor_type=record.actor_type,
                    actor_id=record.actor_id,
                    user_email=record.user_email,
                    api_key=record.api_key,
                    request_id=record.request_id,
                    method=record.method,
                    path=record.path,
                    status_code=record.status_code,
                    ip=record.ip,
                    user_agent=record.user_agent,
                    request_headers=record.request_headers or None,
                    duration_ms=record.metadata.get("duration_ms"),
                    req_bytes=record.metadata.get("req_bytes"),
                    res_bytes=record.metadata.get("res_bytes"),
                    metadata_json=record.metadata or None,
                    status_id=Status.ACTIVE,
                    created_at=record.created_at,
                )
            )
            await session.commit()


class SQLAuditRepository:
    def __init__(self, session_maker: async_sessionmaker) -> None:
        self._session_maker = session_maker

    async def list_logs(self, flt: AuditLogFilter) -> tuple[list[AuditRecord], int]:
        filters = [models.AuditLog.status_id == Status.ACTIVE]
        if flt.access_id:
            filters.append(models.AuditLog.actor_type == "access")
            filters.append(models.AuditLog.actor_id == flt.access_id)
        if flt.user_email:
            filters.append(models.AuditLog.user_email.ilike(f"%{flt.user_email}%"))
        if flt.method:
            filters.append(models.AuditLog.method == flt.method.upper())
        if flt.path:
            filters.append(models.AuditLog.path.ilike(f"%{flt.path}%"))
        if flt.status_code is not None:
            filters.append(models.AuditLog.status_code == flt.status_code)
        if flt.date_from:
            filters.append(models.AuditLog.created_at >= _start_of_day(flt.date_from))
        if flt.date_to:
            # inclusive: everything before the following midnight
            filters.append(
                models.AuditLog.created_at < _start_of_day(flt.date_to) + timedelta(days=1)
            )

        limit = max(1, min(flt.limit, MAX_LIST_LIMIT))
        offset = max(0, flt.offset)
        stmt: Select = (
            select(models.AuditLog)
            .where(*filters)
            .order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(models.AuditLog).where(*filters)
        async with self._session_maker() as session:
            total = (await session.execute(count_stmt)).scalar_one()
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(row) for row in rows], int(total)

    async def get_log(self, log_id: int) -> AuditRecord | None:
        stmt = select(models.AuditLog).where(
            models.AuditLog.id == log_id, models.AuditLog.status_id == Status.ACTIVE
        )
        async with self._session_maker() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _to_record(row) if row else None

    async def delete_older_than(self, days: int) -> int:
        """Soft-delete active rows created more than ``days`` days ago."""

        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        stmt = (
            update(models.AuditLog)
            .where(
                models.AuditLog.created_at < cutoff,
                models.AuditLog.status_id == Status.ACTIVE,
            )
            .values(status_id=Status.INACTIVE)
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount or 0


def _start_of_day(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _to_record(row: models.AuditLog) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        actor_type=row.actor_type,
        actor_id=row.actor_id,
        user_email=row.user_email,
        api_key=row.api_key,
        request_id=row.request_id,
        method=row.method,
        path=row.path,
        status_code=row.status_code,
        ip=row.ip,
        user_agent=row.user_agent,
        request_headers=row.request_headers or {},
        metadata={
            "duration_ms": row.duration_ms,
            "req_bytes": row.req_bytes,
            "res_bytes": row.res_bytes,
        },
        created_at=row.created_at,
    )


__all__ = [
    "AuditLogFilter",
    "AuditRecord",
    "AuditSQLLogger",
    "SQLAuditRepository",
    "filter_headers",
]
