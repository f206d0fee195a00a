"""Audit log query and retention endpoints."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from apiserver.core.errors import BadRequest, NotFound
from apiserver.deps import get_audit_repository
from apiserver.schemas.audit import AuditLogDetail, AuditLogItem, AuditLogPage
from apiserver.security import guard
from apiserver.services.audit import MAX_LIST_LIMIT, AuditLogFilter, SQLAuditRepository


router = APIRouter(prefix="/audit-logs", tags=["audit"])


def _parse_day(value: str | None, name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise BadRequest(f"Invalid {name}, expected YYYY-MM-DD") from exc


@router.get("", dependencies=guard("audit", "read"), summary="List audit logs")
async def list_audit_logs(
    access_id: str | None = Query(None),
    user_email: str | None = Query(None, description="Substring match"),
    method: str | None = Query(None),
    path: str | None = Query(None, description="Substring match"),
    status_code: int | None = Query(None),
    date_from: str | None = Query(None, description="YYYY-MM-DD"),
    date_to: str | None = Query(None, description="YYYY-MM-DD, inclusive"),
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    repo: SQLAuditRepository = Depends(get_audit_repository),
) -> dict:
    flt = AuditLogFilter(
        access_id=access_id,
        user_email=user_email,
        method=method,
        path=path,
        status_code=status_code,
        date_from=_parse_day(date_from, "date_from"),
        date_to=_parse_day(date_to, "date_to"),
        limit=min(limit, MAX_LIST_LIMIT),
        offset=offset,
    )
    records, total = await repo.list_logs(flt)
    page = AuditLogPage(
        logs=[AuditLogItem.from_record(r) for r in records],
        total=total,
        limit=flt.limit,
        offset=flt.offset,
    )
    return {"status": "success", "data": page}


@router.delete("/cleanup", dependencies=guard("audit", "manage"), summary="Soft-delete old logs")
async def delete_old_logs(
    days: int | None = Query(None, description="Delete logs older than this many days"),
    repo: SQLAuditRepository = Depends(get_audit_repository),
) -> dict:
    if days is None:
        raise BadRequest("Days parameter is required")
    if days <= 0:
        raise BadRequest("Invalid days parameter")
    deleted = await repo.delete_older_than(days)
    return {
        "status": "success",
        "message": "Old audit logs deleted successfully",
        "data": {"deleted": deleted},
    }


@router.get("/{log_id}", dependencies=guard("audit", "read"), summary="Get audit log")
async def get_audit_log(
    log_id: int,
    repo: SQLAuditRepository = Depends(get_audit_repository),
) -> dict:
    record = await repo.get_log(log_id)
    if record is None:
        raise NotFound("Audit log not found")
    return {"status": "success", "data": AuditLogDetail.from_record(record)}
