"""Schemas for audit log endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from apiserver.services.audit import AuditRecord


class AuditLogItem(BaseModel):
    id: int
    actor_type: str
    actor_id: str
    user_email: Optional[str] = None
    method: str
    path: str
    status_code: int
    duration_ms: Optional[float] = None
    ip: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditLogItem":
        return cls(
            id=record.id or 0,
            actor_type=record.actor_type,
            actor_id=record.actor_id,
            user_email=record.user_email,
            method=record.method,
            path=record.path,
            status_code=record.status_code,
            duration_ms=record.metadata.get("duration_ms"),
            ip=record.ip,
            created_at=record.created_at,
        )


class AuditLogDetail(AuditLogItem):
    api_key: Optional[str] = None
    request_id: str
    user_agent: Optional[str] = None
    request_headers: Dict[str, str] = {}
    req_bytes: Optional[int] = None
    res_bytes: Optional[int] = None

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditLogDetail":
        base = AuditLogItem.from_record(record).model_dump()
        return cls(
            **base,
            api_key=record.api_key,
            request_id=record.request_id,
            user_agent=record.user_agent,
            request_headers=record.request_headers,
            req_bytes=record.metadata.get("req_bytes"),
            res_bytes=record.metadata.get("res_bytes"),
        )


class AuditLogPage(BaseModel):
    logs: List[AuditLogItem]
    total: int
    limit: int
    offset: int
