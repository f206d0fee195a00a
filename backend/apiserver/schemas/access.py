"""Schemas for API identity administration."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from apiserver.core.status import describe
from apiserver.services.credentials import Identity


class GroupOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class PermissionOut(BaseModel):
    resource: str
    action: str


class AccessOut(BaseModel):
    id: str
    name: str
    email: str
    key_prefix: str
    group_id: Optional[int] = None
    group: Optional[GroupOut] = None
    permissions: List[PermissionOut] = Field(default_factory=list)
    expired_date: Optional[datetime] = None
    rate_limit: int
    status_id: int
    status: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "AccessOut":
        group = identity.group
        return cls(
            id=identity.id,
            name=identity.name,
            email=identity.email,
            key_prefix=identity.key_prefix,
            group_id=group.id if group else None,
            group=GroupOut(id=group.id, name=group.name, description=group.description)
            if group
            else None,
            permissions=[
                PermissionOut(resource=resource, action=action)
                for resource, action in sorted(identity.permissions)
            ],
            expired_date=identity.expired_date,
            rate_limit=identity.rate_limit,
            status_id=identity.status_id,
            status=describe(identity.status_id),
        )


class AccessCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    group_id: Optional[int] = Field(default=None, description="Permission group")
    rate_limit: Optional[int] = Field(default=None, description="Requests per minute")
    expired_date: Optional[datetime] = Field(default=None, description="Omit for no expiry")


class AccessCreated(AccessOut):
    api_key: str = Field(..., description="Plaintext API key, returned only once")


class UpdateExpiredDateRequest(BaseModel):
    expired_date: Optional[datetime] = Field(
        default=None, description="New expiration; null means the key never expires"
    )


class UpdateRateLimitRequest(BaseModel):
    rate_limit: int = Field(..., description="Requests per minute, at least 1")


class UpdateStatusRequest(BaseModel):
    is_active: bool
