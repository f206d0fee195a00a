"""API identity endpoints: profile, provisioning, expiration, quota, status."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from apiserver.core.errors import BadRequest
from apiserver.deps import get_access_repository
from apiserver.schemas.access import (
    AccessCreated,
    AccessCreateRequest,
    AccessOut,
    UpdateExpiredDateRequest,
    UpdateRateLimitRequest,
    UpdateStatusRequest,
)
from apiserver.security import current_identity, guard
from apiserver.services.access import AccessRepository
from apiserver.services.credentials import Identity, as_utc


router = APIRouter(tags=["access"])


def _require_future(value: datetime | None) -> datetime | None:
    if value is not None and as_utc(value) <= datetime.now(timezone.utc):
        raise BadRequest("Expiration date must be in the future")
    return value


@router.post(
    "/access",
    status_code=status.HTTP_201_CREATED,
    dependencies=guard("access", "manage"),
    summary="Provision an API identity",
)
async def create_access(
    payload: AccessCreateRequest,
    repo: AccessRepository = Depends(get_access_repository),
) -> dict:
    if payload.rate_limit is not None and payload.rate_limit < 1:
        raise BadRequest("Rate limit must be at least 1")
    identity, plaintext = await repo.create(
        name=payload.name,
        email=payload.email,
        group_id=payload.group_id,
        rate_limit=payload.rate_limit,
        expired_date=_require_future(payload.expired_date),
    )
    created = AccessCreated(**AccessOut.from_identity(identity).model_dump(), api_key=plaintext)
    return {"status": "success", "data": created}


@router.get("/profile", dependencies=guard("profile", "read"), summary="Current identity")
async def get_profile(identity: Identity = Depends(current_identity)) -> dict:
    return {"status": "success", "data": AccessOut.from_identity(identity)}


@router.put(
    "/access/{access_id}/expired-date",
    dependencies=guard("access", "manage"),
    summary="Set or clear API key expiration",
)
async def update_expired_date(
    access_id: str,
    payload: UpdateExpiredDateRequest,
    repo: AccessRepository = Depends(get_access_repository),
) -> dict:
    expired_date = _require_future(payload.expired_date)
    identity = await repo.update_expired_date(access_id, expired_date)
    return {
        "status": "success",
        "data": {
            "user_id": identity.id,
            "email": identity.email,
            "expired_date": identity.expired_date,
        },
    }


@router.delete(
    "/access/{access_id}/expired-date",
    dependencies=guard("access", "manage"),
    summary="Remove API key expiration",
)
async def remove_expired_date(
    access_id: str,
    repo: AccessRepository = Depends(get_access_repository),
) -> dict:
    identity = await repo.update_expired_date(access_id, None)
    return {
        "status": "success",
        "data": {
            "user_id": identity.id,
            "email": identity.email,
            "expired_date": None,
            "message": "API key will never expire",
        },
    }


@router.put(
    "/access/{access_id}/rate-limit",
    dependencies=guard("access", "manage"),
    summary="Update API key rate limit",
)
async def update_rate_limit(
    access_id: str,
    payload: UpdateRateLimitRequest,
    repo: AccessRepository = Depends(get_access_repository),
) -> dict:
    if payload.rate_limit < 1:
        raise BadRequest("Rate limit must be at least 1")
    identity = await repo.update_rate_limit(access_id, payload.rate_limit)
    return {
        "status": "success",
        "data": {
            "user_id": identity.id,
            "email": identity.email,
            "rate_limit": identity.rate_limit,
        },
    }


@router.put(
    "/access/{access_id}/status",
    dependencies=guard("access", "manage"),
    summary="Enable or disable an API key",
)
async def update_status(
    access_id: str,
    payload: UpdateStatusRequest,
    repo: AccessRepository = Depends(get_access_repository),
) -> dict:
    identity = await repo.set_active(access_id, payload.is_active)
    return {
        "status": "success",
        "data": {
            "user_id": identity.id,
            "email": identity.email,
            "status_id": identity.status_id,
        },
    }
