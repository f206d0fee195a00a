"""Access-control pipeline: bearer authentication, rate limiting, permissions.

Protected routes declare ``dependencies=guard(resource, action)``, which runs
the three steps in order. Each step reads what the previous one left on
``request.state``:

- ``authenticate`` resolves the bearer key and stores ``identity``/``api_key``
- ``enforce_rate_limit`` is a no-op without an identity; otherwise it admits
  or rejects and publishes the ``X-RateLimit-*`` headers
- ``require_permission`` checks the identity's group permission set
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable

from fastapi import Depends, Request, Response
from fastapi.params import Depends as DependsParam

from apiserver.core.errors import PermissionDenied, RateLimitExceeded, Unauthenticated
from apiserver.deps import get_credential_resolver, get_rate_limiter
from apiserver.services.credentials import CredentialResolver, Identity, mask_api_key
from apiserver.services.rate_limit import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(header: str | None) -> str:
    if not header:
        raise Unauthenticated("Authorization header is required")
    if not header.startswith(BEARER_PREFIX):
        raise Unauthenticated("Invalid authorization format. Use Bearer token")
    token = header[len(BEARER_PREFIX):]
    if not token:
        raise Unauthenticated("Token is required")
    return token


async def authenticate(
    request: Request,
    resolver: CredentialResolver = Depends(get_credential_resolver),
) -> Identity:
    """Resolve the bearer key; any failure ends the request with 401."""

    token = extract_bearer_token(request.headers.get("Authorization"))
    identity = await resolver.resolve(token)
    request.state.identity = identity
    request.state.api_key = token
    # Read by the audit middleware
    request.state.actor = {"type": "access", "id": identity.id}
    return identity


async def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> None:
    identity: Identity | None = getattr(request.state, "identity", None)
    api_key: str | None = getattr(request.state, "api_key", None)
    if identity is None or not api_key:
        return None

    decision = limiter.check(api_key, identity.rate_limit)
    headers = decision.headers()
    # Re-applied by the error handler if a later step fails
    request.state.rate_limit_headers = headers
    if not decision.allowed:
        logger.warning(
            "Rate limit exceeded",
            extra={
                "access_id": identity.id,
                "api_key": mask_api_key(api_key),
                "limit": decision.limit,
                "path": request.url.path,
            },
        )
        raise RateLimitExceeded(headers=headers)
    response.headers.update(headers)
    return None


def _identity_with_group(request: Request) -> Identity:
    identity: Identity | None = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthenticated("User not authenticated")
    if identity.group is None:
        raise PermissionDenied("Access denied: No group assigned")
    return identity


def require_permission(resource: str, action: str) -> Callable:
    async def _dep(request: Request) -> Identity:
        identity = _identity_with_group(request)
        if not identity.has_permission(resource, action):
            raise PermissionDenied("Access denied: Insufficient permissions")
        return identity

    return _dep


def require_any_permission(permissions: Iterable[tuple[str, str]]) -> Callable:
    required = tuple(permissions)

    async def _dep(request: Request) -> Identity:
        identity = _identity_with_group(request)
        if not identity.has_any_permission(required):
            raise PermissionDenied("Access denied: Insufficient permissions")
        return identity

    return _dep


def guard(resource: str, action: str) -> list[DependsParam]:
    """Dependencies for a protected route, in pipeline order."""

    return [
        Depends(authenticate),
        Depends(enforce_rate_limit),
        Depends(require_permission(resource, action)),
    ]


def current_identity(request: Request) -> Identity:
    identity: Identity | None = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthenticated("User not authenticated")
    return identity


__all__ = [
    "authenticate",
    "current_identity",
    "enforce_rate_limit",
    "extract_bearer_token",
    "guard",
    "require_any_permission",
    "require_permission",
]
