"""FastAPI dependency helpers."""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from apiserver.core.config import Settings, get_settings
from apiserver.db.session import get_session_maker
from apiserver.services.access import AccessRepository
from apiserver.services.audit import AuditSQLLogger, SQLAuditRepository
from apiserver.services.credentials import CredentialResolver
from apiserver.services.rate_limit import SlidingWindowRateLimiter


@lru_cache
def _create_rate_limiter(default_limit: int, sweep_interval: float) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(default_limit, sweep_interval_seconds=sweep_interval)


def get_rate_limiter(settings: Settings = Depends(get_settings)) -> SlidingWindowRateLimiter:
    """Return the process-wide limiter shared by every request."""

    return _create_rate_limiter(
        settings.rate_limit_default_per_minute,
        settings.rate_limit_sweep_interval_seconds,
    )


def get_credential_resolver(settings: Settings = Depends(get_settings)) -> CredentialResolver:
    return CredentialResolver(
        get_session_maker(settings),
        default_rate_limit=settings.rate_limit_default_per_minute,
    )


def get_access_repository(settings: Settings = Depends(get_settings)) -> AccessRepository:
    return AccessRepository(
        get_session_maker(settings),
        default_rate_limit=settings.rate_limit_default_per_minute,
    )


def get_audit_logger(settings: Settings) -> AuditSQLLogger:
    return AuditSQLLogger(get_session_maker(settings))


def get_audit_repository(settings: Settings = Depends(get_settings)) -> SQLAuditRepository:
    return SQLAuditRepository(get_session_maker(settings))
