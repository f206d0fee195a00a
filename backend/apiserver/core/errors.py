"""Typed API errors.

Each error knows its HTTP status and the message placed in the
``{"status": "error", "message": ...}`` body, so routes and security
dependencies raise them without building responses themselves.
"""
from __future__ import annotations

from typing import Mapping


class ApiError(Exception):
    """Base class for errors rendered as a structured JSON error body."""

    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(
        self, message: str | None = None, *, headers: Mapping[str, str] | None = None
    ) -> None:
        self.message = message or self.default_message
        self.headers: dict[str, str] = dict(headers or {})
        super().__init__(self.message)


class BadRequest(ApiError):
    status_code = 400
    default_message = "Invalid request body"


class Unauthenticated(ApiError):
    """Missing, malformed, unknown, inactive or expired credential."""

    status_code = 401
    default_message = "Invalid or expired token"


class PermissionDenied(ApiError):
    status_code = 403
    default_message = "Access denied: Insufficient permissions"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class RateLimitExceeded(ApiError):
    """Quota exhausted within the current window."""

    status_code = 429
    default_message = "Rate limit exceeded. Try again later."


__all__ = [
    "ApiError",
    "BadRequest",
    "Conflict",
    "NotFound",
    "PermissionDenied",
    "RateLimitExceeded",
    "Unauthenticated",
]
