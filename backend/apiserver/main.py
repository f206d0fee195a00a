"""FastAPI application entrypoint for the API server."""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from apiserver.api.routes import api_router
from apiserver.core.config import Settings, get_settings
from apiserver.core.errors import ApiError
from apiserver.db.session import create_all
from apiserver.deps import get_audit_logger
from apiserver.services.audit import AuditRecord, filter_headers
from apiserver.services.credentials import mask_api_key

logger = logging.getLogger(__name__)


def _current_settings(app: FastAPI) -> Settings:
    # Respect dependency override for get_settings in tests
    override = app.dependency_overrides.get(get_settings)
    return override() if callable(override) else get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = _current_settings(app)
    logging.getLogger("apiserver").setLevel(settings.log_level)
    if settings.database_auto_create:
        await create_all(settings)
    yield


_settings = get_settings()
app = FastAPI(
    title=_settings.api_name,
    description=_settings.api_description,
    version=_settings.api_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)

app.include_router(api_router, prefix="/v1")


def _error_body(message: str, **extra: object) -> dict:
    return {"status": "error", "message": message, **extra}


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    # Admitted requests keep their quota headers even when a later step fails
    headers = dict(getattr(request.state, "rate_limit_headers", None) or {})
    headers.update(exc.headers)
    return JSONResponse(
        status_code=exc.status_code, content=_error_body(exc.message), headers=headers
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = dict(getattr(request.state, "rate_limit_headers", None) or {})
    headers.update(getattr(exc, "headers", None) or {})
    return JSONResponse(
        status_code=exc.status_code, content=_error_body(str(exc.detail)), headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    headers = dict(getattr(request.state, "rate_limit_headers", None) or {})
    return JSONResponse(
        status_code=400,
        content=_error_body("Invalid request body", errors=jsonable_encoder(exc.errors())),
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error", exc_info=exc, extra={"path": request.url.path, "method": request.method}
    )
    headers = dict(getattr(request.state, "rate_limit_headers", None) or {})
    return JSONResponse(
        status_code=500, content=_error_body("Internal Server Error"), headers=headers
    )


class HealthResponse(BaseModel):
    status: str = "success"
    message: str = "API is running"


class VersionResponse(BaseModel):
    app: str
    version: str
    build_version: Optional[str] = None
    build_date: Optional[str] = None


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    """Return service health information for monitoring and load-balancers."""
    return HealthResponse()


@app.get("/version", response_model=VersionResponse, tags=["health"])
async def version(request: Request) -> VersionResponse:
    settings = _current_settings(request.app)
    return VersionResponse(
        app=settings.api_name,
        version=settings.api_version,
        build_version=settings.build_version,
        build_date=settings.build_date,
    )


@app.middleware("http")
async def audit_middleware(request: Request, call_next):
    settings = _current_settings(request.app)
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    path = request.url.path
    if not settings.audit_enabled or path.startswith(tuple(settings.audit_skip_prefixes)):
        response = await _call_app(request, call_next)
        response.headers["X-Request-Id"] = request_id
        return response

    started = time.perf_counter()
    response = await _call_app(request, call_next)
    elapsed_ms = (time.perf_counter() - started) * 1000.0

    identity = getattr(request.state, "identity", None)
    api_key = getattr(request.state, "api_key", None)
    actor = getattr(request.state, "actor", None) or {"type": "anonymous", "id": "-"}
    record = AuditRecord(
        actor_type=str(actor.get("type")),
        actor_id=str(actor.get("id")),
        user_email=identity.email if identity is not None else None,
        api_key=mask_api_key(api_key) if api_key else None,
        request_id=request_id,
        method=request.method,
        path=path,
        status_code=response.status_code,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_headers=filter_headers(dict(request.headers)),
        metadata={
            "duration_ms": elapsed_ms,
            "req_bytes": _content_length(request.headers.get("content-length")),
            "res_bytes": _content_length(response.headers.get("content-length")),
        },
    )
    try:
        await get_audit_logger(settings).log(record)
    except Exception:
        # Audit persistence never fails the request
        logger.exception(
            "Failed to persist audit record",
            extra={"request_id": request_id, "path": path},
        )
    response.headers["X-Request-Id"] = request_id
    return response


async def _call_app(request: Request, call_next):
    # Errors past the exception middleware still get a JSON body and an audit row
    try:
        return await call_next(request)
    except Exception as exc:
        return await unhandled_error_handler(request, exc)


def _content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
