"""API route registrations."""
from fastapi import APIRouter

from apiserver.api.routes import access, audit_logs


api_router = APIRouter()
api_router.include_router(access.router)
api_router.include_router(audit_logs.router)

__all__ = ["api_router"]
