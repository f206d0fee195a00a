"""Application-wide settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_name: str = Field(default="API Server")
    api_description: str = Field(default="Modular REST API")
    api_version: str = Field(default="0.1.0")
    # Injected by the build pipeline
    build_version: Optional[str] = Field(default=None)
    build_date: Optional[str] = Field(default=None)

    database_url: str = Field(default="sqlite+aiosqlite:///./storage/apiserver.db")
    database_echo: bool = Field(default=False)
    database_auto_create: bool = Field(default=True)

    # Sliding-window limiter applied to every authenticated API key
    rate_limit_default_per_minute: int = Field(default=120, ge=1)
    rate_limit_sweep_interval_seconds: float = Field(default=300.0, gt=0)

    audit_enabled: bool = Field(default=True)
    audit_skip_prefixes: tuple[str, ...] = Field(
        default=("/health", "/docs", "/openapi.json", "/redoc")
    )

    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
