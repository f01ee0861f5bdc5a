"""Environment-based configuration for the Medi Runner face gate."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from MEDIRUNNER_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEDIRUNNER_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8082
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Admin authentication (None = disabled)
    api_key: str | None = None

    # Storage
    database_url: str = "sqlite+aiosqlite:///./data/medirunner.db"

    # Matching (lower = stricter)
    match_threshold: float = Field(default=0.6, gt=0.0)

    # Capture
    capture_timeout: float = Field(default=10.0, gt=0.0)
    max_concurrent: int = Field(default=2, ge=1)
    max_frame_size: int = Field(default=10_485_760, ge=1)

    # Session
    session_cookie_name: str = "sessionUserId"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
