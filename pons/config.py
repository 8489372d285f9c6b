"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sync scheduler defaults (persisted user tuning overrides these)
    sync_interval_minutes: float = Field(default=60, gt=0)
    sync_retry_attempts: int = Field(default=3, ge=1)
    sync_retry_delay_ms: int = Field(default=5000, ge=0)
    sync_enable_notifications: bool = Field(default=True)
    sync_max_concurrency: int | None = Field(default=None, ge=1)

    # Persistence
    state_path: str = Field(default=".pons/state.json")

    # Rate limiting
    rate_limit_cleanup_seconds: float = Field(default=60, gt=0)

    # HTTP adapters
    http_timeout_seconds: float = Field(default=30.0)

    # API
    cors_origins: list[str] = Field(default=["http://localhost:3000"])
    autostart_scheduler: bool = Field(default=True)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
