"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "production"] = Field(default="development")

    # Driver API
    api_base_url: str = Field(default="http://localhost:8888")
    api_timeout_seconds: float = Field(default=10.0)
    api_auth_token: str | None = Field(default=None)
    http_max_attempts: int = Field(default=3)

    # Hosted backend (PostgREST)
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_anon_key: str = Field(default="")

    # Local storage
    storage_backend: Literal["local", "memory"] = Field(default="local")
    storage_path: str = Field(default=".partsrunner")

    # Offline sync queue
    sync_max_retries: int = Field(default=3)
    sync_retry_delay_seconds: float = Field(default=5.0)
    sync_on_connect: bool = Field(default=True)
    sync_batch_size: int = Field(default=5)
    sync_batch_pause_seconds: float = Field(default=0.1)
    sync_max_queue_size: int = Field(default=1000)

    # Background sync worker
    sync_worker_poll_interval_seconds: float = Field(default=30.0)
    connectivity_probe_url: str | None = Field(default=None)

    # Driver status
    driver_auto_offline_seconds: float = Field(default=30 * 60)
    driver_location_interval_seconds: float = Field(default=30.0)
    driver_location_accuracy_threshold_m: float = Field(default=100.0)
    driver_location_timeout_seconds: float = Field(default=15.0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
