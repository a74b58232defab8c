"""Configuration management for the user administration core."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Users API connection settings."""

    model_config = SettingsConfigDict(env_prefix="API_")

    base_url: str = "http://localhost:8000"
    prefix: str = "/api/v1"
    timeout: float = 30.0  # seconds


class ListSettings(BaseSettings):
    """Grid query defaults."""

    model_config = SettingsConfigDict(env_prefix="LIST_")

    debounce_ms: int = 300  # text filter debounce window
    default_page_size: int = 25
    default_sort_field: str = "id"

    @field_validator("default_page_size")
    @classmethod
    def check_page_size(cls, value: int) -> int:
        if value not in (25, 50, 100):
            raise ValueError("default_page_size must be one of 25, 50, 100")
        return value

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class PreferenceSettings(BaseSettings):
    """Persisted UI preference storage."""

    model_config = SettingsConfigDict(env_prefix="PREFS_")

    path: Path = Path.home() / ".user_admin" / "preferences.json"
    installation_id: str = "default"


class RetrySettings(BaseSettings):
    """Retry and backoff configuration for idempotent reads."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    jitter_max: float = 0.25  # seconds


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "User Admin"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"
    log_file: Path | None = None

    # Reference server
    host: str = "127.0.0.1"
    port: int = 8000

    # Sub-configs
    api: ApiSettings = Field(default_factory=ApiSettings)
    grid: ListSettings = Field(default_factory=ListSettings)
    preferences: PreferenceSettings = Field(default_factory=PreferenceSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
