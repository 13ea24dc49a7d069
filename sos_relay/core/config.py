"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class RoomSettings(BaseSettings):
    """Room lifecycle limits."""

    ttl_seconds: int = Field(
        3600,
        description="Lifetime of a room from creation, in seconds",
        ge=1,
    )
    max_messages: int = Field(
        500,
        description="Number of most recent messages retained per room",
        ge=1,
    )
    max_members: int = Field(
        256,
        description="Maximum number of members a room accepts (0 disables the cap)",
        ge=0,
    )
    nickname_max_chars: int = Field(
        20,
        description="Nicknames longer than this are truncated",
        ge=1,
    )
    member_id_length: int = Field(8, ge=4)
    message_id_length: int = Field(12, ge=4)
    hash_length: int = Field(
        16,
        description="Exact length required of a room hash at the HTTP boundary",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="ROOM_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Escalating backoff applied to room creation, per client address."""

    enabled: bool = Field(
        True,
        description="Enable room-creation throttling",
    )
    cooldown_seconds: int = Field(
        1800,
        description="Quiet period after which an address starts over at its first attempt",
        ge=1,
    )
    delays_seconds: list[int] = Field(
        default_factory=lambda: [0, 10, 30, 60, 180, 300],
        description="Required wait before the next accepted attempt, indexed by attempt count",
    )
    include_headers: bool = Field(
        True,
        description="Include a Retry-After header when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @field_validator("delays_seconds")
    @classmethod
    def _validate_delays(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("delays_seconds must not be empty")
        if any(delay < 0 for delay in value):
            raise ValueError("delays_seconds must be non-negative")
        return value


class StorageSettings(BaseSettings):
    """Backing key-value store configuration."""

    backend: str = Field(
        "memory",
        description="Storage backend: memory or sqlite",
    )
    sqlite_path: str = Field(
        "data/relay.sqlite3",
        description="Database file used by the sqlite backend",
    )
    sweep_interval_seconds: float = Field(
        300.0,
        description="Interval of the background purge of expired records (0 disables it)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate log file at this size (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to receive and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by CORS",
    )
    cors_max_age: int = Field(
        3600,
        description="Seconds browsers may cache a CORS preflight response",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


def _build_room_settings() -> RoomSettings:
    return RoomSettings()


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


def _build_storage_settings() -> StorageSettings:
    return StorageSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


def _build_app_settings() -> AppSettings:
    return AppSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    room: RoomSettings = Field(default_factory=_build_room_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    storage: StorageSettings = Field(default_factory=_build_storage_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
