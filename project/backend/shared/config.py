"""
Configuration management.

Centralized environment variable management and validation.
"""

from typing import Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Supabase configuration (artifact storage)
    supabase_url: str
    supabase_service_key: str

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Export pipeline
    # EXPORT_TEMP_DIR: shared temp root; every working file gets a unique name inside it
    export_temp_dir: str = "/tmp/video_exporter"
    # FFMPEG_MAX_CONCURRENCY: bounded pool for media engine subprocesses (per process)
    ffmpeg_max_concurrency: int = 2
    ffmpeg_timeout: int = 600  # seconds per engine invocation
    export_bucket: str = "video-exports"

    @field_validator("supabase_url")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate Supabase URL format."""
        if not v:
            raise ConfigError("SUPABASE_URL is required")
        if not v.startswith(("http://", "https://")):
            raise ConfigError("SUPABASE_URL must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("supabase_service_key")
    @classmethod
    def validate_supabase_service_key(cls, v: str) -> str:
        """Validate Supabase service key format."""
        if not v:
            raise ConfigError("SUPABASE_SERVICE_KEY is required")
        if len(v) < 20:
            raise ConfigError("SUPABASE_SERVICE_KEY appears to be invalid")
        return v

    @field_validator("ffmpeg_max_concurrency")
    @classmethod
    def validate_ffmpeg_max_concurrency(cls, v: int) -> int:
        """Engine pool must allow at least one subprocess."""
        if v < 1:
            raise ConfigError("FFMPEG_MAX_CONCURRENCY must be at least 1")
        return v


# Singleton instance
try:
    settings = Settings()
except Exception as e:
    # Re-raise as ConfigError for consistency
    if isinstance(e, ConfigError):
        raise
    raise ConfigError(f"Failed to load configuration: {str(e)}") from e
