"""Core configuration management using Pydantic settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator, field_validator
from typing import Optional, List


# Valid log levels
VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

# Supported storage backends
VALID_STORAGE_MODES = ['local', 'database']


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    storage_mode: str = "local"
    local_data_dir: str = "./data/local_mode"
    database_url: str = "sqlite+aiosqlite:///./data/pulse.db"

    # Redis (redis_url should contain full connection string including port)
    redis_url: str = "redis://localhost:6379/0"

    # Logging
    log_level: str = "INFO"

    # Time zone used when a scope has none configured
    default_timezone: str = "America/Chicago"

    # Model freshness
    model_stale_hours: int = 24
    default_range_days: int = 45
    timing_range_days: int = 60

    # Batch recompute
    batch_size: int = 20
    batch_concurrency: int = 5
    batch_cadence_minutes: int = 60
    active_scope_window_days: int = 45

    # Optional per-scope advisory lock (last write wins when disabled)
    recompute_lock_enabled: bool = False
    recompute_lock_seconds: int = 30

    # Batch trigger secret for the jobs endpoint
    cron_secret: Optional[str] = None

    # API Configuration
    backend_port: int = 8000

    # CORS Configuration
    cors_origins: str = "http://localhost:3000"  # Comma-separated list of allowed origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        upper_v = v.upper()
        if upper_v not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}")
        return upper_v

    @field_validator('storage_mode')
    @classmethod
    def validate_storage_mode(cls, v: str) -> str:
        """Validate storage mode names a known backend."""
        lower_v = v.strip().lower()
        if lower_v not in VALID_STORAGE_MODES:
            raise ValueError(f"storage_mode must be one of {VALID_STORAGE_MODES}")
        return lower_v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode='after')
    def validate_config(self) -> 'Settings':
        """Validate configuration after all fields are set."""
        if self.model_stale_hours < 1:
            raise ValueError("model_stale_hours must be at least 1")
        if self.batch_concurrency < 1:
            raise ValueError("batch_concurrency must be at least 1")
        if not 7 <= self.default_range_days <= 90:
            raise ValueError("default_range_days must be between 7 and 90")
        return self


# Global settings instance
settings = Settings()
