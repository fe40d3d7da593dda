"""
Configuration settings for the Metered Retry Orchestrator.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "Metered Retry Orchestrator"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # "production" switches logs to JSON

    # === Retry & Backoff ===
    MAX_RETRIES: int = Field(default=3, ge=1)  # Attempts per run, first one included
    INITIAL_BACKOFF_SECONDS: float = Field(default=1.0, ge=0.0)
    MAX_BACKOFF_SECONDS: Optional[float] = None  # None = uncapped exponential growth
    OPERATION_TIMEOUT_SECONDS: Optional[float] = None  # Per attempt, None = no timeout

    # === Rate Limiting ===
    RATE_LIMIT_COOLDOWN_SECONDS: float = Field(default=60.0, ge=0.0)
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 30.0

    # === Quota ===
    QUOTA_BACKEND: str = "memory"  # "memory" or "redis"
    DEFAULT_QUOTA_LIMIT: int = Field(default=100, ge=0)
    QUOTA_CYCLE_DAYS: int = Field(default=30, ge=1)
    QUOTA_KEY_PREFIX: str = "quota"
    REFUND_TOKEN_TTL_SECONDS: int = 86400  # Dedupe window for replayed refunds

    # === Redis ===
    REDIS_URL: str = "redis://redis:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True

    @property
    def quota_cycle_seconds(self) -> int:
        return self.QUOTA_CYCLE_DAYS * 86400


# Global settings instance
settings = Settings()
