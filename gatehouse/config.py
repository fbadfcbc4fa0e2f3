"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Production settings never carry development defaults (validated on load)

Design Decisions:
    - Lockout threshold, session lifetime and queue backoff live here so tests
      and deployments tune them without code changes
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    environment: Literal["development", "production", "test"] = "development"

    # Database
    database_url: str = "postgresql+asyncpg://gatehouse:gatehouse@db:5432/gatehouse"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    # Redis (sent markers)
    redis_url: str = "redis://localhost:6379/0"
    sent_marker_backend: Literal["redis", "database"] = "redis"
    sent_marker_ttl_seconds: int = 60 * 60 * 24 * 7

    # Authentication
    max_failed_login_attempts: int = 5
    session_expiry_days: int = 7
    session_cookie_name: str = "sid"
    session_activity_staleness_seconds: int = 300
    password_reset_expiry_hours: int = 1

    # Email
    smtp_host: str = "localhost"
    smtp_port: int = 2500
    smtp_secure: bool = False
    smtp_starttls: bool = False
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_timeout_seconds: int = 10
    email_from: str = "noreply@example.com"
    app_base_url: str = "http://localhost:3000"

    # Job queue
    job_max_attempts: int = 3
    job_backoff_base_ms: int = 1000
    job_backoff_max_ms: int = 60_000
    job_visibility_timeout_seconds: int = 60
    worker_concurrency: int = 5
    worker_poll_interval_ms: int = 500
    worker_shutdown_timeout_seconds: int = 10

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @model_validator(mode="after")
    def reject_development_defaults_in_production(self) -> "Settings":
        if self.environment != "production":
            return self
        errors = []
        if self.smtp_host == "localhost":
            errors.append("SMTP_HOST cannot be 'localhost' in production")
        if "example.com" in self.email_from:
            errors.append("EMAIL_FROM cannot contain 'example.com' in production")
        if "localhost" in self.app_base_url:
            errors.append("APP_BASE_URL cannot contain 'localhost' in production")
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
