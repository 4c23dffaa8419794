"""Application settings loaded from environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """ParkingDirekt runtime configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_env: str = Field(
        default="development",
        validation_alias="APP_ENV",
        description="Deployment environment (development, staging, production)",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root log level",
    )

    # Storage
    database_url: str = Field(
        default="sqlite:///./parkingdirekt.db",
        validation_alias="DATABASE_URL",
        description="SQLAlchemy database URL",
    )
    redis_url: Optional[str] = Field(
        default=None,
        validation_alias="REDIS_URL",
        description="Redis URL for the rate limiter (in-process window when unset)",
    )

    # Secrets
    session_secret: str = Field(
        ...,
        validation_alias="SESSION_SECRET",
        description="HS256 secret used to sign and verify bearer tokens",
    )
    encryption_key: str = Field(
        ...,
        validation_alias="ENCRYPTION_KEY",
        description="AES-256-GCM key for secrets at rest (32 characters)",
    )
    access_token_ttl_minutes: int = Field(
        default=60,
        validation_alias="ACCESS_TOKEN_TTL_MINUTES",
        description="Lifetime of tokens issued by the API",
    )

    # Email
    smtp_host: Optional[str] = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, validation_alias="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, validation_alias="SMTP_PASSWORD")
    smtp_timeout_seconds: float = Field(default=30.0, validation_alias="SMTP_TIMEOUT_SECONDS")
    email_retry_interval_seconds: int = Field(
        default=30,
        validation_alias="EMAIL_RETRY_INTERVAL_SECONDS",
        description="How often the retry queue is scanned for due items",
    )
    email_scheduler_enabled: bool = Field(
        default=True,
        validation_alias="EMAIL_SCHEDULER_ENABLED",
        description="Start the background retry job with the application",
    )

    cors_origins: str = Field(
        default="",
        validation_alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Accept log levels in any case."""
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return level

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_environment(self) -> list[str]:
        """
        Validate settings that can't be expressed as field constraints.

        Returns:
            List of human-readable problems (empty when the configuration is usable)
        """
        errors: list[str] = []
        if len(self.session_secret) < 16:
            errors.append("SESSION_SECRET must be at least 16 characters")
        if self.is_production and self.database_url.startswith("sqlite"):
            errors.append("DATABASE_URL must point to a server database in production")
        if self.is_production and not self.smtp_host:
            errors.append("SMTP_HOST is required in production")
        return errors


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get the process-wide settings instance."""
    return AppSettings()
