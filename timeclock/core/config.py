"""
Configuration management for the Timeclock punch service
"""
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Required settings
    DATABASE_URL: str = Field(..., description="Database URL (PostgreSQL in production, SQLite locally)")
    JWT_SECRET_KEY: str = Field(..., description="JWT secret key for token verification")

    # Optional settings with defaults
    JWT_ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    JWT_EXPIRE_MINUTES: int = Field(default=120, description="JWT token expiration in minutes")

    APP_ENV: str = Field(default="local", description="Application environment: local, staging, prod")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level: DEBUG, INFO, WARNING, ERROR")

    # CORS settings
    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for local only."
    )

    # Shift boundaries ("09:00") are wall-clock times in this zone; punches are stored in UTC
    BUSINESS_TZ: str = Field(default="UTC", description="Timezone used to place shift start/end on a calendar day")

    # Punch validation
    PUNCH_GRACE_MINUTES: int = Field(default=15, ge=0, description="Allowed minutes before shift start / after shift end")
    DUPLICATE_PUNCH_WINDOW_SECONDS: int = Field(default=5, ge=0, description="Same-type punches closer than this are duplicates")
    TIME_WINDOW_HARD_FAIL: bool = Field(
        default=True,
        description="If True, TOO_EARLY / TOO_LATE reject the punch; if False, punch is stored and the codes are returned as warnings",
    )
    RECENT_PUNCH_LOOKBACK_HOURS: int = Field(default=24, gt=0, description="History window loaded for validation")

    # Exception generation
    LATE_ARRIVAL_THRESHOLD_MINUTES: int = Field(default=5, ge=0, description="Minutes after shift start before an arrival is late")
    EARLY_DEPARTURE_THRESHOLD_MINUTES: int = Field(default=5, ge=0, description="Minutes before shift end before a departure is early")

    # Idempotency
    IDEMPOTENCY_TTL_HOURS: int = Field(default=24, gt=0, description="How long a completed response is replayable")
    IDEMPOTENCY_LEASE_SECONDS: int = Field(default=30, gt=0, description="Lease on an in-flight key before another caller may take it over")
    IDEMPOTENCY_WAIT_SECONDS: float = Field(default=10.0, gt=0, description="Max time a caller waits on an in-flight key")
    IDEMPOTENCY_POLL_INTERVAL_MS: int = Field(default=50, gt=0, description="Poll interval while waiting on another process")

    # Version (can be git SHA or semver)
    VERSION: Optional[str] = Field(default=None, description="Application version (git SHA or semver)")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("APP_ENV")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate APP_ENV"""
        allowed = ["local", "staging", "prod"]
        if v not in allowed:
            raise ValueError(f"APP_ENV must be one of {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate LOG_LEVEL"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("BUSINESS_TZ")
    @classmethod
    def validate_business_tz(cls, v: str) -> str:
        """Validate BUSINESS_TZ is a known IANA zone"""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"BUSINESS_TZ '{v}' is not a valid IANA timezone")
        return v

    def validate_production(self) -> None:
        """
        Validate settings for production environment

        Raises:
            ValueError: If production settings are invalid
        """
        if self.APP_ENV == "prod":
            # JWT_SECRET_KEY must be at least 32 characters in production
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError(
                    "JWT_SECRET_KEY must be at least 32 characters in production environment"
                )

            # ALLOWED_ORIGINS must not be wildcard in production
            if self.ALLOWED_ORIGINS == "*" or not self.ALLOWED_ORIGINS:
                raise ValueError(
                    "ALLOWED_ORIGINS must be explicitly set (not '*') in production environment"
                )

    def get_allowed_origins_list(self) -> List[str]:
        """
        Get list of allowed CORS origins

        Returns:
            List of allowed origins (or ['*'] for local)
        """
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


# Create settings instance
settings = Settings()

# Validate production settings if in prod
if settings.APP_ENV == "prod":
    settings.validate_production()
