"""Application configuration via Pydantic settings."""

from datetime import time
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration object loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "ClinicBook API"
    debug: bool = False
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    database_url: str = Field(..., alias="DATABASE_URL")
    jwt_secret: str = Field(..., alias="JWT_SECRET")
    jwt_algorithm: str = "HS256"
    jwt_expires_in_minutes: int = Field(60 * 24, alias="JWT_EXPIRES_IN")

    redis_url: str | None = Field(None, alias="REDIS_URL")

    clinic_service_url: str = Field("http://localhost:4000", alias="CLINIC_SERVICE_URL")
    clinic_service_timeout_seconds: float = Field(5.0, alias="CLINIC_SERVICE_TIMEOUT_SECONDS")

    default_timezone: str = Field("Asia/Seoul", alias="DEFAULT_TIMEZONE")
    sla_response_hours: float = Field(8.0, alias="SLA_RESPONSE_HOURS")
    sla_business_day_start: time = Field(time(9, 0), alias="SLA_BUSINESS_DAY_START")
    sla_business_day_end: time = Field(time(18, 0), alias="SLA_BUSINESS_DAY_END")
    # Monday is 0.
    sla_business_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4], alias="SLA_BUSINESS_DAYS")

    access_code_length: int = Field(8, alias="ACCESS_CODE_LENGTH")
    access_code_generation_attempts: int = Field(5, alias="ACCESS_CODE_GENERATION_ATTEMPTS")
    access_code_max_attempts: int = Field(5, alias="ACCESS_CODE_MAX_ATTEMPTS")
    access_code_lockout_seconds: int = Field(60, alias="ACCESS_CODE_LOCKOUT_SECONDS")
    access_code_lockout_max_seconds: int = Field(3600, alias="ACCESS_CODE_LOCKOUT_MAX_SECONDS")

    transition_conflict_retries: int = Field(1, alias="TRANSITION_CONFLICT_RETRIES")


@lru_cache(1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings = get_settings()
