"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from datetime import timedelta, timezone
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "Court Booking Engine"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30

    # ── Redis ────────────────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_CACHE_TTL: int = 300          # 5 minutes
    REDIS_STATIC_CACHE_TTL: int = 600   # courts + time slots

    # ── Email ────────────────────────────────────────────────
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@courtbooking.local"
    EMAIL_FROM_NAME: str = "Sports Centre"
    EMAIL_BREAKER_FAIL_MAX: int = 5
    EMAIL_BREAKER_RESET_TIMEOUT: int = 60

    # ── Frontend ─────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # ── Celery ───────────────────────────────────────────────
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ── Cron ─────────────────────────────────────────────────
    CRON_SECRET: str = ""

    # ── Rate Limiting ────────────────────────────────────────
    RATE_LIMIT_UNAUTH_PER_MINUTE: int = 60

    # ── Facility ─────────────────────────────────────────────
    FACILITY_UTC_OFFSET_HOURS: int = 8

    # ── Booking Expiration ───────────────────────────────────
    STANDARD_EXPIRATION_HOURS: int = 48      # confirm within 48h of creation
    SHORT_WINDOW_THRESHOLD_HOURS: int = 48   # events this close use the short window
    SHORT_WINDOW_HOURS_BEFORE: int = 12      # confirm 12h before play
    WARNING_HOURS_BEFORE: int = 24
    EXPIRATION_SWEEP_INTERVAL_SECONDS: int = 900
    CANCELLATION_MIN_HOURS_BEFORE: int = 24

    # ── Job Codes ────────────────────────────────────────────
    JOB_CODE_MAX_ATTEMPTS: int = 3
    JOB_CODE_RETRY_DELAY_SECONDS: float = 0.05

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def facility_timezone(self) -> timezone:
        return timezone(timedelta(hours=self.FACILITY_UTC_OFFSET_HOURS))


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance. Import `settings` instead of constructing Settings."""
    return Settings()


settings = get_settings()
