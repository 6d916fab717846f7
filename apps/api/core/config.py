"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the scoring service,
the Celery worker and the test suite.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (e.g. "sqlite://" for tests and local installs).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="readiness")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=5)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    CORS_ORIGINS: Optional[str] = Field(default=None)  # comma-separated
    CREATE_TABLES_ON_STARTUP: bool = Field(default=True)

    # Backfill
    BACKFILL_WINDOW_DAYS: int = Field(default=60, ge=1, le=365)
    BACKFILL_THROTTLE_HOURS: float = Field(default=24.0, ge=0)
    # Cross-process lock held by the Celery task while a family recomputes.
    BACKFILL_LOCK_TTL_S: int = Field(default=15 * 60)

    # Athlete defaults when the profile row leaves a field empty
    DEFAULT_SLEEP_NEED_HOURS: float = Field(default=8.0)
    # Unknown stays unknown: HR-based load needs a real max HR.
    DEFAULT_MAX_HR: Optional[int] = Field(default=None)

    # Rolling baselines
    BASELINE_WINDOW_DAYS: int = Field(default=7, ge=1)
    BASELINE_MIN_SAMPLES: int = Field(default=3, ge=1)

    # Strain
    STRAIN_DAILY_CAP: float = Field(default=18.0)
    STRAIN_FLOOR: float = Field(default=0.5)
    STRAIN_BAND_CUTS: List[float] = Field(default=[6.0, 11.0, 16.0])

    # Recovery / sleep bands (ascending lower bounds)
    RECOVERY_BAND_CUTS: List[float] = Field(default=[40.0, 70.0])
    SLEEP_BAND_CUTS: List[float] = Field(default=[40.0, 60.0, 80.0])

    # Alcohol compound-effect detector: fires at this confidence (0-100) once
    # suppressed HRV is joined by this many of elevated RHR and poor sleep
    ALCOHOL_CONFIDENCE_THRESHOLD: float = Field(default=50.0)
    ALCOHOL_MIN_CORROBORATING_SIGNALS: int = Field(default=2, ge=0, le=2)
    ALCOHOL_MAX_PENALTY_FRACTION: float = Field(default=0.25, ge=0, le=1)


# Global settings instance
settings = Settings()
