from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

REQUIRED_CALENDAR_SETTINGS = (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "GOOGLE_CALENDAR_ID",
)


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres (visit store)
    POSTGRES_URL: str | None = None

    # Worker settings
    SCHEDULER_URL: str = "http://127.0.0.1:4005/schedule"
    SCHEDULER_TIMEOUT_SECONDS: float = 30.0
    POLL_INTERVAL_MS: int = Field(default=10000, ge=100)
    TZ_DEFAULT: str = "America/New_York"
    VISIT_BATCH_SIZE: int = Field(default=8, ge=1)
    VISIT_MAX_CONCURRENCY: int = Field(default=4, ge=1)
    DEFAULT_DURATION_MINUTES: int = Field(default=45, ge=15, le=240)

    # Booking service settings
    PORT: int = 4005
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REFRESH_TOKEN: str | None = None
    GOOGLE_CALENDAR_ID: str | None = "primary"

    EVENT_SUMMARY: str = "Grand Villa Tour"
    EVENT_DESCRIPTION: str = (
        "Thank you for scheduling a visit to Grand Villa. "
        "This invite includes time, location, and directions."
    )
    EVENT_LOCATION: str = "Grand Villa"

    # Redis (booking idempotency keys)
    REDIS_URL: str = "redis://localhost:6379/0"
    IDEMPOTENCY_TTL_SECONDS: int = 60 * 60 * 24 * 30

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("TZ_DEFAULT")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"TZ_DEFAULT is not a valid IANA timezone: {value}") from e
        return value

    def poll_interval_seconds(self) -> float:
        return self.POLL_INTERVAL_MS / 1000

    def missing_calendar_settings(self) -> list[str]:
        """Names of calendar settings the booking service cannot start without."""
        return [name for name in REQUIRED_CALENDAR_SETTINGS if not getattr(self, name)]

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # A single worker only ever needs a handful of connections locally
            config.update(
                {
                    "max_size": min(self.DB_POOL_MAX_SIZE, 4),
                    "timeout": 15.0,
                }
            )

        return config


settings = Settings()
