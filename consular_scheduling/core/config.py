"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./scheduling.db"

    # Scheduling
    # Single organization timezone; operating hours are wall-clock times in this zone
    ORGANIZATION_TIMEZONE: str = "UTC"
    DEFAULT_SLOT_GRANULARITY_MINUTES: int = 30
    # Max wait for the agent/day booking lock before ConcurrencyConflictError
    BOOKING_LOCK_TIMEOUT_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def booking_lock_timeout_ms(self) -> int:
        """Lock timeout in whole milliseconds (for database lock_timeout)."""
        return int(self.BOOKING_LOCK_TIMEOUT_SECONDS * 1000)


settings = Settings()
