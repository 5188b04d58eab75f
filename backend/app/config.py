"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "Commerce Automation Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./automation.db"
    SQLALCHEMY_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis Settings (Celery broker + result backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Ingestion
    ABANDONED_CHECKOUT_THRESHOLD_MINUTES: int = 60

    # Execution scheduler
    RESUME_POLL_INTERVAL_SECONDS: int = 60
    RESUME_BATCH_LIMIT: int = 200
    EXECUTION_CONCURRENCY: int = 20
    STALE_EXECUTION_MINUTES: int = 10
    INPROCESS_RESUME_POLLER: bool = False

    # Quiet hours (store-local, used when the store sets none)
    DEFAULT_QUIET_HOURS_START: str = "21:00"
    DEFAULT_QUIET_HOURS_END: str = "08:00"

    # Retry defaults for channel calls
    RETRY_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0
    RETRY_BACKOFF_MULTIPLIER: float = 2.0
    RETRY_JITTER_MAX: float = 1.0

    # Circuit breaker (per channel)
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RECOVERY_TIMEOUT: float = 60.0

    # Upper bound on a single provider call
    CHANNEL_TIMEOUT_SECONDS: float = 15.0

    # Email provider
    RESEND_API_KEY: str = ""
    RESEND_API_URL: str = "https://api.resend.com"
    DEFAULT_FROM_EMAIL: str = "hello@example.com"
    DEFAULT_FROM_NAME: str = "Store"

    # SMS provider
    TELNYX_API_KEY: str = ""
    TELNYX_API_URL: str = "https://api.telnyx.com/v2"
    DEFAULT_SMS_FROM: str = ""

    # Batch campaigns
    CAMPAIGN_BATCH_SIZE: int = 100
    CAMPAIGN_BATCH_DELAY_SECONDS: float = 1.0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
