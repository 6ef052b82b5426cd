# offersync/core/config.py

import os
from functools import lru_cache
from typing import List, Optional, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings, NoDecode


def _parse_email_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [email.strip() for email in value.split(",") if email.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(email).strip() for email in value if str(email).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./offersync.db"

    # Marketplace API
    MARKETPLACE_API_URL: str = "https://api.marketplace.example/v1"
    MARKETPLACE_ACCESS_TOKEN: str = ""
    MARKETPLACE_TIMEOUT: float = 30.0
    MARKETPLACE_PAGE_SIZE: int = 100
    DEFAULT_CURRENCY: str = "PLN"

    # Sync engine
    SYNC_BATCH_SIZE: int = 100
    SYNC_MAX_CONCURRENCY: int = 4   # Parallel item workers per strategy run
    SYNC_JOB_TIMEOUT_SECONDS: int = 1800
    SYNC_SCHEDULE_ENABLED: bool = False
    SYNC_SCHEDULE: str = "0 */4 * * *"
    SYNC_SCHEDULE_STRATEGY: str = "BIDIRECTIONAL"

    # Webhooks
    WEBHOOK_SECRET: str = ""
    WEBHOOK_RETRY_ENABLED: bool = False
    WEBHOOK_RETRY_INTERVAL_MINUTES: int = 15
    WEBHOOK_RETRY_MAX_ATTEMPTS: int = 5  # Scheduled sweep only; manual retries are unlimited

    # Basic Auth for operator endpoints
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # Email notifications
    NOTIFY_ON_ORDER_CREATED: bool = False
    NOTIFICATION_EMAILS: Annotated[List[str], NoDecode, BeforeValidator(lambda v: _parse_email_list(v))] = []

    # SMTP / Email
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SMTP_TIMEOUT: int = 30
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists(os.environ.get('ENV_FILE', '.env')) else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        """DATABASE_URL with the async driver applied for PostgreSQL."""
        url = self.DATABASE_URL
        if url.startswith('postgresql://'):
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return url


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()

def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()

