from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration - required from .env
    LOG_LEVEL: str

    # Outbound webhook signing - required from .env
    WEBHOOK_SECRET: str

    # Where MESSAGE_RECEIVED notifications are posted (disabled when unset)
    WEBHOOK_URL: Optional[str] = None
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Service account JSON for FCM; application default credentials otherwise
    FIREBASE_CREDENTIALS_PATH: Optional[str] = None

    # Monthly SMS units per owner and direction (unlimited when unset)
    QUOTA_MONTHLY_LIMIT: Optional[int] = None

    BULK_RECIPIENT_LIMIT: int = 50
    RECEIVED_SMS_LIMIT: int = 200


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
