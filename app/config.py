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

    LOG_LEVEL: str = "INFO"

    # Group parent id this deployment relays; other scopes are ignored
    SCOPE_ID: str

    # Allowed CORS origin for the read API and event stream ("*" when unset)
    FRONTEND_URL: Optional[str] = None

    # Live stream tuning
    SUBSCRIBER_QUEUE_SIZE: int = 256
    SSE_PING_SECONDS: int = 15


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
