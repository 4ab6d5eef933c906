"""
Application settings loaded from environment variables (and `.env`).
"""

import functools

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings. Field names mirror the env var names."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./wa_inbox.db"

    # WhatsApp Cloud API (defaults; the active DB config overrides them)
    WHATSAPP_VERIFY_TOKEN: str = "wa_inbox_verify_token"
    WHATSAPP_ACCESS_TOKEN: str = ""
    WHATSAPP_PHONE_NUMBER_ID: str = ""
    WHATSAPP_WEBHOOK_URL: str = ""
    WHATSAPP_APP_SECRET: str = ""
    WHATSAPP_ENCRYPTION_KEY: str = ""
    GRAPH_API_BASE_URL: str = "https://graph.facebook.com/v18.0"
    HTTP_TIMEOUT: float = 30.0

    # Media
    MEDIA_ROOT: str = "uploads"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # HTTP
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])


@functools.lru_cache()
def get_settings() -> Settings:
    """Get settings (cached)."""
    return Settings()
