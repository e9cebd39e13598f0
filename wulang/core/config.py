"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Wulang Assistant")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Security
    webhook_secret: Optional[str] = Field(default=None, description="HMAC-SHA256 secret for webhook validation")

    # Database
    database_url: str = Field(default="sqlite:///./data/wulang.db")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    # Bot behaviour
    bot_name: str = Field(default="Wulang AI")
    trigger_keyword: str = Field(default="wulang", min_length=1)
    reset_keyword: str = Field(default="!reset", min_length=1)
    max_context_messages: int = Field(default=10, gt=0)

    # In-memory stores
    dedup_cache_max_size: int = Field(default=1000, gt=0)
    dedup_cache_retain: int = Field(default=500, gt=0)
    pending_media_max_age_hours: float = Field(default=24, gt=0)

    # Maintenance
    conversation_retention_days: int = Field(default=90, gt=0)
    maintenance_interval_hours: float = Field(default=24, gt=0)
    media_file_retention_hours: float = Field(default=24, gt=0)

    # Media
    max_media_size_mb: float = Field(default=10, gt=0)
    media_dir: str = Field(default="./data/media")

    # AI responder (OpenAI-compatible chat completions API)
    ai_api_base_url: str = Field(default="https://api.openai.com/v1")
    ai_api_key: Optional[str] = Field(default=None)
    ai_model: str = Field(default="gpt-4o-mini")
    ai_timeout_seconds: float = Field(default=60, gt=0)

    # Outbound replies to the transport bridge
    reply_webhook_url: Optional[str] = Field(default=None)
    reply_timeout_seconds: float = Field(default=10, gt=0)

    @property
    def is_webhook_secret_configured(self) -> bool:
        """Check if webhook secret is properly configured."""
        return bool(self.webhook_secret and len(self.webhook_secret) > 0)

    @property
    def is_ai_configured(self) -> bool:
        """Check if the AI responder has credentials."""
        return bool(self.ai_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
