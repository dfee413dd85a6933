"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "payssd"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    secret_key: str
    app_url: str = "https://www.losetify.com"

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str = ""
    database_ssl: bool = True

    # Redis (Celery broker + job locks)
    redis_url: str = "redis://localhost:6379/0"

    # Session tokens issued by the auth provider
    auth_jwt_secret: str = ""

    # Shared secret for cron-triggered endpoints
    cron_secret: str = ""

    # Resend (email)
    resend_api_key: str = ""
    resend_from_email: str = "Losetify <notifications@losetify.com>"

    # Twilio (SMS)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # Africa's Talking (SMS)
    at_api_key: str = ""
    at_username: str = ""
    at_sender_id: str = "Payssd"

    # Platform admin contact
    admin_email: str = "admin@losetify.com"
    admin_phone: str = ""

    # Billing
    payment_expiry_hours: int = 24
    renewal_window_days: int = 7
    subscription_grace_days: int = 7
    renewal_reminder_days: int = 3

    # Outbound webhooks
    webhook_timeout_seconds: float = 10.0
    webhook_header_prefix: str = "X-Losetify"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
