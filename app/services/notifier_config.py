"""
Notification provider configuration.

Built once from settings and handed to the senders explicitly.
"""

from dataclasses import dataclass
from functools import lru_cache

from app.config import Settings, settings


@dataclass(frozen=True)
class NotifierConfig:
    resend_api_key: str = ""
    resend_from_email: str = ""
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    at_api_key: str = ""
    at_username: str = ""
    at_sender_id: str = "Payssd"
    admin_email: str = ""
    admin_phone: str = ""
    app_url: str = ""
    timeout_seconds: float = 10.0

    @classmethod
    def from_settings(cls, source: Settings) -> "NotifierConfig":
        return cls(
            resend_api_key=source.resend_api_key,
            resend_from_email=source.resend_from_email,
            twilio_account_sid=source.twilio_account_sid,
            twilio_auth_token=source.twilio_auth_token,
            twilio_from_number=source.twilio_from_number,
            at_api_key=source.at_api_key,
            at_username=source.at_username,
            at_sender_id=source.at_sender_id,
            admin_email=source.admin_email,
            admin_phone=source.admin_phone,
            app_url=source.app_url.rstrip("/"),
        )

    @property
    def email_enabled(self) -> bool:
        return bool(self.resend_api_key)

    @property
    def twilio_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)

    @property
    def africastalking_enabled(self) -> bool:
        return bool(self.at_api_key and self.at_username)


@lru_cache
def get_notifier_config() -> NotifierConfig:
    """Process-wide notifier configuration (FastAPI dependency)."""
    return NotifierConfig.from_settings(settings)
