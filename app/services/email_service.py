"""
Email Service - transactional email via the Resend HTTP API.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.services.notifier_config import NotifierConfig

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class EmailSender:
    """Sends HTML email through Resend. Never raises."""

    def __init__(self, config: NotifierConfig):
        self.config = config

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> SendResult:
        if not self.config.email_enabled:
            logger.warning("Resend not configured, skipping email")
            return SendResult(success=False, error="Email provider not configured")

        payload = {
            "from": self.config.resend_from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
                    timeout=self.config.timeout_seconds,
                )

            if response.status_code in [200, 201]:
                message_id = response.json().get("id")
                logger.info(f"Email sent: {message_id}")
                return SendResult(success=True, message_id=message_id)

            logger.error(f"Resend API Error {response.status_code}: {response.text}")
            return SendResult(success=False, error=f"Resend error {response.status_code}")

        except Exception as e:
            logger.error(f"Email send error: {e}")
            return SendResult(success=False, error=str(e))
