"""
SMS Service - Africa's Talking (primary, East Africa) with Twilio fallback.
"""

import logging
import re

import httpx

from app.services.email_service import SendResult
from app.services.notifier_config import NotifierConfig

logger = logging.getLogger(__name__)

AFRICASTALKING_API_URL = "https://api.africastalking.com/version1/messaging"
TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

SOUTH_SUDAN_CODE = "211"


def normalize_phone(phone: str) -> str:
    """
    Normalize to E.164, assuming South Sudan when no country code is given.

    0912345678 -> +211912345678, 211912345678 -> +211912345678
    """
    digits = re.sub(r"\D", "", phone)
    if phone.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith(SOUTH_SUDAN_CODE):
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{SOUTH_SUDAN_CODE}{digits[1:]}"
    if len(digits) == 9:
        return f"+{SOUTH_SUDAN_CODE}{digits}"
    return f"+{digits}"


class SmsSender:
    """Tries each configured provider in order until one accepts the message."""

    def __init__(self, config: NotifierConfig):
        self.config = config

    async def send(self, to: str, message: str) -> SendResult:
        phone = normalize_phone(to)
        providers = []
        if self.config.africastalking_enabled:
            providers.append(self._send_africastalking)
        if self.config.twilio_enabled:
            providers.append(self._send_twilio)

        if not providers:
            logger.warning("No SMS provider configured, skipping SMS")
            return SendResult(success=False, error="SMS provider not configured")

        last_error = None
        for provider in providers:
            result = await provider(phone, message)
            if result.success:
                return result
            last_error = result.error

        return SendResult(success=False, error=last_error or "All SMS providers failed")

    async def _send_africastalking(self, phone: str, message: str) -> SendResult:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    AFRICASTALKING_API_URL,
                    data={
                        "username": self.config.at_username,
                        "to": phone,
                        "message": message,
                        "from": self.config.at_sender_id,
                    },
                    headers={
                        "Accept": "application/json",
                        "apiKey": self.config.at_api_key,
                    },
                    timeout=self.config.timeout_seconds,
                )

            recipients = response.json().get("SMSMessageData", {}).get("Recipients", [])
            if recipients and recipients[0].get("status") == "Success":
                return SendResult(success=True, message_id=recipients[0].get("messageId"))

            status = recipients[0].get("status") if recipients else f"HTTP {response.status_code}"
            logger.error(f"Africa's Talking rejected SMS to {phone}: {status}")
            return SendResult(success=False, error=status)

        except Exception as e:
            logger.error(f"Africa's Talking error: {e}")
            return SendResult(success=False, error=str(e))

    async def _send_twilio(self, phone: str, message: str) -> SendResult:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    TWILIO_API_URL.format(sid=self.config.twilio_account_sid),
                    data={
                        "To": phone,
                        "From": self.config.twilio_from_number,
                        "Body": message,
                    },
                    auth=(self.config.twilio_account_sid, self.config.twilio_auth_token),
                    timeout=self.config.timeout_seconds,
                )

            data = response.json()
            if data.get("sid"):
                logger.info(f"SMS sent: {data['sid']}")
                return SendResult(success=True, message_id=data["sid"])

            logger.error(f"Twilio API Error {response.status_code}: {data.get('message')}")
            return SendResult(success=False, error=data.get("message") or "Unknown error")

        except Exception as e:
            logger.error(f"Twilio error: {e}")
            return SendResult(success=False, error=str(e))
