"""
Webhook Service - signed event delivery to merchant endpoints.
"""

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.fsm.states import WebhookEvent
from app.models.webhook import Webhook, WebhookDelivery

logger = logging.getLogger(__name__)


def serialize_payload(payload: Any) -> str:
    """Compact JSON, the exact bytes covered by the signature."""
    return json.dumps(payload, separators=(",", ":"), default=str)


def sign_payload(secret: str, timestamp_ms: int, body: str) -> str:
    """HMAC-SHA256 hex digest of "<timestamp>.<body>"."""
    message = f"{timestamp_ms}.{body}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_signature(secret: str, timestamp_ms: int, body: str, signature: str) -> bool:
    return hmac.compare_digest(sign_payload(secret, timestamp_ms, body), signature)


def generate_webhook_secret() -> str:
    return f"whsec_{secrets.token_hex(24)}"


@dataclass
class DeliveryOutcome:
    webhook_id: uuid.UUID
    success: bool
    response_status: int = 0
    response_body: Optional[str] = None
    error: Optional[str] = None
    delivered_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        data = {"webhook_id": str(self.webhook_id), "success": self.success}
        if self.error:
            data["error"] = self.error
        return data


class WebhookDispatcher:
    """
    Delivers one event to every matching endpoint of a merchant.

    Endpoints are called concurrently and all outcomes are awaited.
    There is no retry: each attempt is logged once as a WebhookDelivery.
    """

    def __init__(
        self,
        db: AsyncSession,
        timeout: Optional[float] = None,
        header_prefix: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.timeout = timeout if timeout is not None else settings.webhook_timeout_seconds
        self.header_prefix = header_prefix or settings.webhook_header_prefix
        self.transport = transport

    async def get_subscribed_webhooks(self, merchant_id: uuid.UUID, event_type: str) -> list[Webhook]:
        result = await self.db.execute(
            select(Webhook)
            .where(Webhook.merchant_id == merchant_id)
            .where(Webhook.is_active.is_(True))
            .order_by(Webhook.created_at)
        )
        return [w for w in result.scalars().all() if w.subscribes_to(event_type)]

    async def dispatch(self, merchant_id: uuid.UUID, event_type: str, payload: dict) -> dict:
        """
        Deliver `payload` as `event_type`.

        Returns {"delivered", "total", "results"}. Only a failing webhook
        lookup raises; endpoint failures are reported per webhook.
        """
        webhooks = await self.get_subscribed_webhooks(merchant_id, event_type)
        if not webhooks:
            return {"delivered": 0, "total": 0, "results": []}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            outcomes = await asyncio.gather(
                *(self._deliver(client, webhook, event_type, payload) for webhook in webhooks)
            )

        for outcome in outcomes:
            self.db.add(
                WebhookDelivery(
                    webhook_id=outcome.webhook_id,
                    event_type=event_type,
                    payload=payload,
                    response_status=outcome.response_status,
                    response_body=outcome.response_body,
                    delivered_at=outcome.delivered_at,
                )
            )
        await self.db.flush()

        delivered = sum(1 for o in outcomes if o.success)
        logger.info(f"Webhook {event_type} for merchant {merchant_id}: {delivered}/{len(outcomes)} delivered")

        return {
            "delivered": delivered,
            "total": len(outcomes),
            "results": [o.as_dict() for o in outcomes],
        }

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        webhook: Webhook,
        event_type: str,
        payload: dict,
    ) -> DeliveryOutcome:
        timestamp_ms = int(time.time() * 1000)
        signature = sign_payload(webhook.secret, timestamp_ms, serialize_payload(payload))

        body = serialize_payload({
            "event": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        })
        headers = {
            "Content-Type": "application/json",
            f"{self.header_prefix}-Signature": signature,
            f"{self.header_prefix}-Timestamp": str(timestamp_ms),
            f"{self.header_prefix}-Event": event_type,
        }

        try:
            response = await client.post(webhook.url, content=body, headers=headers)
            return DeliveryOutcome(
                webhook_id=webhook.id,
                success=response.is_success,
                response_status=response.status_code,
                response_body=response.text,
                delivered_at=datetime.now(timezone.utc),
            )
        except Exception as e:
            logger.warning(f"Webhook delivery to {webhook.url} failed: {e}")
            return DeliveryOutcome(
                webhook_id=webhook.id,
                success=False,
                response_status=0,
                response_body=str(e),
                error=str(e),
            )

    async def safe_dispatch(self, merchant_id: uuid.UUID, event: WebhookEvent, payload: dict) -> Optional[dict]:
        """Dispatch without ever failing the caller or its transaction."""
        try:
            async with self.db.begin_nested():
                return await self.dispatch(merchant_id, event.value, payload)
        except Exception as e:
            logger.error(f"Webhook dispatch {event.value} for merchant {merchant_id} failed: {e}", exc_info=True)
            return None


class WebhookService:
    """Merchant webhook registration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, merchant_id: uuid.UUID, url: str, events: list[str]) -> Webhook:
        known = {e.value for e in WebhookEvent}
        unknown = [e for e in events if e not in known]
        if unknown:
            raise ValueError(f"Unknown webhook events: {', '.join(unknown)}")
        if not events:
            raise ValueError("At least one event is required")

        webhook = Webhook(
            merchant_id=merchant_id,
            url=url,
            events=list(dict.fromkeys(events)),
            secret=generate_webhook_secret(),
        )
        self.db.add(webhook)
        await self.db.flush()
        logger.info(f"Webhook registered for merchant {merchant_id}: {url}")
        return webhook

    async def list_for_merchant(self, merchant_id: uuid.UUID) -> list[Webhook]:
        result = await self.db.execute(
            select(Webhook)
            .where(Webhook.merchant_id == merchant_id)
            .order_by(Webhook.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_owned(self, webhook_id: uuid.UUID, merchant_id: uuid.UUID) -> Optional[Webhook]:
        webhook = await self.db.get(Webhook, webhook_id)
        if not webhook or webhook.merchant_id != merchant_id:
            return None
        return webhook

    async def delete(self, webhook_id: uuid.UUID, merchant_id: uuid.UUID) -> bool:
        webhook = await self.get_owned(webhook_id, merchant_id)
        if not webhook:
            return False
        await self.db.delete(webhook)
        await self.db.flush()
        return True

    async def list_deliveries(self, webhook_id: uuid.UUID, limit: int = 50) -> list[WebhookDelivery]:
        result = await self.db.execute(
            select(WebhookDelivery)
            .where(WebhookDelivery.webhook_id == webhook_id)
            .order_by(WebhookDelivery.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
