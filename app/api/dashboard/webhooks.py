"""
Merchant Webhook Endpoints.
Registration and delivery history.
"""

import uuid
import logging

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, HttpUrl
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.models.webhook import Webhook, WebhookDelivery
from app.models.user import User
from app.periods import isoformat
from app.services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateWebhookRequest(BaseModel):
    url: HttpUrl
    events: list[str]


def webhook_payload(webhook: Webhook, include_secret: bool = False) -> dict:
    data = {
        "id": str(webhook.id),
        "url": webhook.url,
        "events": webhook.events,
        "is_active": webhook.is_active,
        "created_at": isoformat(webhook.created_at),
    }
    if include_secret:
        data["secret"] = webhook.secret
    return data


def delivery_payload(delivery: WebhookDelivery) -> dict:
    return {
        "id": str(delivery.id),
        "event_type": delivery.event_type,
        "payload": delivery.payload,
        "response_status": delivery.response_status,
        "response_body": delivery.response_body,
        "delivered_at": isoformat(delivery.delivered_at),
        "created_at": isoformat(delivery.created_at),
    }


@router.get("")
async def list_webhooks(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    webhooks = await WebhookService(db).list_for_merchant(user.id)
    return {"webhooks": [webhook_payload(w) for w in webhooks]}


@router.post("", status_code=201)
async def create_webhook(
    request: CreateWebhookRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register an endpoint. The signing secret is returned only here."""
    try:
        webhook = await WebhookService(db).register(user.id, str(request.url), request.events)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"webhook": webhook_payload(webhook, include_secret=True)}


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not await WebhookService(db).delete(webhook_id, user.id):
        raise HTTPException(status_code=404, detail="Webhook not found")
    return {"success": True}


@router.get("/{webhook_id}/deliveries")
async def list_webhook_deliveries(
    webhook_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = WebhookService(db)
    if not await service.get_owned(webhook_id, user.id):
        raise HTTPException(status_code=404, detail="Webhook not found")

    deliveries = await service.list_deliveries(webhook_id, limit=limit)
    return {"deliveries": [delivery_payload(d) for d in deliveries]}
