"""
v1 Internal Webhook Trigger (cron secret).
"""

import uuid
import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import verify_cron_secret
from app.database import get_db
from app.fsm.states import WebhookEvent
from app.services.webhook_service import WebhookDispatcher

router = APIRouter()
logger = logging.getLogger(__name__)


class DeliverRequest(BaseModel):
    merchant_id: uuid.UUID
    event_type: WebhookEvent
    payload: dict


@router.post("/webhooks/deliver")
async def deliver_webhook(
    request: DeliverRequest,
    db: AsyncSession = Depends(get_db),
    _: None = Depends(verify_cron_secret),
):
    try:
        result = await WebhookDispatcher(db).dispatch(
            request.merchant_id, request.event_type.value, request.payload
        )
    except Exception as e:
        logger.error(f"Webhook delivery failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to deliver webhook")

    return {"success": True, **result}
