"""
Subscription Endpoints (dashboard).
"""

import uuid
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.database import get_db
from app.fsm.machine import InvalidTransitionError
from app.models.user import User
from app.periods import utcnow
from app.services.subscription_service import SubscriptionService, subscription_payload

router = APIRouter()
logger = logging.getLogger(__name__)


class SubscriptionActionRequest(BaseModel):
    """Request body for a lifecycle action."""
    action: str
    reason: Optional[str] = None
    resume_at: Optional[datetime] = None


@router.get("")
async def list_subscriptions(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    subscriptions, total = await SubscriptionService(db).list_for_merchant(
        user.id, status=status, limit=limit, offset=offset
    )
    return {
        "subscriptions": [subscription_payload(s) for s in subscriptions],
        "total": total,
    }


@router.patch("/{subscription_id}")
async def update_subscription(
    subscription_id: uuid.UUID,
    request: SubscriptionActionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Pause, resume, cancel or reactivate one of the merchant's subscriptions."""
    try:
        subscription = await SubscriptionService(db).apply_action(
            subscription_id=subscription_id,
            merchant_id=user.id,
            action=request.action,
            now=utcnow(),
            resume_at=request.resume_at,
            reason=request.reason,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")

    return {"success": True, "subscription": subscription_payload(subscription)}
