"""
v1 Subscription Endpoints (API key).
"""

import uuid
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_api_merchant
from app.database import get_db
from app.fsm.machine import InvalidTransitionError
from app.models.subscription import Subscription
from app.periods import utcnow, isoformat
from app.services.subscription_service import SubscriptionService

router = APIRouter()
logger = logging.getLogger(__name__)


class CancelSubscriptionRequest(BaseModel):
    subscription_id: uuid.UUID
    cancel_immediately: bool = False
    reason: Optional[str] = None


def api_subscription_payload(subscription: Subscription) -> dict:
    product = subscription.product
    price = subscription.price
    return {
        "id": str(subscription.id),
        "status": subscription.status,
        "customer_phone": subscription.customer_phone,
        "customer_email": subscription.customer_email,
        "current_period_start": isoformat(subscription.current_period_start),
        "current_period_end": isoformat(subscription.current_period_end),
        "trial_end": isoformat(subscription.trial_end),
        "cancelled_at": isoformat(subscription.cancelled_at),
        "created_at": isoformat(subscription.created_at),
        "product": {
            "id": str(product.id),
            "name": product.name,
            "product_type": product.product_type,
        } if product else None,
        "price": {
            "id": str(price.id),
            "name": price.name,
            "amount": str(price.amount),
            "currency": price.currency,
            "billing_cycle": price.billing_cycle,
        } if price else None,
    }


@router.get("/subscriptions")
async def list_subscriptions(
    status: Optional[str] = Query(None),
    customer_phone: Optional[str] = Query(None),
    product_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    merchant_id=Depends(get_api_merchant),
    db: AsyncSession = Depends(get_db),
):
    subscriptions, total = await SubscriptionService(db).list_for_merchant(
        merchant_id,
        status=status,
        customer_phone=customer_phone,
        product_id=product_id,
        limit=limit,
        offset=offset,
    )
    return {
        "success": True,
        "subscriptions": [api_subscription_payload(s) for s in subscriptions],
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }


@router.post("/subscriptions/cancel")
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    merchant_id=Depends(get_api_merchant),
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel a subscription.

    By default access continues until the current period ends.
    """
    try:
        subscription = await SubscriptionService(db).cancel_via_api(
            subscription_id=request.subscription_id,
            merchant_id=merchant_id,
            now=utcnow(),
            cancel_immediately=request.cancel_immediately,
            reason=request.reason,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")

    message = (
        "Subscription cancelled immediately"
        if request.cancel_immediately
        else "Subscription will be cancelled at the end of the billing period"
    )
    return {"success": True, "message": message, "subscription_id": str(subscription.id)}
