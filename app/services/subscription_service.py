"""
Subscription Service - lifecycle actions, activation and expiry.
"""

import uuid
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.fsm.machine import InvalidTransitionError, apply_action
from app.fsm.states import SubscriptionAction, SubscriptionStatus, PaymentType, WebhookEvent
from app.models.payment import Payment
from app.models.product import Price
from app.models.subscription import Subscription
from app.periods import as_utc, isoformat, period_end, next_period_end

logger = logging.getLogger(__name__)

# Renewal payments for these restart the subscription through the state machine
LAPSED_STATUSES = (SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value)


def subscription_payload(subscription: Subscription) -> dict:
    """Public representation used in API responses and webhook payloads."""
    return {
        "id": str(subscription.id),
        "merchant_id": str(subscription.merchant_id),
        "product_id": str(subscription.product_id),
        "price_id": str(subscription.price_id),
        "customer_phone": subscription.customer_phone,
        "customer_email": subscription.customer_email,
        "status": subscription.status,
        "current_period_start": isoformat(subscription.current_period_start),
        "current_period_end": isoformat(subscription.current_period_end),
        "trial_end": isoformat(subscription.trial_end),
        "paused_at": isoformat(subscription.paused_at),
        "resume_at": isoformat(subscription.resume_at),
        "cancelled_at": isoformat(subscription.cancelled_at),
        "cancelled_reason": subscription.cancelled_reason,
        "created_at": isoformat(subscription.created_at),
    }


class SubscriptionService:
    """Service for merchant-side subscription management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_owned(self, subscription_id: uuid.UUID, merchant_id: uuid.UUID) -> Optional[Subscription]:
        """Subscription by id, or None when missing or owned by another merchant."""
        subscription = await self.db.get(Subscription, subscription_id)
        if not subscription or subscription.merchant_id != merchant_id:
            return None
        return subscription

    async def apply_action(
        self,
        subscription_id: uuid.UUID,
        merchant_id: uuid.UUID,
        action: str,
        now: datetime,
        resume_at: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> Optional[Subscription]:
        """
        Run a lifecycle action for the owning merchant.

        Returns None when the subscription is not the merchant's.
        Raises InvalidTransitionError for unknown or disallowed actions.
        """
        subscription = await self.get_owned(subscription_id, merchant_id)
        if not subscription:
            return None

        try:
            lifecycle_action = SubscriptionAction(action)
        except ValueError:
            raise InvalidTransitionError("Invalid action")

        apply_action(subscription, lifecycle_action, now, resume_at=resume_at, reason=reason)
        await self.db.flush()
        return subscription

    async def list_for_merchant(
        self,
        merchant_id: uuid.UUID,
        status: Optional[str] = None,
        customer_phone: Optional[str] = None,
        product_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Subscription], int]:
        """Filtered newest-first page plus the total matching count."""
        filters = [Subscription.merchant_id == merchant_id]
        if status:
            filters.append(Subscription.status == status)
        if customer_phone:
            filters.append(Subscription.customer_phone == customer_phone)
        if product_id:
            filters.append(Subscription.product_id == product_id)

        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.product), selectinload(Subscription.price))
            .where(*filters)
            .order_by(Subscription.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        count = await self.db.execute(select(func.count(Subscription.id)).where(*filters))
        return list(result.scalars().all()), count.scalar() or 0

    async def cancel_via_api(
        self,
        subscription_id: uuid.UUID,
        merchant_id: uuid.UUID,
        now: datetime,
        cancel_immediately: bool = False,
        reason: Optional[str] = None,
    ) -> Optional[Subscription]:
        """
        Cancel from the merchant API.

        Without cancel_immediately only cancelled_at is stamped and access
        runs until the end of the current period.
        """
        subscription = await self.get_owned(subscription_id, merchant_id)
        if not subscription:
            return None

        if cancel_immediately:
            apply_action(subscription, SubscriptionAction.CANCEL, now, reason=reason)
        else:
            if subscription.status == SubscriptionStatus.CANCELLED.value:
                raise InvalidTransitionError("Subscription is already cancelled")
            subscription.cancelled_at = now
            subscription.cancelled_reason = reason
            subscription.updated_at = now

        await self.db.flush()
        return subscription

    async def activate_from_payment(self, payment: Payment, now: datetime) -> tuple[Subscription, WebhookEvent]:
        """
        Grant access for a confirmed payment.

        Renewal payments extend their subscription by one cycle. A cancelled
        or expired subscription is reactivated and restarts from now; a paused
        one stays paused. Initial payments create a new active subscription.
        """
        if payment.payment_type == PaymentType.RENEWAL.value and payment.subscription_id:
            subscription = await self.db.get(Subscription, payment.subscription_id)
            if subscription:
                price = await self.db.get(Price, subscription.price_id)
                event = WebhookEvent.SUBSCRIPTION_RENEWED

                if subscription.status in LAPSED_STATUSES:
                    # Paying for a lapsed subscription restarts it from today
                    apply_action(subscription, SubscriptionAction.REACTIVATE, now)
                    base = now
                    event = WebhookEvent.SUBSCRIPTION_ACTIVATED
                else:
                    base = max(now, as_utc(subscription.current_period_end))
                    if subscription.status != SubscriptionStatus.PAUSED.value:
                        subscription.status = SubscriptionStatus.ACTIVE.value

                subscription.current_period_start = base
                subscription.current_period_end = next_period_end(base, price.billing_cycle)
                subscription.updated_at = now
                await self.db.flush()
                logger.info(f"Subscription {subscription.id} renewed until {subscription.current_period_end}")
                return subscription, event
            logger.warning(f"Renewal payment {payment.reference_code} has no subscription, creating one")

        price = await self.db.get(Price, payment.price_id)
        if not price:
            raise ValueError(f"Payment {payment.reference_code} has no price")

        subscription = Subscription(
            merchant_id=payment.merchant_id,
            product_id=price.product_id,
            price_id=price.id,
            payment_id=payment.id,
            customer_phone=payment.customer_phone,
            customer_email=payment.customer_email,
            status=SubscriptionStatus.ACTIVE.value,
            current_period_start=now,
            current_period_end=period_end(now, price.billing_cycle, price.trial_days),
            trial_end=now + timedelta(days=price.trial_days) if price.trial_days > 0 else None,
        )
        self.db.add(subscription)
        await self.db.flush()

        payment.subscription_id = subscription.id
        await self.db.flush()

        logger.info(f"Subscription {subscription.id} created for {payment.customer_phone}")
        return subscription, WebhookEvent.SUBSCRIPTION_CREATED

    async def process_expiry(self, now: datetime) -> dict:
        """
        Move lapsed subscriptions forward.

        active with the period ended inside the grace window -> past_due,
        active/past_due ended before the grace window -> expired.
        """
        grace_start = now - timedelta(days=settings.subscription_grace_days)

        past_due = await self.db.execute(
            update(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.current_period_end < now)
            .where(Subscription.current_period_end >= grace_start)
            .values(status=SubscriptionStatus.PAST_DUE.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        expired = await self.db.execute(
            update(Subscription)
            .where(Subscription.status.in_([
                SubscriptionStatus.ACTIVE.value,
                SubscriptionStatus.PAST_DUE.value,
            ]))
            .where(Subscription.current_period_end < grace_start)
            .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
            .returning(Subscription.id, Subscription.merchant_id)
            .execution_options(synchronize_session=False)
        )
        expired_rows = expired.all()

        logger.info(f"Expiry run: {past_due.rowcount} past_due, {len(expired_rows)} expired")
        return {
            "past_due": past_due.rowcount,
            "expired": len(expired_rows),
            "expired_subscriptions": [(row.id, row.merchant_id) for row in expired_rows],
        }
