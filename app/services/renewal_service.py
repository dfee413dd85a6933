"""
Renewal Service - creates renewal invoices ahead of period end.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.fsm.states import PaymentStatus, PaymentType, PaymentMethod, SubscriptionStatus
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.periods import as_utc

logger = logging.getLogger(__name__)

RENEWAL_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_renewal_reference() -> str:
    return "REN-" + "".join(secrets.choice(RENEWAL_CODE_ALPHABET) for _ in range(8))


class RenewalService:
    """
    Generates at most one outstanding renewal payment per subscription.

    Safe to re-run: subscriptions that already have a pending renewal are
    skipped. Concurrent runs are not serialized here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def due_subscriptions(self, now: datetime) -> list[Subscription]:
        window_end = now + timedelta(days=settings.renewal_window_days)
        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.price), selectinload(Subscription.product))
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.current_period_end > now)
            .where(Subscription.current_period_end <= window_end)
            .order_by(Subscription.current_period_end)
        )
        return list(result.scalars().all())

    async def subscriptions_with_pending_renewal(self, subscription_ids: list) -> set:
        if not subscription_ids:
            return set()
        result = await self.db.execute(
            select(Payment.subscription_id)
            .where(Payment.subscription_id.in_(subscription_ids))
            .where(Payment.status == PaymentStatus.PENDING.value)
            .where(Payment.payment_type == PaymentType.RENEWAL.value)
        )
        return set(result.scalars().all())

    async def generate_renewals(self, now: datetime) -> list[Payment]:
        """Create renewal payments for subscriptions ending within the window."""
        due = await self.due_subscriptions(now)
        already_invoiced = await self.subscriptions_with_pending_renewal([s.id for s in due])

        created = []
        for subscription in due:
            if subscription.id in already_invoiced:
                continue

            price = subscription.price
            period_end = as_utc(subscription.current_period_end)

            payment = Payment(
                merchant_id=subscription.merchant_id,
                price_id=subscription.price_id,
                product_id=subscription.product_id,
                subscription_id=subscription.id,
                customer_phone=subscription.customer_phone,
                customer_email=subscription.customer_email,
                reference_code=generate_renewal_reference(),
                amount=price.amount,
                currency=price.currency,
                payment_method=PaymentMethod.PENDING.value,
                payment_type=PaymentType.RENEWAL.value,
                status=PaymentStatus.PENDING.value,
                expires_at=period_end + timedelta(days=price.grace_period_days),
                payment_metadata={
                    "renewal_for_period_end": period_end.isoformat(),
                    "product_name": subscription.product.name if subscription.product else None,
                    "billing_cycle": price.billing_cycle,
                },
            )
            self.db.add(payment)
            created.append(payment)

        if created:
            await self.db.flush()

        logger.info(
            f"Renewal run: {len(due)} due, {len(already_invoiced)} already invoiced, {len(created)} created"
        )
        return created
