"""
Reminder Service - customer renewal reminders and expiration notices.
"""

import math
import uuid
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.fsm.states import SubscriptionStatus
from app.models.subscription import Subscription
from app.models.user import User
from app.periods import as_utc
from app.services.notification_service import NotificationService
from app.services.notifier_config import NotifierConfig, get_notifier_config
from app.services.platform_notifier import PlatformNotifier

logger = logging.getLogger(__name__)


def days_until(moment: datetime, now: datetime) -> int:
    return math.ceil((as_utc(moment) - now).total_seconds() / 86400)


class ReminderService:
    """
    Tells customers (and their merchant) about subscriptions ending soon or
    just expired.

    Reminders go out once per subscription when a daily run finds its
    period ending within the last day of the reminder window.
    """

    def __init__(self, db: AsyncSession, notifier_config: Optional[NotifierConfig] = None):
        self.db = db
        self.notifier_config = notifier_config or get_notifier_config()

    async def expiring_subscriptions(self, now: datetime, days_ahead: Optional[int] = None) -> list[Subscription]:
        days_ahead = days_ahead or settings.renewal_reminder_days
        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.product), selectinload(Subscription.price))
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.cancelled_at.is_(None))
            .where(Subscription.current_period_end > now + timedelta(days=days_ahead - 1))
            .where(Subscription.current_period_end <= now + timedelta(days=days_ahead))
            .order_by(Subscription.current_period_end)
        )
        return list(result.scalars().all())

    async def send_renewal_reminders(self, now: datetime, days_ahead: Optional[int] = None) -> int:
        """Remind customers whose period ends in `days_ahead` days. Returns the number reminded."""
        sent = 0
        for subscription in await self.expiring_subscriptions(now, days_ahead):
            if await self._remind(subscription, now):
                sent += 1

        logger.info(f"Sent {sent} renewal reminders")
        return sent

    async def send_expiration_notices(self, subscription_ids: list[uuid.UUID]) -> int:
        """Notify customers and merchants about subscriptions that just expired."""
        if not subscription_ids:
            return 0

        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.product), selectinload(Subscription.price))
            .where(Subscription.id.in_(subscription_ids))
        )
        sent = 0
        for subscription in result.scalars().all():
            if await self._notify_expired(subscription):
                sent += 1

        logger.info(f"Sent {sent} expiration notices")
        return sent

    def _renew_url(self, subscription: Subscription) -> str:
        return f"{self.notifier_config.app_url}/checkout/{subscription.product_id}"

    async def _remind(self, subscription: Subscription, now: datetime) -> bool:
        subscription_id = subscription.id
        try:
            async with self.db.begin_nested():
                merchant = await self.db.get(User, subscription.merchant_id)
                product_name = subscription.product.name if subscription.product else "your subscription"
                days_left = days_until(subscription.current_period_end, now)

                await NotificationService(self.db).notify_subscription_expiring(
                    merchant_id=merchant.id,
                    customer_phone=subscription.customer_phone,
                    product_name=product_name,
                    days_left=days_left,
                )
                await PlatformNotifier(self.db, self.notifier_config).notify_customer_renewal_reminder(
                    merchant, subscription, product_name, days_left, self._renew_url(subscription)
                )
                await self.db.flush()
            return True
        except Exception as e:
            logger.error(f"Renewal reminder failed for subscription {subscription_id}: {e}", exc_info=True)
            return False

    async def _notify_expired(self, subscription: Subscription) -> bool:
        subscription_id = subscription.id
        try:
            async with self.db.begin_nested():
                merchant = await self.db.get(User, subscription.merchant_id)
                product_name = subscription.product.name if subscription.product else "your subscription"

                await NotificationService(self.db).notify_subscription_expired(
                    merchant_id=merchant.id,
                    customer_phone=subscription.customer_phone,
                    product_name=product_name,
                )
                await PlatformNotifier(self.db, self.notifier_config).notify_customer_subscription_expired(
                    merchant, subscription, product_name, self._renew_url(subscription)
                )
                await self.db.flush()
            return True
        except Exception as e:
            logger.error(f"Expiration notice failed for subscription {subscription_id}: {e}", exc_info=True)
            return False
