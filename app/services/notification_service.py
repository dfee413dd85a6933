"""
Notification Service - in-app notification inbox.
"""

import uuid
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.fsm.states import NotificationType
from app.models.notification import Notification
from app.periods import isoformat, utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for creating and reading in-app notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        body: Optional[str] = None,
        link: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            body=body,
            link=link,
            notification_metadata=metadata or {},
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        limit: int = 20,
        unread_only: bool = False,
        cursor: Optional[datetime] = None,
    ) -> tuple[list[Notification], Optional[datetime]]:
        """
        Newest-first page of notifications.

        Returns (items, next_cursor); next_cursor is the created_at of the
        last item when more rows exist.
        """
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit + 1)
        )
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        if cursor:
            query = query.where(Notification.created_at < cursor)

        result = await self.db.execute(query)
        items = list(result.scalars().all())

        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            next_cursor = items[-1].created_at

        return items, next_cursor

    async def unread_count(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.read_at.is_(None))
        )
        return result.scalar() or 0

    async def mark_read(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> Optional[Notification]:
        """Mark one of the user's notifications read. None if it isn't theirs."""
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        )
        notification = result.scalar_one_or_none()
        if not notification:
            return None

        if notification.read_at is None:
            notification.read_at = utcnow()
            await self.db.flush()
        return notification

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.read_at.is_(None))
            .values(read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Marked {result.rowcount} notifications read for user {user_id}")
        return result.rowcount

    # --- Merchant inbox helpers ---

    async def notify_payment_received(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        amount: Any,
        currency: str,
        product_name: str,
        reference_code: str,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.PAYMENT_RECEIVED.value,
            title="New Payment Received",
            body=f"{customer_phone} paid {currency} {amount:,} for {product_name}",
            link="/dashboard/payments",
            metadata={
                "customer_phone": customer_phone,
                "amount": str(amount),
                "currency": currency,
                "product_name": product_name,
                "reference_code": reference_code,
            },
        )

    async def notify_payment_confirmed(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        amount: Any,
        currency: str,
        reference_code: str,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.PAYMENT_CONFIRMED.value,
            title="Payment Confirmed",
            body=f"Payment of {currency} {amount:,} from {customer_phone} has been confirmed",
            link="/dashboard/payments",
            metadata={
                "customer_phone": customer_phone,
                "amount": str(amount),
                "currency": currency,
                "reference_code": reference_code,
            },
        )

    async def notify_new_subscriber(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        product_name: str,
        price_name: str,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.NEW_SUBSCRIBER.value,
            title="New Subscriber!",
            body=f"{customer_phone} subscribed to {product_name} ({price_name})",
            link="/dashboard/subscriptions",
            metadata={
                "customer_phone": customer_phone,
                "product_name": product_name,
                "price_name": price_name,
            },
        )

    async def notify_subscription_renewed(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        product_name: str,
        period_end: datetime,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.SUBSCRIPTION_RENEWED.value,
            title="Subscription Renewed",
            body=f"{customer_phone} renewed {product_name} until {period_end:%d %b %Y}",
            link="/dashboard/subscriptions",
            metadata={
                "customer_phone": customer_phone,
                "product_name": product_name,
                "current_period_end": isoformat(period_end),
            },
        )

    async def notify_subscription_expiring(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        product_name: str,
        days_left: int,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.SUBSCRIPTION_EXPIRING.value,
            title="Subscription Expiring Soon",
            body=f"{customer_phone}'s {product_name} subscription expires in {days_left} days",
            link="/dashboard/subscriptions",
            metadata={
                "customer_phone": customer_phone,
                "product_name": product_name,
                "days_left": days_left,
            },
        )

    async def notify_subscription_expired(
        self,
        merchant_id: uuid.UUID,
        customer_phone: str,
        product_name: str,
    ) -> Notification:
        return await self.create(
            user_id=merchant_id,
            type=NotificationType.SUBSCRIPTION_EXPIRED.value,
            title="Subscription Expired",
            body=f"{customer_phone}'s {product_name} subscription has expired",
            link="/dashboard/subscriptions",
            metadata={
                "customer_phone": customer_phone,
                "product_name": product_name,
            },
        )
