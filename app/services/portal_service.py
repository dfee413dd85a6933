"""
Portal Service - lets a customer find their own subscriptions and payments by phone.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.payment import Payment
from app.models.product import Product
from app.models.subscription import Subscription
from app.models.user import User
from app.periods import isoformat
from app.services.reminder_service import days_until
from app.services.sms_service import normalize_phone

logger = logging.getLogger(__name__)

PAYMENT_HISTORY_LIMIT = 20


class PortalService:
    """Read-only customer lookup across all merchants."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lookup(self, phone: str, now: datetime) -> dict:
        """
        Subscriptions (newest first) and the latest payments for a phone number.

        The number is matched both as typed and normalised to +211 form.
        """
        candidates = {phone.strip(), normalize_phone(phone)}

        result = await self.db.execute(
            select(Subscription)
            .options(selectinload(Subscription.product), selectinload(Subscription.price))
            .where(Subscription.customer_phone.in_(candidates))
            .order_by(Subscription.created_at.desc())
        )
        subscriptions = list(result.scalars().all())

        merchant_ids = {s.merchant_id for s in subscriptions}
        merchants = {}
        if merchant_ids:
            rows = await self.db.execute(select(User).where(User.id.in_(merchant_ids)))
            merchants = {user.id: user for user in rows.scalars().all()}

        payments = await self.db.execute(
            select(Payment, Product.name)
            .outerjoin(Product, Payment.product_id == Product.id)
            .where(Payment.customer_phone.in_(candidates))
            .order_by(Payment.created_at.desc())
            .limit(PAYMENT_HISTORY_LIMIT)
        )

        return {
            "subscriptions": [
                self._subscription_entry(s, merchants.get(s.merchant_id), now) for s in subscriptions
            ],
            "payments": [
                {
                    "id": str(payment.id),
                    "reference_code": payment.reference_code,
                    "amount": str(payment.amount),
                    "currency": payment.currency,
                    "status": payment.status,
                    "created_at": isoformat(payment.created_at),
                    "product_name": product_name or "Unknown Product",
                }
                for payment, product_name in payments.all()
            ],
        }

    @staticmethod
    def _subscription_entry(subscription: Subscription, merchant, now: datetime) -> dict:
        product, price = subscription.product, subscription.price
        return {
            "id": str(subscription.id),
            "status": subscription.status,
            "product_id": str(subscription.product_id),
            "product_name": product.name if product else "Unknown Product",
            "price_name": price.name if price else "Unknown Plan",
            "amount": str(price.amount) if price else "0",
            "currency": price.currency if price else "SSP",
            "billing_cycle": price.billing_cycle if price else "monthly",
            "current_period_start": isoformat(subscription.current_period_start),
            "current_period_end": isoformat(subscription.current_period_end),
            "days_remaining": days_until(subscription.current_period_end, now),
            "merchant_name": (merchant.business_name or merchant.display_name) if merchant else "Unknown Business",
        }
