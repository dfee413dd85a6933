"""
Payment Service - manual payment creation, claim matching and reconciliation.
"""

import uuid
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.fsm.states import PaymentStatus, PaymentType, PaymentMethod, WebhookEvent
from app.models.payment import Payment
from app.models.product import Price, Product
from app.models.subscription import Subscription
from app.models.user import User
from app.periods import isoformat
from app.services.notification_service import NotificationService
from app.services.notifier_config import NotifierConfig, get_notifier_config
from app.services.platform_notifier import PlatformNotifier
from app.services.subscription_service import SubscriptionService, subscription_payload
from app.services.webhook_service import WebhookDispatcher

logger = logging.getLogger(__name__)

REFERENCE_CODE_LENGTH = 10

# Statuses a merchant may still confirm or reject
OPEN_STATUSES = (PaymentStatus.PENDING.value, PaymentStatus.MATCHED.value)


def generate_reference_code() -> str:
    """10-digit numeric code the customer quotes in their transfer."""
    return "".join(secrets.choice(string.digits) for _ in range(REFERENCE_CODE_LENGTH))


def payment_payload(payment: Payment) -> dict:
    return {
        "id": str(payment.id),
        "merchant_id": str(payment.merchant_id),
        "price_id": str(payment.price_id) if payment.price_id else None,
        "product_id": str(payment.product_id) if payment.product_id else None,
        "subscription_id": str(payment.subscription_id) if payment.subscription_id else None,
        "reference_code": payment.reference_code,
        "customer_phone": payment.customer_phone,
        "customer_email": payment.customer_email,
        "amount": str(payment.amount),
        "currency": payment.currency,
        "payment_method": payment.payment_method,
        "payment_type": payment.payment_type,
        "status": payment.status,
        "transaction_id": payment.transaction_id,
        "proof_url": payment.proof_url,
        "matched_at": isoformat(payment.matched_at),
        "confirmed_at": isoformat(payment.confirmed_at),
        "rejection_reason": payment.rejection_reason,
        "expires_at": isoformat(payment.expires_at),
        "metadata": payment.payment_metadata or {},
        "created_at": isoformat(payment.created_at),
    }


def merchant_instructions(merchant: User) -> dict:
    """Where the customer should send the money."""
    return {
        "business_name": merchant.business_name or merchant.display_name,
        "mtn_momo_number": merchant.mtn_momo_number,
        "bank_name": merchant.bank_name,
        "bank_account_number": merchant.bank_account_number,
        "bank_account_name": merchant.bank_account_name,
    }


class PaymentService:
    """Service for the manual payment flow."""

    def __init__(self, db: AsyncSession, notifier_config: Optional[NotifierConfig] = None):
        self.db = db
        self.notifier_config = notifier_config or get_notifier_config()

    async def get_by_reference(self, reference_code: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.reference_code == reference_code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_owned(self, payment_id: uuid.UUID, merchant_id: uuid.UUID) -> Optional[Payment]:
        payment = await self.db.get(Payment, payment_id)
        if not payment or payment.merchant_id != merchant_id:
            return None
        return payment

    async def list_for_merchant(
        self,
        merchant_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Payment]:
        query = select(Payment).where(Payment.merchant_id == merchant_id)
        if status:
            query = query.where(Payment.status == status)
        result = await self.db.execute(
            query.order_by(Payment.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    # --- Creation ---

    async def _unused_reference_code(self) -> str:
        for _ in range(5):
            code = generate_reference_code()
            if not await self.get_by_reference(code):
                return code
        raise RuntimeError("Could not allocate a unique reference code")

    async def create_payment(
        self,
        merchant_id: uuid.UUID,
        price_id: uuid.UUID,
        customer_phone: str,
        now: datetime,
        customer_email: Optional[str] = None,
        payment_method: str = PaymentMethod.MTN_MOMO.value,
    ) -> Optional[tuple[Payment, dict]]:
        """
        Open a pending initial payment for one of the merchant's prices.

        Returns (payment, payout instructions), or None if the price is not
        an active price of the merchant.
        """
        result = await self.db.execute(
            select(Price, Product)
            .join(Product, Price.product_id == Product.id)
            .where(Price.id == price_id)
            .where(Product.merchant_id == merchant_id)
            .where(Price.is_active.is_(True))
        )
        row = result.first()
        if not row:
            return None
        price, product = row

        merchant = await self.db.get(User, merchant_id)

        payment = Payment(
            merchant_id=merchant_id,
            price_id=price.id,
            product_id=product.id,
            customer_phone=customer_phone,
            customer_email=customer_email,
            reference_code=await self._unused_reference_code(),
            amount=price.amount,
            currency=price.currency,
            payment_method=payment_method,
            payment_type=PaymentType.INITIAL.value,
            status=PaymentStatus.PENDING.value,
            expires_at=now + timedelta(hours=settings.payment_expiry_hours),
            payment_metadata={"product_name": product.name, "price_name": price.name},
        )
        self.db.add(payment)
        await self.db.flush()

        logger.info(f"Payment {payment.reference_code} created for {customer_phone}: {payment.amount} {payment.currency}")

        await WebhookDispatcher(self.db).safe_dispatch(
            merchant_id, WebhookEvent.PAYMENT_CREATED, payment_payload(payment)
        )
        return payment, merchant_instructions(merchant)

    # --- Claim matching ---

    async def submit_claim(
        self,
        reference_code: str,
        now: datetime,
        transaction_id: Optional[str] = None,
        proof_url: Optional[str] = None,
    ) -> Optional[Payment]:
        """
        Attach a customer's payment evidence to a pending payment.

        With evidence the payment moves pending -> matched; without it the
        row is only touched. Returns None when no pending payment carries
        the code, leaving any existing row unchanged.
        """
        has_evidence = bool(transaction_id or proof_url)

        if has_evidence:
            values = {
                "status": PaymentStatus.MATCHED.value,
                "transaction_id": transaction_id,
                "proof_url": proof_url,
                "matched_at": now,
                "updated_at": now,
            }
        else:
            values = {"updated_at": now}

        result = await self.db.execute(
            update(Payment)
            .where(Payment.reference_code == reference_code)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"Claim for {reference_code} did not match a pending payment")
            return None

        payment = await self.get_by_reference(reference_code)
        logger.info(f"Claim recorded for {reference_code} (evidence={has_evidence})")

        await self._notify_claim(payment)
        if payment.status == PaymentStatus.MATCHED.value:
            await WebhookDispatcher(self.db).safe_dispatch(
                payment.merchant_id, WebhookEvent.PAYMENT_MATCHED, payment_payload(payment)
            )
        return payment

    async def _notify_claim(self, payment: Payment) -> None:
        """Best-effort merchant and admin notifications for a new claim."""
        reference_code = payment.reference_code
        try:
            async with self.db.begin_nested():
                merchant = await self.db.get(User, payment.merchant_id)
                product = await self.db.get(Product, payment.product_id) if payment.product_id else None
                product_name = product.name if product else "Unknown product"

                await NotificationService(self.db).notify_payment_received(
                    merchant_id=merchant.id,
                    customer_phone=payment.customer_phone,
                    amount=payment.amount,
                    currency=payment.currency,
                    product_name=product_name,
                    reference_code=reference_code,
                )

                notifier = PlatformNotifier(self.db, self.notifier_config)
                await notifier.notify_merchant_payment_pending(merchant, payment, product_name)
                await notifier.notify_admin_payment_pending(merchant, payment, product_name)
                await self.db.flush()
        except Exception as e:
            logger.error(f"Claim notifications failed for {reference_code}: {e}", exc_info=True)

    # --- Reconciliation ---

    async def _close(
        self,
        payment_id: uuid.UUID,
        merchant_id: uuid.UUID,
        values: dict,
    ) -> Optional[Payment]:
        """Conditionally move an open payment of the merchant to a final status."""
        result = await self.db.execute(
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.merchant_id == merchant_id)
            .where(Payment.status.in_(OPEN_STATUSES))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.db.get(Payment, payment_id, populate_existing=True)

    async def confirm_payment(
        self,
        payment_id: uuid.UUID,
        merchant_id: uuid.UUID,
        now: datetime,
        confirmed_by: Optional[str] = None,
    ) -> Optional[tuple[Payment, dict]]:
        """
        Confirm money received and grant access.

        Returns (payment, subscription payload), or None when the payment is
        not the merchant's or is no longer open.
        """
        payment = await self._close(payment_id, merchant_id, {
            "status": PaymentStatus.CONFIRMED.value,
            "confirmed_at": now,
            "confirmed_by": confirmed_by,
            "updated_at": now,
        })
        if not payment:
            return None

        subscription, event = await SubscriptionService(self.db).activate_from_payment(payment, now)
        subscription_data = subscription_payload(subscription)
        logger.info(f"Payment {payment.reference_code} confirmed by {confirmed_by}")

        dispatcher = WebhookDispatcher(self.db)
        await dispatcher.safe_dispatch(merchant_id, WebhookEvent.PAYMENT_CONFIRMED, payment_payload(payment))
        await dispatcher.safe_dispatch(merchant_id, event, subscription_data)

        await self._notify_confirmed(payment, subscription, event)
        return payment, subscription_data

    async def _notify_confirmed(self, payment: Payment, subscription: Subscription, event: WebhookEvent) -> None:
        reference_code = payment.reference_code
        try:
            async with self.db.begin_nested():
                merchant = await self.db.get(User, payment.merchant_id)
                product = await self.db.get(Product, payment.product_id) if payment.product_id else None
                price = await self.db.get(Price, subscription.price_id)
                product_name = product.name if product else "your purchase"

                notifications = NotificationService(self.db)
                await notifications.notify_payment_confirmed(
                    merchant_id=merchant.id,
                    customer_phone=payment.customer_phone,
                    amount=payment.amount,
                    currency=payment.currency,
                    reference_code=reference_code,
                )
                if event == WebhookEvent.SUBSCRIPTION_CREATED:
                    await notifications.notify_new_subscriber(
                        merchant_id=merchant.id,
                        customer_phone=payment.customer_phone,
                        product_name=product_name,
                        price_name=price.name if price else "",
                    )
                else:
                    await notifications.notify_subscription_renewed(
                        merchant_id=merchant.id,
                        customer_phone=payment.customer_phone,
                        product_name=product_name,
                        period_end=subscription.current_period_end,
                    )

                notifier = PlatformNotifier(self.db, self.notifier_config)
                await notifier.notify_customer_payment_confirmed(merchant, payment, product_name)
                await self.db.flush()
        except Exception as e:
            logger.error(f"Confirmation notifications failed for {reference_code}: {e}", exc_info=True)

    async def reject_payment(
        self,
        payment_id: uuid.UUID,
        merchant_id: uuid.UUID,
        now: datetime,
        reason: Optional[str] = None,
    ) -> Optional[Payment]:
        payment = await self._close(payment_id, merchant_id, {
            "status": PaymentStatus.REJECTED.value,
            "rejection_reason": reason,
            "updated_at": now,
        })
        if not payment:
            return None

        logger.info(f"Payment {payment.reference_code} rejected: {reason}")
        await WebhookDispatcher(self.db).safe_dispatch(
            merchant_id, WebhookEvent.PAYMENT_REJECTED, payment_payload(payment)
        )
        return payment

    # --- Expiry ---

    async def expire_stale_payments(self, now: datetime) -> list[str]:
        """Expire every pending payment past its deadline; returns their reference codes."""
        result = await self.db.execute(
            update(Payment)
            .where(Payment.status == PaymentStatus.PENDING.value)
            .where(Payment.expires_at < now)
            .values(status=PaymentStatus.EXPIRED.value, updated_at=now)
            .returning(Payment.reference_code)
            .execution_options(synchronize_session=False)
        )
        codes = list(result.scalars().all())
        if codes:
            logger.info(f"Expired {len(codes)} stale payments")
        return codes
