"""
Platform Notifier - email/SMS messages to merchants, platform admins and customers.

Every send attempt is written to notification_logs.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import NotificationLog
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.models.user import User
from app.services.email_service import EmailSender, SendResult
from app.services.notifier_config import NotifierConfig
from app.services.sms_service import SmsSender

logger = logging.getLogger(__name__)


def format_amount(amount, currency: str) -> str:
    return f"{currency} {amount:,}"


def _email_shell(title: str, heading: str, content: str) -> str:
    year = datetime.now(timezone.utc).year
    return f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: #1a1a2e; padding: 20px; text-align: center;">
          <h1 style="color: #d4ff00; margin: 0;">{title}</h1>
        </div>
        <div style="padding: 30px; background: #f9f9f9;">
          <h2 style="color: #1a1a2e;">{heading}</h2>
          {content}
        </div>
        <div style="background: #1a1a2e; padding: 15px; text-align: center;">
          <p style="color: #888; font-size: 12px; margin: 0;">&copy; {year} Losetify. All rights reserved.</p>
        </div>
      </div>
    """


def _details_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f'<tr><td style="color: #666;">{label}:</td><td style="font-weight: bold;">{value}</td></tr>'
        for label, value in rows
    )
    return (
        '<div style="background: white; padding: 20px; border-radius: 10px; margin: 20px 0;">'
        f'<table style="width: 100%;">{cells}</table></div>'
    )


class PlatformNotifier:
    """Composes and sends merchant/admin notifications."""

    def __init__(
        self,
        db: AsyncSession,
        config: NotifierConfig,
        email: Optional[EmailSender] = None,
        sms: Optional[SmsSender] = None,
    ):
        self.db = db
        self.config = config
        self.email = email or EmailSender(config)
        self.sms = sms or SmsSender(config)

    async def _log(
        self,
        channel: str,
        recipient: str,
        recipient_type: str,
        event_type: str,
        body: str,
        result: SendResult,
        subject: Optional[str] = None,
    ) -> None:
        self.db.add(
            NotificationLog(
                channel=channel,
                recipient=recipient,
                recipient_type=recipient_type,
                event_type=event_type,
                subject=subject,
                body=body,
                status="sent" if result.success else "failed",
                error_message=result.error,
            )
        )

    async def notify_merchant_payment_pending(
        self,
        merchant: User,
        payment: Payment,
        product_name: str,
    ) -> None:
        """A customer submitted a payment claim the merchant has to confirm."""
        amount = format_amount(payment.amount, payment.currency)
        subject = f"New Payment Received - {payment.reference_code}"
        content = (
            f"<p>Hi {merchant.display_name},</p>"
            "<p>A customer has submitted a payment that requires your confirmation.</p>"
            + _details_table([
                ("Reference", payment.reference_code),
                ("Amount", amount),
                ("Product", product_name),
                ("Customer", payment.customer_phone),
            ])
            + f'<a href="{self.config.app_url}/dashboard/payments">Review &amp; Confirm Payment</a>'
        )

        result = await self.email.send(
            to=merchant.email,
            subject=subject,
            html=_email_shell("Losetify", "New Payment Received!", content),
        )
        await self._log(
            channel="email",
            recipient=merchant.email,
            recipient_type="merchant",
            event_type="payment.pending",
            subject=subject,
            body=f"Amount: {amount}, Customer: {payment.customer_phone}",
            result=result,
        )

        if merchant.phone:
            message = (
                f"[Losetify] New payment: {amount} for {product_name}. "
                f"Ref: {payment.reference_code}. Customer: {payment.customer_phone}. "
                "Please confirm in your dashboard."
            )
            sms_result = await self.sms.send(merchant.phone, message)
            await self._log(
                channel="sms",
                recipient=merchant.phone,
                recipient_type="merchant",
                event_type="payment.pending",
                body=f"New payment: {amount} for {product_name}",
                result=sms_result,
            )

    async def notify_admin_payment_pending(
        self,
        merchant: User,
        payment: Payment,
        product_name: str,
    ) -> None:
        """Platform admins see every claim awaiting confirmation."""
        if not self.config.admin_email:
            return

        amount = format_amount(payment.amount, payment.currency)
        subject = f"Payment Awaiting Confirmation - {payment.reference_code}"
        content = (
            "<p>A new payment requires verification.</p>"
            + _details_table([
                ("Reference", payment.reference_code),
                ("Amount", amount),
                ("Merchant", merchant.display_name),
                ("Product", product_name),
                ("Customer", payment.customer_phone),
            ])
            + f'<a href="{self.config.app_url}/admin/payments">Review &amp; Confirm</a>'
        )

        result = await self.email.send(
            to=self.config.admin_email,
            subject=subject,
            html=_email_shell("Losetify Admin", "Payment Awaiting Confirmation", content),
        )
        await self._log(
            channel="email",
            recipient=self.config.admin_email,
            recipient_type="admin",
            event_type="payment.pending",
            subject=subject,
            body=f"Amount: {amount}, Merchant: {merchant.display_name}",
            result=result,
        )

    async def notify_customer_payment_confirmed(
        self,
        merchant: User,
        payment: Payment,
        product_name: str,
    ) -> None:
        amount = format_amount(payment.amount, payment.currency)
        message = (
            f"[{merchant.display_name}] Your payment of {amount} for {product_name} "
            f"(Ref: {payment.reference_code}) has been confirmed. Thank you!"
        )
        result = await self.sms.send(payment.customer_phone, message)
        await self._log(
            channel="sms",
            recipient=payment.customer_phone,
            recipient_type="customer",
            event_type="payment.confirmed",
            body=message,
            result=result,
        )

    async def _send_customer(
        self,
        subscription: Subscription,
        event_type: str,
        sms_message: str,
        subject: str,
        heading: str,
        content: str,
    ) -> None:
        """SMS to the customer's phone, plus email when one is on file."""
        sms_result = await self.sms.send(subscription.customer_phone, sms_message)
        await self._log(
            channel="sms",
            recipient=subscription.customer_phone,
            recipient_type="customer",
            event_type=event_type,
            body=sms_message,
            result=sms_result,
        )

        if subscription.customer_email:
            result = await self.email.send(
                to=subscription.customer_email,
                subject=subject,
                html=_email_shell("Losetify", heading, content),
            )
            await self._log(
                channel="email",
                recipient=subscription.customer_email,
                recipient_type="customer",
                event_type=event_type,
                subject=subject,
                body=heading,
                result=result,
            )

    async def notify_customer_renewal_reminder(
        self,
        merchant: User,
        subscription: Subscription,
        product_name: str,
        days_left: int,
        renew_url: str,
    ) -> None:
        price = subscription.price
        amount = format_amount(price.amount, price.currency) if price else ""
        content = (
            f"<p>Your subscription to <strong>{product_name}</strong> will expire on "
            f"<strong>{subscription.current_period_end:%d %b %Y}</strong>.</p>"
            "<p>To continue enjoying access, please renew your subscription.</p>"
            + _details_table([("Renewal Amount", amount), ("Business", merchant.business_name or merchant.display_name)])
            + f'<a href="{renew_url}">Renew Now</a>'
        )
        await self._send_customer(
            subscription,
            event_type="subscription.expiring",
            sms_message=(
                f"[{merchant.business_name or merchant.display_name}] Your {product_name} subscription "
                f"expires in {days_left} days. Renew: {renew_url}"
            ),
            subject=f"Your {product_name} subscription expires in {days_left} days",
            heading="Subscription Expiring Soon",
            content=content,
        )

    async def notify_customer_subscription_expired(
        self,
        merchant: User,
        subscription: Subscription,
        product_name: str,
        renew_url: str,
    ) -> None:
        price = subscription.price
        amount = format_amount(price.amount, price.currency) if price else ""
        content = (
            f"<p>Your subscription to <strong>{product_name}</strong> has expired.</p>"
            "<p>To regain access, please renew your subscription.</p>"
            + _details_table([("Renewal Amount", amount), ("Business", merchant.business_name or merchant.display_name)])
            + f'<a href="{renew_url}">Resubscribe Now</a>'
        )
        await self._send_customer(
            subscription,
            event_type="subscription.expired",
            sms_message=(
                f"[{merchant.business_name or merchant.display_name}] Your {product_name} subscription "
                f"has expired. Renew: {renew_url}"
            ),
            subject=f"Your {product_name} subscription has expired",
            heading="Subscription Expired",
            content=content,
        )
