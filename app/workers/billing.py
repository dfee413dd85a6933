"""
Billing Workers.

Periodic payment expiry, renewal generation and subscription expiry.
The same jobs are reachable over HTTP under /cron.
"""

import asyncio
import logging

from app.workers.celery_app import celery_app
from app.database import get_db_context, close_db
from app.periods import utcnow

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def expire_stale_payments(self):
    """Expire pending payments past their deadline."""

    async def run():
        try:
            async with get_db_context() as db:
                from app.services.payment_service import PaymentService

                return await PaymentService(db).expire_stale_payments(utcnow())
        finally:
            await close_db()

    try:
        codes = asyncio.run(run())
        logger.info(f"Expired {len(codes)} payments")
        return {"success": True, "expired_count": len(codes), "expired_payments": codes}
    except Exception as e:
        logger.error(f"Payment expiry failed: {e}")
        self.retry(exc=e, countdown=60)


@celery_app.task(bind=True, max_retries=3)
def generate_renewals(self):
    """Create renewal invoices for subscriptions ending soon."""
    from app.redis import RedisClient, job_lock

    async def run():
        try:
            async with job_lock("generate-renewals") as acquired:
                if not acquired:
                    logger.info("Renewal generation already running, skipping")
                    return None

                async with get_db_context() as db:
                    from app.services.renewal_service import RenewalService

                    payments = await RenewalService(db).generate_renewals(utcnow())
                    return [p.reference_code for p in payments]
        finally:
            # The client's connections belong to this run's event loop
            await RedisClient.close()
            await close_db()

    try:
        codes = asyncio.run(run())
        if codes is None:
            return {"success": True, "skipped": True}
        logger.info(f"Generated {len(codes)} renewal payments")
        return {"success": True, "created_count": len(codes), "renewals": codes}
    except Exception as e:
        logger.error(f"Renewal generation failed: {e}")
        self.retry(exc=e, countdown=300)


@celery_app.task(bind=True, max_retries=3)
def process_subscription_expiry(self):
    """Move lapsed subscriptions to past_due / expired and notify customers."""

    async def run():
        try:
            async with get_db_context() as db:
                from app.fsm.states import WebhookEvent
                from app.services.reminder_service import ReminderService
                from app.services.subscription_service import SubscriptionService
                from app.services.webhook_service import WebhookDispatcher

                now = utcnow()
                result = await SubscriptionService(db).process_expiry(now)

                dispatcher = WebhookDispatcher(db)
                for subscription_id, merchant_id in result["expired_subscriptions"]:
                    await dispatcher.safe_dispatch(
                        merchant_id,
                        WebhookEvent.SUBSCRIPTION_EXPIRED,
                        {"id": str(subscription_id), "status": "expired"},
                    )

                reminders = ReminderService(db)
                await reminders.send_expiration_notices(
                    [subscription_id for subscription_id, _ in result["expired_subscriptions"]]
                )
                reminders_sent = await reminders.send_renewal_reminders(now)
                return result["past_due"], result["expired"], reminders_sent
        finally:
            await close_db()

    try:
        past_due, expired, reminders_sent = asyncio.run(run())
        logger.info(f"Subscription expiry: {past_due} past_due, {expired} expired, {reminders_sent} reminded")
        return {"success": True, "past_due": past_due, "expired": expired, "reminders_sent": reminders_sent}
    except Exception as e:
        logger.error(f"Subscription expiry failed: {e}")
        self.retry(exc=e, countdown=60)
