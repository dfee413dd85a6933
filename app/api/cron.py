"""
Scheduled Job Endpoints.
Triggered by an external scheduler with the shared cron secret.
"""

import logging

from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import verify_cron_secret
from app.database import get_db
from app.fsm.states import WebhookEvent
from app.periods import utcnow
from app.redis import job_lock
from app.services.payment_service import PaymentService
from app.services.reminder_service import ReminderService
from app.services.renewal_service import RenewalService
from app.services.subscription_service import SubscriptionService
from app.services.webhook_service import WebhookDispatcher

router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = logging.getLogger(__name__)


@router.api_route("/expire-payments", methods=["GET", "POST"])
async def expire_payments(db: AsyncSession = Depends(get_db)):
    """Expire pending payments whose deadline has passed."""
    try:
        codes = await PaymentService(db).expire_stale_payments(utcnow())
    except Exception as e:
        logger.error(f"Payment expiry failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to expire payments")

    return {
        "success": True,
        "expired_count": len(codes),
        "expired_payments": codes,
    }


@router.post("/generate-renewals")
async def generate_renewals(db: AsyncSession = Depends(get_db)):
    """Create renewal invoices for subscriptions ending within the window."""
    async with job_lock("generate-renewals") as acquired:
        if not acquired:
            logger.info("Renewal generation already running, skipping")
            return {"success": True, "skipped": True, "created_count": 0, "renewals": []}

        try:
            payments = await RenewalService(db).generate_renewals(utcnow())
            await db.commit()
        except Exception as e:
            logger.error(f"Renewal generation failed: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to generate renewals")

    return {
        "success": True,
        "created_count": len(payments),
        "renewals": [
            {
                "reference_code": p.reference_code,
                "subscription_id": str(p.subscription_id),
                "amount": str(p.amount),
                "currency": p.currency,
            }
            for p in payments
        ],
    }


@router.post("/process-expiry")
async def process_expiry(db: AsyncSession = Depends(get_db)):
    """
    Move lapsed subscriptions to past_due or expired, then send expiration
    notices and renewal reminders.
    """
    now = utcnow()
    try:
        result = await SubscriptionService(db).process_expiry(now)
    except Exception as e:
        logger.error(f"Subscription expiry failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process expiry")

    dispatcher = WebhookDispatcher(db)
    for subscription_id, merchant_id in result["expired_subscriptions"]:
        await dispatcher.safe_dispatch(
            merchant_id,
            WebhookEvent.SUBSCRIPTION_EXPIRED,
            {"id": str(subscription_id), "status": "expired"},
        )

    reminders = ReminderService(db)
    notices_sent = await reminders.send_expiration_notices(
        [subscription_id for subscription_id, _ in result["expired_subscriptions"]]
    )
    reminders_sent = await reminders.send_renewal_reminders(now)

    return {
        "success": True,
        "past_due": result["past_due"],
        "expired": result["expired"],
        "expiration_notices_sent": notices_sent,
        "reminders_sent": reminders_sent,
    }
