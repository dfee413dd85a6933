"""
Tests for renewal reminders and expiration notices.
"""

import pytest
from datetime import timedelta
from sqlalchemy import select

from app.fsm.states import SubscriptionStatus
from app.models.notification import Notification, NotificationLog
from app.periods import utcnow
from app.services.notification_service import NotificationService
from app.services.reminder_service import ReminderService, days_until
from app.services.subscription_service import SubscriptionService


def test_days_until_rounds_up():
    now = utcnow()
    assert days_until(now + timedelta(days=2, hours=1), now) == 3
    assert days_until(now + timedelta(days=3), now) == 3


@pytest.mark.asyncio
async def test_reminds_subscriptions_entering_the_window(db, merchant, make_subscription, notifier_config):
    now = utcnow()
    due = await make_subscription(current_period_end=now + timedelta(days=2, hours=12), customer_email="c@example.com")
    await make_subscription(current_period_end=now + timedelta(days=1))
    await make_subscription(current_period_end=now + timedelta(days=5))
    await make_subscription(current_period_end=now + timedelta(days=2, hours=12), cancelled_at=now)
    await make_subscription(
        status=SubscriptionStatus.PAUSED.value,
        current_period_end=now + timedelta(days=2, hours=12),
    )
    service = ReminderService(db, notifier_config)

    expiring = await service.expiring_subscriptions(now, days_ahead=3)
    assert [s.id for s in expiring] == [due.id]

    assert await service.send_renewal_reminders(now, days_ahead=3) == 1

    inbox = (await db.execute(select(Notification).where(Notification.user_id == merchant.id))).scalars().all()
    assert [n.type for n in inbox] == ["subscription_expiring"]
    assert inbox[0].notification_metadata["days_left"] == 3

    logs = (await db.execute(select(NotificationLog))).scalars().all()
    assert {(log.channel, log.recipient) for log in logs} == {
        ("sms", "+211911111111"),
        ("email", "c@example.com"),
    }
    assert all(log.event_type == "subscription.expiring" for log in logs)
    assert "/checkout/" in next(log.body for log in logs if log.channel == "sms")


@pytest.mark.asyncio
async def test_expiration_notices_follow_expiry_run(db, merchant, make_subscription, notifier_config):
    now = utcnow()
    lapsed = await make_subscription(current_period_end=now - timedelta(days=10))
    await make_subscription(current_period_end=now - timedelta(days=2))

    result = await SubscriptionService(db).process_expiry(now)
    expired_ids = [subscription_id for subscription_id, _ in result["expired_subscriptions"]]
    assert expired_ids == [lapsed.id]

    sent = await ReminderService(db, notifier_config).send_expiration_notices(expired_ids)

    assert sent == 1
    inbox = (await db.execute(select(Notification))).scalars().all()
    assert [n.type for n in inbox] == ["subscription_expired"]
    logs = (await db.execute(select(NotificationLog))).scalars().all()
    assert [(log.channel, log.recipient_type, log.event_type) for log in logs] == [
        ("sms", "customer", "subscription.expired"),
    ]


@pytest.mark.asyncio
async def test_expiration_notices_without_ids(db, notifier_config):
    assert await ReminderService(db, notifier_config).send_expiration_notices([]) == 0


@pytest.mark.asyncio
async def test_failed_reminder_does_not_stop_the_run(db, make_subscription, notifier_config, monkeypatch):
    now = utcnow()
    await make_subscription(current_period_end=now + timedelta(days=2, hours=6), customer_phone="+211911000001")
    await make_subscription(current_period_end=now + timedelta(days=2, hours=18), customer_phone="+211911000002")
    calls = []

    original = NotificationService.notify_subscription_expiring

    async def flaky(self, merchant_id, customer_phone, product_name, days_left):
        calls.append(customer_phone)
        if len(calls) == 1:
            self.db.add(Notification(user_id=merchant_id, type="subscription_expiring", title=None))
            await self.db.flush()
        return await original(self, merchant_id, customer_phone, product_name, days_left)

    monkeypatch.setattr(NotificationService, "notify_subscription_expiring", flaky)

    sent = await ReminderService(db, notifier_config).send_renewal_reminders(now, days_ahead=3)

    assert sent == 1
    assert calls == ["+211911000001", "+211911000002"]
    logs = (await db.execute(select(NotificationLog))).scalars().all()
    assert [log.recipient for log in logs] == ["+211911000002"]
