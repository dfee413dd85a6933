"""
Tests for PaymentService.
"""

import pytest
from datetime import timedelta
from sqlalchemy import select

from app.fsm.states import PaymentStatus, PaymentType, SubscriptionStatus
from app.models.notification import Notification, NotificationLog
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.periods import utcnow, as_utc
from app.services.notification_service import NotificationService
from app.services.payment_service import PaymentService, generate_reference_code


def test_reference_code_is_ten_digits():
    code = generate_reference_code()
    assert len(code) == 10
    assert code.isdigit()


@pytest.mark.asyncio
async def test_create_payment(db, merchant, price, notifier_config):
    """Creating a payment copies price terms and returns payout details."""
    now = utcnow()
    service = PaymentService(db, notifier_config)

    payment, instructions = await service.create_payment(
        merchant_id=merchant.id,
        price_id=price.id,
        customer_phone="+211922222222",
        now=now,
    )

    assert payment.status == PaymentStatus.PENDING.value
    assert payment.payment_type == PaymentType.INITIAL.value
    assert payment.amount == price.amount
    assert len(payment.reference_code) == 10
    assert as_utc(payment.expires_at) == now + timedelta(hours=24)
    assert instructions["mtn_momo_number"] == "0920000000"
    assert instructions["business_name"] == "Juba Fitness"


@pytest.mark.asyncio
async def test_create_payment_foreign_price(db, other_merchant, price, notifier_config):
    service = PaymentService(db, notifier_config)

    result = await service.create_payment(
        merchant_id=other_merchant.id,
        price_id=price.id,
        customer_phone="+211922222222",
        now=utcnow(),
    )

    assert result is None


@pytest.mark.asyncio
async def test_submit_claim_with_evidence_matches(db, make_payment, notifier_config):
    payment = await make_payment(reference_code="1234567890")
    service = PaymentService(db, notifier_config)

    claimed = await service.submit_claim("1234567890", utcnow(), transaction_id="MP240101")

    assert claimed.id == payment.id
    assert claimed.status == PaymentStatus.MATCHED.value
    assert claimed.transaction_id == "MP240101"
    assert claimed.matched_at is not None


@pytest.mark.asyncio
async def test_submit_claim_without_evidence_stays_pending(db, make_payment, notifier_config):
    await make_payment(reference_code="1111111111")
    service = PaymentService(db, notifier_config)

    claimed = await service.submit_claim("1111111111", utcnow())

    assert claimed.status == PaymentStatus.PENDING.value
    assert claimed.matched_at is None


@pytest.mark.asyncio
async def test_submit_claim_notifies_merchant_and_admin(db, merchant, make_payment, notifier_config):
    await make_payment(reference_code="2222222222")
    service = PaymentService(db, notifier_config)

    await service.submit_claim("2222222222", utcnow(), proof_url="https://img.example/p.jpg")

    inbox = (await db.execute(select(Notification).where(Notification.user_id == merchant.id))).scalars().all()
    assert len(inbox) == 1
    assert inbox[0].type == "payment_received"

    logs = (await db.execute(select(NotificationLog))).scalars().all()
    recipients = {(log.channel, log.recipient_type) for log in logs}
    # merchant email, merchant SMS (merchant has a phone), admin email
    assert recipients == {("email", "merchant"), ("sms", "merchant"), ("email", "admin")}
    # no providers configured in tests
    assert all(log.status == "failed" for log in logs)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["matched", "confirmed", "rejected", "expired"])
async def test_submit_claim_on_non_pending_is_rejected(db, make_payment, notifier_config, status):
    payment = await make_payment(reference_code="3333333333", status=status)
    service = PaymentService(db, notifier_config)

    result = await service.submit_claim("3333333333", utcnow(), transaction_id="TX1")

    assert result is None
    await db.refresh(payment)
    assert payment.status == status
    assert payment.transaction_id is None


@pytest.mark.asyncio
async def test_submit_claim_unknown_code(db, notifier_config):
    service = PaymentService(db, notifier_config)
    assert await service.submit_claim("0000000000", utcnow(), transaction_id="TX") is None


@pytest.mark.asyncio
async def test_confirm_initial_payment_creates_subscription(db, merchant, price, make_payment, notifier_config):
    payment = await make_payment(status=PaymentStatus.MATCHED.value)
    service = PaymentService(db, notifier_config)
    now = utcnow()

    confirmed, subscription = await service.confirm_payment(payment.id, merchant.id, now, confirmed_by="owner")

    assert confirmed.status == PaymentStatus.CONFIRMED.value
    assert confirmed.confirmed_by == "owner"
    assert subscription["status"] == SubscriptionStatus.ACTIVE.value

    rows = (await db.execute(select(Subscription))).scalars().all()
    assert len(rows) == 1
    assert rows[0].payment_id == payment.id
    assert rows[0].price_id == price.id

    # a second confirmation loses the compare-and-swap
    assert await service.confirm_payment(payment.id, merchant.id, now) is None
    assert len((await db.execute(select(Subscription))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_confirm_renewal_extends_from_period_end(db, merchant, make_payment, make_subscription, notifier_config):
    now = utcnow()
    subscription = await make_subscription(current_period_end=now + timedelta(days=3))
    old_end = as_utc(subscription.current_period_end)
    payment = await make_payment(
        payment_type=PaymentType.RENEWAL.value,
        subscription_id=subscription.id,
    )
    service = PaymentService(db, notifier_config)

    await service.confirm_payment(payment.id, merchant.id, now)

    await db.refresh(subscription)
    assert as_utc(subscription.current_period_start) == old_end
    assert as_utc(subscription.current_period_end) > old_end + timedelta(days=27)
    assert len((await db.execute(select(Subscription))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_confirm_foreign_payment(db, other_merchant, make_payment, notifier_config):
    payment = await make_payment()
    service = PaymentService(db, notifier_config)

    assert await service.confirm_payment(payment.id, other_merchant.id, utcnow()) is None
    await db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING.value


@pytest.mark.asyncio
async def test_reject_payment(db, merchant, make_payment, notifier_config):
    payment = await make_payment(status=PaymentStatus.MATCHED.value)
    service = PaymentService(db, notifier_config)

    rejected = await service.reject_payment(payment.id, merchant.id, utcnow(), reason="No transfer found")

    assert rejected.status == PaymentStatus.REJECTED.value
    assert rejected.rejection_reason == "No transfer found"
    assert await service.reject_payment(payment.id, merchant.id, utcnow()) is None


@pytest.mark.asyncio
async def test_expire_stale_payments(db, make_payment, notifier_config):
    now = utcnow()
    stale = await make_payment(reference_code="4444444444", expires_at=now - timedelta(minutes=1))
    fresh = await make_payment(reference_code="5555555555", expires_at=now + timedelta(hours=1))
    matched = await make_payment(
        reference_code="6666666666",
        status=PaymentStatus.MATCHED.value,
        expires_at=now - timedelta(hours=1),
    )
    service = PaymentService(db, notifier_config)

    codes = await service.expire_stale_payments(now)

    assert codes == ["4444444444"]
    for payment in (stale, fresh, matched):
        await db.refresh(payment)
    assert stale.status == PaymentStatus.EXPIRED.value
    assert fresh.status == PaymentStatus.PENDING.value
    assert matched.status == PaymentStatus.MATCHED.value

    # nothing left to expire
    assert await service.expire_stale_payments(now) == []


@pytest.mark.asyncio
async def test_claim_survives_notification_failure(db, merchant, make_payment, notifier_config, monkeypatch):
    """A failing inbox write is rolled back on its own; the claim still commits."""
    await make_payment(reference_code="5555555555")

    async def broken_notify(self, merchant_id, **kwargs):
        self.db.add(Notification(user_id=merchant_id, type="payment_received", title=None))
        await self.db.flush()

    monkeypatch.setattr(NotificationService, "notify_payment_received", broken_notify)
    service = PaymentService(db, notifier_config)

    claimed = await service.submit_claim("5555555555", utcnow(), transaction_id="TX9")
    await db.commit()

    assert claimed.status == PaymentStatus.MATCHED.value
    stored = await db.scalar(select(Payment.status).where(Payment.reference_code == "5555555555"))
    assert stored == PaymentStatus.MATCHED.value
    assert (await db.execute(select(Notification))).scalars().all() == []


@pytest.mark.asyncio
async def test_confirm_survives_notification_failure(db, merchant, make_payment, notifier_config, monkeypatch):
    payment = await make_payment(status=PaymentStatus.MATCHED.value)

    async def broken_notify(self, merchant_id, **kwargs):
        self.db.add(Notification(user_id=merchant_id, type="payment_confirmed", title=None))
        await self.db.flush()

    monkeypatch.setattr(NotificationService, "notify_payment_confirmed", broken_notify)
    service = PaymentService(db, notifier_config)

    confirmed, subscription = await service.confirm_payment(payment.id, merchant.id, utcnow())
    await db.commit()

    assert confirmed.status == PaymentStatus.CONFIRMED.value
    assert len((await db.execute(select(Subscription))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_confirm_initial_payment_announces_new_subscriber(db, merchant, make_payment, notifier_config):
    payment = await make_payment(status=PaymentStatus.MATCHED.value)
    service = PaymentService(db, notifier_config)

    await service.confirm_payment(payment.id, merchant.id, utcnow())

    inbox = (await db.execute(select(Notification).where(Notification.user_id == merchant.id))).scalars().all()
    assert {n.type for n in inbox} == {"payment_confirmed", "new_subscriber"}
    subscriber = next(n for n in inbox if n.type == "new_subscriber")
    assert subscriber.body == "+211911111111 subscribed to Gym Membership (Monthly)"


@pytest.mark.asyncio
async def test_confirm_renewal_records_renewed_notification(db, merchant, make_payment, make_subscription, notifier_config):
    subscription = await make_subscription()
    payment = await make_payment(payment_type=PaymentType.RENEWAL.value, subscription_id=subscription.id)

    await PaymentService(db, notifier_config).confirm_payment(payment.id, merchant.id, utcnow())

    types = (await db.execute(select(Notification.type))).scalars().all()
    assert sorted(types) == ["payment_confirmed", "subscription_renewed"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value])
async def test_confirm_renewal_reactivates_lapsed_subscription(
    db, merchant, make_payment, make_subscription, notifier_config, status
):
    """Lapsed subscriptions restart from the confirmation date, not the old period end."""
    now = utcnow()
    subscription = await make_subscription(
        status=status,
        current_period_start=now - timedelta(days=60),
        current_period_end=now - timedelta(days=30),
        cancelled_at=now - timedelta(days=40),
        cancelled_reason="moved away",
    )
    payment = await make_payment(payment_type=PaymentType.RENEWAL.value, subscription_id=subscription.id)

    _, data = await PaymentService(db, notifier_config).confirm_payment(payment.id, merchant.id, now)

    await db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.ACTIVE.value
    assert subscription.cancelled_at is None
    assert subscription.cancelled_reason is None
    assert as_utc(subscription.current_period_start) == now
    assert as_utc(subscription.current_period_end) > now + timedelta(days=27)
    assert data["status"] == SubscriptionStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_confirm_renewal_keeps_paused_subscription_paused(db, merchant, make_payment, make_subscription, notifier_config):
    subscription = await make_subscription(status=SubscriptionStatus.PAUSED.value)
    old_end = as_utc(subscription.current_period_end)
    payment = await make_payment(payment_type=PaymentType.RENEWAL.value, subscription_id=subscription.id)

    await PaymentService(db, notifier_config).confirm_payment(payment.id, merchant.id, utcnow())

    await db.refresh(subscription)
    assert subscription.status == SubscriptionStatus.PAUSED.value
    assert as_utc(subscription.current_period_start) == old_end
