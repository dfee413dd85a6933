"""
Tests for RenewalService.
"""

import re
import pytest
from datetime import timedelta
from sqlalchemy import select

from app.fsm.states import PaymentStatus, PaymentType, PaymentMethod
from app.models.payment import Payment
from app.periods import utcnow, as_utc
from app.services.renewal_service import RenewalService


@pytest.mark.asyncio
async def test_generates_one_renewal_per_due_subscription(db, price, make_subscription):
    now = utcnow()
    due = await make_subscription(current_period_end=now + timedelta(days=5))
    await make_subscription(current_period_end=now + timedelta(days=20))
    await make_subscription(current_period_end=now - timedelta(days=1))
    await make_subscription(status="paused", current_period_end=now + timedelta(days=2))

    created = await RenewalService(db).generate_renewals(now)

    assert len(created) == 1
    payment = created[0]
    assert payment.subscription_id == due.id
    assert re.fullmatch(r"REN-[A-Z0-9]{8}", payment.reference_code)
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.payment_type == PaymentType.RENEWAL.value
    assert payment.payment_method == PaymentMethod.PENDING.value
    assert payment.amount == price.amount
    assert as_utc(payment.expires_at) == as_utc(due.current_period_end) + timedelta(days=3)
    assert payment.payment_metadata["product_name"] == "Gym Membership"
    assert payment.payment_metadata["billing_cycle"] == "monthly"


@pytest.mark.asyncio
async def test_rerun_creates_no_duplicates(db, make_subscription):
    now = utcnow()
    await make_subscription(current_period_end=now + timedelta(days=3))
    await make_subscription(current_period_end=now + timedelta(days=6))
    service = RenewalService(db)

    first = await service.generate_renewals(now)
    second = await service.generate_renewals(now + timedelta(hours=1))

    assert len(first) == 2
    assert second == []
    payments = (await db.execute(select(Payment))).scalars().all()
    assert len(payments) == 2


@pytest.mark.asyncio
async def test_expired_renewal_does_not_block_new_one(db, make_subscription, make_payment):
    now = utcnow()
    subscription = await make_subscription(current_period_end=now + timedelta(days=4))
    await make_payment(
        subscription_id=subscription.id,
        payment_type=PaymentType.RENEWAL.value,
        status=PaymentStatus.EXPIRED.value,
    )

    created = await RenewalService(db).generate_renewals(now)

    assert len(created) == 1
