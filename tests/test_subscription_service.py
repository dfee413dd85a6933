"""
Tests for SubscriptionService.
"""

import pytest
from datetime import timedelta

from app.fsm.machine import InvalidTransitionError
from app.fsm.states import SubscriptionStatus
from app.periods import utcnow
from app.services.subscription_service import SubscriptionService


@pytest.mark.asyncio
async def test_apply_action_pause(db, merchant, make_subscription):
    subscription = await make_subscription()
    service = SubscriptionService(db)

    updated = await service.apply_action(subscription.id, merchant.id, "pause", utcnow())

    assert updated.status == SubscriptionStatus.PAUSED.value
    assert updated.paused_at is not None


@pytest.mark.asyncio
async def test_apply_action_foreign_subscription(db, other_merchant, make_subscription):
    """Another merchant's subscription looks missing, never forbidden."""
    subscription = await make_subscription()
    service = SubscriptionService(db)

    assert await service.apply_action(subscription.id, other_merchant.id, "cancel", utcnow()) is None
    assert subscription.status == SubscriptionStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_apply_action_unknown(db, merchant, make_subscription):
    subscription = await make_subscription()
    service = SubscriptionService(db)

    with pytest.raises(InvalidTransitionError, match="Invalid action"):
        await service.apply_action(subscription.id, merchant.id, "upgrade", utcnow())


@pytest.mark.asyncio
async def test_list_for_merchant_filters(db, merchant, make_subscription):
    await make_subscription(customer_phone="+211900000001")
    await make_subscription(customer_phone="+211900000002", status="paused")
    service = SubscriptionService(db)

    items, total = await service.list_for_merchant(merchant.id, status="paused")
    assert total == 1
    assert items[0].customer_phone == "+211900000002"

    items, total = await service.list_for_merchant(merchant.id, customer_phone="+211900000001")
    assert total == 1

    items, total = await service.list_for_merchant(merchant.id, limit=1)
    assert len(items) == 1
    assert total == 2


@pytest.mark.asyncio
async def test_cancel_via_api_at_period_end(db, merchant, make_subscription):
    subscription = await make_subscription()
    service = SubscriptionService(db)

    cancelled = await service.cancel_via_api(subscription.id, merchant.id, utcnow())

    assert cancelled.status == SubscriptionStatus.ACTIVE.value
    assert cancelled.cancelled_at is not None


@pytest.mark.asyncio
async def test_cancel_via_api_immediately(db, merchant, make_subscription):
    subscription = await make_subscription()
    service = SubscriptionService(db)

    cancelled = await service.cancel_via_api(subscription.id, merchant.id, utcnow(), cancel_immediately=True)

    assert cancelled.status == SubscriptionStatus.CANCELLED.value
    with pytest.raises(InvalidTransitionError):
        await service.cancel_via_api(subscription.id, merchant.id, utcnow())


@pytest.mark.asyncio
async def test_process_expiry(db, make_subscription):
    now = utcnow()
    in_grace = await make_subscription(current_period_end=now - timedelta(days=2))
    lapsed = await make_subscription(current_period_end=now - timedelta(days=10))
    lapsed_past_due = await make_subscription(
        status=SubscriptionStatus.PAST_DUE.value,
        current_period_end=now - timedelta(days=8),
    )
    current = await make_subscription(current_period_end=now + timedelta(days=2))
    paused = await make_subscription(
        status=SubscriptionStatus.PAUSED.value,
        current_period_end=now - timedelta(days=30),
    )
    service = SubscriptionService(db)

    result = await service.process_expiry(now)

    assert result["past_due"] == 1
    assert result["expired"] == 2
    for subscription in (in_grace, lapsed, lapsed_past_due, current, paused):
        await db.refresh(subscription)
    assert in_grace.status == SubscriptionStatus.PAST_DUE.value
    assert lapsed.status == SubscriptionStatus.EXPIRED.value
    assert lapsed_past_due.status == SubscriptionStatus.EXPIRED.value
    assert current.status == SubscriptionStatus.ACTIVE.value
    assert paused.status == SubscriptionStatus.PAUSED.value
