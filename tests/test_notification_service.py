"""
Tests for the in-app notification inbox and outbound senders.
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from app.models.notification import Notification
from app.periods import utcnow
from app.services.email_service import SendResult
from app.services.notification_service import NotificationService
from app.services.notifier_config import NotifierConfig
from app.services.sms_service import SmsSender, normalize_phone


async def seed(db, user_id, count):
    base = utcnow() - timedelta(hours=count)
    for i in range(count):
        db.add(Notification(
            user_id=user_id,
            type="payment_received",
            title=f"Notification {i}",
            created_at=base + timedelta(minutes=i),
        ))
    await db.flush()


@pytest.mark.asyncio
async def test_list_paginates_with_cursor(db, merchant):
    await seed(db, merchant.id, 5)
    service = NotificationService(db)

    first, cursor = await service.list_for_user(merchant.id, limit=3)
    assert [n.title for n in first] == ["Notification 4", "Notification 3", "Notification 2"]
    assert cursor is not None

    second, cursor = await service.list_for_user(merchant.id, limit=3, cursor=cursor)
    assert [n.title for n in second] == ["Notification 1", "Notification 0"]
    assert cursor is None


@pytest.mark.asyncio
async def test_mark_read_and_unread_count(db, merchant, other_merchant):
    await seed(db, merchant.id, 3)
    service = NotificationService(db)
    items, _ = await service.list_for_user(merchant.id)

    assert await service.unread_count(merchant.id) == 3
    assert await service.mark_read(other_merchant.id, items[0].id) is None

    read = await service.mark_read(merchant.id, items[0].id)
    assert read.read_at is not None
    assert await service.unread_count(merchant.id) == 2

    unread, _ = await service.list_for_user(merchant.id, unread_only=True)
    assert len(unread) == 2

    assert await service.mark_all_read(merchant.id) == 2
    assert await service.unread_count(merchant.id) == 0


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0912345678", "+211912345678"),
        ("211912345678", "+211912345678"),
        ("+211 912 345 678", "+211912345678"),
        ("912345678", "+211912345678"),
        ("+254712345678", "+254712345678"),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.asyncio
async def test_sms_without_provider_fails_softly():
    result = await SmsSender(NotifierConfig()).send("0912345678", "hello")

    assert result.success is False
    assert result.error == "SMS provider not configured"


@pytest.mark.asyncio
async def test_sms_falls_back_to_twilio():
    config = NotifierConfig(
        at_api_key="key",
        at_username="user",
        twilio_account_sid="AC1",
        twilio_auth_token="token",
        twilio_from_number="+15550000000",
    )
    sender = SmsSender(config)
    sender._send_africastalking = AsyncMock(return_value=SendResult(success=False, error="InvalidPhone"))
    sender._send_twilio = AsyncMock(return_value=SendResult(success=True, message_id="SM1"))

    result = await sender.send("0912345678", "hello")

    assert result.success
    assert result.message_id == "SM1"
    sender._send_africastalking.assert_awaited_once_with("+211912345678", "hello")
