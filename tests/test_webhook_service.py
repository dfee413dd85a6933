"""
Tests for webhook signing and delivery.
"""

import json
import pytest
import httpx
from sqlalchemy import select

from app.fsm.states import WebhookEvent
from app.models.webhook import Webhook, WebhookDelivery
from app.services.webhook_service import (
    WebhookDispatcher,
    WebhookService,
    serialize_payload,
    sign_payload,
    verify_signature,
)


def test_signature_is_hmac_of_timestamp_and_body():
    body = serialize_payload({"id": "p1", "amount": "100.00"})
    signature = sign_payload("whsec_test", 1700000000000, body)

    assert len(signature) == 64
    assert verify_signature("whsec_test", 1700000000000, body, signature)
    assert not verify_signature("whsec_other", 1700000000000, body, signature)
    assert not verify_signature("whsec_test", 1700000000001, body, signature)


async def add_webhook(db, merchant, url, events, is_active=True) -> Webhook:
    webhook = Webhook(
        merchant_id=merchant.id,
        url=url,
        secret="whsec_test",
        events=events,
        is_active=is_active,
    )
    db.add(webhook)
    await db.flush()
    return webhook


@pytest.mark.asyncio
async def test_dispatch_signs_and_logs(db, merchant):
    await add_webhook(db, merchant, "https://hooks.example/ok", ["payment.confirmed"])
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="ok")

    dispatcher = WebhookDispatcher(db, transport=httpx.MockTransport(handler))
    payload = {"id": "p1", "status": "confirmed"}

    result = await dispatcher.dispatch(merchant.id, "payment.confirmed", payload)

    assert result["delivered"] == 1
    assert result["total"] == 1
    assert result["results"][0]["success"] is True

    request = seen[0]
    timestamp = int(request.headers["X-Losetify-Timestamp"])
    assert request.headers["X-Losetify-Event"] == "payment.confirmed"
    assert verify_signature("whsec_test", timestamp, serialize_payload(payload), request.headers["X-Losetify-Signature"])

    body = json.loads(request.content)
    assert body["event"] == "payment.confirmed"
    assert body["data"] == payload
    assert "timestamp" in body

    delivery = (await db.execute(select(WebhookDelivery))).scalar_one()
    assert delivery.response_status == 200
    assert delivery.response_body == "ok"
    assert delivery.delivered_at is not None


@pytest.mark.asyncio
async def test_dispatch_isolates_failures(db, merchant):
    await add_webhook(db, merchant, "https://hooks.example/ok", ["payment.confirmed"])
    await add_webhook(db, merchant, "https://hooks.example/down", ["payment.confirmed"])
    await add_webhook(db, merchant, "https://hooks.example/error", ["payment.confirmed"])

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/down":
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/error":
            return httpx.Response(500, text="boom")
        return httpx.Response(204)

    dispatcher = WebhookDispatcher(db, transport=httpx.MockTransport(handler))

    result = await dispatcher.dispatch(merchant.id, "payment.confirmed", {"id": "p1"})

    assert result["delivered"] == 1
    assert result["total"] == 3

    deliveries = (await db.execute(select(WebhookDelivery))).scalars().all()
    assert len(deliveries) == 3
    by_status = {d.response_status: d for d in deliveries}
    assert by_status[0].delivered_at is None
    assert "connection refused" in by_status[0].response_body
    assert by_status[500].delivered_at is not None
    assert by_status[204].delivered_at is not None


@pytest.mark.asyncio
async def test_dispatch_matches_events_exactly(db, merchant, other_merchant):
    await add_webhook(db, merchant, "https://hooks.example/a", ["payment.created"])
    await add_webhook(db, merchant, "https://hooks.example/b", ["payment.confirmed"], is_active=False)
    await add_webhook(db, other_merchant, "https://hooks.example/c", ["payment.confirmed"])
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    dispatcher = WebhookDispatcher(db, transport=httpx.MockTransport(handler))

    result = await dispatcher.dispatch(merchant.id, "payment.confirmed", {"id": "p1"})

    assert result == {"delivered": 0, "total": 0, "results": []}
    assert calls == []


@pytest.mark.asyncio
async def test_register_generates_secret(db, merchant):
    service = WebhookService(db)

    webhook = await service.register(merchant.id, "https://hooks.example/x", ["payment.confirmed"])

    assert webhook.secret.startswith("whsec_")
    assert webhook.events == ["payment.confirmed"]


@pytest.mark.asyncio
async def test_register_rejects_unknown_event(db, merchant):
    with pytest.raises(ValueError, match="Unknown webhook events"):
        await WebhookService(db).register(merchant.id, "https://hooks.example/x", ["payment.refunded"])


@pytest.mark.asyncio
async def test_delete_requires_owner(db, merchant, other_merchant):
    service = WebhookService(db)
    webhook = await service.register(merchant.id, "https://hooks.example/x", ["payment.created"])

    assert await service.delete(webhook.id, other_merchant.id) is False
    assert await service.delete(webhook.id, merchant.id) is True


@pytest.mark.asyncio
async def test_safe_dispatch_rolls_back_only_its_own_writes(db, merchant, monkeypatch):
    """A failing delivery log leaves the caller's transaction usable."""
    await add_webhook(db, merchant, "https://hooks.example/ok", ["payment.confirmed"])

    async def broken_dispatch(self, merchant_id, event_type, payload):
        self.db.add(WebhookDelivery(webhook_id=None, event_type=event_type, payload=payload))
        await self.db.flush()

    monkeypatch.setattr(WebhookDispatcher, "dispatch", broken_dispatch)

    result = await WebhookDispatcher(db).safe_dispatch(merchant.id, WebhookEvent.PAYMENT_CONFIRMED, {"id": "p1"})

    assert result is None
    assert (await db.execute(select(WebhookDelivery))).scalars().all() == []
    assert len((await db.execute(select(Webhook))).scalars().all()) == 1
    await db.commit()
