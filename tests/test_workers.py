"""
Tests for the Celery billing tasks and the Redis job lock.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.redis import RedisClient, job_lock
from app.services.renewal_service import RenewalService
from app.workers import billing


def fake_redis_client(acquired=True) -> MagicMock:
    client = MagicMock()
    client.set = AsyncMock(return_value=acquired)
    client.eval = AsyncMock(return_value=1)
    client.close = AsyncMock()
    return client


@asynccontextmanager
async def fake_db_context():
    yield MagicMock()


def test_generate_renewals_task_uses_fresh_redis_client_per_run(monkeypatch):
    """Each asyncio.run gets its own client, so the lock still works on the next run."""
    monkeypatch.setattr(RedisClient, "_client", None)
    first, second = fake_redis_client(), fake_redis_client()

    with patch("app.redis.aioredis.from_url", side_effect=[first, second]) as from_url, \
            patch.object(billing, "get_db_context", fake_db_context), \
            patch.object(billing, "close_db", AsyncMock()), \
            patch.object(RenewalService, "generate_renewals", AsyncMock(return_value=[])):
        assert billing.generate_renewals.run() == {"success": True, "created_count": 0, "renewals": []}
        assert billing.generate_renewals.run() == {"success": True, "created_count": 0, "renewals": []}

    assert from_url.call_count == 2
    for client in (first, second):
        client.set.assert_awaited_once()
        client.eval.assert_awaited_once()
        client.close.assert_awaited_once()
    assert RedisClient._client is None


def test_generate_renewals_task_skips_when_locked(monkeypatch):
    monkeypatch.setattr(RedisClient, "_client", None)
    client = fake_redis_client(acquired=False)
    generate = AsyncMock(return_value=[])

    with patch("app.redis.aioredis.from_url", return_value=client), \
            patch.object(billing, "get_db_context", fake_db_context), \
            patch.object(billing, "close_db", AsyncMock()), \
            patch.object(RenewalService, "generate_renewals", generate):
        assert billing.generate_renewals.run() == {"success": True, "skipped": True}

    generate.assert_not_awaited()
    client.eval.assert_not_awaited()
    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_job_lock_releases_only_its_own_token():
    redis = fake_redis_client()

    with patch("app.redis.get_redis", AsyncMock(return_value=redis)):
        async with job_lock("nightly") as acquired:
            assert acquired is True

    key, token = redis.set.await_args.args
    assert key == "payssd:lock:nightly"
    assert redis.set.await_args.kwargs == {"nx": True, "ex": 600}

    script, num_keys, released_key, released_token = redis.eval.await_args.args
    assert "redis.call(\"get\", KEYS[1]) == ARGV[1]" in script
    assert (num_keys, released_key, released_token) == (1, key, token)


@pytest.mark.asyncio
async def test_job_lock_tokens_are_unique_per_run():
    redis = fake_redis_client()

    with patch("app.redis.get_redis", AsyncMock(return_value=redis)):
        async with job_lock("nightly"):
            pass
        async with job_lock("nightly"):
            pass

    tokens = [call.args[1] for call in redis.set.await_args_list]
    assert len(set(tokens)) == 2
