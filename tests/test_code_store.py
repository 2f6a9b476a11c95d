"""
tests/test_code_store.py -- Tests for MemoryCodeStore and RedisCodeStore.

RedisCodeStore is exercised against a MagicMock client: the tests pin down the
commands sent (prefix, EX ttl, JSON payload) and the fault translation, not
Redis itself.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from cache.store import MemoryCodeStore, RedisCodeStore
from core.context import CallContext
from core.errors import DeadlineExceededError, StoreUnavailableError


class TestMemoryCodeStore:
    def test_set_get_delete(self, codes, ctx):
        codes.set(ctx, "123456", 999, 300)
        assert codes.get(ctx, "123456") == 999
        assert codes.delete(ctx, "123456") is True
        assert codes.get(ctx, "123456") is None
        assert codes.delete(ctx, "123456") is False

    def test_missing_key(self, codes, ctx):
        assert codes.get(ctx, "000000") is None

    def test_expires_at_ttl(self, codes, clock, ctx):
        codes.set(ctx, "123456", 999, 300)
        clock.advance(299.9)
        assert codes.get(ctx, "123456") == 999
        clock.advance(0.1)
        assert codes.get(ctx, "123456") is None

    def test_overwrite_resets_ttl(self, codes, clock, ctx):
        codes.set(ctx, "123456", 1, 10)
        clock.advance(8)
        codes.set(ctx, "123456", 2, 10)
        clock.advance(8)
        assert codes.get(ctx, "123456") == 2

    def test_purge_expired(self, codes, clock, ctx):
        codes.set(ctx, "111111", 1, 10)
        codes.set(ctx, "222222", 2, 100)
        clock.advance(50)
        assert codes.purge_expired() == 1
        assert codes.get(ctx, "222222") == 2

    def test_cancelled_context(self, codes):
        ctx = CallContext("test")
        ctx.cancel()
        with pytest.raises(DeadlineExceededError):
            codes.set(ctx, "123456", 999, 300)

    def test_close_drops_everything(self, codes, ctx):
        codes.set(ctx, "123456", 999, 300)
        codes.close()
        assert codes.get(ctx, "123456") is None

    def test_default_clock(self, ctx):
        store = MemoryCodeStore()
        store.set(ctx, "123456", 999, 300)
        assert store.get(ctx, "123456") == 999


class TestRedisCodeStore:
    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def redis_codes(self, client) -> RedisCodeStore:
        return RedisCodeStore("redis://unused", client=client)

    def test_set_uses_prefix_json_and_ttl(self, redis_codes, client, ctx):
        redis_codes.set(ctx, "123456", 999, 300)
        client.set.assert_called_once_with("auth_code:123456", "999", ex=300)

    def test_get_decodes_json(self, redis_codes, client, ctx):
        client.get.return_value = "999"
        assert redis_codes.get(ctx, "123456") == 999
        client.get.assert_called_once_with("auth_code:123456")

    def test_get_missing(self, redis_codes, client, ctx):
        client.get.return_value = None
        assert redis_codes.get(ctx, "123456") is None

    def test_get_undecodable_value_is_missing(self, redis_codes, client, ctx):
        client.get.return_value = "not-json{"
        assert redis_codes.get(ctx, "123456") is None

    def test_delete_reports_existence(self, redis_codes, client, ctx):
        client.delete.return_value = 1
        assert redis_codes.delete(ctx, "123456") is True
        client.delete.return_value = 0
        assert redis_codes.delete(ctx, "123456") is False

    def test_connection_error_is_store_unavailable(self, redis_codes, client, ctx):
        failure = redis.exceptions.ConnectionError("Connection refused")
        client.get.side_effect = failure
        with pytest.raises(StoreUnavailableError) as exc_info:
            redis_codes.get(ctx, "123456")
        assert exc_info.value.__cause__ is failure
        assert exc_info.value.retryable is False

    def test_error_after_deadline_is_deadline_exceeded(self, redis_codes, client):
        ctx = CallContext("test")

        def _cancel_then_fail(*args, **kwargs):
            ctx.cancel()
            raise redis.exceptions.TimeoutError("Timeout reading from socket")

        client.set.side_effect = _cancel_then_fail
        with pytest.raises(DeadlineExceededError):
            redis_codes.set(ctx, "123456", 999, 300)

    def test_cancelled_context_sends_nothing(self, redis_codes, client):
        ctx = CallContext("test")
        ctx.cancel()
        with pytest.raises(DeadlineExceededError):
            redis_codes.get(ctx, "123456")
        client.get.assert_not_called()

    def test_ping_and_close(self, redis_codes, client, ctx):
        client.ping.return_value = True
        assert redis_codes.ping(ctx) is True
        redis_codes.close()
        client.close.assert_called_once()

    def test_from_url_does_not_connect(self):
        """redis-py connects lazily; constructing the store needs no server."""
        store = RedisCodeStore("redis://localhost:6399/0", socket_timeout=0.1)
        store.close()
