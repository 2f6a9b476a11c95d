"""
cache/store.py -- Ephemeral key-value stores for in-flight verification codes.

Every entry has a TTL. An expired entry is indistinguishable from one that
was never written: get() returns None for both. Values are JSON-encoded on
the way in and decoded on the way out, so ints round-trip as ints.

Two backends implement the CodeStore protocol:
  RedisCodeStore  -- production. Expiry is enforced by Redis (SET ... EX).
  MemoryCodeStore -- single process only (tests, local dev). Expiry is
                     checked lazily on read, like a TTL cache; call
                     purge_expired() periodically to trim dead entries.

Usage:
    codes = RedisCodeStore("redis://localhost:6379/0")
    codes.set(ctx, "483920", 999, ttl=300)
    codes.get(ctx, "483920")         # 999, or None once expired
    codes.delete(ctx, "483920")

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis

from core.context import CallContext
from core.errors import DeadlineExceededError, StoreUnavailableError

_KEY_PREFIX = "auth_code:"


class CodeStore(Protocol):
    def set(self, ctx: CallContext, key: str, value: Any, ttl: int) -> None: ...

    def get(self, ctx: CallContext, key: str) -> Any | None: ...

    def delete(self, ctx: CallContext, key: str) -> bool: ...

    def ping(self, ctx: CallContext) -> bool: ...

    def close(self) -> None: ...


class RedisCodeStore:
    """CodeStore backed by a Redis server.

    socket_timeout bounds every command; redis-py has no per-command
    deadline, so a CallContext is checked before each command is sent.
    """

    def __init__(self, url: str, socket_timeout: float = 5.0, client: redis.Redis | None = None) -> None:
        self._client = client or redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )

    def _call(self, ctx: CallContext, fn: Callable[[], Any]) -> Any:
        ctx.check()
        try:
            return fn()
        except redis.exceptions.RedisError as exc:
            if ctx.cancelled or (ctx.deadline is not None and ctx.remaining() == 0):
                raise DeadlineExceededError() from exc
            raise StoreUnavailableError() from exc

    def set(self, ctx: CallContext, key: str, value: Any, ttl: int) -> None:
        payload = json.dumps(value)
        self._call(ctx, lambda: self._client.set(_KEY_PREFIX + key, payload, ex=ttl))

    def get(self, ctx: CallContext, key: str) -> Any | None:
        raw = self._call(ctx, lambda: self._client.get(_KEY_PREFIX + key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            # Not written by set(); treat the key as holding no code.
            return None

    def delete(self, ctx: CallContext, key: str) -> bool:
        """Remove key. Returns True if it existed."""
        return self._call(ctx, lambda: self._client.delete(_KEY_PREFIX + key)) > 0

    def ping(self, ctx: CallContext) -> bool:
        return bool(self._call(ctx, self._client.ping))

    def close(self) -> None:
        self._client.close()


class MemoryCodeStore:
    """In-process CodeStore with per-key TTL.

    `clock` defaults to time.monotonic; tests pass a fake clock to step past
    the TTL without sleeping. A lock guards the dict because background code
    writes run on a worker thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def set(self, ctx: CallContext, key: str, value: Any, ttl: int) -> None:
        ctx.check()
        with self._lock:
            self._entries[key] = (json.dumps(value), self._clock() + ttl)

    def get(self, ctx: CallContext, key: str) -> Any | None:
        """Return the value for key if it exists and hasn't expired."""
        ctx.check()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
        return json.loads(payload)

    def delete(self, ctx: CallContext, key: str) -> bool:
        ctx.check()
        with self._lock:
            return self._entries.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of entries removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def ping(self, ctx: CallContext) -> bool:
        return True

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
