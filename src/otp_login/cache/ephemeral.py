"""Ephemeral key-value store with per-key TTL.

Backs OTP challenges and rate-limit counters.  Every read-decide-write
sequence runs atomically inside the store (Lua scripts / MULTI for
Redis, a single lock for the in-memory variant), never as separate
round trips from the application.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from otp_login.errors import StorageUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0

# Returns {count, ttl}.  The first hit in a window creates the counter
# with the window as TTL; later hits increment it.
INCR_WITH_EXPIRY_SCRIPT = """
local key = KEYS[1]
local win = tonumber(ARGV[1])

if redis.call("EXISTS", key) == 0 then
  redis.call("SET", key, 1, "EX", win)
  return {1, win}
end

local count = redis.call("INCR", key)
local ttl = redis.call("TTL", key)
if ttl < 0 then
  redis.call("EXPIRE", key, win)
  ttl = win
end
return {count, ttl}
"""

# Returns 1 and deletes the key when the field matches, else 0.
CONSUME_FIELD_SCRIPT = """
local stored = redis.call("HGET", KEYS[1], ARGV[1])
if stored and stored == ARGV[2] then
  redis.call("DEL", KEYS[1])
  return 1
end
return 0
"""


class EphemeralStore(Protocol):
    async def put_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int, *, timeout: float | None = None
    ) -> None:
        ...

    async def get_hash(self, key: str, *, timeout: float | None = None) -> dict[str, str]:
        ...

    async def consume_hash_field(
        self, key: str, field: str, expected: str, *, timeout: float | None = None
    ) -> bool:
        ...

    async def delete(self, key: str, *, timeout: float | None = None) -> None:
        ...

    async def incr_with_expiry(
        self, key: str, window_seconds: int, *, timeout: float | None = None
    ) -> tuple[int, int]:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


class RedisEphemeralStore:
    """Redis-backed store using ``redis.asyncio``."""

    def __init__(self, client: redis.Redis, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._redis = client
        self._timeout = timeout
        self._incr_script = client.register_script(INCR_WITH_EXPIRY_SCRIPT)
        self._consume_script = client.register_script(CONSUME_FIELD_SCRIPT)

    @classmethod
    def from_url(cls, url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> RedisEphemeralStore:
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, timeout=timeout)

    @asynccontextmanager
    async def _guard(
        self, operation: str, timeout: float | None, *, mutates: bool = False
    ) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._timeout if timeout is None else timeout):
                yield
        except (RedisError, OSError, TimeoutError) as exc:
            logger.error("Ephemeral store %s failed: %r", operation, exc)
            raise StorageUnavailable(
                "Ephemeral store unavailable", outcome_unknown=mutates
            ) from exc

    async def put_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int, *, timeout: float | None = None
    ) -> None:
        async with self._guard("put_hash", timeout, mutates=True):
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, ttl_seconds)
                await pipe.execute()

    async def get_hash(self, key: str, *, timeout: float | None = None) -> dict[str, str]:
        async with self._guard("get_hash", timeout):
            return await self._redis.hgetall(key)

    async def consume_hash_field(
        self, key: str, field: str, expected: str, *, timeout: float | None = None
    ) -> bool:
        async with self._guard("consume_hash_field", timeout, mutates=True):
            result = await self._consume_script(keys=[key], args=[field, expected])
        return int(result) == 1

    async def delete(self, key: str, *, timeout: float | None = None) -> None:
        async with self._guard("delete", timeout, mutates=True):
            await self._redis.delete(key)

    async def incr_with_expiry(
        self, key: str, window_seconds: int, *, timeout: float | None = None
    ) -> tuple[int, int]:
        async with self._guard("incr_with_expiry", timeout, mutates=True):
            result = await self._incr_script(keys=[key], args=[window_seconds])
        if not isinstance(result, list) or len(result) != 2:
            raise StorageUnavailable(f"Unexpected counter result: {result!r}")
        return int(result[0]), int(result[1])

    async def ping(self) -> None:
        async with self._guard("ping", None):
            await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()


@dataclass
class _Entry:
    value: object
    expires_at: float


class InMemoryEphemeralStore:
    """Single-process store for development and tests.

    Expired entries are purged lazily on access.  ``clock`` must be
    monotonic; tests pass a controllable one.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry

    async def put_hash(
        self, key: str, mapping: dict[str, str], ttl_seconds: int, *, timeout: float | None = None
    ) -> None:
        async with self._lock:
            self._entries[key] = _Entry(dict(mapping), self._clock() + ttl_seconds)

    async def get_hash(self, key: str, *, timeout: float | None = None) -> dict[str, str]:
        async with self._lock:
            entry = self._live(key)
            return dict(entry.value) if entry else {}

    async def consume_hash_field(
        self, key: str, field: str, expected: str, *, timeout: float | None = None
    ) -> bool:
        async with self._lock:
            entry = self._live(key)
            if entry is None or entry.value.get(field) != expected:
                return False
            del self._entries[key]
            return True

    async def delete(self, key: str, *, timeout: float | None = None) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def incr_with_expiry(
        self, key: str, window_seconds: int, *, timeout: float | None = None
    ) -> tuple[int, int]:
        async with self._lock:
            now = self._clock()
            entry = self._live(key)
            if entry is None:
                self._entries[key] = _Entry(1, now + window_seconds)
                return 1, window_seconds
            entry.value += 1
            return entry.value, math.ceil(entry.expires_at - now)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        self._entries.clear()
