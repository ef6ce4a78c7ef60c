"""Fixed-window rate limiter for OTP issuance."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from otp_login.cache.ephemeral import EphemeralStore

logger = logging.getLogger(__name__)

RATE_LIMIT_MAX = 3
RATE_LIMIT_WINDOW_SECONDS = 600


@dataclass(frozen=True)
class Admission:
    """Outcome of one admission attempt."""

    allowed: bool
    count: int
    limit: int
    retry_after: int


class RateLimiter:
    """Admits at most ``limit`` requests per identity per fixed window.

    Every call increments the counter, including rejected ones, and the
    decision is taken on the post-increment value.  The check and the
    increment are one atomic store operation.  Store failures propagate
    as :class:`~otp_login.errors.StorageUnavailable`; they never count as
    admitted.
    """

    def __init__(
        self,
        store: EphemeralStore,
        limit: int = RATE_LIMIT_MAX,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        prefix: str = "rl:otp",
    ) -> None:
        self._store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._prefix = prefix

    def key(self, identity: str) -> str:
        return f"{self._prefix}:{identity}"

    async def admit(self, identity: str, *, timeout: float | None = None) -> Admission:
        count, ttl = await self._store.incr_with_expiry(
            self.key(identity), self.window_seconds, timeout=timeout
        )
        allowed = count <= self.limit
        if not allowed:
            logger.warning("Rate limit hit for %s (%d/%d)", identity, count, self.limit)
        return Admission(allowed=allowed, count=count, limit=self.limit, retry_after=max(ttl, 0))
