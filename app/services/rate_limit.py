from __future__ import annotations
from dataclasses import dataclass

from app.services.coordination import CoordinationStore


def rate_key(identity: str) -> str:
    return f"rate:{identity}"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int


class FixedWindowRateLimiter:
    """
    Fixed-window counter per identity.

    The window starts with the first request (the counter's TTL) and the
    counter simply disappears when it expires, so bursts straddling two
    windows are admitted. Store failures propagate as CoordinationStoreError;
    the caller owns the fail-open policy.
    """

    def __init__(self, store: CoordinationStore, *, limit: int = 100, window_seconds: int = 60):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds

    async def admit(self, identity: str) -> RateLimitDecision:
        # INCR with expiry on first write
        count = await self.store.incr_with_expiry(rate_key(identity), self.window_seconds)

        remaining = max(0, self.limit - count)
        return RateLimitDecision(allowed=count <= self.limit, limit=self.limit, remaining=remaining)
