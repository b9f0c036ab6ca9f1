from __future__ import annotations

import redis.asyncio as redis
from fastapi import Request
from redis.exceptions import RedisError

from app.core.errors import CoordinationStoreError


# INCR and first-write EXPIRE run as one script so a crash between the two
# can never leave a counter without a TTL.
_INCR_WITH_EXPIRY = """
local current = redis.call('INCR', KEYS[1])
if current == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return current
"""


class CoordinationStore:
    """
    Shared TTL key-value store used to coordinate service instances.

    - Every write carries a TTL; a missing key means "not seen" or "expired".
    - All operations are atomic on the Redis side.
    - Any Redis failure surfaces as CoordinationStoreError. Callers decide
      whether to fail open (cache, rate limit) or surface it (webhooks).
    """

    def __init__(self, client: redis.Redis):
        self.r = client
        self._incr_script = client.register_script(_INCR_WITH_EXPIRY)

    @classmethod
    def from_url(cls, redis_url: str, *, timeout_seconds: float = 2.0) -> "CoordinationStore":
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self.r.aclose()

    async def ping(self) -> bool:
        try:
            return bool(await self.r.ping())
        except RedisError as e:
            raise CoordinationStoreError(f"ping failed: {e}") from e

    async def get(self, key: str) -> str | None:
        try:
            return await self.r.get(key)
        except RedisError as e:
            raise CoordinationStoreError(f"get {key!r} failed: {e}") from e

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.r.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CoordinationStoreError(f"set {key!r} failed: {e}") from e

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET NX EX. True when this call created the key."""
        try:
            created = await self.r.set(key, value, ex=ttl_seconds, nx=True)
        except RedisError as e:
            raise CoordinationStoreError(f"set-if-absent {key!r} failed: {e}") from e
        return bool(created)

    async def incr_with_expiry(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter; the TTL is applied only when the counter is created."""
        try:
            value = await self._incr_script(keys=[key], args=[ttl_seconds])
        except RedisError as e:
            raise CoordinationStoreError(f"incr {key!r} failed: {e}") from e
        return int(value)

    async def delete(self, key: str) -> None:
        try:
            await self.r.delete(key)
        except RedisError as e:
            raise CoordinationStoreError(f"delete {key!r} failed: {e}") from e


def get_coordination_store(request: Request) -> CoordinationStore:
    # created once per process in the app lifespan
    return request.app.state.coordination_store
