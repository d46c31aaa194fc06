"""
Redis-based distributed lock.

Used by the auto-dispatch worker so that, with several API processes
running, only one of them dispatches bookings in a given cycle.

Acquire is ``SET key token NX EX ttl``; release runs a Lua script that
deletes the key only if it still holds our token, so a lock that expired
and was taken over by another process is never released by us.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    """Another holder owns the lock."""


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        name: str,
        ttl_seconds: int = 30,
        namespace: str = "transfer:lock",
    ):
        self.redis = client
        self.key = f"{namespace}:{name}"
        self.ttl = ttl_seconds
        self.token = uuid.uuid4().hex

    async def acquire(self) -> bool:
        """Try once; never waits.  Returns True when the lock is ours."""
        acquired = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        if not acquired:
            logger.debug("Lock %s is held elsewhere", self.key)
        return acquired

    async def release(self) -> bool:
        """Release only if we still own the lock.  Returns True if deleted."""
        deleted = await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        return bool(deleted)

    async def __aenter__(self) -> "DistributedLock":
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.release()
