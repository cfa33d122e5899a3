"""
Redis-based distributed lock.

Used by the outbox worker so only one process dispatches events and
retries payment operations at a time; two dispatchers would not corrupt
state (consumers are idempotent) but would double the gateway traffic.

Implementation uses SET NX EX for acquire and Lua scripts for atomic
check-and-delete on release and check-and-expire on extend.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_EXTEND = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    pass


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, name: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"carpool:lock:{name}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())
        self.held = False

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        self.held = bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )
        return self.held

    async def extend(self) -> bool:
        """Push the expiry out by another TTL while we still own the lock."""
        return bool(await self.redis.eval(_EXTEND, 1, self.key, self.token, self.ttl))

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE, 1, self.key, self.token)
        self.held = False

    # context-manager support
    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()
