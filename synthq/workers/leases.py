"""Exclusive, expiring claims on jobs.

A lease is a Redis key set with NX and a TTL, holding a random token. Acquire is atomic, and a lease
that is never released (crashed worker) disappears on its own so the job can be reclaimed. Extend
and release only act while the caller's token is still the stored one.
"""

import uuid

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import WatchError

from synthq.contracts import LEASE_KEY


class LeaseLostError(Exception):
    """The lease on a job expired or was taken over while this worker was still processing it."""

    def __init__(self, job_id: str):
        super().__init__(f"Lease on job {job_id!r} was lost")
        self.job_id = job_id


class LeaseManager:
    def __init__(self, redis: Redis, ttl_seconds: int) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    async def acquire(self, job_id: str) -> str | None:
        """Return a lease token, or None if another worker holds the job."""
        token = uuid.uuid4().hex
        was_set = await self._redis.set(LEASE_KEY.format(job_id=job_id), token, ex=self.ttl_seconds, nx=True)
        return token if was_set else None

    async def is_held(self, job_id: str) -> bool:
        return bool(await self._redis.exists(LEASE_KEY.format(job_id=job_id)))

    async def extend(self, job_id: str, token: str) -> bool:
        return await self._if_owner(job_id, token, release=False)

    async def release(self, job_id: str, token: str) -> bool:
        return await self._if_owner(job_id, token, release=True)

    async def _if_owner(self, job_id: str, token: str, *, release: bool) -> bool:
        key = LEASE_KEY.format(job_id=job_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                current = await pipe.get(key)
                if _decode(current) != token:
                    logger.bind(job_id=job_id).warning("Lease no longer owned by this worker")
                    return False
                pipe.multi()
                if release:
                    pipe.delete(key)
                else:
                    pipe.expire(key, self.ttl_seconds)
                await pipe.execute()
                return True
            except WatchError:
                return False


def _decode(value: bytes | str | None) -> str | None:
    return value.decode() if isinstance(value, bytes) else value
