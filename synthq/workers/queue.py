"""Ordered job queue on Redis.

Entries live in a sorted set scored by enqueue time (oldest first) plus a hash holding the
QueueEntry payloads. Claimed jobs move to a processing hash until the worker releases them, so
jobs whose worker died can be found and requeued.
"""

import time
from dataclasses import dataclass

import redis.asyncio as redis
from loguru import logger

from synthq.contracts import PROCESSING_KEY, QUEUE_ENTRIES_KEY, QUEUE_KEY, ProcessingEntry, QueueEntry


@dataclass
class QueueConfig:
    """Configuration for a job queue."""

    queue_name: str = QUEUE_KEY  # sorted set: job_id -> enqueued_at
    entries_key: str = QUEUE_ENTRIES_KEY  # hash: job_id -> QueueEntry
    processing_key: str = PROCESSING_KEY  # hash: job_id -> ProcessingEntry


@dataclass
class QueueStats:
    pending: int
    processing: int


class JobQueue:
    def __init__(self, client: redis.Redis, config: QueueConfig | None = None) -> None:
        self._client = client
        self.config = config or QueueConfig()

    async def push(self, job_id: str, user_id: str, priority: int = 1, enqueued_at: float | None = None) -> QueueEntry:
        entry = QueueEntry(
            job_id=job_id,
            user_id=user_id,
            priority=priority,
            enqueued_at=enqueued_at if enqueued_at is not None else time.time(),
        )
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(self.config.entries_key, job_id, entry.model_dump_json())
            pipe.zadd(self.config.queue_name, {job_id: entry.enqueued_at})
            await pipe.execute()
        return entry

    async def peek(self, count: int = 1) -> list[QueueEntry]:
        """Return up to `count` entries, oldest first, without removing them."""
        job_ids = await self._client.zrange(self.config.queue_name, 0, count - 1)
        if not job_ids:
            return []
        raw_entries = await self._client.hmget(self.config.entries_key, job_ids)

        entries = []
        for job_id, raw in zip(job_ids, raw_entries):
            if raw is None:
                # Payload gone but id still ordered, drop the dangling id
                logger.warning(f"Queue entry {_decode(job_id)} has no payload, dropping it")
                await self._client.zrem(self.config.queue_name, job_id)
                continue
            entries.append(QueueEntry.model_validate_json(raw))
        return entries

    async def claim(self, entry: QueueEntry) -> bool:
        """Remove `entry` from the queue and record it as processing.

        Returns False if the entry was no longer queued (claimed or cancelled meanwhile).
        """
        processing = ProcessingEntry(entry=entry, claimed_at=time.time())
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zrem(self.config.queue_name, entry.job_id)
            pipe.hdel(self.config.entries_key, entry.job_id)
            pipe.hset(self.config.processing_key, entry.job_id, processing.model_dump_json())
            removed, _, _ = await pipe.execute()
        if not removed:
            await self._client.hdel(self.config.processing_key, entry.job_id)
            return False
        return True

    async def remove(self, job_id: str) -> bool:
        """Drop a job that has not been claimed yet. Returns True if it was still queued."""
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zrem(self.config.queue_name, job_id)
            pipe.hdel(self.config.entries_key, job_id)
            removed, _ = await pipe.execute()
        return bool(removed)

    async def requeue(self, processing: ProcessingEntry) -> bool:
        """Put a previously claimed job back at its original position.

        Returns False if the job had already left the processing set (finished or requeued elsewhere).
        """
        entry = processing.entry.model_copy(update={"reclaims": processing.entry.reclaims + 1})
        if not await self.finish(entry.job_id):
            return False
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(self.config.entries_key, entry.job_id, entry.model_dump_json())
            pipe.zadd(self.config.queue_name, {entry.job_id: entry.enqueued_at})
            await pipe.execute()
        logger.info(f"Re-queued job {entry.job_id}, reclaims={entry.reclaims}")
        return True

    async def list_processing(self) -> list[ProcessingEntry]:
        entries = await self._client.hgetall(self.config.processing_key)
        return [ProcessingEntry.model_validate_json(raw) for raw in entries.values()]

    async def finish(self, job_id: str) -> bool:
        return bool(await self._client.hdel(self.config.processing_key, job_id))

    async def stats(self) -> QueueStats:
        pending = await self._client.zcard(self.config.queue_name)
        processing = await self._client.hlen(self.config.processing_key)
        return QueueStats(pending=pending, processing=processing)


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value
