"""Redis-backed job records with TTL-bounded retention."""

from typing import Any

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import WatchError

from synthq.contracts import JOB_AUDIO_KEY, JOB_KEY, JobStatus, SynthesisJob
from synthq.gateway.exceptions import InvalidJobTransitionError, JobNotFoundError

MAX_UPDATE_ATTEMPTS = 5


class JobStore:
    """Stores SynthesisJob records. Records expire `ttl_seconds` after their last write.

    Updates are merged into the stored record under an optimistic WATCH, and the store itself
    enforces the job state machine: status never moves backwards, terminal jobs never change and
    progress never decreases.
    """

    def __init__(self, redis: Redis, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl_seconds = ttl_seconds

    async def add_job(self, job: SynthesisJob) -> None:
        await self._redis.set(JOB_KEY.format(job_id=job.id), job.model_dump_json(), ex=self._ttl_seconds)

    async def get_job(self, job_id: str) -> SynthesisJob | None:
        raw = await self._redis.get(JOB_KEY.format(job_id=job_id))
        return SynthesisJob.model_validate_json(raw) if raw is not None else None

    async def update_job(self, job_id: str, **changes: Any) -> SynthesisJob:
        key = JOB_KEY.format(job_id=job_id)
        for _ in range(MAX_UPDATE_ATTEMPTS):
            async with self._redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise JobNotFoundError(job_id)
                    updated = merge_job(SynthesisJob.model_validate_json(raw), changes)
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json(), ex=self._ttl_seconds)
                    await pipe.execute()
                    return updated
                except WatchError:
                    logger.bind(job_id=job_id).debug("Job changed during update, retrying")
        raise RuntimeError(f"Could not update job {job_id} after {MAX_UPDATE_ATTEMPTS} attempts")

    async def save_audio(self, job_id: str, audio: bytes) -> None:
        await self._redis.set(JOB_AUDIO_KEY.format(job_id=job_id), audio, ex=self._ttl_seconds)

    async def get_audio(self, job_id: str) -> bytes | None:
        return await self._redis.get(JOB_AUDIO_KEY.format(job_id=job_id))


def merge_job(job: SynthesisJob, changes: dict[str, Any]) -> SynthesisJob:
    """Apply `changes` to `job`, enforcing status monotonicity and non-decreasing progress."""
    if job.status.is_terminal:
        requested = changes.get("status", job.status)
        raise InvalidJobTransitionError(job.id, job.status, requested)

    if "status" in changes:
        new_status = JobStatus(changes["status"])
        if new_status.rank < job.status.rank:
            raise InvalidJobTransitionError(job.id, job.status, new_status)
        changes["status"] = new_status

    if "progress" in changes:
        changes["progress"] = max(job.progress, min(int(changes["progress"]), 100))

    merged = job.model_dump()
    merged.update(changes)
    return SynthesisJob.model_validate(merged)
