"""Core synthesis logic, decoupled from transport.

Decides per request between the cache, a queued job, chunked synthesis and a single provider call.
"""

from typing import Any

import pydantic
from loguru import logger

from synthq.contracts import (
    MAX_BATCH_REQUESTS,
    MAX_TEXT_CHARS,
    JobStatus,
    SynthesisJob,
    SynthesisRequest,
    Voice,
    utcnow,
)
from synthq.gateway.cache import Cache
from synthq.gateway.chunking import ChunkCallback, ChunkingPipeline
from synthq.gateway.exceptions import (
    InvalidJobTransitionError,
    JobNotFoundError,
    ResourceNotFoundError,
    ValidationError,
)
from synthq.gateway.hashing import calculate_request_fingerprint
from synthq.gateway.job_store import JobStore
from synthq.gateway.text_processing import TextPreprocessor
from synthq.workers.adapters.base import SynthesisProvider
from synthq.workers.queue import JobQueue, QueueStats


def parse_request(payload: dict[str, Any]) -> SynthesisRequest:
    """Validate a raw request body. Nothing touches the cache or the queue before this passes."""
    try:
        return SynthesisRequest.model_validate(payload)
    except pydantic.ValidationError as e:
        errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise ValidationError("Validation failed", errors=errors) from e


def parse_batch(payload: dict[str, Any]) -> list[SynthesisRequest]:
    """Validate a batch body `{"requests": [...]}`. Errors of every item are reported together."""
    items = payload.get("requests")
    if not isinstance(items, list) or not 1 <= len(items) <= MAX_BATCH_REQUESTS:
        raise ValidationError(
            "Validation failed",
            errors=[{"loc": ["requests"], "msg": f"Requests must be an array of 1-{MAX_BATCH_REQUESTS} items"}],
        )

    requests, errors = [], []
    for i, item in enumerate(items):
        try:
            requests.append(parse_request(item))
        except ValidationError as e:
            errors.extend({"loc": ["requests", i, *err["loc"]], "msg": err["msg"]} for err in e.errors)
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return requests


def download_reference(job_id: str) -> str:
    return f"/v1/tts/download/{job_id}"


class SynthesisOrchestrator:
    def __init__(
        self,
        *,
        provider: SynthesisProvider,
        pipeline: ChunkingPipeline,
        cache: Cache,
        job_store: JobStore,
        queue: JobQueue,
        preprocessor: TextPreprocessor,
        cache_ttl_seconds: int,
        fingerprint_text_chars: int,
    ) -> None:
        self._provider = provider
        self._pipeline = pipeline
        self._cache = cache
        self._job_store = job_store
        self._queue = queue
        self._preprocessor = preprocessor
        self._cache_ttl_seconds = cache_ttl_seconds
        self._fingerprint_text_chars = fingerprint_text_chars

    def normalize(self, request: SynthesisRequest) -> SynthesisRequest:
        text = self._preprocessor.process(request.text)
        if not text:
            raise ValidationError("Text is empty after normalization")
        if len(text) > MAX_TEXT_CHARS:
            raise ValidationError(f"Text exceeds {MAX_TEXT_CHARS} characters after normalization")
        return request.model_copy(update={"text": text})

    def fingerprint(self, request: SynthesisRequest) -> str:
        """Cache key of an already normalized request."""
        return calculate_request_fingerprint(
            text=request.text,
            voice=request.voice,
            audio=request.audio,
            provider=self._provider.provider,
            text_chars=self._fingerprint_text_chars,
        )

    async def synthesize(self, request: SynthesisRequest, caller_id: str) -> SynthesisJob | bytes:
        """Return cached or freshly synthesized audio, or a pending job for async requests."""
        normalized = self.normalize(request)
        cache_key = self.fingerprint(normalized)
        req_log = logger.bind(user_id=caller_id, cache_key=cache_key, text_length=len(normalized.text))

        cached = await self._cache.get(cache_key)
        if isinstance(cached, bytes) and cached:
            req_log.info("Returning cached audio result")
            return cached

        if normalized.async_:
            job = await self.submit_job(normalized, caller_id)
            req_log.bind(job_id=job.id).info("Synthesis job queued")
            return job

        try:
            if normalized.streaming:
                audio = await self._pipeline.run(normalized.text, normalized.voice, normalized.audio)
            else:
                audio = await self._provider.synthesize(normalized.text, normalized.voice, normalized.audio)
        except Exception as e:
            req_log.error(f"Text synthesis failed: {e}")
            raise

        await self.store_in_cache(cache_key, audio)
        return audio

    async def submit_job(self, request: SynthesisRequest, caller_id: str, priority: int = 1) -> SynthesisJob:
        job = SynthesisJob(request=request, user_id=caller_id)
        await self._job_store.add_job(job)
        await self._queue.push(job.id, caller_id, priority=priority)
        return job

    async def submit_batch(self, requests: list[SynthesisRequest], caller_id: str) -> list[SynthesisJob]:
        """Queue one job per request, in order, regardless of mode flags. All or nothing on rejected text."""
        normalized = []
        for i, request in enumerate(requests):
            try:
                normalized.append(self.normalize(request))
            except ValidationError as e:
                raise ValidationError(
                    f"Request {i}: {e}", errors=[{"loc": ["requests", i, "text"], "msg": str(e)}]
                ) from e

        jobs = [await self.submit_job(r.model_copy(update={"async_": True}), caller_id) for r in normalized]
        logger.bind(user_id=caller_id).info(f"Batch of {len(jobs)} synthesis jobs queued")
        return jobs

    async def render(self, request: SynthesisRequest, on_chunk: ChunkCallback | None = None) -> bytes:
        """Synthesize a normalized request through the chunking pipeline, ignoring its mode flags."""
        return await self._pipeline.run(request.text, request.voice, request.audio, on_chunk=on_chunk)

    def audio_duration_seconds(self, audio: bytes, request: SynthesisRequest) -> float:
        return round(self._provider.calculate_duration_seconds(audio, request.audio), 3)

    async def store_in_cache(self, cache_key: str, audio: bytes) -> None:
        await self._cache.set(cache_key, audio, self._cache_ttl_seconds)

    async def get_job(self, job_id: str) -> SynthesisJob:
        job = await self._job_store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_job_audio(self, job_id: str) -> tuple[SynthesisJob, bytes]:
        job = await self.get_job(job_id)
        if job.status is not JobStatus.COMPLETED:
            raise ResourceNotFoundError("Audio", job_id, message=f"Job {job_id!r} has no audio ({job.status})")

        audio = await self._job_store.get_audio(job_id)
        if audio is None:
            cached = await self._cache.get(self.fingerprint(job.request))
            audio = cached if isinstance(cached, bytes) else None
        if not audio:
            raise ResourceNotFoundError("Audio", job_id, message=f"Audio for job {job_id!r} has expired")
        return job, audio

    async def cancel_job(self, job_id: str) -> SynthesisJob:
        """Cancel a job that no worker has claimed yet. Claimed jobs run to completion."""
        job = await self.get_job(job_id)
        if not await self._queue.remove(job_id):
            raise InvalidJobTransitionError(job_id, job.status, "cancelled")
        logger.bind(job_id=job_id).info("Job cancelled before processing")
        return await self._job_store.update_job(
            job_id, status=JobStatus.FAILED, error="Job cancelled before processing", completed_at=utcnow()
        )

    async def list_voices(self) -> list[Voice]:
        return await self._provider.list_voices()

    async def queue_stats(self) -> QueueStats:
        return await self._queue.stats()
