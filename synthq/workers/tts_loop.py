"""Background scheduler that drains the synthesis job queue."""

import asyncio
import time
import uuid

from loguru import logger

from synthq.contracts import JobResult, JobStatus, QueueEntry, utcnow
from synthq.gateway.job_store import JobStore
from synthq.gateway.synthesis import SynthesisOrchestrator, download_reference
from synthq.workers.leases import LeaseLostError, LeaseManager
from synthq.workers.queue import JobQueue

CLAIMED_PROGRESS = 10
CHUNK_PROGRESS_SPAN = 80


class SynthesisScheduler:
    """Claims queued jobs oldest first and runs them one at a time.

    A job is claimed by acquiring its lease and then moving it from the queue to the processing set.
    The lease is extended after every synthesized chunk. Processing entries whose lease has expired
    belong to a dead worker and are requeued, up to `max_reclaims` times before the job is failed.
    A worker that finds its lease gone stops without touching the job, which now belongs to the new owner.
    """

    def __init__(
        self,
        orchestrator: SynthesisOrchestrator,
        job_store: JobStore,
        queue: JobQueue,
        leases: LeaseManager,
        *,
        poll_interval_seconds: float = 1.0,
        peek_size: int = 10,
        max_reclaims: int = 2,
        worker_id: str | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._job_store = job_store
        self._queue = queue
        self._leases = leases
        self._poll_interval_seconds = poll_interval_seconds
        self._peek_size = peek_size
        self._max_reclaims = max_reclaims
        self.worker_id = worker_id or f"scheduler-{uuid.uuid4().hex[:8]}"

    async def run(self) -> None:
        logger.info(f"Synthesis scheduler {self.worker_id} starting, poll={self._poll_interval_seconds}s")
        try:
            while True:
                try:
                    job_id = await self.tick()
                except Exception as e:
                    logger.exception(f"Scheduler tick failed: {e}")
                    job_id = None
                if job_id is None:
                    await asyncio.sleep(self._poll_interval_seconds)
        except asyncio.CancelledError:
            logger.info(f"Synthesis scheduler {self.worker_id} shutting down")
            raise

    async def tick(self) -> str | None:
        """Recover abandoned jobs, then process at most one queued job. Returns its id, if any."""
        await self.recover_expired()

        for entry in await self._queue.peek(self._peek_size):
            token = await self._leases.acquire(entry.job_id)
            if token is None:
                continue
            owned = True
            try:
                if not await self._queue.claim(entry):
                    continue
                owned = await self._process(entry, token)
                return entry.job_id
            finally:
                # a lost lease means the processing entry belongs to the new owner
                if owned:
                    await self._queue.finish(entry.job_id)
                    await self._leases.release(entry.job_id, token)
        return None

    async def recover_expired(self) -> int:
        """Requeue or fail processing entries whose lease expired. Returns how many were handled."""
        handled = 0
        for processing in await self._queue.list_processing():
            job_id = processing.entry.job_id
            if await self._leases.is_held(job_id):
                continue

            job_log = logger.bind(job_id=job_id, worker_id=self.worker_id)
            if processing.entry.reclaims >= self._max_reclaims:
                if not await self._queue.finish(job_id):
                    continue
                job = await self._job_store.get_job(job_id)
                if job is None or job.status.is_terminal:
                    job_log.info("Abandoned job already finished, dropping its processing entry")
                else:
                    job_log.error(f"Job abandoned {processing.entry.reclaims + 1} times, giving up")
                    await self._fail(job_id, f"Job abandoned by its worker {processing.entry.reclaims + 1} times")
            else:
                if not await self._queue.requeue(processing):
                    continue
                job_log.warning("Lease expired while processing, job requeued")
            handled += 1
        return handled

    async def _process(self, entry: QueueEntry, token: str) -> bool:
        """Run one claimed job. Returns False if the lease was lost and the job left to its new owner."""
        job = await self._job_store.get_job(entry.job_id)
        if job is None:
            logger.bind(job_id=entry.job_id).warning("Job record expired before processing, skipping")
            return True
        if job.status.is_terminal:
            logger.bind(job_id=job.id).info(f"Job already {job.status}, skipping")
            return True

        job_log = logger.bind(job_id=job.id, user_id=job.user_id, worker_id=self.worker_id)
        start_time = time.time()
        queue_wait_ms = int((start_time - entry.enqueued_at) * 1000)
        await self._job_store.update_job(job.id, status=JobStatus.PROCESSING, progress=CLAIMED_PROGRESS)

        async def on_chunk(done: int, total: int) -> None:
            if not await self._leases.extend(job.id, token):
                raise LeaseLostError(job.id)
            await self._job_store.update_job(
                job.id, progress=CLAIMED_PROGRESS + CHUNK_PROGRESS_SPAN * done // total
            )

        try:
            audio = await self._orchestrator.render(job.request, on_chunk=on_chunk)
            if not await self._leases.extend(job.id, token):
                raise LeaseLostError(job.id)
        except LeaseLostError:
            job_log.warning("Lease lost while processing, abandoning job")
            return False
        except Exception as e:
            job_log.exception(f"Job failed: {e}")
            await self._fail(job.id, str(e))
            return True

        await self._job_store.save_audio(job.id, audio)
        duration_seconds = self._orchestrator.audio_duration_seconds(audio, job.request)
        await self._job_store.update_job(
            job.id,
            status=JobStatus.COMPLETED,
            progress=100,
            completed_at=utcnow(),
            result=JobResult(
                audio_length_bytes=len(audio),
                duration_seconds=duration_seconds,
                download_reference=download_reference(job.id),
            ),
        )
        await self._orchestrator.store_in_cache(self._orchestrator.fingerprint(job.request), audio)

        processing_time_ms = int((time.time() - start_time) * 1000)
        job_log.info(
            f"Job completed: {processing_time_ms}ms processing, {queue_wait_ms}ms queued, "
            f"{duration_seconds}s audio, {len(audio)} bytes"
        )
        return True

    async def _fail(self, job_id: str, error: str) -> None:
        await self._job_store.update_job(job_id, status=JobStatus.FAILED, error=error, completed_at=utcnow())
