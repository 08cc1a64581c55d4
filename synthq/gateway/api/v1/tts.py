from typing import Any

from fastapi import APIRouter, Body, Response, status
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

from synthq.contracts import JobHandle, Voice
from synthq.gateway.cache import CacheStats
from synthq.gateway.deps import AudioCache, CallerId, Orchestrator
from synthq.gateway.synthesis import parse_batch, parse_request

router = APIRouter(prefix="/v1/tts", tags=["synthesis"])


class VoicesResponse(BaseModel):
    voices: list[Voice]
    by_language: dict[str, list[Voice]]


class BatchResponse(BaseModel):
    jobs: list[JobHandle]


class QueueStatsResponse(BaseModel):
    pending: int
    processing: int
    cache: CacheStats


@router.post("/synthesize")
async def synthesize(
    orchestrator: Orchestrator,
    caller_id: CallerId,
    payload: dict[str, Any] = Body(...),
) -> Response:
    """Synthesize speech. Returns audio bytes, or 202 with a job handle for async requests."""
    request = parse_request(payload)
    result = await orchestrator.synthesize(request, caller_id)

    if isinstance(result, bytes):
        encoding = request.audio.encoding
        return Response(
            content=result,
            media_type=encoding.media_type,
            headers={"X-Audio-Encoding": encoding.value, "X-Audio-Length": str(len(result))},
        )

    return ORJSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=JobHandle.from_job(result).model_dump(mode="json"),
        headers={"Location": f"/v1/tts/status/{result.id}"},
    )


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED)
async def synthesize_batch(
    orchestrator: Orchestrator,
    caller_id: CallerId,
    payload: dict[str, Any] = Body(...),
) -> BatchResponse:
    """Queue 1-10 requests as asynchronous jobs. Returns one job handle per request, in order."""
    jobs = await orchestrator.submit_batch(parse_batch(payload), caller_id)
    return BatchResponse(jobs=[JobHandle.from_job(job) for job in jobs])


@router.get("/voices")
async def list_voices(orchestrator: Orchestrator) -> VoicesResponse:
    voices = await orchestrator.list_voices()
    by_language: dict[str, list[Voice]] = {}
    for voice in voices:
        by_language.setdefault(voice.language_code, []).append(voice)
    return VoicesResponse(voices=voices, by_language=by_language)


@router.get("/status/{job_id}")
async def get_status(job_id: str, orchestrator: Orchestrator) -> JobHandle:
    return JobHandle.from_job(await orchestrator.get_job(job_id))


@router.get("/download/{job_id}")
async def download(job_id: str, orchestrator: Orchestrator) -> Response:
    """Audio of a completed job, for as long as the job record is retained."""
    job, audio = await orchestrator.get_job_audio(job_id)
    encoding = job.request.audio.encoding
    return Response(
        content=audio,
        media_type=encoding.media_type,
        headers={"Content-Disposition": f'attachment; filename="{job_id}.{encoding.extension}"'},
    )


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, orchestrator: Orchestrator) -> JobHandle:
    return JobHandle.from_job(await orchestrator.cancel_job(job_id))


@router.get("/queue/stats")
async def queue_stats(orchestrator: Orchestrator, cache: AudioCache) -> QueueStatsResponse:
    stats = await orchestrator.queue_stats()
    return QueueStatsResponse(pending=stats.pending, processing=stats.processing, cache=await cache.stats())
