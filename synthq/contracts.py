"""Contracts for Redis keys, synthesis requests, jobs and queue entries."""

import uuid
from datetime import UTC, datetime
from enum import StrEnum, auto
from typing import Final, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

CACHE_KEY: Final[str] = "synthq:cache:{key}"  # envelope-wrapped cache values
JOB_KEY: Final[str] = "synthq:job:{job_id}"  # SynthesisJob json
JOB_AUDIO_KEY: Final[str] = "synthq:job:{job_id}:audio"  # raw audio of a completed job
QUEUE_KEY: Final[str] = "synthq:queue"  # sorted set: job_id -> enqueued_at
QUEUE_ENTRIES_KEY: Final[str] = "synthq:queue:entries"  # hash: job_id -> QueueEntry json
PROCESSING_KEY: Final[str] = "synthq:processing"  # hash: job_id -> ProcessingEntry json
LEASE_KEY: Final[str] = "synthq:lease:{job_id}"  # redis NX lock with expiry

MAX_TEXT_CHARS: Final[int] = 10_000
MAX_BATCH_REQUESTS: Final[int] = 10


def utcnow() -> datetime:
    return datetime.now(UTC)


class Providers(StrEnum):
    CLOUD = auto()
    INFERENCE = auto()
    MOCK = auto()


class Gender(StrEnum):
    NEUTRAL = "NEUTRAL"
    FEMALE = "FEMALE"
    MALE = "MALE"


class AudioEncoding(StrEnum):
    MP3 = "MP3"
    WAV = "WAV"
    OGG_OPUS = "OGG_OPUS"

    @property
    def media_type(self) -> str:
        return {"MP3": "audio/mpeg", "WAV": "audio/wav", "OGG_OPUS": "audio/ogg"}[self.value]

    @property
    def extension(self) -> str:
        return {"MP3": "mp3", "WAV": "wav", "OGG_OPUS": "ogg"}[self.value]


class VoiceSelector(BaseModel):
    language_code: str = Field(default="en-US", pattern=r"^[a-z]{2}-[A-Z]{2}$")
    name: str | None = None
    gender: Gender = Gender.NEUTRAL

    model_config = ConfigDict(frozen=True)


class AudioOptions(BaseModel):
    encoding: AudioEncoding = AudioEncoding.MP3
    speaking_rate: float = Field(default=1.0, ge=0.25, le=4.0)
    pitch: float = Field(default=0.0, ge=-20.0, le=20.0)
    volume_gain_db: float = Field(default=0.0, ge=-96.0, le=16.0)
    sample_rate_hz: int = Field(default=24_000, ge=8_000, le=48_000)

    model_config = ConfigDict(frozen=True)


class SynthesisRequest(BaseModel):
    """A synthesis request as accepted from a caller. Immutable once validated."""

    text: str = Field(min_length=1, max_length=MAX_TEXT_CHARS)
    voice: VoiceSelector = Field(default_factory=VoiceSelector)
    audio: AudioOptions = Field(default_factory=AudioOptions)
    async_: bool = Field(default=False, alias="async")
    streaming: bool = False

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be blank")
        return value


class Voice(BaseModel):
    name: str
    language_code: str
    gender: Gender
    natural_sample_rate_hz: int
    description: str | None = None

    model_config = ConfigDict(frozen=True)


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_STATUS_RANK = {JobStatus.PENDING: 0, JobStatus.PROCESSING: 1, JobStatus.COMPLETED: 2, JobStatus.FAILED: 2}


class JobResult(BaseModel):
    audio_length_bytes: int
    duration_seconds: float
    download_reference: str

    model_config = ConfigDict(frozen=True)


class SynthesisJob(BaseModel):
    """Job record kept in the job store. Updated by replacing it with a merged copy."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    request: SynthesisRequest
    user_id: str
    result: JobResult | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    model_config = ConfigDict(frozen=True)


class JobHandle(BaseModel):
    """Caller-facing view of a job."""

    id: str
    status: JobStatus
    progress: int
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    result: JobResult | None = None

    @classmethod
    def from_job(cls, job: SynthesisJob) -> Self:
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            created_at=job.created_at,
            completed_at=job.completed_at,
            error=job.error,
            result=job.result,
        )


class QueueEntry(BaseModel):
    job_id: str
    user_id: str
    priority: int = 1
    enqueued_at: float
    reclaims: int = 0  # times the job was requeued after its lease expired

    model_config = ConfigDict(frozen=True)


class ProcessingEntry(BaseModel):
    """Bookkeeping for a claimed job, used to reclaim jobs whose lease expired."""

    entry: QueueEntry
    claimed_at: float
