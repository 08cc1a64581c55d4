import fakeredis
import pytest
import pytest_asyncio

from synthq.contracts import AudioOptions, Providers, Voice, VoiceSelector
from synthq.gateway.cache import RedisCache
from synthq.gateway.chunking import ChunkingPipeline
from synthq.gateway.job_store import JobStore
from synthq.gateway.synthesis import SynthesisOrchestrator
from synthq.gateway.text_processing import TextPreprocessor
from synthq.workers.adapters.base import SynthesisProvider
from synthq.workers.leases import LeaseManager
from synthq.workers.queue import JobQueue
from synthq.workers.tts_loop import SynthesisScheduler


class ScriptedProvider(SynthesisProvider):
    """Test double: plays back queued outcomes (bytes or exceptions), then echoes the text."""

    provider = Providers.MOCK
    max_chunk_chars = 40

    def __init__(self, script=None, **kwargs) -> None:
        kwargs.setdefault("retry_backoff_seconds", 0)
        super().__init__(**kwargs)
        self.script = list(script or [])
        self.calls: list[str] = []

    async def list_voices(self) -> list[Voice]:
        return []

    async def _request_audio(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        self.calls.append(text)
        if self.script:
            outcome = self.script.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return f"<{text}>".encode()


@pytest_asyncio.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    yield client
    await client.aclose()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def cache(redis_client):
    return RedisCache(redis_client)


@pytest.fixture
def job_store(redis_client):
    return JobStore(redis_client, ttl_seconds=3600)


@pytest.fixture
def queue(redis_client):
    return JobQueue(redis_client)


@pytest.fixture
def leases(redis_client):
    return LeaseManager(redis_client, ttl_seconds=30)


@pytest.fixture
def orchestrator(provider, cache, job_store, queue):
    return SynthesisOrchestrator(
        provider=provider,
        pipeline=ChunkingPipeline(provider, delay_seconds=0),
        cache=cache,
        job_store=job_store,
        queue=queue,
        preprocessor=TextPreprocessor(),
        cache_ttl_seconds=3600,
        fingerprint_text_chars=10_000,
    )


@pytest.fixture
def scheduler(orchestrator, job_store, queue, leases):
    return SynthesisScheduler(orchestrator, job_store, queue, leases, poll_interval_seconds=0, max_reclaims=2)
