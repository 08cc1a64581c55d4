import asyncio
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger
from redis.asyncio import Redis

from synthq.gateway.api.v1 import routers as v1_routers
from synthq.gateway.cache import RedisCache
from synthq.gateway.chunking import ChunkingPipeline
from synthq.gateway.config import Settings, get_settings
from synthq.gateway.exceptions import APIError, CacheUnavailableError
from synthq.gateway.job_store import JobStore
from synthq.gateway.logging_config import (
    RequestContextMiddleware,
    api_error_handler,
    configure_logging,
    unhandled_exception_handler,
)
from synthq.gateway.redis_client import create_redis_client
from synthq.gateway.synthesis import SynthesisOrchestrator
from synthq.gateway.text_processing import TextPreprocessor
from synthq.workers.adapters import SynthesisProvider, create_provider
from synthq.workers.leases import LeaseManager
from synthq.workers.queue import JobQueue
from synthq.workers.tts_loop import SynthesisScheduler


@dataclass
class Services:
    provider: SynthesisProvider
    cache: RedisCache
    job_store: JobStore
    queue: JobQueue
    orchestrator: SynthesisOrchestrator
    scheduler: SynthesisScheduler


def build_services(settings: Settings, redis: Redis, provider: SynthesisProvider | None = None) -> Services:
    """Wire every component from settings. The only place that knows concrete implementations."""
    provider = provider or create_provider(settings)
    cache = RedisCache(redis)
    job_store = JobStore(redis, ttl_seconds=settings.job_ttl_seconds)
    queue = JobQueue(redis)
    orchestrator = SynthesisOrchestrator(
        provider=provider,
        pipeline=ChunkingPipeline(
            provider, max_chars=settings.chunk_max_chars, delay_seconds=settings.chunk_delay_seconds
        ),
        cache=cache,
        job_store=job_store,
        queue=queue,
        preprocessor=TextPreprocessor(),
        cache_ttl_seconds=settings.cache_ttl_seconds,
        fingerprint_text_chars=settings.fingerprint_text_chars,
    )
    scheduler = SynthesisScheduler(
        orchestrator,
        job_store,
        queue,
        LeaseManager(redis, ttl_seconds=settings.lease_ttl_seconds),
        poll_interval_seconds=settings.scheduler_poll_interval_seconds,
        peek_size=settings.scheduler_peek_size,
        max_reclaims=settings.max_reclaims,
    )
    return Services(
        provider=provider,
        cache=cache,
        job_store=job_store,
        queue=queue,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.dependency_overrides[get_settings]()
    assert isinstance(settings, Settings)

    configure_logging(Path(settings.log_dir))

    # a client handed to create_app is owned by the caller
    owns_redis = getattr(app.state, "redis_client", None) is None
    if owns_redis:
        app.state.redis_client = await create_redis_client(settings)

    services = build_services(settings, app.state.redis_client)
    app.state.services = services
    await services.provider.initialize()
    logger.info(f"Synthesis provider {services.provider.provider} initialized")

    scheduler_task = None
    if settings.run_scheduler:
        scheduler_task = asyncio.create_task(services.scheduler.run(), name="synthesis-scheduler")

    yield

    if scheduler_task is not None:
        scheduler_task.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler_task

    await services.provider.close()
    if owns_redis:
        await app.state.redis_client.aclose()


def create_app(
    settings: Settings | None = None,
    redis_client: Redis | None = None,
) -> FastAPI:
    if settings is None:
        settings = Settings()  # type: ignore

    app = FastAPI(
        title="SynthQ Gateway",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.dependency_overrides[get_settings] = lambda: settings
    app.state.redis_client = redis_client

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for r in v1_routers:
        app.include_router(r)

    @app.get("/health")
    async def health():
        services: Services = app.state.services
        try:
            await services.cache.check()
        except CacheUnavailableError as e:
            return ORJSONResponse(status_code=e.status_code, content={"status": "degraded", "detail": str(e)})
        return {"status": "ok", "provider": services.provider.provider.value}

    return app
