import httpx
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient

from synthq.contracts import Providers
from synthq.gateway.app import create_app
from synthq.gateway.config import Settings


@pytest_asyncio.fixture(scope="function")
async def app(redis_client, tmp_path) -> FastAPI:
    settings = Settings(
        redis_url="redis://unused:6379",
        tts_provider=Providers.MOCK,
        provider_retry_backoff_seconds=0,
        run_scheduler=False,  # tests drive the scheduler by hand
        log_dir=str(tmp_path / "logs"),
    )

    app = create_app(settings, redis_client=redis_client)

    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def services(app):
    return app.state.services
