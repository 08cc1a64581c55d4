from __future__ import annotations

from typing import TYPE_CHECKING

from synthq.contracts import Providers
from synthq.workers.adapters.base import SynthesisProvider
from synthq.workers.adapters.cloud import CloudProvider
from synthq.workers.adapters.inference import InferenceProvider
from synthq.workers.adapters.mock import MockProvider

if TYPE_CHECKING:
    from synthq.gateway.config import Settings

__all__ = ["CloudProvider", "InferenceProvider", "MockProvider", "SynthesisProvider", "create_provider"]


def create_provider(settings: Settings) -> SynthesisProvider:
    common = {
        "retry_backoff_seconds": settings.provider_retry_backoff_seconds,
        "timeout_seconds": settings.provider_timeout_seconds,
    }
    match settings.tts_provider:
        case Providers.CLOUD:
            if not settings.cloud_api_key:
                raise ValueError("cloud_api_key must be set when tts_provider is 'cloud'")
            return CloudProvider(api_key=settings.cloud_api_key, api_base=settings.cloud_api_base, **common)
        case Providers.INFERENCE:
            return InferenceProvider(
                api_base=settings.inference_api_base, api_key=settings.inference_api_key, **common
            )
        case Providers.MOCK:
            return MockProvider(**common)
        case _:
            raise ValueError(f"Invalid provider {settings.tts_provider}")
