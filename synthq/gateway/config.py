import os

from pydantic_settings import BaseSettings, SettingsConfigDict

from synthq.contracts import Providers


class Settings(BaseSettings):
    redis_url: str
    cors_origins: list[str] = ["*"]
    log_dir: str = "logs"

    # Resolved once at startup, there is no implicit default provider
    tts_provider: Providers
    cloud_api_key: str | None = None
    cloud_api_base: str = "https://texttospeech.googleapis.com/v1"
    inference_api_key: str | None = None  # optional, the inference API works anonymously with lower limits
    inference_api_base: str = "https://api-inference.huggingface.co/models"
    provider_timeout_seconds: float = 30.0
    provider_retry_backoff_seconds: float = 10.0

    cache_ttl_seconds: int = 3600
    job_ttl_seconds: int = 3600
    fingerprint_text_chars: int = 10_000  # leading characters of normalized text that enter the cache key

    # None means "use the provider's own default"
    chunk_max_chars: int | None = None
    chunk_delay_seconds: float | None = None

    run_scheduler: bool = True  # run the scheduler loop inside the gateway process
    scheduler_poll_interval_seconds: float = 1.0
    scheduler_peek_size: int = 10  # oldest queue entries inspected per tick
    lease_ttl_seconds: int = 120
    max_reclaims: int = 2  # reclaims of an expired lease before the job is failed

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=[os.getenv("ENV_FILE", ""), ".env"],
        extra="ignore",
        env_nested_delimiter="__",
    )


def get_settings() -> Settings:  # ty: ignore[invalid-return-type]
    """This is only used for dependency references, see app.py:

    app.dependency_overrides[get_settings] = lambda: settings
    """
    ...
