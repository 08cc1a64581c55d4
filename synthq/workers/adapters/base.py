import asyncio
from abc import ABC, abstractmethod
from typing import ClassVar

import httpx
from loguru import logger

from synthq.contracts import AudioEncoding, AudioOptions, Providers, Voice, VoiceSelector
from synthq.gateway.exceptions import ProviderFatalError, ProviderTransientError

RETRYABLE_STATUS_CODES = {429, 500, 503, 504}
WAV_HEADER_BYTES = 44
COMPRESSED_BYTES_PER_SECOND = 4_000  # 32 kbps, what the cloud API returns for MP3 and OGG_OPUS


class SynthesisProvider(ABC):
    """Performs text -> audio calls against one backend.

    Subclasses implement `_request_audio` as a single attempt and signal recoverable conditions with
    ProviderTransientError. `synthesize` owns the retry policy: one retry after a fixed backoff, then
    the failure is fatal.
    """

    provider: ClassVar[Providers]
    max_chunk_chars: ClassVar[int] = 500
    inter_chunk_delay_seconds: ClassVar[float] = 0.0

    def __init__(self, *, retry_backoff_seconds: float = 10.0, timeout_seconds: float = 30.0) -> None:
        self._retry_backoff_seconds = retry_backoff_seconds
        self._timeout_seconds = timeout_seconds

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    @abstractmethod
    async def list_voices(self) -> list[Voice]:
        """Voices this provider can synthesize with."""

    @abstractmethod
    async def _request_audio(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        """Perform exactly one outbound synthesis call."""

    async def synthesize(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        try:
            audio_bytes = await self._request_audio(text, voice, audio)
        except ProviderTransientError as e:
            logger.bind(provider=self.provider.value).warning(
                f"Transient provider error: {e}, retrying once in {self._retry_backoff_seconds}s"
            )
            await asyncio.sleep(self._retry_backoff_seconds)
            try:
                audio_bytes = await self._request_audio(text, voice, audio)
            except ProviderTransientError as retry_error:
                raise ProviderFatalError(
                    f"{retry_error} (still failing after retry)", provider=self.provider.value
                ) from retry_error

        if not audio_bytes:
            raise ProviderFatalError("No audio content received from provider", provider=self.provider.value)
        return audio_bytes

    def calculate_duration_seconds(self, audio_bytes: bytes, audio: AudioOptions) -> float:
        """Estimate duration from byte length. WAV is 16-bit mono PCM, compressed formats use a fixed bitrate."""
        if not audio_bytes:
            return 0.0
        if audio.encoding is AudioEncoding.WAV:
            return wav_pcm_bytes(audio_bytes) / (audio.sample_rate_hz * 2)
        return len(audio_bytes) / COMPRESSED_BYTES_PER_SECOND

    def _classify_http_error(self, e: httpx.HTTPError, api_name: str) -> ProviderTransientError | ProviderFatalError:
        provider = self.provider.value
        if isinstance(e, httpx.HTTPStatusError):
            status = e.response.status_code
            if status in RETRYABLE_STATUS_CODES:
                return ProviderTransientError(f"{api_name} API error {status}: {_reason(status)}", provider=provider)
            return ProviderFatalError(f"{api_name} API error {status}: {e.response.text[:200]}", provider=provider)
        if isinstance(e, (httpx.TimeoutException, httpx.ConnectError)):
            return ProviderTransientError(f"{api_name} connection error: {e!r}", provider=provider)
        return ProviderFatalError(f"{api_name} request failed: {e!r}", provider=provider)


def wav_pcm_bytes(audio_bytes: bytes) -> int:
    """PCM payload size of one WAV file or of several concatenated ones (chunked synthesis).

    Every RIFF header is skipped. A buffer that does not start with RIFF is assumed to carry one header.
    """
    if not audio_bytes.startswith(b"RIFF"):
        return max(len(audio_bytes) - WAV_HEADER_BYTES, 0)

    pcm_bytes, offset = 0, 0
    while audio_bytes.startswith(b"RIFF", offset):
        # RIFF size field counts everything after the first 8 bytes
        size = int.from_bytes(audio_bytes[offset + 4 : offset + 8], "little") + 8
        size = min(size, len(audio_bytes) - offset)
        pcm_bytes += max(size - WAV_HEADER_BYTES, 0)
        offset += size
    return pcm_bytes + len(audio_bytes) - offset


def _reason(status: int) -> str:
    return {429: "rate limited", 503: "model loading or service unavailable"}.get(status, "server error")
