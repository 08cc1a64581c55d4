"""Inference provider - calls hosted TTS models through the Hugging Face Inference API."""

import httpx
from loguru import logger

from synthq.contracts import AudioOptions, Gender, Providers, Voice, VoiceSelector
from synthq.workers.adapters.base import SynthesisProvider

API_NAME = "Hugging Face"

MODELS = {
    "en-US-female": "microsoft/speecht5_tts",
    "en-US-male": "facebook/fastspeech2-en-ljspeech",
    "multilingual": "espnet/kan-bayashi_ljspeech_vits",
    "xtts": "coqui/XTTS-v2",
}

VOICES = [
    Voice(
        name="en-US-SpeechT5-Female",
        language_code="en-US",
        gender=Gender.FEMALE,
        natural_sample_rate_hz=22_050,
        description="US English - Female (SpeechT5)",
    ),
    Voice(
        name="en-US-FastSpeech2-Male",
        language_code="en-US",
        gender=Gender.MALE,
        natural_sample_rate_hz=22_050,
        description="US English - Male (FastSpeech2)",
    ),
    Voice(
        name="multilingual-VITS",
        language_code="en-US",
        gender=Gender.NEUTRAL,
        natural_sample_rate_hz=22_050,
        description="Multilingual - Neutral (VITS)",
    ),
    Voice(
        name="en-US-XTTS-High",
        language_code="en-US",
        gender=Gender.NEUTRAL,
        natural_sample_rate_hz=24_000,
        description="US English - High Quality (XTTS-v2)",
    ),
]


def model_for_voice(voice: VoiceSelector) -> str:
    name = voice.name or ""
    if "XTTS" in name:
        return MODELS["xtts"]
    if "multilingual" in name:
        return MODELS["multilingual"]
    if "Male" in name or "MALE" in name or (not name and voice.gender is Gender.MALE):
        return MODELS["en-US-male"]
    return MODELS["en-US-female"]


class InferenceProvider(SynthesisProvider):
    provider = Providers.INFERENCE
    max_chunk_chars = 200  # the hosted models degrade on long inputs
    inter_chunk_delay_seconds = 1.0  # free tier rate limits

    def __init__(self, api_base: str, api_key: str | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Provider not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds, headers=headers)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_voices(self) -> list[Voice]:
        return VOICES

    async def _request_audio(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        model = model_for_voice(voice)
        logger.bind(model=model, voice=voice.name).debug(f"Calling {API_NAME} model {model}")
        try:
            response = await self.client.post(f"{self._api_base}/{model}", json={"inputs": text})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._classify_http_error(e, API_NAME) from e
        return response.content
