"""Cloud TTS provider - calls the Google Cloud Text-to-Speech REST API."""

import base64

import httpx
from loguru import logger

from synthq.contracts import AudioEncoding, AudioOptions, Gender, Providers, Voice, VoiceSelector
from synthq.gateway.exceptions import ProviderFatalError
from synthq.workers.adapters.base import SynthesisProvider

API_NAME = "Cloud TTS"
ENCODINGS = {
    AudioEncoding.MP3: "MP3",
    AudioEncoding.WAV: "LINEAR16",
    AudioEncoding.OGG_OPUS: "OGG_OPUS",
}

DEFAULT_VOICES = [
    Voice(
        name="en-US-Wavenet-D",
        language_code="en-US",
        gender=Gender.MALE,
        natural_sample_rate_hz=24_000,
        description="US English - Male (Wavenet)",
    ),
    Voice(
        name="en-US-Wavenet-F",
        language_code="en-US",
        gender=Gender.FEMALE,
        natural_sample_rate_hz=24_000,
        description="US English - Female (Wavenet)",
    ),
    Voice(
        name="en-GB-Wavenet-A",
        language_code="en-GB",
        gender=Gender.FEMALE,
        natural_sample_rate_hz=24_000,
        description="British English - Female (Wavenet)",
    ),
]


class CloudProvider(SynthesisProvider):
    provider = Providers.CLOUD
    max_chunk_chars = 500

    def __init__(self, api_key: str, api_base: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._client: httpx.AsyncClient | None = None
        self._voices: list[Voice] | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Provider not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds, params={"key": self._api_key})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_voices(self) -> list[Voice]:
        if self._voices is not None:
            return self._voices
        try:
            response = await self.client.get(f"{self._api_base}/voices")
            response.raise_for_status()
            voices = [_parse_voice(v) for v in response.json().get("voices", [])]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Failed to load voices from {API_NAME}, using built-in list: {e!r}")
            return DEFAULT_VOICES
        if not voices:
            return DEFAULT_VOICES
        logger.info(f"Loaded {len(voices)} available voices")
        self._voices = voices
        return voices

    async def _request_audio(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        voice_params: dict = {"languageCode": voice.language_code, "ssmlGender": voice.gender.value}
        if voice.name:
            voice_params["name"] = voice.name
        payload = {
            "input": {"text": text},
            "voice": voice_params,
            "audioConfig": {
                "audioEncoding": ENCODINGS[audio.encoding],
                "speakingRate": audio.speaking_rate,
                "pitch": audio.pitch,
                "volumeGainDb": audio.volume_gain_db,
                "sampleRateHertz": audio.sample_rate_hz,
            },
        }
        try:
            response = await self.client.post(f"{self._api_base}/text:synthesize", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._classify_http_error(e, API_NAME) from e

        try:
            audio_content = response.json().get("audioContent", "")
            return base64.b64decode(audio_content)
        except ValueError as e:
            raise ProviderFatalError(
                f"{API_NAME} returned a malformed response: {e}", provider=self.provider.value
            ) from e


def _parse_voice(raw: dict) -> Voice:
    language_codes = raw.get("languageCodes") or [""]
    gender = raw.get("ssmlGender", "NEUTRAL")
    return Voice(
        name=raw["name"],
        language_code=language_codes[0],
        gender=Gender(gender) if gender in Gender.__members__ else Gender.NEUTRAL,
        natural_sample_rate_hz=raw.get("naturalSampleRateHertz", 22_050),
        description=f"{language_codes[0]} - {gender}",
    )
