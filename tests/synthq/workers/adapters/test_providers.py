"""Provider retry policy and the HTTP adapters, driven through httpx.MockTransport."""

import base64
import json

import httpx
import pydantic
import pytest

from synthq.contracts import AudioEncoding, AudioOptions, Gender, Providers, VoiceSelector
from synthq.gateway.config import Settings
from synthq.gateway.exceptions import ProviderFatalError, ProviderTransientError
from synthq.workers.adapters import CloudProvider, InferenceProvider, MockProvider, create_provider
from synthq.workers.adapters.cloud import DEFAULT_VOICES
from synthq.workers.adapters.inference import MODELS, model_for_voice

VOICE = VoiceSelector()
AUDIO = AudioOptions()


def _transient() -> ProviderTransientError:
    return ProviderTransientError("rate limited", provider="mock")


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_success_needs_one_call(self, provider):
        assert await provider.synthesize("hi", VOICE, AUDIO) == b"<hi>"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_transient_then_success_retries_once(self, provider):
        provider.script = [_transient(), b"audio"]
        assert await provider.synthesize("hi", VOICE, AUDIO) == b"audio"
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_transient_twice_becomes_fatal(self, provider):
        provider.script = [_transient(), _transient(), b"never"]
        with pytest.raises(ProviderFatalError, match="rate limited"):
            await provider.synthesize("hi", VOICE, AUDIO)
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_fatal_is_not_retried(self, provider):
        provider.script = [ProviderFatalError("bad request", provider="mock")]
        with pytest.raises(ProviderFatalError):
            await provider.synthesize("hi", VOICE, AUDIO)
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_empty_audio_is_fatal(self, provider):
        provider.script = [b""]
        with pytest.raises(ProviderFatalError, match="No audio content"):
            await provider.synthesize("hi", VOICE, AUDIO)


class TestDuration:
    def test_wav_duration_from_pcm_length(self, provider):
        audio = AudioOptions(encoding=AudioEncoding.WAV, sample_rate_hz=16_000)
        assert provider.calculate_duration_seconds(b"\x00" * (44 + 32_000), audio) == 1.0

    def test_compressed_duration_from_bitrate(self, provider):
        assert provider.calculate_duration_seconds(b"\x00" * 8_000, AUDIO) == 2.0

    def test_empty_audio_has_no_duration(self, provider):
        assert provider.calculate_duration_seconds(b"", AUDIO) == 0.0


def _cloud(handler) -> CloudProvider:
    provider = CloudProvider(api_key="test-key", api_base="https://tts.test/v1", retry_backoff_seconds=0)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), params={"key": "test-key"})
    return provider


class TestCloudProvider:
    @pytest.mark.asyncio
    async def test_synthesize_sends_request_and_decodes_audio(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"mp3-bytes").decode()})

        provider = _cloud(handler)
        audio = await provider.synthesize(
            "Hello", VoiceSelector(name="en-US-Wavenet-D", gender=Gender.MALE), AudioOptions(speaking_rate=1.5)
        )

        assert audio == b"mp3-bytes"
        request = seen[0]
        assert request.url.path == "/v1/text:synthesize"
        assert request.url.params["key"] == "test-key"
        body = json.loads(request.content)
        assert body["input"] == {"text": "Hello"}
        assert body["voice"] == {"languageCode": "en-US", "ssmlGender": "MALE", "name": "en-US-Wavenet-D"}
        assert body["audioConfig"]["audioEncoding"] == "MP3"
        assert body["audioConfig"]["speakingRate"] == 1.5

    @pytest.mark.asyncio
    async def test_wav_maps_to_linear16(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"pcm").decode()})

        await _cloud(handler).synthesize("Hi", VOICE, AudioOptions(encoding=AudioEncoding.WAV))
        assert seen[0]["audioConfig"]["audioEncoding"] == "LINEAR16"

    @pytest.mark.asyncio
    async def test_rate_limit_retried_once(self):
        responses = iter(
            [
                httpx.Response(429, text="slow down"),
                httpx.Response(200, json={"audioContent": base64.b64encode(b"ok").decode()}),
            ]
        )
        assert await _cloud(lambda request: next(responses)).synthesize("Hi", VOICE, AUDIO) == b"ok"

    @pytest.mark.asyncio
    async def test_client_error_is_fatal(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="invalid voice")

        with pytest.raises(ProviderFatalError, match="400"):
            await _cloud(handler).synthesize("Hi", VOICE, AUDIO)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_missing_audio_content_is_fatal(self):
        with pytest.raises(ProviderFatalError, match="No audio content"):
            await _cloud(lambda request: httpx.Response(200, json={})).synthesize("Hi", VOICE, AUDIO)

    @pytest.mark.asyncio
    async def test_list_voices_parses_remote_list(self):
        voices = {
            "voices": [
                {
                    "name": "de-DE-Wavenet-A",
                    "languageCodes": ["de-DE"],
                    "ssmlGender": "FEMALE",
                    "naturalSampleRateHertz": 24000,
                }
            ]
        }
        result = await _cloud(lambda request: httpx.Response(200, json=voices)).list_voices()
        assert [(v.name, v.language_code, v.gender) for v in result] == [("de-DE-Wavenet-A", "de-DE", Gender.FEMALE)]

    @pytest.mark.asyncio
    async def test_list_voices_falls_back_on_error(self):
        result = await _cloud(lambda request: httpx.Response(500)).list_voices()
        assert result == DEFAULT_VOICES

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        provider = CloudProvider(api_key="k", api_base="https://tts.test/v1")
        with pytest.raises(RuntimeError):
            _ = provider.client
        await provider.initialize()
        assert provider.client is not None
        await provider.close()


def _inference(handler) -> InferenceProvider:
    provider = InferenceProvider(api_base="https://hf.test/models", retry_backoff_seconds=0)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return provider


class TestInferenceProvider:
    def test_voice_selects_model(self):
        assert model_for_voice(VoiceSelector(name="en-US-XTTS-High")) == MODELS["xtts"]
        assert model_for_voice(VoiceSelector(name="en-US-FastSpeech2-Male")) == MODELS["en-US-male"]
        assert model_for_voice(VoiceSelector(gender=Gender.MALE)) == MODELS["en-US-male"]
        assert model_for_voice(VoiceSelector()) == MODELS["en-US-female"]

    @pytest.mark.asyncio
    async def test_posts_text_to_model_endpoint(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"flac-bytes")

        audio = await _inference(handler).synthesize("Hi", VOICE, AUDIO)

        assert audio == b"flac-bytes"
        assert seen[0].url.path == f"/models/{MODELS['en-US-female']}"
        assert json.loads(seen[0].content) == {"inputs": "Hi"}

    @pytest.mark.asyncio
    async def test_model_loading_twice_is_fatal(self):
        with pytest.raises(ProviderFatalError, match="model loading"):
            await _inference(lambda request: httpx.Response(503)).synthesize("Hi", VOICE, AUDIO)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        responses = iter([httpx.ReadTimeout("timed out"), httpx.Response(200, content=b"ok")])

        def handler(request: httpx.Request) -> httpx.Response:
            outcome = next(responses)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await _inference(handler).synthesize("Hi", VOICE, AUDIO) == b"ok"


class TestMockProvider:
    @pytest.mark.asyncio
    async def test_produces_wav_scaled_by_text_length(self):
        provider = MockProvider(retry_backoff_seconds=0)
        audio = AudioOptions(encoding=AudioEncoding.WAV, sample_rate_hz=8_000)
        short = await provider.synthesize("Hi there.", VOICE, audio)
        long = await provider.synthesize("Hi there. " * 20, VOICE, audio)

        assert short.startswith(b"RIFF")
        assert len(long) > len(short)
        assert provider.calculate_duration_seconds(long, audio) > provider.calculate_duration_seconds(short, audio)

    @pytest.mark.asyncio
    async def test_chunked_wav_duration_skips_every_header(self):
        provider = MockProvider(retry_backoff_seconds=0)
        audio = AudioOptions(encoding=AudioEncoding.WAV, sample_rate_hz=8_000)
        chunks = [await provider.synthesize(text, VOICE, audio) for text in ("First part.", "Second part.", "Third.")]

        joined = provider.calculate_duration_seconds(b"".join(chunks), audio)

        assert joined == pytest.approx(sum(provider.calculate_duration_seconds(c, audio) for c in chunks))
        assert joined == pytest.approx((len(b"".join(chunks)) - 3 * 44) / (8_000 * 2))

    @pytest.mark.asyncio
    async def test_is_deterministic(self):
        provider = MockProvider()
        assert await provider.synthesize("Same", VOICE, AUDIO) == await provider.synthesize("Same", VOICE, AUDIO)


class TestCreateProvider:
    def test_builds_selected_provider(self):
        settings = Settings(redis_url="redis://localhost", tts_provider=Providers.MOCK)
        assert isinstance(create_provider(settings), MockProvider)

        settings = Settings(redis_url="redis://localhost", tts_provider=Providers.INFERENCE)
        assert isinstance(create_provider(settings), InferenceProvider)

    def test_cloud_requires_api_key(self):
        settings = Settings(redis_url="redis://localhost", tts_provider=Providers.CLOUD, cloud_api_key=None)
        with pytest.raises(ValueError, match="cloud_api_key"):
            create_provider(settings)

    def test_provider_is_required(self, monkeypatch):
        monkeypatch.delenv("TTS_PROVIDER", raising=False)
        with pytest.raises(pydantic.ValidationError):
            Settings(redis_url="redis://localhost")
