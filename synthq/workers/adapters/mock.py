import io
import wave

import numpy as np

from synthq.contracts import AudioOptions, Gender, Providers, Voice, VoiceSelector
from synthq.workers.adapters.base import SynthesisProvider, wav_pcm_bytes

SECONDS_PER_CHAR = 0.06
MIN_SECONDS = 0.25
TONE_HZ = {Gender.FEMALE: 220.0, Gender.MALE: 110.0, Gender.NEUTRAL: 165.0}

VOICES = [
    Voice(
        name="Mock-Voice-Female",
        language_code="en-US",
        gender=Gender.FEMALE,
        natural_sample_rate_hz=22_050,
        description="Mock Female Voice for Testing",
    ),
    Voice(
        name="Mock-Voice-Male",
        language_code="en-US",
        gender=Gender.MALE,
        natural_sample_rate_hz=22_050,
        description="Mock Male Voice for Testing",
    ),
]


class MockProvider(SynthesisProvider):
    """Deterministic offline provider: a sine tone whose length follows the text length.

    Always produces 16-bit mono WAV regardless of the requested encoding.
    """

    provider = Providers.MOCK

    async def list_voices(self) -> list[Voice]:
        return VOICES

    async def _request_audio(self, text: str, voice: VoiceSelector, audio: AudioOptions) -> bytes:
        sample_rate = audio.sample_rate_hz
        seconds = max(MIN_SECONDS, len(text) * SECONDS_PER_CHAR / audio.speaking_rate)
        t = np.arange(int(seconds * sample_rate)) / sample_rate
        frequency = TONE_HZ[voice.gender] * 2 ** (audio.pitch / 12)
        pcm = (np.sin(2 * np.pi * frequency * t) * 0.3 * 32767).astype(np.int16)

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(sample_rate)
            wav.writeframes(pcm.tobytes())
        return buffer.getvalue()

    def calculate_duration_seconds(self, audio_bytes: bytes, audio: AudioOptions) -> float:
        return wav_pcm_bytes(audio_bytes) / (audio.sample_rate_hz * 2)
