import hashlib
import json

from synthq.contracts import AudioOptions, Providers, VoiceSelector


def calculate_request_fingerprint(
    text: str,
    voice: VoiceSelector,
    audio: AudioOptions,
    provider: Providers,
    text_chars: int,
) -> str:
    """Generates the cache key for a normalized synthesis request.

    Key order never matters: the document is serialized with sorted keys. The provider is part of the
    key so audio from one provider is never served for another.
    """
    document = {
        "text": text[:text_chars],
        "voice": voice.model_dump(mode="json"),
        "audio": audio.model_dump(mode="json"),
        "provider": provider.value,
    }
    canonical = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
