"""Chunk-wise synthesis of long text, reassembled in order into one buffer."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

from synthq.contracts import AudioOptions, VoiceSelector
from synthq.gateway.text_processing import split_into_chunks
from synthq.workers.adapters.base import SynthesisProvider

ChunkCallback = Callable[[int, int], Awaitable[None]]  # (chunks done, total chunks)


class ChunkingPipeline:
    """Splits text into sentence-aligned chunks and synthesizes them one after another.

    Chunks are never synthesized concurrently, which keeps provider rate limits intact and makes the
    output order the chunk order.
    """

    def __init__(
        self,
        provider: SynthesisProvider,
        max_chars: int | None = None,
        delay_seconds: float | None = None,
    ) -> None:
        self._provider = provider
        self.max_chars = max_chars or provider.max_chunk_chars
        self.delay_seconds = provider.inter_chunk_delay_seconds if delay_seconds is None else delay_seconds

    def split(self, text: str) -> list[str]:
        return split_into_chunks(text, self.max_chars)

    async def iter_audio(
        self,
        text: str,
        voice: VoiceSelector,
        audio: AudioOptions,
        on_chunk: ChunkCallback | None = None,
    ) -> AsyncIterator[bytes]:
        chunks = self.split(text)
        if not chunks:
            raise ValueError("Nothing to synthesize: text has no content")

        total = len(chunks)
        for i, chunk in enumerate(chunks):
            logger.debug(f"Processing chunk {i + 1}/{total} ({len(chunk)} chars)")
            audio_bytes = await self._provider.synthesize(chunk, voice, audio)
            yield audio_bytes
            if on_chunk is not None:
                await on_chunk(i + 1, total)
            if i < total - 1 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

    async def run(
        self,
        text: str,
        voice: VoiceSelector,
        audio: AudioOptions,
        on_chunk: ChunkCallback | None = None,
    ) -> bytes:
        """Synthesize every chunk and concatenate the buffers. Any chunk failure fails the whole run."""
        buffers = [b async for b in self.iter_audio(text, voice, audio, on_chunk=on_chunk)]
        return b"".join(buffers)
