from unittest.mock import AsyncMock

import pytest

from synthq.contracts import AudioOptions, VoiceSelector
from synthq.gateway.chunking import ChunkingPipeline
from synthq.gateway.exceptions import ProviderFatalError

LONG_TEXT = "The first sentence is here. The second sentence follows. The third one ends it."


class TestChunkingPipeline:
    def test_defaults_come_from_provider(self, provider):
        pipeline = ChunkingPipeline(provider)
        assert pipeline.max_chars == provider.max_chunk_chars
        assert pipeline.delay_seconds == provider.inter_chunk_delay_seconds

    def test_overrides_win(self, provider):
        pipeline = ChunkingPipeline(provider, max_chars=10, delay_seconds=0.5)
        assert (pipeline.max_chars, pipeline.delay_seconds) == (10, 0.5)

    @pytest.mark.asyncio
    async def test_output_is_concatenated_in_chunk_order(self, provider):
        pipeline = ChunkingPipeline(provider, delay_seconds=0)
        chunks = pipeline.split(LONG_TEXT)
        assert len(chunks) == 3

        audio = await pipeline.run(LONG_TEXT, VoiceSelector(), AudioOptions())

        assert provider.calls == chunks
        assert audio == b"".join(f"<{c}>".encode() for c in chunks)

    @pytest.mark.asyncio
    async def test_progress_reported_after_each_chunk(self, provider):
        on_chunk = AsyncMock()
        await ChunkingPipeline(provider, delay_seconds=0).run(
            LONG_TEXT, VoiceSelector(), AudioOptions(), on_chunk=on_chunk
        )
        assert [c.args for c in on_chunk.await_args_list] == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_chunk_failure_fails_whole_run(self, provider):
        provider.script = [b"ok", ProviderFatalError("bad voice", provider="mock")]
        with pytest.raises(ProviderFatalError):
            await ChunkingPipeline(provider, delay_seconds=0).run(LONG_TEXT, VoiceSelector(), AudioOptions())
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_iter_audio_yields_each_chunk(self, provider):
        pipeline = ChunkingPipeline(provider, delay_seconds=0)
        buffers = [b async for b in pipeline.iter_audio(LONG_TEXT, VoiceSelector(), AudioOptions())]
        assert len(buffers) == 3

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected(self, provider):
        with pytest.raises(ValueError):
            await ChunkingPipeline(provider).run("   ", VoiceSelector(), AudioOptions())
