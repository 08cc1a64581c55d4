import pytest

from synthq.contracts import ProcessingEntry


class TestOrdering:
    @pytest.mark.asyncio
    async def test_peek_is_oldest_first(self, queue):
        await queue.push("job-b", "u", enqueued_at=200.0)
        await queue.push("job-a", "u", enqueued_at=100.0)
        await queue.push("job-c", "u", enqueued_at=300.0)

        assert [e.job_id for e in await queue.peek(10)] == ["job-a", "job-b", "job-c"]
        assert [e.job_id for e in await queue.peek(2)] == ["job-a", "job-b"]

    @pytest.mark.asyncio
    async def test_peek_does_not_remove(self, queue):
        await queue.push("job-a", "u")
        await queue.peek(1)
        assert (await queue.stats()).pending == 1

    @pytest.mark.asyncio
    async def test_peek_empty(self, queue):
        assert await queue.peek(5) == []

    @pytest.mark.asyncio
    async def test_entry_payload_round_trips(self, queue):
        await queue.push("job-a", "user-7", priority=3, enqueued_at=42.0)
        entry = (await queue.peek(1))[0]
        assert (entry.user_id, entry.priority, entry.enqueued_at, entry.reclaims) == ("user-7", 3, 42.0, 0)

    @pytest.mark.asyncio
    async def test_dangling_ids_are_dropped(self, queue, redis_client):
        await queue.push("job-a", "u", enqueued_at=1.0)
        await queue.push("job-b", "u", enqueued_at=2.0)
        await redis_client.hdel(queue.config.entries_key, "job-a")

        assert [e.job_id for e in await queue.peek(10)] == ["job-b"]
        assert (await queue.stats()).pending == 1


class TestClaim:
    @pytest.mark.asyncio
    async def test_claim_moves_to_processing(self, queue):
        entry = await queue.push("job-a", "u")
        assert await queue.claim(entry)

        stats = await queue.stats()
        assert (stats.pending, stats.processing) == (0, 1)
        assert [p.entry.job_id for p in await queue.list_processing()] == ["job-a"]

    @pytest.mark.asyncio
    async def test_second_claim_fails(self, queue):
        entry = await queue.push("job-a", "u")
        assert await queue.claim(entry)
        await queue.finish("job-a")
        assert not await queue.claim(entry)
        assert (await queue.stats()).processing == 0

    @pytest.mark.asyncio
    async def test_finish_reports_removal(self, queue):
        entry = await queue.push("job-a", "u")
        await queue.claim(entry)
        assert await queue.finish("job-a")
        assert not await queue.finish("job-a")

    @pytest.mark.asyncio
    async def test_remove_only_while_queued(self, queue):
        entry = await queue.push("job-a", "u")
        assert await queue.remove("job-a")
        assert not await queue.remove("job-a")
        assert not await queue.claim(entry)


class TestRequeue:
    @pytest.mark.asyncio
    async def test_requeue_restores_position_and_counts(self, queue):
        first = await queue.push("job-a", "u", enqueued_at=1.0)
        await queue.push("job-b", "u", enqueued_at=2.0)
        await queue.claim(first)

        processing = (await queue.list_processing())[0]
        assert await queue.requeue(processing)

        entries = await queue.peek(10)
        assert [e.job_id for e in entries] == ["job-a", "job-b"]
        assert entries[0].reclaims == 1
        assert (await queue.stats()).processing == 0

    @pytest.mark.asyncio
    async def test_requeue_skips_finished_jobs(self, queue):
        entry = await queue.push("job-a", "u")
        await queue.claim(entry)
        processing = (await queue.list_processing())[0]
        await queue.finish("job-a")

        assert not await queue.requeue(processing)
        assert await queue.peek(10) == []

    @pytest.mark.asyncio
    async def test_requeue_unknown_entry(self, queue):
        entry = await queue.push("job-a", "u")
        stale = ProcessingEntry(entry=entry, claimed_at=0.0)
        assert not await queue.requeue(stale)
