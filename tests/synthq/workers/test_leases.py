import pytest

from synthq.workers.leases import LeaseManager


class TestLeases:
    @pytest.mark.asyncio
    async def test_acquire_is_exclusive(self, leases):
        token = await leases.acquire("job-a")
        assert token is not None
        assert await leases.acquire("job-a") is None
        assert await leases.is_held("job-a")

    @pytest.mark.asyncio
    async def test_leases_expire(self, leases, redis_client):
        await leases.acquire("job-a")
        ttl = await redis_client.ttl("synthq:lease:job-a")
        assert 0 < ttl <= leases.ttl_seconds

    @pytest.mark.asyncio
    async def test_release_frees_the_job(self, leases):
        token = await leases.acquire("job-a")
        assert await leases.release("job-a", token)
        assert not await leases.is_held("job-a")
        assert await leases.acquire("job-a") is not None

    @pytest.mark.asyncio
    async def test_release_with_wrong_token_is_refused(self, leases):
        await leases.acquire("job-a")
        assert not await leases.release("job-a", "someone-else")
        assert await leases.is_held("job-a")

    @pytest.mark.asyncio
    async def test_extend_resets_ttl(self, redis_client):
        leases = LeaseManager(redis_client, ttl_seconds=100)
        token = await leases.acquire("job-a")
        await redis_client.expire("synthq:lease:job-a", 5)

        assert await leases.extend("job-a", token)
        assert await redis_client.ttl("synthq:lease:job-a") > 5

    @pytest.mark.asyncio
    async def test_extend_after_expiry_fails(self, leases, redis_client):
        token = await leases.acquire("job-a")
        await redis_client.delete("synthq:lease:job-a")
        assert not await leases.extend("job-a", token)

    @pytest.mark.asyncio
    async def test_expired_lease_can_be_taken_over(self, leases, redis_client):
        first = await leases.acquire("job-a")
        await redis_client.delete("synthq:lease:job-a")
        second = await leases.acquire("job-a")

        assert second is not None and second != first
        assert not await leases.release("job-a", first)
        assert await leases.is_held("job-a")
