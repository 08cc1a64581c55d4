import redis.asyncio as redis
from redis.asyncio import Redis

from synthq.gateway.config import Settings


async def create_redis_client(settings: Settings) -> Redis:
    """Create a new Redis client instance."""
    return await redis.from_url(settings.redis_url, decode_responses=False)
