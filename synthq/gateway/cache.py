import abc
import base64
import json
from typing import Any

from loguru import logger
from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

from synthq.contracts import CACHE_KEY
from synthq.gateway.exceptions import CacheUnavailableError


class CacheStats(BaseModel):
    available: bool
    memory_usage: str = "0B"
    hit_rate: float = 0.0


def encode_value(value: Any) -> bytes:
    """Wrap a value in a typed JSON envelope. Binary payloads are base64 encoded."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        envelope = {"type": "bytes", "data": base64.b64encode(bytes(value)).decode("ascii")}
    else:
        envelope = {"type": "json", "data": value}
    return json.dumps(envelope).encode()


def decode_value(raw: bytes | str) -> Any:
    envelope = json.loads(raw)
    if envelope["type"] == "bytes":
        return base64.b64decode(envelope["data"])
    return envelope["data"]


class Cache(abc.ABC):
    """Key/value store with per-entry TTL. Callers treat it as an optimization only."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store `value` under `key`, replacing any previous value."""

    @abc.abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the value for `key`, or None if missing, expired or unavailable."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Delete `key`. Missing keys are ignored."""

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if `key` is in cache, False otherwise."""


class RedisCache(Cache):
    """Fail-open cache on top of Redis: backing store errors degrade to cache misses."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @staticmethod
    def _key(key: str) -> str:
        return CACHE_KEY.format(key=key)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        payload = encode_value(value)
        try:
            await self._redis.set(self._key(key), payload, ex=ttl_seconds or None)
        except RedisError as e:
            logger.warning(f"Cache unavailable, skipping set for {key}: {e}")

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Cache unavailable, treating {key} as a miss: {e}")
            return None
        if raw is None:
            return None
        try:
            return decode_value(raw)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._key(key))
        except RedisError as e:
            logger.warning(f"Cache unavailable, skipping delete for {key}: {e}")

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(self._key(key)))
        except RedisError as e:
            logger.warning(f"Cache unavailable, exists({key}) reported as False: {e}")
            return False

    async def check(self) -> None:
        """Raise CacheUnavailableError if the backing store cannot be reached."""
        try:
            await self._redis.ping()
        except RedisError as e:
            raise CacheUnavailableError(f"Cache backing store unreachable: {e}") from e

    async def stats(self) -> CacheStats:
        try:
            memory = await self._redis.info("memory")
            stats = await self._redis.info("stats")
        except RedisError as e:
            logger.warning(f"Cache unavailable, no stats: {e}")
            return CacheStats(available=False)

        hits = int(stats.get("keyspace_hits", 0))
        misses = int(stats.get("keyspace_misses", 0))
        hit_rate = hits / (hits + misses) * 100 if hits + misses else 0.0
        return CacheStats(
            available=True,
            memory_usage=str(memory.get("used_memory_human", "0B")),
            hit_rate=round(hit_rate, 2),
        )
