"""
Model Result Caches

Two interchangeable implementations of ResultCache:

MemoryResultCache:
- key -> (result, absolute expiry) held in process
- expired entries are evicted lazily on read, there is no sweeper
- the clock is injectable so tests can move time forward

RedisResultCache:
- shared across processes, TTL enforced by Redis itself
- every key lives under a namespace prefix; clear() SCANs that prefix and
  deletes in batches so unrelated keys in the same database survive
- any Redis error is raised as CacheUnavailableError; a missing key is
  just a miss

TRADEOFFS:
- No stampede protection: two identical concurrent requests may both
  compute. Writes are idempotent overwrites, so this only costs time.
- Results round-trip through JSON in Redis, so a cached output comes back
  as plain JSON data (dicts/lists) rather than the model's own type.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finance_dss.mbms.errors import CacheUnavailableError
from finance_dss.mbms.interface import ResultCache
from finance_dss.models.execution import ModelResult


logger = structlog.get_logger(__name__)


@dataclass
class _CacheEntry:
    result: ModelResult
    expires_at: float


class MemoryResultCache(ResultCache):
    """
    In-process result cache.

    Useful for tests, single-process deployments, or when Redis is absent.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            clock: Returns the current time in seconds. Defaults to
                time.monotonic; tests pass a fake to control expiry.
        """
        self._clock = clock or time.monotonic
        self._data: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def set(self, key: str, result: ModelResult, ttl: timedelta) -> None:
        async with self._lock:
            self._data[key] = _CacheEntry(
                result=result,
                expires_at=self._clock() + ttl.total_seconds(),
            )

    async def get(self, key: str) -> Optional[ModelResult]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None

            if self._clock() >= entry.expires_at:
                del self._data[key]
                return None

            return entry.result

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

    async def size(self) -> int:
        """Number of stored entries, expired ones included until read."""
        async with self._lock:
            return len(self._data)


class RedisResultCache(ResultCache):
    """
    Redis-backed result cache shared by every orchestrator instance.

    Results are stored as the JSON form of ModelResult.
    """

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "dss:model:cache:",
        scan_batch_size: int = 500,
    ):
        self._client = client
        self._prefix = prefix
        self._scan_batch_size = scan_batch_size

    @classmethod
    def from_url(
        cls,
        url: str,
        prefix: str = "dss:model:cache:",
        socket_timeout: float = 5.0,
        scan_batch_size: int = 500,
    ) -> "RedisResultCache":
        """Build a cache with its own connection pool."""
        client = redis.from_url(
            url,
            decode_responses=False,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            retry_on_timeout=True,
        )
        return cls(client, prefix=prefix, scan_batch_size=scan_batch_size)

    @property
    def prefix(self) -> str:
        return self._prefix

    def _full_key(self, key: str) -> str:
        return self._prefix + key

    async def connect(self, attempts: int = 3) -> None:
        """
        Check Redis is reachable, retrying with exponential back-off.

        Raises:
            CacheUnavailableError: If Redis still cannot be reached
        """
        @retry(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(redis.RedisError),
            reraise=True,
        )
        async def _ping() -> None:
            await self._client.ping()

        try:
            await _ping()
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Failed to connect to Redis: {e}") from e

        logger.info("redis_cache_connected", prefix=self._prefix)

    async def close(self) -> None:
        await self._client.aclose()

    async def set(self, key: str, result: ModelResult, ttl: timedelta) -> None:
        try:
            data = result.model_dump_json()
        except PydanticSerializationError as e:
            raise CacheUnavailableError(f"result is not JSON serializable: {e}") from e

        try:
            await self._client.set(self._full_key(key), data, px=_ttl_ms(ttl))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"failed to set cache: {e}") from e

    async def get(self, key: str) -> Optional[ModelResult]:
        try:
            data = await self._client.get(self._full_key(key))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"failed to get cache: {e}") from e

        if data is None:
            return None

        try:
            return ModelResult.model_validate_json(data)
        except ValidationError as e:
            # Unreadable entry (e.g. schema changed); drop it and recompute
            logger.warning("cache_entry_corrupt", key=key, error=str(e))
            await self.invalidate(key)
            return None

    async def invalidate(self, key: str) -> None:
        try:
            await self._client.delete(self._full_key(key))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"failed to invalidate cache: {e}") from e

    async def clear(self) -> None:
        """Delete every key under this cache's prefix, one SCAN page at a time."""
        pattern = self._prefix + "*"
        deleted = 0
        batch: list = []

        try:
            async for key in self._client.scan_iter(
                match=pattern, count=self._scan_batch_size
            ):
                batch.append(key)
                if len(batch) >= self._scan_batch_size:
                    deleted += await self._client.delete(*batch)
                    batch = []

            if batch:
                deleted += await self._client.delete(*batch)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"failed to clear cache: {e}") from e

        logger.info("redis_cache_cleared", prefix=self._prefix, deleted=deleted)


def _ttl_ms(ttl: timedelta) -> int:
    # Redis rejects a zero/negative expiry
    return max(1, int(ttl.total_seconds() * 1000))
