"""
Statistics cache adapter built on redis.asyncio.

The cache holds two kinds of JSON documents, both keyed by project, collection
and property:

- ``{projectId}_{collection}_{property}``: OutlierStat ``{"mean", "stddev"}``
  written lazily by the outlier detector, never expired.
- ``{projectId}_{collection}_{property}_hist``: historical rollup buckets
  produced by the ingestion-time aggregator and read by the eeRIS views.

Every call is bounded by ``timeout`` seconds. Connection failures, timeouts and
undecodable documents are raised as BadQuery at the point of call.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from cenote.core.config import Settings
from cenote.core.errors import BadQuery


logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> Redis:
    """Build the shared Redis client used by every request."""
    return Redis.from_url(
        settings.redis_url,
        encoding='utf-8',
        decode_responses=True,
        socket_timeout=settings.cache_timeout_seconds,
        socket_connect_timeout=settings.cache_timeout_seconds,
    )


def stats_key(project_id: str, collection: str, prop: str) -> str:
    return f'{project_id}_{collection}_{prop}'


def rollup_key(project_id: str, collection: str, prop: str) -> str:
    return f'{stats_key(project_id, collection, prop)}_hist'


class StatsCache:
    """
    Shared handle to the statistics cache.

    Attributes:
        redis: The redis.asyncio client shared across requests.
        timeout: Per-call timeout in seconds.
        expose_errors: Whether backend error text reaches the caller.
    """

    def __init__(self, redis: Redis, timeout: float = 5.0, expose_errors: bool = True) -> None:
        self.redis = redis
        self.timeout = timeout
        self.expose_errors = expose_errors

    def _backend_error(self, exc: BaseException) -> BadQuery:
        if isinstance(exc, asyncio.TimeoutError):
            message = f'Cache call timed out after {self.timeout:g} seconds'
        else:
            message = f'Cache error: {exc}'
        if not self.expose_errors:
            message = 'The query could not be executed'
        return BadQuery(message)

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Read and decode a JSON document.

        Returns:
            The decoded mapping, or None if the key is absent.

        Raises:
            BadQuery: On cache failure, timeout or a non-object document.
        """
        try:
            raw = await asyncio.wait_for(self.redis.get(key), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Cache read failed for {key}: {e!r}")
            raise self._backend_error(e) from e

        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.error(f"Undecodable cache document at {key}")
            raise BadQuery(f'Cached value for "{key}" is not valid JSON') from e
        if not isinstance(value, dict):
            raise BadQuery(f'Cached value for "{key}" is not an object')
        return value

    async def set_json(self, key: str, value: Dict[str, Any]) -> None:
        """Write a JSON document without expiry (last writer wins)."""
        try:
            await asyncio.wait_for(self.redis.set(key, json.dumps(value)), timeout=self.timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Cache write failed for {key}: {e!r}")
            raise self._backend_error(e) from e

    async def close(self) -> None:
        await self.redis.aclose()
