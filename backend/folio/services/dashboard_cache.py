"""
Per-client dashboard cache in Redis.

Entries are written on read and dropped whenever the client's holdings,
transactions or realized P&L change, and for every client after a price
refresh. Redis being unavailable only costs a recomputation.
"""
import json
import logging
from typing import Any, Optional

from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from folio.core.config import settings
from folio.core.redis import CacheKeys, get_async_redis, get_redis

logger = logging.getLogger(__name__)


def cache_key(client_id: str) -> str:
    return f"{CacheKeys.DASHBOARD}:{client_id}"


class DashboardCache:
    def __init__(self, redis: Optional[AsyncRedis] = None, ttl_sec: Optional[int] = None):
        self._redis = redis
        self.ttl_sec = settings.DASHBOARD_CACHE_TTL_SEC if ttl_sec is None else ttl_sec

    async def _client(self) -> AsyncRedis:
        if self._redis is None:
            self._redis = await get_async_redis()
        return self._redis

    async def get(self, client_id: str) -> Optional[dict[str, Any]]:
        try:
            raw = await (await self._client()).get(cache_key(client_id))
        except RedisError as exc:
            logger.warning("Dashboard cache read failed for %s: %s", client_id, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable dashboard cache entry for %s", client_id)
            return None

    async def set(self, client_id: str, data: dict[str, Any]) -> None:
        try:
            await (await self._client()).set(
                cache_key(client_id), json.dumps(data, default=str), ex=self.ttl_sec
            )
        except RedisError as exc:
            logger.warning("Dashboard cache write failed for %s: %s", client_id, exc)

    async def invalidate(self, client_id: str) -> None:
        try:
            await (await self._client()).delete(cache_key(client_id))
        except RedisError as exc:
            logger.warning("Dashboard cache invalidation failed for %s: %s", client_id, exc)


def invalidate_all_dashboards(redis: Optional[Redis] = None) -> int:
    """Drop every cached dashboard (sync, for Celery tasks). Returns the number of keys removed."""
    client = redis or get_redis()
    try:
        keys = list(client.scan_iter(match=f"{CacheKeys.DASHBOARD}:*"))
        if not keys:
            return 0
        return client.delete(*keys)
    except RedisError as exc:
        logger.warning("Dashboard cache flush failed: %s", exc)
        return 0
