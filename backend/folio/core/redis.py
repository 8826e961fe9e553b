"""
Redis connections for the dashboard cache.

Request handlers read and write cached dashboards through the async client;
Celery tasks drop them through the sync client after a price refresh.
Both are created on first use and released by ``close_redis``.
"""

from typing import Optional
from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from folio.core.config import settings

_sync_client: Optional[Redis] = None
_async_client: Optional[AsyncRedis] = None


def _client_kwargs() -> dict:
    return {
        "decode_responses": True,
        "max_connections": settings.REDIS_MAX_CONNECTIONS,
    }


def get_redis() -> Redis:
    """Sync client, used from Celery tasks."""
    global _sync_client
    if _sync_client is None:
        _sync_client = Redis.from_url(settings.REDIS_URL, **_client_kwargs())
    return _sync_client


async def get_async_redis() -> AsyncRedis:
    global _async_client
    if _async_client is None:
        _async_client = AsyncRedis.from_url(settings.REDIS_URL, **_client_kwargs())
    return _async_client


async def close_redis() -> None:
    global _sync_client, _async_client

    if _sync_client is not None:
        _sync_client.close()
        _sync_client = None

    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None


class CacheKeys:
    """Key prefixes. Full keys are ``<prefix>:<client_id>``."""

    DASHBOARD = "dashboard"
