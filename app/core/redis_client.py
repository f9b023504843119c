"""Async Redis client - shared across the application.

Used for:
- short-lived cache of computed preference snapshots
"""

import logging
from typing import Optional
from uuid import UUID

import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError

from app.core.config import settings
from app.domain.entities import UserPreferences
from app.domain.repositories import IPreferenceCache

logger = logging.getLogger(__name__)

# Redis key prefix for cached preference snapshots
PREFERENCES_PREFIX = "prefs:"

_client: Optional[aioredis.Redis] = None


def get_redis() -> aioredis.Redis:
    """Return the process-wide Redis client, connecting lazily on first use."""
    global _client
    if _client is None:
        _client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


class RedisPreferenceCache(IPreferenceCache):
    """Caches :class:`UserPreferences` as JSON under ``prefs:{user_id}:{data_version}``.

    The data version changes with every bookshelf or purchase change, so an
    entry is only ever served for the exact activity it was computed from.
    Redis errors are logged and reported as a miss.
    """

    _adapter = TypeAdapter(UserPreferences)

    def __init__(self, client: aioredis.Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(user_id: UUID, data_version: str) -> str:
        return f"{PREFERENCES_PREFIX}{user_id}:{data_version}"

    async def get(self, user_id: UUID, data_version: str) -> Optional[UserPreferences]:
        key = self.key(user_id, data_version)
        try:
            raw = await self.client.get(key)
        except RedisError as exc:
            logger.warning("Cache get error for %s: %s", key, exc)
            return None
        if not raw:
            return None
        try:
            return self._adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None

    async def set(self, preferences: UserPreferences, data_version: str) -> None:
        key = self.key(preferences.user_id, data_version)
        try:
            await self.client.setex(key, self.ttl_seconds, self._adapter.dump_json(preferences))
        except RedisError as exc:
            logger.warning("Cache set error for %s: %s", key, exc)
