import json
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

BUYER_KEY_PREFIX = "buyer"


def buyer_cache_key(buyer_id: UUID) -> str:
    return f"{BUYER_KEY_PREFIX}:{buyer_id}"


class CacheService:
    """Redis-backed cache for serialised buyer records.

    If *redis_client* is ``None`` (Redis unavailable), every operation
    degrades to a no-op and reads miss, so callers always fall through
    to the database.  Redis errors are logged, never raised.
    """

    def __init__(self, redis_client: Optional[Redis] = None, ttl: int = 300) -> None:
        self._redis: Optional[Redis] = redis_client
        self._ttl = ttl

    @property
    def is_available(self) -> bool:
        """Return ``True`` if a Redis client is configured."""
        return self._redis is not None

    # ------------------------------------------------------------------
    # Buyer records
    # ------------------------------------------------------------------

    async def get_buyer(self, buyer_id: UUID) -> Optional[Dict[str, Any]]:
        """Return the cached JSON form of a buyer, or ``None`` on a miss."""
        key = buyer_cache_key(buyer_id)
        raw = await self._call("GET", key, lambda r: r.get(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid JSON in cache key %s", key)
            return None

    async def set_buyer(self, buyer_id: UUID, data: Dict[str, Any]) -> None:
        """Cache the JSON form of a buyer for the configured TTL."""
        key = buyer_cache_key(buyer_id)
        try:
            payload = json.dumps(data, default=str)
        except (TypeError, ValueError):
            logger.warning("Failed to serialise buyer for cache key %s", key)
            return
        await self._call("SETEX", key, lambda r: r.setex(key, self._ttl, payload))

    async def invalidate_buyer(self, buyer_id: UUID) -> None:
        """Drop a buyer from the cache after it changes (best-effort)."""
        key = buyer_cache_key(buyer_id)
        await self._call("DELETE", key, lambda r: r.delete(key))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, op: str, key: str, command) -> Any:
        if self._redis is None:
            return None
        try:
            return await command(self._redis)
        except Exception:
            logger.warning("Redis %s failed for key %s", op, key)
            return None
