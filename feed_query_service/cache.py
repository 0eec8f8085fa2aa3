"""
Redis cache for Feed Query Service
"""
import redis.asyncio as redis
from typing import Optional, Set, Iterable
import logging

from .config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis cache manager for following sets"""

    def __init__(self):
        self.client: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        if not settings.REDIS_ENABLED:
            logger.warning("Redis is disabled")
            return

        try:
            self.client = redis.from_url(
                f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                encoding="utf-8",
                decode_responses=True,
            )
            # Test connection
            await self.client.ping()
            logger.info("Redis cache connected successfully")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.client = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.client:
            await self.client.aclose()
            logger.info("Redis cache disconnected")

    def _following_key(self, user_id: int) -> str:
        """Get Redis key for user's following set"""
        return f"following:{user_id}"

    def _following_marker_key(self, user_id: int) -> str:
        # Marks a cached empty set, which Redis cannot store as a SET
        return f"following:loaded:{user_id}"

    async def get_following(self, user_id: int) -> Optional[Set[int]]:
        """Get cached following IDs, None on miss"""
        if not self.client:
            return None

        try:
            if not await self.client.exists(self._following_marker_key(user_id)):
                return None
            members = await self.client.smembers(self._following_key(user_id))
            return {int(m) for m in members}
        except Exception as e:
            logger.error(f"Failed to get following set from cache: {e}")
            return None

    async def set_following(self, user_id: int, following_ids: Iterable[int]) -> bool:
        """Cache a user's following IDs"""
        if not self.client:
            return False

        try:
            key = self._following_key(user_id)
            marker = self._following_marker_key(user_id)
            ids = [str(i) for i in following_ids]
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if ids:
                    pipe.sadd(key, *ids)
                    pipe.expire(key, settings.CACHE_TTL_FOLLOWING)
                pipe.set(marker, "1", ex=settings.CACHE_TTL_FOLLOWING)
                await pipe.execute()
            return True
        except Exception as e:
            logger.error(f"Failed to cache following set: {e}")
            return False


# Global cache instance
cache = RedisCache()
