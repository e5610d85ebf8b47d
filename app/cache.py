"""
Redis caching utilities for reference data and persisted schedule filters
Cache misses and Redis outages are never fatal - callers fall back to the backend
"""
import json
import logging
from typing import Any, Optional

import redis

from .config import REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """Get or create the shared Redis client"""
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for schedule cache...")
        try:
            if REDIS_URL:
                redis_client = redis.from_url(
                    REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
            else:
                redis_client = redis.Redis(host="localhost", port=6379, db=0, decode_responses=True)
            redis_client.ping()
            logger.info("Redis connected successfully")
        except redis.RedisError as e:
            redis_client = None
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            raise

    return redis_client


class Cache:
    """Redis cache wrapper with automatic JSON serialization"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client

    def _get_client(self):
        """Lazy load Redis client"""
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except redis.RedisError as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            serialized = json.dumps(value, default=str)
            client.setex(key, ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


# Global cache instance
cache = Cache()


# Cache key builders

def build_reference_key(resource: str, status: Optional[str] = None) -> str:
    """Build cache key for reference lists (groups, staffs, patients, planning_lanes)"""
    status_str = status or "all"
    return f"schedule_ref:{resource}:{status_str}"


def build_filters_key(user_key: str) -> str:
    """Build cache key for a user's persisted schedule filters"""
    return f"schedule_filters:{user_key}"
