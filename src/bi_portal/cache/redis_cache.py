"""
Redis role cache for the BI Portal.

Role lookups happen on every protected navigation; assignments change rarely,
so they are cached per company and user for a few minutes and dropped on
logout.
"""

import json
from typing import List, Optional

from redis import asyncio as aioredis

from bi_portal.utils.config import get_config
from bi_portal.utils.logger import get_logger

logger = get_logger(__name__)


class RoleCache:
    """
    Redis cache for persisted role assignments.

    Supports:
    - Get/Set/Delete operations
    - TTL management
    - JSON serialization
    - Connection pooling

    Backend errors are logged and reported as misses; the caller then falls
    back to the role store.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        default_ttl: int = 300,
        max_connections: int = 50,
        client: Optional[aioredis.Redis] = None,
    ):
        """
        Initialize role cache.

        Args:
            redis_url: Redis connection URL
            default_ttl: Default TTL in seconds (5 minutes)
            max_connections: Maximum pool connections
            client: Pre-built client, mainly for tests
        """
        self.redis_url = redis_url or "redis://localhost:6379/0"
        self.default_ttl = default_ttl

        if client is not None:
            self.client = client
        else:
            pool = aioredis.ConnectionPool.from_url(
                self.redis_url,
                max_connections=max_connections,
                decode_responses=True
            )
            self.client = aioredis.Redis(connection_pool=pool)

        logger.info(f"Role cache initialized (ttl={default_ttl}s)")

    def _make_key(self, company_id: Optional[str], user_id: str) -> str:
        """
        Create company-scoped cache key.

        Returns:
            Scoped key format: company:{company_id}:roles:{user_id}
        """
        return f"company:{company_id or 'none'}:roles:{user_id}"

    async def get(self, company_id: Optional[str], user_id: str) -> Optional[List[str]]:
        """
        Get cached role names.

        Returns:
            Cached role list or None if not found
        """
        cache_key = self._make_key(company_id, user_id)

        try:
            value = await self.client.get(cache_key)

            if value is None:
                logger.debug(f"Cache miss: {cache_key}")
                return None

            result = json.loads(value)
            if not isinstance(result, list):
                logger.warning(f"Unexpected cached value for {cache_key}, ignoring")
                return None

            logger.debug(f"Cache hit: {cache_key}")
            return [str(r) for r in result]

        except json.JSONDecodeError as e:
            logger.error(f"Cache JSON decode error for {cache_key}: {e}")
            return None
        except Exception as e:
            logger.error(f"Cache get error for {cache_key}: {e}")
            return None

    async def set(
        self,
        company_id: Optional[str],
        user_id: str,
        roles: List[str],
        ttl: Optional[int] = None
    ) -> bool:
        """
        Cache role names with TTL.

        Returns:
            True if successful, False otherwise
        """
        cache_key = self._make_key(company_id, user_id)
        ttl = ttl or self.default_ttl

        try:
            await self.client.setex(cache_key, ttl, json.dumps(list(roles)))
            logger.debug(f"Cache set: {cache_key} (ttl={ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for {cache_key}: {e}")
            return False

    async def delete(self, company_id: Optional[str], user_id: str) -> bool:
        """
        Drop cached roles of one user.

        Returns:
            True if deleted, False otherwise
        """
        cache_key = self._make_key(company_id, user_id)

        try:
            result = await self.client.delete(cache_key)
            logger.debug(f"Cache delete: {cache_key} (deleted={result})")
            return result > 0
        except Exception as e:
            logger.error(f"Cache delete error for {cache_key}: {e}")
            return False

    async def invalidate_company(self, company_id: str) -> int:
        """
        Drop cached roles of every user in a company.

        Returns:
            Number of keys deleted
        """
        pattern = self._make_key(company_id, "*")

        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]

            if not keys:
                return 0

            deleted = await self.client.delete(*keys)
            logger.info(f"Cache invalidated: {pattern} ({deleted} keys)")
            return deleted

        except Exception as e:
            logger.error(f"Cache invalidate error for {pattern}: {e}")
            return 0

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connections."""
        await self.client.aclose()
        logger.info("Role cache connections closed")


# Global cache instance
_role_cache: Optional[RoleCache] = None


def get_role_cache() -> Optional[RoleCache]:
    """
    Get global role cache instance.

    Returns:
        RoleCache, or None when no REDIS_URL is configured
    """
    global _role_cache

    if _role_cache is None:
        config = get_config()
        if not config.redis_url:
            return None
        _role_cache = RoleCache(
            redis_url=config.redis_url,
            default_ttl=config.access.role_cache_ttl_seconds,
        )

    return _role_cache


def reset_role_cache() -> None:
    """Forget the global instance (used on shutdown and in tests)."""
    global _role_cache
    _role_cache = None
