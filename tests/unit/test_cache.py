"""
Unit tests for the Redis role cache
"""
import json
from unittest.mock import AsyncMock, MagicMock

from bi_portal.cache.redis_cache import RoleCache, get_role_cache, reset_role_cache
from bi_portal.utils.config import reload_config


def make_cache(**kwargs) -> RoleCache:
    return RoleCache(client=AsyncMock(), **kwargs)


class TestRoleCache:
    """Test role cache operations against a mocked client"""

    def test_key_is_company_scoped(self):
        cache = make_cache()

        assert cache._make_key("c-1", "u-1") == "company:c-1:roles:u-1"
        assert cache._make_key(None, "u-1") == "company:none:roles:u-1"

    async def test_get_hit(self):
        cache = make_cache()
        cache.client.get.return_value = json.dumps(["admin", "viewer"])

        result = await cache.get("c-1", "u-1")

        assert result == ["admin", "viewer"]
        cache.client.get.assert_awaited_once_with("company:c-1:roles:u-1")

    async def test_get_miss(self):
        cache = make_cache()
        cache.client.get.return_value = None

        assert await cache.get("c-1", "u-1") is None

    async def test_get_corrupt_value_is_miss(self):
        cache = make_cache()
        cache.client.get.return_value = "{not json"

        assert await cache.get("c-1", "u-1") is None

    async def test_get_non_list_value_is_miss(self):
        cache = make_cache()
        cache.client.get.return_value = json.dumps({"role": "admin"})

        assert await cache.get("c-1", "u-1") is None

    async def test_backend_error_is_miss(self):
        cache = make_cache()
        cache.client.get.side_effect = ConnectionError("redis down")

        assert await cache.get("c-1", "u-1") is None

    async def test_set_uses_default_ttl(self):
        cache = make_cache(default_ttl=120)

        assert await cache.set("c-1", "u-1", ["admin"]) is True
        cache.client.setex.assert_awaited_once_with("company:c-1:roles:u-1", 120, '["admin"]')

    async def test_set_failure_returns_false(self):
        cache = make_cache()
        cache.client.setex.side_effect = ConnectionError("redis down")

        assert await cache.set("c-1", "u-1", ["admin"]) is False

    async def test_delete(self):
        cache = make_cache()
        cache.client.delete.return_value = 1

        assert await cache.delete("c-1", "u-1") is True
        cache.client.delete.assert_awaited_once_with("company:c-1:roles:u-1")

    async def test_invalidate_company(self):
        async def scan(match):
            for key in ("company:c-1:roles:u-1", "company:c-1:roles:u-2"):
                yield key

        cache = make_cache()
        cache.client.scan_iter = MagicMock(side_effect=scan)
        cache.client.delete.return_value = 2

        assert await cache.invalidate_company("c-1") == 2
        cache.client.scan_iter.assert_called_once_with(match="company:c-1:roles:*")
        cache.client.delete.assert_awaited_once_with("company:c-1:roles:u-1", "company:c-1:roles:u-2")

    async def test_ping_failure(self):
        cache = make_cache()
        cache.client.ping.side_effect = ConnectionError("redis down")

        assert await cache.ping() is False


class TestGlobalRoleCache:
    """Test the configured global instance"""

    def test_disabled_without_redis_url(self):
        assert get_role_cache() is None

    def test_built_from_configuration(self, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/15")
        monkeypatch.setenv("ROLE_CACHE_TTL_SECONDS", "60")
        reload_config()

        cache = get_role_cache()

        assert cache is not None
        assert cache.default_ttl == 60
        assert get_role_cache() is cache
        reset_role_cache()
