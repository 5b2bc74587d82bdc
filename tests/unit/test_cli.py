"""
Unit tests for the role cache CLI commands
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from bi_portal.cli import main

from factories import COMPANY_ID


@pytest.fixture
def role_cache():
    """Role cache double with async operations"""
    cache = MagicMock()
    cache.invalidate_company = AsyncMock(return_value=3)
    cache.ping = AsyncMock(return_value=True)
    cache.close = AsyncMock()
    return cache


class TestCacheCommands:
    """Test cache invalidation and connectivity commands"""

    async def test_invalidate_company(self, role_cache, capsys):
        with patch("bi_portal.cli.get_role_cache", return_value=role_cache):
            exit_code = await main(["cache", "invalidate", "--company-id", COMPANY_ID])

        assert exit_code == 0
        role_cache.invalidate_company.assert_awaited_once_with(COMPANY_ID)
        role_cache.close.assert_awaited_once()
        assert f"Dropped 3 cached role key(s) for company {COMPANY_ID}" in capsys.readouterr().out

    async def test_invalidate_requires_company(self, role_cache):
        with patch("bi_portal.cli.get_role_cache", return_value=role_cache):
            exit_code = await main(["cache", "invalidate"])

        assert exit_code == 1
        role_cache.invalidate_company.assert_not_awaited()

    async def test_ping_unreachable(self, role_cache):
        role_cache.ping.return_value = False

        with patch("bi_portal.cli.get_role_cache", return_value=role_cache):
            exit_code = await main(["cache", "ping"])

        assert exit_code == 1

    async def test_cache_disabled_without_redis(self, capsys):
        exit_code = await main(["cache", "invalidate", "--company-id", COMPANY_ID])

        assert exit_code == 0
        assert "disabled" in capsys.readouterr().out
