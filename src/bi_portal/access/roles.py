"""
Role resolution.

A user may carry several persisted role assignments; the highest one wins
(master-admin > admin > viewer) and no assignment means viewer.
"""

import asyncio
from typing import Optional

from bi_portal.access.models import CurrentUser, Role
from bi_portal.access.providers import RoleStore
from bi_portal.cache.redis_cache import RoleCache
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from bi_portal.utils.exceptions import FetchFailure
from bi_portal.utils.logger import get_logger
from bi_portal.utils.retry import RetryConfig, call_with_backoff


logger = get_logger(__name__)


class RoleResolver:
    """
    Derives the caller's role class from persisted assignments.

    Unlike the subscription resolver this one does raise: a role that cannot
    be read in time surfaces as FetchFailure so the guard can block with
    STATUS_UNAVAILABLE instead of guessing a role.
    """

    def __init__(
        self,
        store: RoleStore,
        cache: Optional[RoleCache] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.store = store
        self.cache = cache
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.metrics = metrics or get_metrics()

    async def resolve(self, user: CurrentUser) -> Role:
        """
        Resolve the role of ``user``.

        Raises:
            FetchFailure: If the role store could not be read within the timeout
        """
        if self.cache is not None:
            cached = await self.cache.get(user.company_id, user.id)
            if cached is not None:
                self.metrics.track_cache_hit("roles")
                return Role.highest(cached)
            self.metrics.track_cache_miss("roles")

        try:
            names = await asyncio.wait_for(
                call_with_backoff(self.store.get_roles, user.id, config=self.retry_config),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self.metrics.track_fetch_failure("roles")
            raise FetchFailure(
                f"Role lookup did not complete within {self.timeout}s",
                source="roles",
                user_id=user.id,
            )
        except FetchFailure:
            self.metrics.track_fetch_failure("roles")
            raise
        except Exception as e:
            self.metrics.track_fetch_failure("roles")
            raise FetchFailure(f"Role lookup failed: {e}", source="roles", user_id=user.id) from e

        role = Role.highest(names)
        logger.debug(f"Resolved role {role.value} for user {user.id} from {names}")

        if self.cache is not None:
            await self.cache.set(user.company_id, user.id, names)

        return role

    async def forget(self, user: CurrentUser) -> None:
        """Drop any cached assignment for ``user``."""
        if self.cache is not None:
            await self.cache.delete(user.company_id, user.id)
