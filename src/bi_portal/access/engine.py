"""
Wiring of stores and configuration into resolvers, sessions and guards.
"""

from datetime import datetime
from typing import Callable, Optional

from bi_portal.access.feature_catalog import FeatureCatalog
from bi_portal.access.guard import AccessGuard
from bi_portal.access.models import CurrentUser, RouteRequirements
from bi_portal.access.providers import (
    IdentityProvider,
    PlanCatalogStore,
    RoleStore,
    SubscriptionStore,
    UsageStore,
)
from bi_portal.access.roles import RoleResolver
from bi_portal.access.session import AccessSession, SessionRegistry
from bi_portal.access.subscription_status import SubscriptionStatusResolver, utcnow
from bi_portal.cache.redis_cache import RoleCache
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from bi_portal.utils.config import AccessConfig
from bi_portal.utils.retry import RetryConfig


class AccessEngine:
    """Builds sessions and guards that share one set of stores."""

    def __init__(
        self,
        role_store: RoleStore,
        subscription_store: SubscriptionStore,
        catalog_store: PlanCatalogStore,
        usage_store: Optional[UsageStore] = None,
        role_cache: Optional[RoleCache] = None,
        config: Optional[AccessConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.config = config or AccessConfig()
        self.metrics = metrics or get_metrics()
        self.usage_store = usage_store

        retry_config = RetryConfig(
            max_retries=self.config.retry_count,
            base_delay=self.config.retry_base_delay,
        )
        timeout = self.config.status_timeout_seconds

        self.role_resolver = RoleResolver(
            role_store,
            cache=role_cache,
            timeout=timeout,
            retry_config=retry_config,
            metrics=self.metrics,
        )
        self.status_resolver = SubscriptionStatusResolver(
            subscription_store,
            timeout=timeout,
            grace_period_days=self.config.grace_period_days,
            default_trial_days=self.config.default_trial_days,
            retry_config=retry_config,
            clock=clock,
            metrics=self.metrics,
        )
        self.catalog = FeatureCatalog(catalog_store, timeout=timeout, retry_config=retry_config)
        self.registry = SessionRegistry(self.open_session, metrics=self.metrics)

    def open_session(self, user: CurrentUser, session_id: Optional[str] = None) -> AccessSession:
        """Create an unregistered session; use ``registry.open`` for login flows."""
        return AccessSession(
            user,
            self.role_resolver,
            self.status_resolver,
            self.catalog,
            usage_store=self.usage_store,
            session_id=session_id,
            plans_route=self.config.plans_route,
        )

    async def session_for(self, identity: IdentityProvider,
                          session_id: Optional[str] = None) -> Optional[AccessSession]:
        """Registered session of the signed-in user, or None when nobody is signed in."""
        user = await identity.get_current_user()
        if user is None:
            return None
        return await self.registry.get_or_open(user, session_id)

    def guard(self, session: Optional[AccessSession],
              requirements: Optional[RouteRequirements] = None) -> AccessGuard:
        return AccessGuard(
            session,
            requirements,
            auth_route=self.config.auth_route,
            landing_route=self.config.landing_route,
            metrics=self.metrics,
        )
