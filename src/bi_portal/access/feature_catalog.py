"""
Plan catalog: which features and quotas each plan unlocks.

Company overrides are applied on top of the plan definition: a feature
override switches a single key on or off and a limit override replaces the
plan's value (None meaning unlimited).
"""

import asyncio
from typing import Dict, Optional

from bi_portal.access.models import (
    CompanyOverrides,
    LimitKind,
    PlanDefinition,
    PlanEntitlements,
)
from bi_portal.access.providers import InMemoryPlanCatalogStore, PlanCatalogStore
from bi_portal.utils.exceptions import FetchFailure, InvalidPlanKey
from bi_portal.utils.logger import get_logger
from bi_portal.utils.retry import RetryConfig, call_with_backoff


logger = get_logger(__name__)


# Feature keys
EMBED_PUBLISH = "embed_publish"
USER_GROUP_ACCESS = "user_group_access"
SLIDER_TV = "slider_tv"
RLS_EMAIL = "rls_email"
ADVANCED_INTEGRATIONS = "advanced_integrations"
SLA_SUPPORT = "sla_support"
CUSTOM_DEVELOPMENT = "custom_development"

FEATURE_LABELS = {
    EMBED_PUBLISH: "Publicação Embed e Link Público",
    USER_GROUP_ACCESS: "Liberação por Usuário e Grupo",
    SLIDER_TV: "Slider para Televisores",
    RLS_EMAIL: "RLS a nível de E-mail",
    ADVANCED_INTEGRATIONS: "Integrações Exclusivas",
    SLA_SUPPORT: "SLA de Suporte",
    CUSTOM_DEVELOPMENT: "Desenvolvimento Customizado",
}

DEFAULT_PLANS: Dict[str, PlanDefinition] = {
    "free": PlanDefinition(
        key="free",
        name="Free",
        feature_keys=frozenset(),
        limits={
            LimitKind.CREDENTIALS: 1,
            LimitKind.DASHBOARDS: 3,
            LimitKind.USERS: 5,
        },
    ),
    "starter": PlanDefinition(
        key="starter",
        name="Starter",
        feature_keys=frozenset({EMBED_PUBLISH, USER_GROUP_ACCESS}),
        limits={
            LimitKind.CREDENTIALS: 2,
            LimitKind.DASHBOARDS: 10,
            LimitKind.USERS: 20,
        },
    ),
    "professional": PlanDefinition(
        key="professional",
        name="Profissional",
        feature_keys=frozenset({EMBED_PUBLISH, USER_GROUP_ACCESS, SLIDER_TV, RLS_EMAIL}),
        limits={
            LimitKind.CREDENTIALS: 5,
            LimitKind.DASHBOARDS: 20,
            LimitKind.USERS: 50,
        },
    ),
    "enterprise": PlanDefinition(
        key="enterprise",
        name="Enterprise",
        feature_keys=frozenset(FEATURE_LABELS),
        limits={
            LimitKind.CREDENTIALS: None,
            LimitKind.DASHBOARDS: None,
            LimitKind.USERS: None,
        },
    ),
}


def default_catalog_store() -> InMemoryPlanCatalogStore:
    """Catalog store preloaded with the built-in plans."""
    return InMemoryPlanCatalogStore(plans=DEFAULT_PLANS)


def apply_overrides(plan: PlanDefinition, overrides: Optional[CompanyOverrides] = None) -> PlanEntitlements:
    """Merge a plan definition with a company's overrides."""
    features = set(plan.feature_keys)
    limits = dict(plan.limits)

    if overrides is not None:
        for key, enabled in overrides.features.items():
            if enabled:
                features.add(key)
            else:
                features.discard(key)
        limits.update(overrides.limits)

    return PlanEntitlements(
        plan_key=plan.key,
        plan_name=plan.name,
        feature_keys=frozenset(features),
        limits=limits,
    )


class FeatureCatalog:
    """
    Loads plan entitlements for a company.

    An unknown plan key or a missing plan produces empty entitlements, which
    deny every feature. A failed or timed out read raises FetchFailure so the
    caller can retry instead of denying on a transient error.
    """

    def __init__(
        self,
        store: PlanCatalogStore,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.store = store
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

    async def get_plan(self, plan_key: Optional[str]) -> PlanDefinition:
        """
        Fetch a plan definition.

        Raises:
            InvalidPlanKey: If the catalog has no entry for ``plan_key``
        """
        if not plan_key:
            raise InvalidPlanKey(plan_key)

        plan = await call_with_backoff(self.store.get_plan, plan_key, config=self.retry_config)
        if plan is None:
            raise InvalidPlanKey(plan_key)
        return plan

    async def _load(self, plan_key: Optional[str], company_id: Optional[str]) -> PlanEntitlements:
        plan = await self.get_plan(plan_key)

        overrides = None
        if company_id:
            overrides = await call_with_backoff(
                self.store.get_company_overrides, company_id, config=self.retry_config
            )

        return apply_overrides(plan, overrides)

    async def load(self, plan_key: Optional[str], company_id: Optional[str] = None) -> PlanEntitlements:
        """
        Effective entitlements for ``plan_key`` within ``company_id``.

        Returns:
            PlanEntitlements, empty when the catalog has no such plan

        Raises:
            FetchFailure: If the catalog could not be read in time
        """
        try:
            return await asyncio.wait_for(self._load(plan_key, company_id), timeout=self.timeout)
        except InvalidPlanKey as e:
            logger.warning(f"{e}; denying all features")
            return PlanEntitlements.empty(plan_key)
        except asyncio.TimeoutError as e:
            logger.warning(f"Plan {plan_key!r} not loaded within {self.timeout}s")
            raise FetchFailure(f"Plan {plan_key!r} not loaded within {self.timeout}s", source="plans") from e
        except FetchFailure:
            raise
        except Exception as e:
            logger.error(f"Failed to load plan {plan_key!r}: {e}")
            raise FetchFailure(f"Failed to load plan {plan_key!r}: {e}", source="plans") from e
