"""
Read-only collaborator interfaces consumed by the access engine.

The engine does not care where records come from; database repositories,
HTTP clients and the in-memory stores below all satisfy these protocols.
"""

from typing import Dict, List, Optional, Protocol, runtime_checkable

from bi_portal.access.models import (
    CompanyOverrides,
    CurrentUser,
    LimitKind,
    PlanDefinition,
    SubscriptionRecord,
)


@runtime_checkable
class IdentityProvider(Protocol):
    async def get_current_user(self) -> Optional[CurrentUser]:
        ...


@runtime_checkable
class SubscriptionStore(Protocol):
    async def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...


@runtime_checkable
class RoleStore(Protocol):
    async def get_roles(self, user_id: str) -> List[str]:
        ...


@runtime_checkable
class PlanCatalogStore(Protocol):
    async def get_plan(self, plan_key: str) -> Optional[PlanDefinition]:
        ...

    async def get_company_overrides(self, company_id: str) -> CompanyOverrides:
        ...


@runtime_checkable
class UsageStore(Protocol):
    async def get_usage(self, company_id: str) -> Dict[LimitKind, int]:
        ...


class StaticIdentityProvider:
    """Identity provider that always returns the same user (or nobody)."""

    def __init__(self, user: Optional[CurrentUser] = None):
        self.user = user

    async def get_current_user(self) -> Optional[CurrentUser]:
        return self.user


class InMemorySubscriptionStore:
    """Subscription records keyed by user id."""

    def __init__(self, records: Optional[Dict[str, SubscriptionRecord]] = None):
        self.records: Dict[str, SubscriptionRecord] = dict(records or {})

    async def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self.records.get(user_id)


class InMemoryRoleStore:
    """Role assignments keyed by user id."""

    def __init__(self, roles: Optional[Dict[str, List[str]]] = None):
        self.roles: Dict[str, List[str]] = {k: list(v) for k, v in (roles or {}).items()}

    async def get_roles(self, user_id: str) -> List[str]:
        return list(self.roles.get(user_id, []))


class InMemoryPlanCatalogStore:
    """Plan definitions and company overrides held in dictionaries."""

    def __init__(self, plans: Optional[Dict[str, PlanDefinition]] = None,
                 overrides: Optional[Dict[str, CompanyOverrides]] = None):
        self.plans: Dict[str, PlanDefinition] = dict(plans or {})
        self.overrides: Dict[str, CompanyOverrides] = dict(overrides or {})

    async def get_plan(self, plan_key: str) -> Optional[PlanDefinition]:
        return self.plans.get(plan_key)

    async def get_company_overrides(self, company_id: str) -> CompanyOverrides:
        return self.overrides.get(company_id, CompanyOverrides())


class InMemoryUsageStore:
    """Current resource counts keyed by company id."""

    def __init__(self, usage: Optional[Dict[str, Dict[LimitKind, int]]] = None):
        self.usage: Dict[str, Dict[LimitKind, int]] = dict(usage or {})

    async def get_usage(self, company_id: str) -> Dict[LimitKind, int]:
        counts = self.usage.get(company_id, {})
        return {kind: counts.get(kind, 0) for kind in LimitKind}
