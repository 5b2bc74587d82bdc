"""
Domain models for subscription and access control.

Closed enumerations (roles, subscription states, block reasons, guard states)
and the immutable value objects exchanged between resolvers, the access guard
and the presentation layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class Role(str, Enum):
    """Role class of a user inside a company, lowest to highest."""

    VIEWER = "viewer"
    ADMIN = "admin"
    MASTER_ADMIN = "master-admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @property
    def is_admin(self) -> bool:
        """True for admin and master-admin."""
        return self in (Role.ADMIN, Role.MASTER_ADMIN)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Role"]:
        """Parse a persisted role name, accepting legacy aliases."""
        if value is None:
            return None
        normalized = value.strip().lower()
        normalized = ROLE_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None

    @classmethod
    def highest(cls, values: List[str]) -> "Role":
        """Pick the highest known role; no assignment means viewer."""
        roles = [r for r in (cls.parse(v) for v in values) if r is not None]
        if not roles:
            return cls.VIEWER
        return max(roles, key=lambda r: r.rank)


_ROLE_RANK = {
    Role.VIEWER: 0,
    Role.ADMIN: 1,
    Role.MASTER_ADMIN: 2,
}

ROLE_ALIASES = {
    "user": "viewer",
    "master_admin": "master-admin",
}


class SubscriptionState(str, Enum):
    """Billing status of a persisted subscription record."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SubscriptionState"]:
        """
        Parse a persisted status.

        Legacy names are mapped to their current equivalents. Unknown values
        return None so the caller can fail closed.
        """
        if value is None:
            return None
        normalized = value.strip().lower()
        normalized = STATUS_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            return None


STATUS_ALIASES = {
    "trial": "trialing",
    "inactive": "expired",
    "cancelled": "canceled",
}


class BlockReason(str, Enum):
    """Why access to protected content is denied."""

    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    GRACE_PERIOD_EXPIRED = "GRACE_PERIOD_EXPIRED"
    NO_ACTIVE_SUBSCRIPTION = "NO_ACTIVE_SUBSCRIPTION"
    STATUS_UNAVAILABLE = "STATUS_UNAVAILABLE"

    @property
    def message(self) -> str:
        """pt-BR message shown on the blocked screen."""
        return BLOCK_REASON_MESSAGES[self]


BLOCK_REASON_MESSAGES = {
    BlockReason.TRIAL_EXPIRED: (
        "Seu período de trial expirou. Assine um plano para continuar usando o sistema."
    ),
    BlockReason.GRACE_PERIOD_EXPIRED: (
        "Sua assinatura foi cancelada e o período de carência de 30 dias expirou. "
        "Reative sua assinatura para continuar usando o sistema."
    ),
    BlockReason.NO_ACTIVE_SUBSCRIPTION: (
        "Sua assinatura está inativa. Assine um plano para continuar usando o sistema."
    ),
    BlockReason.STATUS_UNAVAILABLE: (
        "Não foi possível verificar sua assinatura. Tente novamente em instantes."
    ),
}


class GuardState(str, Enum):
    """States of the route-level access guard."""

    LOADING = "LOADING"
    ALLOWED = "ALLOWED"
    BLOCKED = "BLOCKED"
    REDIRECT = "REDIRECT"


class FeatureAccess(str, Enum):
    """Tri-state answer of a feature check."""

    GRANTED = "GRANTED"
    DENIED = "DENIED"
    UNDETERMINED = "UNDETERMINED"


class LimitKind(str, Enum):
    """Quota dimensions a plan can cap."""

    DASHBOARDS = "dashboards"
    USERS = "users"
    CREDENTIALS = "credentials"

    @property
    def label(self) -> str:
        """pt-BR plural label used in limit alerts."""
        return LIMIT_LABELS[self]


LIMIT_LABELS = {
    LimitKind.DASHBOARDS: "dashboards",
    LimitKind.USERS: "usuários",
    LimitKind.CREDENTIALS: "credenciais",
}


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller."""

    id: str
    email: str
    company_id: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionRecord:
    """
    Raw subscription row as read from the billing store.

    ``canceled_at`` is only meaningful when the status is canceled.
    """

    status: Optional[str]
    plan_key: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    is_master_managed: bool = False
    created_at: Optional[datetime] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionStatusSnapshot:
    """Normalized subscription status, recomputed on every fetch."""

    subscribed: bool = False
    is_trialing: bool = False
    trial_days_remaining: int = 0
    grace_period_days_remaining: Optional[int] = None
    is_access_blocked: bool = True
    block_reason: Optional[BlockReason] = None
    is_master_managed: bool = False
    status: Optional[SubscriptionState] = None
    plan_key: Optional[str] = None

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionState.CANCELED

    @classmethod
    def unavailable(cls) -> "SubscriptionStatusSnapshot":
        """Fail-closed snapshot used when the status could not be read in time."""
        return cls(
            is_access_blocked=True,
            block_reason=BlockReason.STATUS_UNAVAILABLE,
        )

    @classmethod
    def for_master_admin(cls) -> "SubscriptionStatusSnapshot":
        """Synthetic snapshot for master admins, who are never billed."""
        return cls(
            subscribed=True,
            is_access_blocked=False,
            is_master_managed=True,
            status=SubscriptionState.ACTIVE,
            plan_key="enterprise",
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "subscribed": self.subscribed,
            "is_trialing": self.is_trialing,
            "trial_days_remaining": self.trial_days_remaining,
            "grace_period_days_remaining": self.grace_period_days_remaining,
            "is_access_blocked": self.is_access_blocked,
            "block_reason": self.block_reason.value if self.block_reason else None,
            "is_master_managed": self.is_master_managed,
            "status": self.status.value if self.status else None,
            "plan_key": self.plan_key,
        }


@dataclass(frozen=True)
class PlanDefinition:
    """Plan as stored in the catalog."""

    key: str
    name: str
    feature_keys: FrozenSet[str] = frozenset()
    limits: Dict[LimitKind, Optional[int]] = field(default_factory=dict)


@dataclass(frozen=True)
class CompanyOverrides:
    """Per-company feature switches and limit values that replace the plan's."""

    features: Dict[str, bool] = field(default_factory=dict)
    limits: Dict[LimitKind, Optional[int]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.features and not self.limits


@dataclass(frozen=True)
class PlanEntitlements:
    """Effective features and limits of a company after overrides."""

    plan_key: Optional[str]
    plan_name: str
    feature_keys: FrozenSet[str] = frozenset()
    limits: Dict[LimitKind, Optional[int]] = field(default_factory=dict)

    @classmethod
    def empty(cls, plan_key: Optional[str] = None) -> "PlanEntitlements":
        """Entitlements of an unknown plan: nothing unlocked, nothing allowed."""
        return cls(
            plan_key=plan_key,
            plan_name=plan_key or "",
            limits={kind: 0 for kind in LimitKind},
        )

    def limit_for(self, kind: LimitKind) -> Optional[int]:
        return self.limits.get(kind)


@dataclass(frozen=True)
class RouteRequirements:
    """What a protected route demands from the caller."""

    require_admin: bool = False
    require_master_admin: bool = False
    require_subscription: bool = True


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of the route-level guard."""

    state: GuardState
    reason: Optional[BlockReason] = None
    redirect_to: Optional[str] = None

    @classmethod
    def loading(cls) -> "AccessDecision":
        return cls(state=GuardState.LOADING)

    @classmethod
    def allowed(cls) -> "AccessDecision":
        return cls(state=GuardState.ALLOWED)

    @classmethod
    def blocked(cls, reason: BlockReason) -> "AccessDecision":
        return cls(state=GuardState.BLOCKED, reason=reason)

    @classmethod
    def redirect(cls, to: str) -> "AccessDecision":
        return cls(state=GuardState.REDIRECT, redirect_to=to)

    @property
    def is_terminal(self) -> bool:
        return self.state != GuardState.LOADING
