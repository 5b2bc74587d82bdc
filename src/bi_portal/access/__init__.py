"""
Subscription and access control engine.
"""

from .engine import AccessEngine
from .feature_gate import FeatureGate, has_feature
from .guard import AccessGuard, decide
from .models import (
    AccessDecision,
    BlockReason,
    CurrentUser,
    FeatureAccess,
    GuardState,
    LimitKind,
    Role,
    RouteRequirements,
    SubscriptionRecord,
    SubscriptionState,
    SubscriptionStatusSnapshot,
)
from .session import AccessSession, SessionRegistry
from .subscription_status import SubscriptionStatusResolver, derive_snapshot

__all__ = [
    "AccessEngine",
    "AccessGuard",
    "AccessSession",
    "SessionRegistry",
    "SubscriptionStatusResolver",
    "FeatureGate",
    "has_feature",
    "decide",
    "derive_snapshot",
    "AccessDecision",
    "BlockReason",
    "CurrentUser",
    "FeatureAccess",
    "GuardState",
    "LimitKind",
    "Role",
    "RouteRequirements",
    "SubscriptionRecord",
    "SubscriptionState",
    "SubscriptionStatusSnapshot",
]
