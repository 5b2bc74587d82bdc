"""
Per-feature gating inside already accessible routes.

The gate is a pure function of the loaded plan entitlements. While those are
still loading the answer is UNDETERMINED, which renders neither the feature
nor its fallback.
"""

from typing import Any, Optional

from bi_portal.access.models import FeatureAccess, PlanEntitlements, Role
from bi_portal.access.presentation import build_upgrade_prompt


def has_feature(entitlements: Optional[PlanEntitlements], feature_key: str,
                role: Optional[Role] = None) -> FeatureAccess:
    """
    Check a single feature key.

    Args:
        entitlements: Loaded entitlements, or None while loading
        feature_key: Feature to check
        role: Caller role; master admins are granted everything

    Returns:
        FeatureAccess
    """
    if role == Role.MASTER_ADMIN:
        return FeatureAccess.GRANTED
    if entitlements is None:
        return FeatureAccess.UNDETERMINED
    if feature_key in entitlements.feature_keys:
        return FeatureAccess.GRANTED
    return FeatureAccess.DENIED


class FeatureGate:
    """Feature checks and fallback selection for one session's plan."""

    def __init__(
        self,
        entitlements: Optional[PlanEntitlements],
        role: Role = Role.VIEWER,
        plans_route: str = "/subscription",
    ):
        self.entitlements = entitlements
        self.role = role
        self.plans_route = plans_route

    @property
    def is_loading(self) -> bool:
        return self.entitlements is None and self.role != Role.MASTER_ADMIN

    def has_feature(self, feature_key: str) -> FeatureAccess:
        return has_feature(self.entitlements, feature_key, self.role)

    def is_enabled(self, feature_key: str) -> bool:
        """Strict boolean view; UNDETERMINED counts as not enabled."""
        return self.has_feature(feature_key) == FeatureAccess.GRANTED

    def fallback_for(self, feature_key: str, fallback: Any = None) -> Any:
        """Caller-supplied fallback, or the default upgrade prompt."""
        if fallback is not None:
            return fallback
        plan_name = self.entitlements.plan_name if self.entitlements else ""
        return build_upgrade_prompt(feature_key, plan_name, self.role, self.plans_route)

    def render(self, feature_key: str, content: Any, fallback: Any = None) -> Any:
        """
        Pick what to show for a gated region.

        Returns:
            ``content`` when granted, the fallback when denied and None while
            undetermined
        """
        access = self.has_feature(feature_key)
        if access == FeatureAccess.UNDETERMINED:
            return None
        if access == FeatureAccess.GRANTED:
            return content
        return self.fallback_for(feature_key, fallback)
