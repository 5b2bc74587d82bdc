"""
Advisory quota checks.

A limit is reached when ``current >= limit``. None means unlimited and master
admins are never limited. Enforcement belongs to the endpoint that creates
the resource; these checks only drive the alert shown beforehand.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from bi_portal.access.models import LimitKind, PlanEntitlements, Role
from bi_portal.access.presentation import LimitAlert, build_limit_alert


@dataclass(frozen=True)
class LimitCheck:
    kind: LimitKind
    current: int
    limit: Optional[int]
    reached: bool

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.current)

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "current": self.current,
            "limit": self.limit,
            "reached": self.reached,
            "remaining": self.remaining,
        }


def check_limit(kind: LimitKind, current: int, limit: Optional[int],
                role: Optional[Role] = None) -> LimitCheck:
    """Compare current usage against a plan limit."""
    if role == Role.MASTER_ADMIN:
        return LimitCheck(kind=kind, current=current, limit=None, reached=False)
    if limit is None:
        return LimitCheck(kind=kind, current=current, limit=None, reached=False)
    return LimitCheck(kind=kind, current=current, limit=limit, reached=current >= limit)


def check_limits(entitlements: PlanEntitlements, usage: Dict[LimitKind, int],
                 role: Optional[Role] = None) -> Dict[LimitKind, LimitCheck]:
    """Check every quota dimension of a plan."""
    return {
        kind: check_limit(kind, usage.get(kind, 0), entitlements.limit_for(kind), role)
        for kind in LimitKind
    }


def limit_alert(check: LimitCheck, plan_name: str, role: Role,
                plans_route: str = "/subscription") -> Optional[LimitAlert]:
    """Alert for a reached limit, None otherwise."""
    if not check.reached or check.limit is None:
        return None
    return build_limit_alert(
        check.kind.label,
        check.current,
        check.limit,
        plan_name,
        role,
        plans_route,
    )
