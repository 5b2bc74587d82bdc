"""
Pydantic schemas for API request/response validation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from bi_portal.access.models import (
    AccessDecision,
    BlockReason,
    FeatureAccess,
    GuardState,
    Role,
    SubscriptionState,
    SubscriptionStatusSnapshot,
)


class SnapshotResponse(BaseModel):
    """Normalized subscription status."""
    subscribed: bool
    is_trialing: bool
    trial_days_remaining: int = Field(..., ge=0)
    grace_period_days_remaining: Optional[int] = Field(default=None, ge=0)
    is_access_blocked: bool
    block_reason: Optional[BlockReason] = None
    block_message: Optional[str] = None
    is_master_managed: bool
    status: Optional[SubscriptionState] = None
    plan_key: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot: SubscriptionStatusSnapshot) -> "SnapshotResponse":
        return cls(
            subscribed=snapshot.subscribed,
            is_trialing=snapshot.is_trialing,
            trial_days_remaining=snapshot.trial_days_remaining,
            grace_period_days_remaining=snapshot.grace_period_days_remaining,
            is_access_blocked=snapshot.is_access_blocked,
            block_reason=snapshot.block_reason,
            block_message=snapshot.block_reason.message if snapshot.block_reason else None,
            is_master_managed=snapshot.is_master_managed,
            status=snapshot.status,
            plan_key=snapshot.plan_key,
        )


class SessionResponse(BaseModel):
    """Opened or refreshed access session."""
    session_id: str
    user_id: str
    company_id: Optional[str] = None
    role: Optional[Role] = None
    snapshot: SnapshotResponse


class SessionInvalidatedResponse(BaseModel):
    session_id: str
    invalidated: bool


class DecisionRequest(BaseModel):
    """Requirements of the route being entered."""
    require_admin: bool = False
    require_master_admin: bool = False
    require_subscription: bool = True


class DecisionResponse(BaseModel):
    """Guard outcome plus the blocked screen when access is denied."""
    state: GuardState
    reason: Optional[BlockReason] = None
    redirect_to: Optional[str] = None
    blocked_screen: Optional[Dict[str, Any]] = None

    @classmethod
    def from_decision(cls, decision: AccessDecision,
                      blocked_screen: Optional[Dict[str, Any]] = None) -> "DecisionResponse":
        return cls(
            state=decision.state,
            reason=decision.reason,
            redirect_to=decision.redirect_to,
            blocked_screen=blocked_screen,
        )


class FeatureResponse(BaseModel):
    feature_key: str
    access: FeatureAccess
    plan_key: Optional[str] = None
    fallback: Optional[Dict[str, Any]] = None


class LimitResponse(BaseModel):
    kind: str
    current: int
    limit: Optional[int] = None
    reached: bool
    remaining: Optional[int] = None
    alert: Optional[Dict[str, Any]] = None


class LimitsResponse(BaseModel):
    plan_key: Optional[str] = None
    plan_name: str
    limits: List[LimitResponse]


class BannerResponse(BaseModel):
    banner: Optional[Dict[str, Any]] = None
