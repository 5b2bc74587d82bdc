"""
Access endpoints: session lifecycle, route decisions, feature checks,
quota state and the subscription banner.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from bi_portal.access.engine import AccessEngine
from bi_portal.access.limits import limit_alert
from bi_portal.access.models import FeatureAccess, GuardState, Role, RouteRequirements
from bi_portal.access.presentation import build_blocked_screen
from bi_portal.access.session import AccessSession
from bi_portal.api.middleware.session_context import (
    Identity,
    get_access_engine,
    get_access_session,
    get_identity,
    get_optional_identity,
)
from bi_portal.api.schemas import (
    BannerResponse,
    DecisionRequest,
    DecisionResponse,
    FeatureResponse,
    LimitResponse,
    LimitsResponse,
    SessionInvalidatedResponse,
    SessionResponse,
    SnapshotResponse,
)
from bi_portal.monitoring.sentry_config import add_breadcrumb
from bi_portal.utils.exceptions import FetchFailure
from bi_portal.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _role_or_none(session: AccessSession) -> Optional[Role]:
    try:
        return await session.role()
    except FetchFailure:
        return None


async def _session_response(session: AccessSession) -> SessionResponse:
    snapshot = await session.snapshot()
    return SessionResponse(
        session_id=session.session_id,
        user_id=session.user.id,
        company_id=session.user.company_id,
        role=await _role_or_none(session),
        snapshot=SnapshotResponse.from_snapshot(snapshot),
    )


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def open_session(
    identity: Identity = Depends(get_identity),
    engine: AccessEngine = Depends(get_access_engine),
):
    """Open a fresh access session for the login carried by the token."""
    session = await engine.registry.open(identity.user, identity.session_id)
    return await _session_response(session)


@router.delete("/session", response_model=SessionInvalidatedResponse)
async def close_session(
    identity: Identity = Depends(get_identity),
    engine: AccessEngine = Depends(get_access_engine),
):
    """Invalidate the access session on logout."""
    invalidated = await engine.registry.invalidate(identity.session_id)
    return SessionInvalidatedResponse(session_id=identity.session_id, invalidated=invalidated)


@router.post("/session/refresh", response_model=SessionResponse)
async def refresh_session(session: AccessSession = Depends(get_access_session)):
    """Drop cached state and re-resolve role and subscription."""
    await session.refresh()
    return await _session_response(session)


@router.get("/snapshot", response_model=SnapshotResponse)
async def get_snapshot(session: AccessSession = Depends(get_access_session)):
    """Current subscription status snapshot."""
    return SnapshotResponse.from_snapshot(await session.snapshot())


@router.post("/decision", response_model=DecisionResponse)
async def decide_access(
    request: DecisionRequest,
    identity: Optional[Identity] = Depends(get_optional_identity),
    engine: AccessEngine = Depends(get_access_engine),
):
    """
    Evaluate the route guard for the given requirements.

    Unauthenticated callers get a REDIRECT to the auth route instead of 401.
    """
    requirements = RouteRequirements(
        require_admin=request.require_admin,
        require_master_admin=request.require_master_admin,
        require_subscription=request.require_subscription,
    )

    session = None
    if identity is not None:
        session = await engine.registry.get_or_open(identity.user, identity.session_id)

    guard = engine.guard(session, requirements)
    try:
        decision = await guard.evaluate()
    finally:
        await guard.close()

    add_breadcrumb(
        f"Access decision {decision.state.value}",
        reason=decision.reason.value if decision.reason else None,
    )

    blocked_screen = None
    if decision.state == GuardState.BLOCKED and session is not None:
        role = await _role_or_none(session) or Role.VIEWER
        screen = build_blocked_screen(
            decision.reason,
            role,
            session.peek_snapshot(),
            plans_route=engine.config.plans_route,
            auth_route=engine.config.auth_route,
            grace_period_days=engine.config.grace_period_days,
            trial_days=engine.config.default_trial_days,
        )
        blocked_screen = screen.to_dict()

    return DecisionResponse.from_decision(decision, blocked_screen)


@router.get("/features/{feature_key}", response_model=FeatureResponse)
async def check_feature(feature_key: str, session: AccessSession = Depends(get_access_session)):
    """Whether the caller's plan unlocks ``feature_key``, with the fallback when not."""
    gate = await session.feature_gate()
    access = gate.has_feature(feature_key)

    fallback = None
    if access == FeatureAccess.DENIED:
        fallback = gate.fallback_for(feature_key).to_dict()

    return FeatureResponse(
        feature_key=feature_key,
        access=access,
        plan_key=gate.entitlements.plan_key if gate.entitlements else None,
        fallback=fallback,
    )


@router.get("/limits", response_model=LimitsResponse)
async def get_limits(
    session: AccessSession = Depends(get_access_session),
    engine: AccessEngine = Depends(get_access_engine),
):
    """Quota usage for dashboards, users and credentials."""
    entitlements = await session.entitlements()
    checks = await session.limits()
    role = await _role_or_none(session) or Role.VIEWER

    limits = []
    for check in checks.values():
        alert = limit_alert(check, entitlements.plan_name, role, engine.config.plans_route)
        limits.append(LimitResponse(
            kind=check.kind.value,
            current=check.current,
            limit=check.limit,
            reached=check.reached,
            remaining=check.remaining,
            alert=alert.to_dict() if alert else None,
        ))

    return LimitsResponse(
        plan_key=entitlements.plan_key,
        plan_name=entitlements.plan_name,
        limits=limits,
    )


@router.get("/banner", response_model=BannerResponse)
async def get_banner(response: Response, session: AccessSession = Depends(get_access_session)):
    """Trial, grace or inactive banner; null when nothing needs attention."""
    banner = await session.banner()
    response.headers["Cache-Control"] = "no-store"
    return BannerResponse(banner=banner.to_dict() if banner else None)
