"""
Route-level access guard.

States: LOADING -> ALLOWED | BLOCKED, plus REDIRECT for callers that must go
elsewhere (sign in, or the landing route for insufficient role). The guard
stays in LOADING until both role and snapshot are known and only goes back
to LOADING on an explicit refresh.

Decision table, first match wins:
    1. unauthenticated                                  -> REDIRECT auth route
    2. requires master-admin, role is not master-admin  -> REDIRECT landing
    3. requires admin, role is viewer                   -> REDIRECT landing
    4. role is master-admin or no subscription needed   -> ALLOWED
    5. snapshot blocked                                 -> BLOCKED(reason)
       otherwise                                        -> ALLOWED

When the role cannot be read the route is decided as for a viewer; if that
is not ALLOWED the guard blocks with STATUS_UNAVAILABLE.
"""

import asyncio
from typing import Optional

from bi_portal.access.models import (
    AccessDecision,
    BlockReason,
    GuardState,
    Role,
    RouteRequirements,
    SubscriptionStatusSnapshot,
)
from bi_portal.access.session import AccessSession
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from bi_portal.utils.exceptions import FetchFailure, SessionClosedError
from bi_portal.utils.logger import get_logger


logger = get_logger(__name__)


def decide(
    authenticated: bool,
    role: Optional[Role],
    snapshot: Optional[SubscriptionStatusSnapshot],
    requirements: RouteRequirements,
    auth_route: str = "/auth",
    landing_route: str = "/home",
) -> AccessDecision:
    """
    Combine role and snapshot into a decision.

    Args:
        authenticated: Whether there is a signed-in user
        role: Resolved role (ignored when unauthenticated)
        snapshot: Resolved subscription snapshot
        requirements: What the route demands
        auth_route: Where unauthenticated callers go
        landing_route: Where callers without the required role go

    Returns:
        AccessDecision
    """
    if not authenticated:
        return AccessDecision.redirect(auth_route)

    role = role or Role.VIEWER

    if requirements.require_master_admin and role != Role.MASTER_ADMIN:
        return AccessDecision.redirect(landing_route)

    if requirements.require_admin and not role.is_admin:
        return AccessDecision.redirect(landing_route)

    if role == Role.MASTER_ADMIN or not requirements.require_subscription:
        return AccessDecision.allowed()

    if snapshot is None:
        return AccessDecision.blocked(BlockReason.STATUS_UNAVAILABLE)

    if snapshot.is_access_blocked:
        return AccessDecision.blocked(snapshot.block_reason or BlockReason.NO_ACTIVE_SUBSCRIPTION)

    return AccessDecision.allowed()


class AccessGuard:
    """
    Guard for one protected boundary.

    At most one evaluation is in flight. ``refresh`` cancels it and issues a
    new one; a result is applied only if it belongs to the most recently
    issued evaluation, so the last request wins regardless of completion
    order. After ``close`` nothing is written.
    """

    def __init__(
        self,
        session: Optional[AccessSession],
        requirements: Optional[RouteRequirements] = None,
        auth_route: str = "/auth",
        landing_route: str = "/home",
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.session = session
        self.requirements = requirements or RouteRequirements()
        self.auth_route = auth_route
        self.landing_route = landing_route
        self.metrics = metrics or get_metrics()

        self._decision = AccessDecision.loading()
        self._issued = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def decision(self) -> AccessDecision:
        return self._decision

    @property
    def state(self) -> GuardState:
        return self._decision.state

    @property
    def closed(self) -> bool:
        return self._closed

    async def _resolve(self) -> AccessDecision:
        if self.session is None:
            return decide(False, None, None, self.requirements, self.auth_route, self.landing_route)

        try:
            role, snapshot = await asyncio.gather(
                self.session.role(),
                self.session.snapshot(),
            )
        except FetchFailure as e:
            logger.warning(f"Role unavailable for user {self.session.user.id}: {e}")
            return await self._resolve_without_role()

        return decide(True, role, snapshot, self.requirements, self.auth_route, self.landing_route)

    async def _resolve_without_role(self) -> AccessDecision:
        # Viewer is the least privileged role: if a viewer gets in, every
        # role does and the missing role cannot change the outcome
        if self.requirements.require_admin or self.requirements.require_master_admin:
            return AccessDecision.blocked(BlockReason.STATUS_UNAVAILABLE)

        snapshot = None
        if self.requirements.require_subscription:
            snapshot = await self.session.snapshot()

        decision = decide(True, Role.VIEWER, snapshot, self.requirements, self.auth_route, self.landing_route)
        if decision.state == GuardState.ALLOWED:
            return decision
        return AccessDecision.blocked(BlockReason.STATUS_UNAVAILABLE)

    async def _run(self, request_id: int, refresh_session: bool = False) -> None:
        if refresh_session and self.session is not None:
            await self.session.refresh()

        decision = await self._resolve()

        if self._closed or request_id != self._issued:
            logger.debug(f"Discarding stale access decision for request {request_id}")
            return

        self._decision = decision
        self.metrics.track_decision(
            decision.state.value,
            decision.reason.value if decision.reason else None,
        )

    def _issue(self, refresh_session: bool = False) -> asyncio.Task:
        self._issued += 1
        self._task = asyncio.ensure_future(self._run(self._issued, refresh_session))
        return self._task

    async def _await_latest(self) -> AccessDecision:
        while True:
            task = self._task
            if task is None:
                return self._decision

            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # Superseded by a refresh or torn down by close: follow the
                # newest evaluation instead of failing the caller
                if task.cancelled():
                    if self._closed:
                        return self._decision
                    if task is not self._task:
                        continue
                raise

            if task is self._task:
                return self._decision

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("Access guard is closed")

    async def evaluate(self) -> AccessDecision:
        """
        Resolve the decision, reusing an in-flight or finished evaluation.

        Raises:
            SessionClosedError: If the guard was closed
        """
        self._ensure_open()

        if self._task is None:
            self._issue()

        return await self._await_latest()

    async def refresh(self) -> AccessDecision:
        """
        Force a refetch: cancel the in-flight evaluation, drop the session's
        shared state and go back to LOADING until the new result arrives.
        """
        self._ensure_open()

        previous = self._task
        if previous is not None and not previous.done():
            previous.cancel()

        self._decision = AccessDecision.loading()
        self._issue(refresh_session=True)
        return await self._await_latest()

    async def close(self) -> None:
        """Cancel in-flight work; the decision is frozen from here on."""
        if self._closed:
            return
        self._closed = True

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
