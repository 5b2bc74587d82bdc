"""
Session-scoped access context.

One AccessSession exists per logged-in user session. It owns the role,
subscription snapshot and plan entitlements for the current navigation and
hands the same in-flight or finished result to every consumer (route guard,
banner, feature gates), so two consumers never see contradictory states.
Created on login, refreshed on forced refetch, closed on logout.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from bi_portal.access.feature_catalog import FeatureCatalog
from bi_portal.access.feature_gate import FeatureGate
from bi_portal.access.limits import LimitCheck, check_limits
from bi_portal.access.models import (
    BlockReason,
    CurrentUser,
    LimitKind,
    PlanEntitlements,
    Role,
    SubscriptionStatusSnapshot,
)
from bi_portal.access.presentation import SubscriptionBanner, build_banner
from bi_portal.access.providers import UsageStore
from bi_portal.access.roles import RoleResolver
from bi_portal.access.subscription_status import SubscriptionStatusResolver
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from bi_portal.utils.exceptions import FetchFailure, SessionClosedError
from bi_portal.utils.logger import bind_log_context, get_logger


logger = get_logger(__name__)


def _reusable(task: asyncio.Task) -> bool:
    """
    Whether a finished load may be handed out again.

    Failed, cancelled and degraded (status unavailable) loads are retried on
    the next access instead of sticking for the rest of the session.
    """
    if task.cancelled() or task.exception() is not None:
        return False
    result = task.result()
    if isinstance(result, SubscriptionStatusSnapshot):
        return result.block_reason != BlockReason.STATUS_UNAVAILABLE
    return True


class AccessSession:
    """
    Shared access state for one user session.

    Every loader runs at most once per generation; concurrent callers await
    the same task. ``refresh`` cancels everything in flight and starts a new
    generation. After ``close`` every accessor raises SessionClosedError.
    """

    def __init__(
        self,
        user: CurrentUser,
        role_resolver: RoleResolver,
        status_resolver: SubscriptionStatusResolver,
        catalog: FeatureCatalog,
        usage_store: Optional[UsageStore] = None,
        session_id: Optional[str] = None,
        plans_route: str = "/subscription",
    ):
        self.user = user
        self.role_resolver = role_resolver
        self.status_resolver = status_resolver
        self.catalog = catalog
        self.usage_store = usage_store
        self.session_id = session_id or user.id
        self.plans_route = plans_route

        self.generation = 0
        self._tasks: Dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(
                "Access session is closed",
                {"session_id": self.session_id},
            )

    def _shared(self, name: str, factory: Callable[[], Awaitable]) -> asyncio.Task:
        """Return the task for ``name`` in this generation, starting it if needed."""
        self._ensure_open()

        task = self._tasks.get(name)
        if task is not None and task.done() and not _reusable(task):
            task = None

        if task is None:
            task = asyncio.ensure_future(self._bound(factory))
            self._tasks[name] = task

        return task

    async def _bound(self, factory: Callable[[], Awaitable]):
        # Runs in the task's own context copy; nothing leaks to the caller
        bind_log_context(user_id=self.user.id, session_id=self.session_id)
        return await factory()

    async def _await(self, name: str, factory: Callable[[], Awaitable]):
        # Shielded so that one consumer going away does not cancel the
        # result everyone else is waiting for
        while True:
            generation = self.generation
            task = self._shared(name, factory)
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                # A refresh cancelled the shared task, not this caller:
                # follow the new generation
                current = asyncio.current_task()
                if (task.cancelled() and not self._closed
                        and self.generation != generation
                        and current is not None and current.cancelling() == 0):
                    continue
                raise

    async def role(self) -> Role:
        """
        Caller's role.

        Raises:
            FetchFailure: If roles could not be read in time
            SessionClosedError: If the session was closed
        """
        return await self._await("role", lambda: self.role_resolver.resolve(self.user))

    async def _load_snapshot(self) -> SubscriptionStatusSnapshot:
        fetched = asyncio.ensure_future(self.status_resolver.resolve(self.user.id))

        try:
            try:
                role = await self.role()
            except FetchFailure:
                role = None

            if role == Role.MASTER_ADMIN:
                return SubscriptionStatusSnapshot.for_master_admin()

            return await fetched
        finally:
            if not fetched.done():
                fetched.cancel()

    async def snapshot(self) -> SubscriptionStatusSnapshot:
        """
        Subscription snapshot shared by all consumers of this navigation.

        The record is fetched while the role resolves. Master admins get the
        synthetic master-managed snapshot and the fetch is dropped. When the
        role itself cannot be read the fetched snapshot is returned as is.
        """
        return await self._await("snapshot", self._load_snapshot)

    async def _load_entitlements(self) -> PlanEntitlements:
        snapshot = await self.snapshot()
        if snapshot.block_reason == BlockReason.STATUS_UNAVAILABLE:
            raise FetchFailure(
                "Subscription status unavailable; plan unknown",
                source="subscription",
                user_id=self.user.id,
            )
        return await self.catalog.load(snapshot.plan_key, self.user.company_id)

    async def entitlements(self) -> PlanEntitlements:
        """
        Plan entitlements after company overrides.

        Raises:
            FetchFailure: If the subscription or the plan could not be read
            SessionClosedError: If the session was closed
        """
        return await self._await("entitlements", self._load_entitlements)

    def peek_snapshot(self) -> Optional[SubscriptionStatusSnapshot]:
        """Snapshot if already resolved in this generation, else None."""
        task = self._tasks.get("snapshot")
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    def peek_entitlements(self) -> Optional[PlanEntitlements]:
        task = self._tasks.get("entitlements")
        if task is None or not task.done() or task.cancelled() or task.exception() is not None:
            return None
        return task.result()

    async def _role_or_viewer(self) -> Role:
        try:
            return await self.role()
        except FetchFailure:
            return Role.VIEWER

    async def feature_gate(self) -> FeatureGate:
        """Gate over this session's loaded entitlements; undetermined if they failed to load."""
        role = await self._role_or_viewer()
        try:
            entitlements = await self.entitlements()
        except FetchFailure as e:
            logger.warning(f"Entitlements unavailable for user {self.user.id}: {e}")
            entitlements = None
        return FeatureGate(entitlements, role, self.plans_route)

    def current_feature_gate(self, role: Role = Role.VIEWER) -> FeatureGate:
        """Gate over whatever is loaded right now; undetermined while loading."""
        self._ensure_open()
        return FeatureGate(self.peek_entitlements(), role, self.plans_route)

    async def banner(self) -> Optional[SubscriptionBanner]:
        """Trial, grace or inactive warning banner, if any."""
        role = await self._role_or_viewer()
        snapshot = await self.snapshot()
        return build_banner(snapshot, role, self.plans_route)

    async def limits(self) -> Dict[LimitKind, LimitCheck]:
        """
        Quota checks against the company's current usage.

        Usage is read fresh on every call; it changes independently of the
        subscription.
        """
        role = await self._role_or_viewer()
        entitlements = await self.entitlements()

        usage: Dict[LimitKind, int] = {}
        if self.usage_store is not None and self.user.company_id:
            usage = await self.usage_store.get_usage(self.user.company_id)

        return check_limits(entitlements, usage, role)

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()

        for task in tasks:
            if not task.done():
                task.cancel()

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def refresh(self) -> None:
        """Drop every loaded or in-flight result and start a new generation."""
        self._ensure_open()
        self.generation += 1
        await self._cancel_tasks()
        await self.role_resolver.forget(self.user)
        logger.debug(f"Session {self.session_id} refreshed (generation {self.generation})")

    async def close(self) -> None:
        """Cancel in-flight work and reject further use."""
        if self._closed:
            return
        self._closed = True
        await self._cancel_tasks()
        await self.role_resolver.forget(self.user)
        logger.debug(f"Session {self.session_id} closed")


SessionFactory = Callable[[CurrentUser, Optional[str]], AccessSession]


class SessionRegistry:
    """
    Open access sessions keyed by session id.

    The API layer looks sessions up here instead of keeping snapshots in
    module state.
    """

    def __init__(self, factory: SessionFactory, metrics: Optional[PrometheusMetrics] = None):
        self.factory = factory
        self.metrics = metrics or get_metrics()
        self._sessions: Dict[str, AccessSession] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Optional[AccessSession]:
        return self._sessions.get(session_id)

    async def open(self, user: CurrentUser, session_id: Optional[str] = None) -> AccessSession:
        """Create a fresh session, closing any previous one under the same id."""
        key = session_id or user.id

        async with self._lock:
            previous = self._sessions.pop(key, None)
            if previous is not None:
                await previous.close()

            session = self.factory(user, key)
            self._sessions[key] = session
            self.metrics.set_active_sessions(len(self._sessions))

        logger.info(f"Opened access session {key} for user {user.id}")
        return session

    async def get_or_open(self, user: CurrentUser, session_id: Optional[str] = None) -> AccessSession:
        key = session_id or user.id
        session = self._sessions.get(key)

        if session is not None and not session.closed and session.user.id == user.id:
            return session

        return await self.open(user, key)

    async def invalidate(self, session_id: str) -> bool:
        """Close and forget a session. Returns False when it did not exist."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            self.metrics.set_active_sessions(len(self._sessions))

        if session is None:
            return False

        await session.close()
        logger.info(f"Invalidated access session {session_id}")
        return True

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self.metrics.set_active_sessions(0)

        for session in sessions:
            await session.close()
