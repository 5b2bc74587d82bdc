"""
SQLAlchemy repositories implementing the access engine's read protocols.

Queries run on a short-lived Session in a worker thread so the event loop is
never blocked. Connection-level failures surface as FetchFailure (retried by
the resolvers); other SQLAlchemy errors become DatabaseError.
"""

import asyncio
import threading
from typing import Callable, Dict, List, Optional, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bi_portal.access.models import (
    CompanyOverrides,
    CurrentUser,
    LimitKind,
    PlanDefinition,
    SubscriptionRecord,
)
from bi_portal.database.models import (
    CompanyCustomFeature,
    CompanyCustomLimit,
    Credential,
    Dashboard,
    PlanFeature,
    PlanLimit,
    Subscription,
    SubscriptionPlan,
    User,
    UserRole,
)
from bi_portal.utils.exceptions import DatabaseError, FetchFailure
from bi_portal.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")

ADMIN_ROLE_NAMES = ("admin",)


class SqlRepository:
    """Runs one unit of read work per call on its own Session."""

    source = "database"

    def __init__(self, session_factory: sessionmaker, lock: Optional[threading.Lock] = None):
        self.session_factory = session_factory
        self.lock = lock

    def _run_sync(self, work: Callable[[Session], T], operation: str) -> T:
        if self.lock is None:
            return self._execute(work, operation)
        with self.lock:
            return self._execute(work, operation)

    def _execute(self, work: Callable[[Session], T], operation: str) -> T:
        db = self.session_factory()
        try:
            return work(db)
        except OperationalError as e:
            raise FetchFailure(f"Database unavailable during {operation}: {e}", source=self.source) from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise FetchFailure(f"Connection lost during {operation}: {e}", source=self.source) from e
            raise DatabaseError(str(e), operation=operation) from e
        except SQLAlchemyError as e:
            raise DatabaseError(str(e), operation=operation) from e
        finally:
            db.close()

    async def _run(self, work: Callable[[Session], T], operation: str) -> T:
        return await asyncio.to_thread(self._run_sync, work, operation)


class SqlSubscriptionRepository(SqlRepository):
    """
    Subscription reads.

    A user without a subscription row is covered by the subscription of an
    admin of the same company (the billing owner).
    """

    source = "subscription"

    def _find(self, db: Session, user_id: str) -> Optional[SubscriptionRecord]:
        own = db.query(Subscription).filter(Subscription.user_id == user_id).first()
        if own is not None:
            return own.to_record()

        user = db.get(User, user_id)
        if user is None or not user.company_id:
            return None

        owner_sub = (
            db.query(Subscription)
            .join(User, User.id == Subscription.user_id)
            .join(UserRole, UserRole.user_id == User.id)
            .filter(User.company_id == user.company_id)
            .filter(UserRole.role.in_(ADMIN_ROLE_NAMES))
            .order_by(Subscription.created_at.asc())
            .first()
        )
        if owner_sub is None:
            return None

        logger.debug(f"User {user_id} covered by company subscription of {owner_sub.user_id}")
        return owner_sub.to_record()

    async def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return await self._run(lambda db: self._find(db, user_id), "get_subscription")


class SqlIdentityProvider(SqlRepository):
    """Resolves a stored user by id; inactive or unknown users are signed out."""

    source = "users"

    def __init__(self, session_factory: sessionmaker, user_id: str, lock: Optional[threading.Lock] = None):
        super().__init__(session_factory, lock)
        self.user_id = user_id

    async def get_current_user(self) -> Optional[CurrentUser]:
        def work(db: Session) -> Optional[CurrentUser]:
            user = db.get(User, self.user_id)
            if user is None or not user.is_active:
                return None
            return CurrentUser(id=user.id, email=user.email, company_id=user.company_id)

        return await self._run(work, "get_current_user")


class SqlRoleRepository(SqlRepository):
    source = "roles"

    async def get_roles(self, user_id: str) -> List[str]:
        def work(db: Session) -> List[str]:
            rows = db.query(UserRole.role).filter(UserRole.user_id == user_id).all()
            return [row[0] for row in rows]

        return await self._run(work, "get_roles")


class SqlPlanCatalogRepository(SqlRepository):
    source = "plans"

    async def get_plan(self, plan_key: str) -> Optional[PlanDefinition]:
        def work(db: Session) -> Optional[PlanDefinition]:
            plan = (
                db.query(SubscriptionPlan)
                .filter(SubscriptionPlan.plan_key == plan_key)
                .filter(SubscriptionPlan.is_active.is_(True))
                .first()
            )
            return plan.to_definition() if plan is not None else None

        return await self._run(work, "get_plan")

    async def get_company_overrides(self, company_id: str) -> CompanyOverrides:
        def work(db: Session) -> CompanyOverrides:
            features = {
                row.feature_key: bool(row.is_enabled)
                for row in db.query(CompanyCustomFeature)
                .filter(CompanyCustomFeature.company_id == company_id)
            }

            limits: Dict[LimitKind, Optional[int]] = {}
            for row in db.query(CompanyCustomLimit).filter(CompanyCustomLimit.company_id == company_id):
                try:
                    limits[LimitKind(row.limit_type)] = row.limit_value
                except ValueError:
                    logger.warning(f"Ignoring unknown limit type {row.limit_type!r} for company {company_id}")

            return CompanyOverrides(features=features, limits=limits)

        return await self._run(work, "get_company_overrides")


class SqlUsageRepository(SqlRepository):
    source = "usage"

    async def get_usage(self, company_id: str) -> Dict[LimitKind, int]:
        def count(db: Session, model) -> int:
            return db.query(func.count(model.id)).filter(model.company_id == company_id).scalar() or 0

        def work(db: Session) -> Dict[LimitKind, int]:
            return {
                LimitKind.DASHBOARDS: count(db, Dashboard),
                LimitKind.USERS: count(db, User),
                LimitKind.CREDENTIALS: count(db, Credential),
            }

        return await self._run(work, "get_usage")


def seed_plans(db: Session, plans: Dict[str, PlanDefinition]) -> int:
    """
    Insert missing plan definitions with their features and limits.

    Returns:
        Number of plans created
    """
    created = 0
    for plan in plans.values():
        exists = db.query(SubscriptionPlan).filter(SubscriptionPlan.plan_key == plan.key).first()
        if exists is not None:
            continue

        row = SubscriptionPlan(plan_key=plan.key, name=plan.name)
        row.features = [PlanFeature(feature_key=key) for key in sorted(plan.feature_keys)]
        row.limits = [
            PlanLimit(limit_type=kind.value, limit_value=value)
            for kind, value in plan.limits.items()
        ]
        db.add(row)
        created += 1

    db.commit()
    logger.info(f"Seeded {created} subscription plans")
    return created


class Repositories:
    """The full set of SQL stores sharing one session factory."""

    def __init__(self, session_factory: sessionmaker):
        # SQLite connections are shared across worker threads; serialize them
        bind = session_factory.kw.get("bind")
        lock = threading.Lock() if bind is not None and bind.dialect.name == "sqlite" else None
        self.session_factory = session_factory
        self.lock = lock

        self.subscriptions = SqlSubscriptionRepository(session_factory, lock)
        self.roles = SqlRoleRepository(session_factory, lock)
        self.plans = SqlPlanCatalogRepository(session_factory, lock)
        self.usage = SqlUsageRepository(session_factory, lock)

    def identity(self, user_id: str) -> SqlIdentityProvider:
        return SqlIdentityProvider(self.session_factory, user_id, self.lock)
