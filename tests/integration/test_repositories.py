"""
Integration tests for the SQL repositories and the engine running over them
"""
from datetime import datetime, timedelta, timezone

import pytest

from bi_portal.access.feature_catalog import DEFAULT_PLANS, RLS_EMAIL, SLIDER_TV
from bi_portal.access.models import BlockReason, FeatureAccess, LimitKind, Role
from bi_portal.database.models import SubscriptionPlan
from bi_portal.database.repositories import seed_plans

from factories import ADMIN, COMPANY_ID, MASTER, VIEWER, seed_tenant


pytestmark = pytest.mark.integration


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TestPlanSeeding:
    """Test plan catalog seeding"""

    def test_seed_is_idempotent(self, db_session):
        assert seed_plans(db_session, DEFAULT_PLANS) == 4
        assert seed_plans(db_session, DEFAULT_PLANS) == 0
        assert db_session.query(SubscriptionPlan).count() == 4

    async def test_get_plan(self, db_session, repositories):
        seed_plans(db_session, DEFAULT_PLANS)

        plan = await repositories.plans.get_plan("professional")

        assert plan.name == "Profissional"
        assert plan.feature_keys == DEFAULT_PLANS["professional"].feature_keys
        assert plan.limits[LimitKind.DASHBOARDS] == 20

    async def test_unlimited_plan_keeps_null_limits(self, db_session, repositories):
        seed_plans(db_session, DEFAULT_PLANS)

        plan = await repositories.plans.get_plan("enterprise")

        assert plan.limits[LimitKind.USERS] is None

    async def test_inactive_plan_not_returned(self, db_session, repositories):
        seed_plans(db_session, DEFAULT_PLANS)
        db_session.query(SubscriptionPlan).filter_by(plan_key="starter").update({"is_active": False})
        db_session.commit()

        assert await repositories.plans.get_plan("starter") is None
        assert await repositories.plans.get_plan("platinum") is None


class TestCompanyOverrides:
    """Test per-company feature and limit overrides"""

    async def test_overrides_loaded(self, db_session, repositories):
        seed_tenant(db_session, plan_overrides={
            SLIDER_TV: False,
            RLS_EMAIL: True,
            "dashboards": 50,
            "users": None,
        })

        overrides = await repositories.plans.get_company_overrides(COMPANY_ID)

        assert overrides.features == {SLIDER_TV: False, RLS_EMAIL: True}
        assert overrides.limits == {LimitKind.DASHBOARDS: 50, LimitKind.USERS: None}

    async def test_unknown_limit_type_ignored(self, db_session, repositories):
        seed_tenant(db_session, plan_overrides={"reports": 3})

        overrides = await repositories.plans.get_company_overrides(COMPANY_ID)

        assert overrides.limits == {}

    async def test_company_without_overrides(self, db_session, repositories):
        seed_tenant(db_session)

        overrides = await repositories.plans.get_company_overrides(COMPANY_ID)

        assert overrides.is_empty


class TestSubscriptionRepository:
    """Test subscription lookup"""

    async def test_own_subscription(self, db_session, repositories):
        seed_tenant(db_session, subscription={"plan": "starter", "status": "active"})

        record = await repositories.subscriptions.get_subscription(ADMIN.id)

        assert record.status == "active"
        assert record.plan_key == "starter"
        assert record.user_id == ADMIN.id

    async def test_company_member_covered_by_admin_subscription(self, db_session, repositories):
        seed_tenant(db_session, subscription={"plan": "professional", "status": "active"})

        record = await repositories.subscriptions.get_subscription(VIEWER.id)

        assert record.user_id == ADMIN.id
        assert record.plan_key == "professional"

    async def test_no_subscription(self, db_session, repositories):
        seed_tenant(db_session)

        assert await repositories.subscriptions.get_subscription(VIEWER.id) is None
        assert await repositories.subscriptions.get_subscription(MASTER.id) is None
        assert await repositories.subscriptions.get_subscription("u-ghost") is None


class TestRoleAndUsageRepositories:
    """Test role and quota usage reads"""

    async def test_roles(self, db_session, repositories):
        seed_tenant(db_session)

        assert await repositories.roles.get_roles(ADMIN.id) == ["admin"]
        assert await repositories.roles.get_roles(VIEWER.id) == ["user"]
        assert await repositories.roles.get_roles("u-ghost") == []

    async def test_usage_counts(self, db_session, repositories):
        seed_tenant(db_session, dashboards=3, credentials=1)

        usage = await repositories.usage.get_usage(COMPANY_ID)

        assert usage == {
            LimitKind.DASHBOARDS: 3,
            LimitKind.USERS: 2,
            LimitKind.CREDENTIALS: 1,
        }


class TestEngineOverDatabase:
    """Test sessions resolving everything from the database"""

    async def test_trialing_company_viewer(self, db_session, api_engine):
        seed_tenant(db_session, subscription={
            "plan": "starter",
            "status": "trialing",
            "trial_ends_at": utcnow() + timedelta(hours=36),
        })
        session = api_engine.open_session(VIEWER)

        snapshot = await session.snapshot()
        role = await session.role()
        banner = await session.banner()

        assert role == Role.VIEWER
        assert snapshot.is_trialing
        assert snapshot.trial_days_remaining == 2
        assert banner.message == "Período de trial: 2 dias restantes"
        await session.close()

    async def test_canceled_past_grace_is_blocked(self, db_session, api_engine):
        seed_tenant(db_session, subscription={
            "plan": "starter",
            "status": "canceled",
            "canceled_at": utcnow() - timedelta(days=31),
        })
        session = api_engine.open_session(ADMIN)

        snapshot = await session.snapshot()

        assert snapshot.is_access_blocked
        assert snapshot.block_reason == BlockReason.GRACE_PERIOD_EXPIRED
        await session.close()

    async def test_legacy_master_admin_role(self, db_session, api_engine):
        seed_tenant(db_session)
        session = api_engine.open_session(MASTER)

        assert await session.role() == Role.MASTER_ADMIN
        assert (await session.snapshot()).is_master_managed
        await session.close()

    async def test_overrides_and_limits(self, db_session, api_engine):
        seed_tenant(
            db_session,
            subscription={"plan": "starter", "status": "active"},
            plan_overrides={SLIDER_TV: True, "credentials": 1},
            credentials=1,
        )
        session = api_engine.open_session(ADMIN)

        gate = await session.feature_gate()
        limits = await session.limits()

        assert gate.has_feature(SLIDER_TV) == FeatureAccess.GRANTED
        assert gate.has_feature(RLS_EMAIL) == FeatureAccess.DENIED
        assert limits[LimitKind.CREDENTIALS].reached
        assert not limits[LimitKind.DASHBOARDS].reached
        await session.close()


class TestIdentityProvider:
    """Test signed-in user lookup"""

    async def test_identity_of_stored_user(self, db_session, repositories):
        seed_tenant(db_session)

        user = await repositories.identity(VIEWER.id).get_current_user()

        assert user == VIEWER
        assert await repositories.identity("u-ghost").get_current_user() is None

    async def test_inactive_user_is_signed_out(self, db_session, repositories):
        from bi_portal.database.models import User

        seed_tenant(db_session)
        db_session.query(User).filter_by(id=ADMIN.id).update({"is_active": False})
        db_session.commit()

        assert await repositories.identity(ADMIN.id).get_current_user() is None
