"""
Unit tests for quota checks
"""
import pytest

from bi_portal.access.feature_catalog import DEFAULT_PLANS, apply_overrides
from bi_portal.access.limits import check_limit, check_limits, limit_alert
from bi_portal.access.models import LimitKind, Role


class TestCheckLimit:
    """Test single quota comparison"""

    @pytest.mark.parametrize("current, limit, reached", [
        (0, 3, False),
        (2, 3, False),
        (3, 3, True),
        (5, 3, True),
        (0, 0, True),
    ])
    def test_reached_at_or_above_limit(self, current, limit, reached):
        assert check_limit(LimitKind.DASHBOARDS, current, limit).reached is reached

    def test_unlimited(self):
        check = check_limit(LimitKind.USERS, 10_000, None)

        assert not check.reached
        assert check.unlimited
        assert check.remaining is None

    def test_master_admin_never_limited(self):
        check = check_limit(LimitKind.CREDENTIALS, 50, 1, Role.MASTER_ADMIN)

        assert not check.reached
        assert check.unlimited

    def test_remaining(self):
        assert check_limit(LimitKind.DASHBOARDS, 7, 10).remaining == 3
        assert check_limit(LimitKind.DASHBOARDS, 12, 10).remaining == 0


class TestCheckLimits:
    """Test checks across every quota dimension"""

    def test_every_kind_checked(self):
        entitlements = apply_overrides(DEFAULT_PLANS["free"])

        checks = check_limits(entitlements, {LimitKind.DASHBOARDS: 3})

        assert set(checks) == set(LimitKind)
        assert checks[LimitKind.DASHBOARDS].reached
        assert checks[LimitKind.USERS].current == 0
        assert not checks[LimitKind.USERS].reached

    def test_enterprise_is_unlimited(self):
        entitlements = apply_overrides(DEFAULT_PLANS["enterprise"])

        checks = check_limits(entitlements, {kind: 999 for kind in LimitKind})

        assert not any(check.reached for check in checks.values())


class TestLimitAlert:
    """Test alerts for reached quotas"""

    def test_alert_message(self):
        check = check_limit(LimitKind.DASHBOARDS, 3, 3)

        alert = limit_alert(check, "Free", Role.ADMIN)

        assert alert.message == (
            "Você atingiu o limite de 3 dashboards do plano Free. (3/3 utilizados)"
        )
        assert alert.usage_label == "3/3"
        assert alert.cta.label == "Fazer upgrade"

    def test_viewer_alert_has_no_cta(self):
        check = check_limit(LimitKind.USERS, 5, 5)

        alert = limit_alert(check, "Free", Role.VIEWER)

        assert "5 usuários" in alert.message
        assert alert.cta is None
        assert alert.hint

    def test_no_alert_below_limit(self):
        assert limit_alert(check_limit(LimitKind.CREDENTIALS, 0, 1), "Free", Role.ADMIN) is None

    def test_no_alert_when_unlimited(self):
        assert limit_alert(check_limit(LimitKind.CREDENTIALS, 9, None), "Enterprise", Role.ADMIN) is None
