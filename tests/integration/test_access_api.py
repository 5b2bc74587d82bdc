"""
Integration tests for the access API endpoints
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import status

from bi_portal.access.feature_catalog import RLS_EMAIL, SLIDER_TV

from factories import ADMIN, MASTER, VIEWER, seed_tenant


pytestmark = pytest.mark.integration

ACCESS = "/api/v1/access"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def trial_subscription(hours_left: float = 36) -> dict:
    return {"plan": "starter", "status": "trialing", "trial_ends_at": utcnow() + timedelta(hours=hours_left)}


class TestAuthentication:
    """Test bearer token handling"""

    def test_decision_without_token_redirects(self, client):
        response = client.post(f"{ACCESS}/decision", json={})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "state": "REDIRECT",
            "reason": None,
            "redirect_to": "/auth",
            "blocked_screen": None,
        }

    def test_invalid_token_rejected(self, client):
        response = client.post(
            f"{ACCESS}/decision",
            json={},
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_snapshot_requires_token(self, client):
        response = client.get(f"{ACCESS}/snapshot")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestSessionEndpoints:
    """Test session open, refresh and invalidation"""

    def test_open_session(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription=trial_subscription())
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id, session_id="sid-1")

        response = client.post(f"{ACCESS}/session", headers=headers)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["session_id"] == "sid-1"
        assert data["role"] == "viewer"
        assert data["snapshot"]["is_trialing"] is True
        assert data["snapshot"]["trial_days_remaining"] == 2

    def test_refresh_picks_up_new_status(self, client, db_session, auth_headers):
        from bi_portal.database.models import Subscription

        seed_tenant(db_session, subscription={"plan": "starter", "status": "expired"})
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id, session_id="sid-2")

        first = client.get(f"{ACCESS}/snapshot", headers=headers).json()

        db_session.query(Subscription).filter_by(user_id=ADMIN.id).update({"status": "active"})
        db_session.commit()

        cached = client.get(f"{ACCESS}/snapshot", headers=headers).json()
        refreshed = client.post(f"{ACCESS}/session/refresh", headers=headers).json()

        assert first["is_access_blocked"] is True
        assert first["block_reason"] == "NO_ACTIVE_SUBSCRIPTION"
        assert cached["is_access_blocked"] is True
        assert refreshed["snapshot"]["is_access_blocked"] is False
        assert refreshed["snapshot"]["subscribed"] is True

    def test_close_session(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription=trial_subscription())
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id, session_id="sid-3")
        client.post(f"{ACCESS}/session", headers=headers)

        first = client.delete(f"{ACCESS}/session", headers=headers)
        second = client.delete(f"{ACCESS}/session", headers=headers)

        assert first.json() == {"session_id": "sid-3", "invalidated": True}
        assert second.json()["invalidated"] is False


class TestDecisionEndpoint:
    """Test route guard decisions"""

    def test_trialing_viewer_allowed(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription=trial_subscription())
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id)

        response = client.post(f"{ACCESS}/decision", json={}, headers=headers)

        assert response.json()["state"] == "ALLOWED"

    def test_viewer_redirected_from_admin_route(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription=trial_subscription())
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id)

        response = client.post(f"{ACCESS}/decision", json={"require_admin": True}, headers=headers)

        assert response.json()["state"] == "REDIRECT"
        assert response.json()["redirect_to"] == "/home"

    def test_canceled_admin_gets_blocked_screen(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription={
            "plan": "starter",
            "status": "canceled",
            "canceled_at": utcnow() - timedelta(days=31),
        })
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id)

        data = client.post(f"{ACCESS}/decision", json={}, headers=headers).json()

        assert data["state"] == "BLOCKED"
        assert data["reason"] == "GRACE_PERIOD_EXPIRED"
        screen = data["blocked_screen"]
        assert screen["title"] == "Acesso Bloqueado"
        assert screen["actions"][0]["label"] == "Reativar assinatura"
        assert screen["actions"][-1]["kind"] == "sign_out"
        assert screen["hint"] == "Seu período de carência de 30 dias expirou."

    def test_blocked_viewer_told_to_contact_admin(self, client, db_session, auth_headers):
        seed_tenant(db_session)
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id)

        data = client.post(f"{ACCESS}/decision", json={}, headers=headers).json()

        assert data["reason"] == "NO_ACTIVE_SUBSCRIPTION"
        assert data["blocked_screen"]["hint"]
        assert all(a["kind"] == "sign_out" for a in data["blocked_screen"]["actions"])

    def test_public_route_allowed_when_blocked(self, client, db_session, auth_headers):
        seed_tenant(db_session)
        headers = auth_headers(VIEWER.id, VIEWER.email, VIEWER.company_id)

        response = client.post(f"{ACCESS}/decision", json={"require_subscription": False}, headers=headers)

        assert response.json()["state"] == "ALLOWED"

    def test_master_admin_route(self, client, db_session, auth_headers):
        seed_tenant(db_session)
        headers = auth_headers(MASTER.id, MASTER.email)

        response = client.post(f"{ACCESS}/decision", json={"require_master_admin": True}, headers=headers)

        assert response.json()["state"] == "ALLOWED"


class TestFeatureAndLimitEndpoints:
    """Test feature checks, quotas and the banner"""

    def test_feature_granted_and_denied(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription={"plan": "professional", "status": "active"},
                    plan_overrides={RLS_EMAIL: False})
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id)

        granted = client.get(f"{ACCESS}/features/{SLIDER_TV}", headers=headers).json()
        denied = client.get(f"{ACCESS}/features/{RLS_EMAIL}", headers=headers).json()

        assert granted["access"] == "GRANTED"
        assert granted["fallback"] is None
        assert denied["access"] == "DENIED"
        assert denied["plan_key"] == "professional"
        assert denied["fallback"]["cta"]["label"] == "Fazer upgrade"

    def test_limits_with_alert(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription={"plan": "free", "status": "active"}, dashboards=3)
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id)

        data = client.get(f"{ACCESS}/limits", headers=headers).json()
        limits = {item["kind"]: item for item in data["limits"]}

        assert data["plan_name"] == "Free"
        assert limits["dashboards"]["reached"] is True
        assert limits["dashboards"]["alert"]["usage"] == "3/3"
        assert limits["users"]["current"] == 2
        assert limits["users"]["alert"] is None

    def test_banner_not_cached(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription=trial_subscription())
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id)

        response = client.get(f"{ACCESS}/banner", headers=headers)

        assert response.headers["Cache-Control"] == "no-store"
        banner = response.json()["banner"]
        assert banner["variant"] == "trial"
        assert banner["cta"]["label"] == "Assinar agora"

    def test_no_banner_when_active(self, client, db_session, auth_headers):
        seed_tenant(db_session, subscription={"plan": "starter", "status": "active"})
        headers = auth_headers(ADMIN.id, ADMIN.email, ADMIN.company_id)

        assert client.get(f"{ACCESS}/banner", headers=headers).json() == {"banner": None}


class TestHealthEndpoints:
    """Test health checks"""

    def test_health(self, client):
        response = client.get("/api/v1/health/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["service"] == "bi-portal-access"

    def test_ready_with_cache_disabled(self, client):
        response = client.get("/api/v1/health/ready")

        assert response.status_code == status.HTTP_200_OK
        checks = response.json()["checks"]
        assert checks["database"]["status"] == "healthy"
        assert checks["redis"]["status"] == "disabled"

    def test_live(self, client):
        assert client.get("/api/v1/health/live").json()["status"] == "alive"

    def test_metrics_exposed(self, client):
        response = client.get("/metrics")

        assert response.status_code == status.HTTP_200_OK
