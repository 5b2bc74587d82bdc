"""
Test configuration and fixtures for the BI Portal access engine
"""
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry
from sqlalchemy.orm import sessionmaker, Session

from bi_portal.access.engine import AccessEngine
from bi_portal.access.feature_catalog import DEFAULT_PLANS
from bi_portal.access.providers import (
    InMemoryPlanCatalogStore,
    InMemoryRoleStore,
    InMemorySubscriptionStore,
    InMemoryUsageStore,
)
from bi_portal.auth.jwt_manager import create_access_token, reset_jwt_manager
from bi_portal.cache.redis_cache import reset_role_cache
from bi_portal.database.connection import build_engine, configure
from bi_portal.database.models import Base
from bi_portal.database.repositories import Repositories
from bi_portal.monitoring.prometheus_metrics import PrometheusMetrics
from bi_portal.utils.config import AccessConfig, reload_config

from factories import NOW


# =============================================================================
# Environment Setup
# =============================================================================

@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Setup test environment variables"""
    monkeypatch.setenv("ENVIRONMENT", "testing")
    monkeypatch.setenv("SECRET_KEY", "test-secret-key-for-testing-only")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)

    reload_config()
    reset_jwt_manager()
    reset_role_cache()
    yield
    reset_jwt_manager()
    reset_role_cache()


# =============================================================================
# Access Engine
# =============================================================================

@pytest.fixture
def metrics() -> PrometheusMetrics:
    """Metrics on a private registry so tests never collide"""
    return PrometheusMetrics(registry=CollectorRegistry())


@pytest.fixture
def access_config() -> AccessConfig:
    """Short timeout and no backoff delay"""
    return AccessConfig(status_timeout_seconds=1.0, retry_base_delay=0.0)


@pytest.fixture
def make_engine(metrics, access_config):
    """Factory for engines over in-memory stores with a fixed clock"""

    def _make(
        subscriptions=None,
        roles=None,
        plans=None,
        overrides=None,
        usage=None,
        subscription_store=None,
        role_store=None,
        role_cache=None,
        config=None,
        now=NOW,
        catalog_store=None,
    ) -> AccessEngine:
        return AccessEngine(
            role_store=role_store or InMemoryRoleStore(roles or {}),
            subscription_store=subscription_store or InMemorySubscriptionStore(subscriptions or {}),
            catalog_store=catalog_store or InMemoryPlanCatalogStore(plans or DEFAULT_PLANS, overrides or {}),
            usage_store=InMemoryUsageStore(usage or {}),
            role_cache=role_cache,
            config=config or access_config,
            clock=lambda: now,
            metrics=metrics,
        )

    return _make


# =============================================================================
# Test Database Setup
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across worker threads"""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return configure(db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a new database session for each test"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def repositories(session_factory) -> Repositories:
    return Repositories(session_factory)


# =============================================================================
# FastAPI Test Client
# =============================================================================

@pytest.fixture
def api_engine(repositories, metrics) -> AccessEngine:
    """Access engine over the SQL repositories of the test database"""
    return AccessEngine(
        role_store=repositories.roles,
        subscription_store=repositories.subscriptions,
        catalog_store=repositories.plans,
        usage_store=repositories.usage,
        config=AccessConfig(status_timeout_seconds=2.0, retry_base_delay=0.0),
        metrics=metrics,
    )


@pytest.fixture
def client(api_engine) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with overridden dependencies"""
    from bi_portal.api.main import app
    from bi_portal.api.middleware.session_context import get_access_engine

    app.dependency_overrides[get_access_engine] = lambda: api_engine

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build authorization headers carrying a freshly issued access token"""

    def _headers(user_id: str, email: str, company_id=None, session_id=None) -> dict:
        token = create_access_token(user_id, email, company_id, session_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers
