"""
Request dependencies resolving the caller's identity and access session.

Identity comes from the bearer token; the access session is looked up in the
engine's registry by the token's ``sid`` claim, so every request of one login
shares the same snapshot.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from bi_portal.access.engine import AccessEngine
from bi_portal.access.models import CurrentUser
from bi_portal.access.session import AccessSession
from bi_portal.auth import user_from_claims, verify_token
from bi_portal.cache.redis_cache import get_role_cache
from bi_portal.database.connection import get_session_factory
from bi_portal.database.repositories import Repositories
from bi_portal.monitoring.sentry_config import set_user_context
from bi_portal.utils.config import get_config
from bi_portal.utils.exceptions import AuthenticationError
from bi_portal.utils.logger import bind_log_context, get_logger

logger = get_logger(__name__)

# Missing credentials are not an error here: the guard answers REDIRECT
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user: CurrentUser
    session_id: str


_access_engine: Optional[AccessEngine] = None


def get_access_engine() -> AccessEngine:
    """Global access engine over the SQL repositories."""
    global _access_engine

    if _access_engine is None:
        config = get_config()
        repos = Repositories(get_session_factory())
        _access_engine = AccessEngine(
            role_store=repos.roles,
            subscription_store=repos.subscriptions,
            catalog_store=repos.plans,
            usage_store=repos.usage,
            role_cache=get_role_cache(),
            config=config.access,
        )
        logger.info("Access engine initialized")

    return _access_engine


async def shutdown_access_engine() -> None:
    global _access_engine
    if _access_engine is not None:
        await _access_engine.registry.close_all()
        _access_engine = None


def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Identity]:
    """
    Identity of the caller, or None when no bearer token was sent.

    Raises:
        AuthenticationError: When a token was sent but is invalid
    """
    if credentials is None:
        return None

    try:
        payload = verify_token(credentials.credentials, token_type="access")
    except JWTError as e:
        raise AuthenticationError("Could not validate credentials") from e

    user = user_from_claims(payload)
    set_user_context(user_id=user.id, company_id=user.company_id)
    return Identity(user=user, session_id=str(payload.get("sid") or user.id))


def get_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    """
    Dependency to require an authenticated caller.

    Usage:
        @router.get("/protected")
        async def protected_route(identity: Identity = Depends(get_identity)):
            return {"user_id": identity.user.id}
    """
    if identity is None:
        raise AuthenticationError("Not authenticated")
    return identity


async def get_access_session(
    identity: Identity = Depends(get_identity),
    engine: AccessEngine = Depends(get_access_engine),
) -> AccessSession:
    """Session of the caller's login, opened on first use."""
    bind_log_context(user_id=identity.user.id, session_id=identity.session_id)
    return await engine.registry.get_or_open(identity.user, identity.session_id)
