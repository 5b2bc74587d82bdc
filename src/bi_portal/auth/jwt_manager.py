"""
JWT token management for authentication.

Tokens are issued by the portal's identity service at login. The access
engine only verifies them and reads the user, company and session claims.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import uuid

from jose import JWTError, jwt

from bi_portal.access.models import CurrentUser
from bi_portal.utils.config import get_config
from bi_portal.utils.logger import get_logger

logger = get_logger(__name__)


class JWTManager:
    """Manages JWT token creation and verification."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60 * 24,
    ):
        """
        Initialize JWT manager.

        Args:
            secret_key: Secret key for signing tokens
            algorithm: Algorithm to use
            access_token_expire_minutes: Access token TTL in minutes
        """
        if not secret_key:
            raise ValueError("SECRET_KEY is required for JWT")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire = timedelta(minutes=access_token_expire_minutes)

        logger.info(f"Initialized JWT manager (algorithm={algorithm}, access_ttl={access_token_expire_minutes}m)")

    def create_access_token(
        self,
        user_id: str,
        email: str,
        company_id: Optional[str] = None,
        session_id: Optional[str] = None,
        additional_claims: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create access token for an authenticated user.

        Args:
            user_id: User id
            email: User email
            company_id: Company the user belongs to
            session_id: Login session id; a new one is generated when omitted
            additional_claims: Optional additional claims to include

        Returns:
            JWT access token string
        """
        now = datetime.now(timezone.utc)
        expires = now + self.access_token_expire

        payload = {
            "sub": user_id,
            "email": email,
            "company_id": company_id,
            "sid": session_id or str(uuid.uuid4()),
            "type": "access",
            "iat": now,
            "exp": expires,
            "jti": str(uuid.uuid4())
        }

        if additional_claims:
            payload.update(additional_claims)

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Created access token for user {user_id} (expires in {self.access_token_expire})")

        return token

    def verify_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Verify and decode JWT token.

        Raises:
            JWTError: If token is invalid, expired or of the wrong type
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm]
            )

            if payload.get("type") != token_type:
                raise JWTError(f"Invalid token type: expected {token_type}, got {payload.get('type')}")

            if not payload.get("sub"):
                raise JWTError("Token has no subject")

            return payload

        except JWTError as e:
            logger.warning(f"Token verification failed: {e}")
            raise


def user_from_claims(payload: Dict[str, Any]) -> CurrentUser:
    """Build the engine's user from verified token claims."""
    return CurrentUser(
        id=str(payload["sub"]),
        email=payload.get("email") or "",
        company_id=payload.get("company_id"),
    )


# Global JWT manager instance
_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get or create global JWT manager instance."""
    global _jwt_manager
    if _jwt_manager is None:
        auth = get_config().auth
        _jwt_manager = JWTManager(
            secret_key=auth.secret_key,
            algorithm=auth.algorithm,
            access_token_expire_minutes=auth.access_token_expire_minutes,
        )
    return _jwt_manager


def reset_jwt_manager() -> None:
    global _jwt_manager
    _jwt_manager = None


def create_access_token(user_id: str, email: str, company_id: Optional[str] = None,
                        session_id: Optional[str] = None) -> str:
    """Convenience function to create access token."""
    return get_jwt_manager().create_access_token(user_id, email, company_id, session_id)


def verify_token(token: str, token_type: str = "access") -> Dict[str, Any]:
    """Convenience function to verify token."""
    return get_jwt_manager().verify_token(token, token_type)
