"""
Unit tests for bearer token handling
"""
import pytest
from jose import JWTError

from bi_portal.auth.jwt_manager import (
    JWTManager,
    create_access_token,
    user_from_claims,
    verify_token,
)


SECRET = "unit-test-secret-key-0123456789"


class TestJWTManager:
    """Test token creation and verification"""

    def test_round_trip_claims(self):
        manager = JWTManager(SECRET)

        token = manager.create_access_token("u-1", "ana@acme.com.br", "c-1", session_id="sid-1")
        payload = manager.verify_token(token)

        assert payload["sub"] == "u-1"
        assert payload["company_id"] == "c-1"
        assert payload["sid"] == "sid-1"
        assert payload["type"] == "access"

    def test_session_id_generated_when_missing(self):
        manager = JWTManager(SECRET)

        first = manager.verify_token(manager.create_access_token("u-1", "a@b.c"))
        second = manager.verify_token(manager.create_access_token("u-1", "a@b.c"))

        assert first["sid"] != second["sid"]

    def test_wrong_type_rejected(self):
        manager = JWTManager(SECRET)
        token = manager.create_access_token("u-1", "a@b.c", additional_claims={"type": "refresh"})

        with pytest.raises(JWTError):
            manager.verify_token(token)

    def test_wrong_secret_rejected(self):
        token = JWTManager(SECRET).create_access_token("u-1", "a@b.c")

        with pytest.raises(JWTError):
            JWTManager("another-secret-key-abcdefgh").verify_token(token)

    def test_expired_rejected(self):
        manager = JWTManager(SECRET, access_token_expire_minutes=-1)
        token = manager.create_access_token("u-1", "a@b.c")

        with pytest.raises(JWTError):
            manager.verify_token(token)

    def test_secret_required(self):
        with pytest.raises(ValueError):
            JWTManager("")

    def test_user_from_claims(self):
        user = user_from_claims({"sub": "u-1", "email": "ana@acme.com.br", "company_id": "c-1"})

        assert user.id == "u-1"
        assert user.company_id == "c-1"

    def test_module_helpers_use_configured_secret(self):
        token = create_access_token("u-9", "bia@acme.com.br", "c-1")

        assert verify_token(token)["email"] == "bia@acme.com.br"
