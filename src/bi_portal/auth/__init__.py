"""
Authentication utilities for the BI Portal.
"""

from .jwt_manager import (
    JWTManager,
    create_access_token,
    get_jwt_manager,
    reset_jwt_manager,
    user_from_claims,
    verify_token,
)

__all__ = [
    "JWTManager",
    "create_access_token",
    "get_jwt_manager",
    "reset_jwt_manager",
    "user_from_claims",
    "verify_token",
]
