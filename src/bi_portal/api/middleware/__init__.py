"""
FastAPI middleware components.
"""

from .error_handler import ErrorHandlerMiddleware
from .session_context import (
    Identity,
    get_access_engine,
    get_access_session,
    get_identity,
    get_optional_identity,
)

__all__ = [
    "ErrorHandlerMiddleware",
    "Identity",
    "get_access_engine",
    "get_access_session",
    "get_identity",
    "get_optional_identity",
]
