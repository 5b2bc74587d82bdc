"""
Custom exceptions for the BI Portal access engine.

Defines application-specific exception classes for configuration problems,
authentication failures, transient read failures and persistence errors.
A missing subscription record is not an exception; it is a normal input
that resolves to a blocked snapshot.
"""

from typing import Optional, Dict, Any


class PortalError(Exception):
    """Base exception for all BI Portal errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception with message and optional details.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PortalError, ValueError):
    """Raised when configuration is invalid or missing."""
    pass


class AuthenticationError(PortalError):
    """Raised when the bearer token is missing, expired or malformed."""
    pass


class FetchFailure(PortalError):
    """
    Raised when a read from an upstream store fails transiently.

    Resolvers retry these with exponential backoff until the access status
    timeout elapses.
    """

    def __init__(self, message: str, source: Optional[str] = None,
                 user_id: Optional[str] = None):
        """
        Initialize fetch failure.

        Args:
            message: Error message
            source: Name of the store that failed (roles, subscription, ...)
            user_id: User whose data was being read
        """
        details = {}
        if source:
            details["source"] = source
        if user_id:
            details["user_id"] = user_id

        super().__init__(message, details)
        self.source = source
        self.user_id = user_id


class InvalidPlanKey(PortalError):
    """Raised when a subscription references a plan the catalog does not know."""

    def __init__(self, plan_key: Optional[str]):
        super().__init__(
            f"Unknown plan key: {plan_key!r}",
            {"plan_key": plan_key}
        )
        self.plan_key = plan_key


class SessionClosedError(PortalError):
    """Raised when an access session or guard is used after being closed."""
    pass


class DatabaseError(PortalError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 table: Optional[str] = None):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table

        super().__init__(message, details)
        self.operation = operation
        self.table = table

