"""
Sentry integration for error tracking.

Provides:
- Automatic error capture for the API
- User context (company, user)
- Breadcrumbs for access decisions
"""

import os
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

# Exceptions that are part of normal access flow, not incidents
IGNORED_EXCEPTIONS = ("AuthenticationError", "SessionClosedError")


def setup_sentry(
    dsn: Optional[str] = None,
    environment: Optional[str] = None,
    release: Optional[str] = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """
    Initialize Sentry SDK for error tracking.

    Args:
        dsn: Sentry DSN, read from SENTRY_DSN when not provided
        environment: Deployment environment (production, staging, development)
        release: Release version (e.g., "bi-portal-access@1.0.0")
        traces_sample_rate: Percentage of transactions to trace (0.0-1.0)

    Returns:
        True when Sentry was initialized
    """
    dsn = dsn or os.getenv("SENTRY_DSN")

    if not dsn:
        logger.warning("Sentry DSN not configured, skipping Sentry initialization")
        return False

    environment = environment or os.getenv("SENTRY_ENVIRONMENT", "development")
    release = release or os.getenv("SENTRY_RELEASE", "unknown")

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            RedisIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=traces_sample_rate,
        before_send=before_send_filter,
        attach_stacktrace=True,
        send_default_pii=False,
        max_breadcrumbs=50,
    )

    logger.info(
        f"Sentry initialized: environment={environment}, "
        f"release={release}, traces_sample_rate={traces_sample_rate}"
    )
    return True


def before_send_filter(event, hint):
    """
    Filter events before sending to Sentry.

    Expected authentication and session errors are dropped.
    """
    if "exc_info" in hint:
        exc_type, exc_value, tb = hint["exc_info"]
        if exc_type is not None and exc_type.__name__ in IGNORED_EXCEPTIONS:
            return None

    return event


def set_user_context(
    user_id: Optional[str] = None,
    company_id: Optional[str] = None,
):
    """Set user context for Sentry events."""
    context = {}

    if user_id:
        context["id"] = user_id
    if company_id:
        context["company_id"] = company_id

    if context:
        sentry_sdk.set_user(context)


def add_breadcrumb(
    message: str,
    category: str = "access",
    level: str = "info",
    **data
):
    """Add a breadcrumb for debugging context."""
    sentry_sdk.add_breadcrumb(
        message=message,
        category=category,
        level=level,
        data=data,
    )
