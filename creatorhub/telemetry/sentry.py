"""
Sentry Error Tracking
=====================

Centralized error tracking for the API.

Related files:
- creatorhub/main.py: Initializes Sentry in create_app()
- creatorhub/deps.py: Sets user context after authentication
- creatorhub/main.py: 5xx handlers capture unexpected and provider errors

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)
"""

import logging
import os
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str] = None, environment: Optional[str] = None) -> bool:
    """Initialize the Sentry SDK once at startup.

    Returns:
        True if Sentry was initialized, False when no DSN is configured.
    """
    global _initialized

    dsn = dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    environment = environment or os.environ.get("ENVIRONMENT", "development")

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.INFO,        # INFO+ as breadcrumbs
                event_level=logging.ERROR,  # ERROR+ as events
            ),
        ],
        traces_sample_rate=0.1,
        # Subscriber emails and visitor IPs must not leave the service
        send_default_pii=False,
        release=os.environ.get("RELEASE_VERSION"),
    )
    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def set_user_context(user_id: str, role: Optional[str] = None) -> None:
    """Attach the authenticated user to subsequent Sentry events."""
    if not _initialized:
        return
    sentry_sdk.set_user({"id": user_id, "role": role})


def capture_exception(exception: Exception, extra: Optional[dict] = None) -> None:
    """Report a handled exception with optional context."""
    if not _initialized:
        return
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
