"""
Telemetry Module
================

Observability for the creatorhub API.

Components:
- sentry.py: Error tracking and performance monitoring

Environment Variables:
- SENTRY_DSN: Sentry project DSN
- ENVIRONMENT: Environment name reported with events
"""

from creatorhub.telemetry.sentry import (
    init_sentry,
    set_user_context,
    capture_exception,
)

__all__ = [
    "init_sentry",
    "set_user_context",
    "capture_exception",
]
