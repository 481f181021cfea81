"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthorizationError
from .metrics.timeframe import GrowthMode
from .models import RoleEnum, User
from .security import decode_token
from .services.ad_revenue_service import AdRevenueService
from .services.affiliate_service import AffiliateService
from .services.article_service import ArticleService
from .services.analytics_service import AnalyticsService
from .services.attribution import LastUnconvertedClickPolicy
from .services.email_service import EmailService
from .services.polar_client import PolarClient
from .services.resend_client import ResendClient
from .services.subscription_service import SubscriptionService
from .telemetry.sentry import set_user_context


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:3000"
    # Cookie domain must NOT include protocol (https://)
    COOKIE_DOMAIN: Optional[str] = None

    # Polar (payments)
    POLAR_API_URL: str = "https://api.polar.sh"
    POLAR_ACCESS_TOKEN: str = ""
    POLAR_WEBHOOK_SECRET: str = ""
    POLAR_ORGANIZATION_ID: str = ""

    # Resend (email delivery)
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "newsletter@example.com"
    RESEND_WEBHOOK_SECRET: str = ""

    # Bulk email sending
    EMAIL_BATCH_SIZE: int = 100
    EMAIL_BATCH_DELAY_SECONDS: float = 1.0

    # Analytics
    AFFILIATE_ATTRIBUTION_WINDOW_DAYS: int = 30
    ANALYTICS_GROWTH_MODE: GrowthMode = GrowthMode.disjoint

    # Retention (days of daily rows kept by the purge endpoints)
    AD_REVENUE_RETENTION_DAYS: int = 365
    ARTICLE_ANALYTICS_RETENTION_DAYS: int = 730

    # Observability
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_user(
    db: Session = Depends(get_db),
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
) -> User:
    """Resolve the current user from the `access_token` cookie.

    The cookie value is expected to be in the form: "Bearer <jwt>".
    """
    if not access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    if access_token.startswith("Bearer "):
        token = access_token[len("Bearer ") :]
    else:
        token = access_token

    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = db.query(User).filter(User.email == subject).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    set_user_context(user_id=str(user.id), role=user.role.value if user.role else None)
    return user


def get_current_creator(user: User = Depends(get_current_user)) -> User:
    """Only creators (and admins) may manage monetization resources."""
    if user.role not in (RoleEnum.creator, RoleEnum.admin):
        raise AuthorizationError("Creator account required")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Maintenance endpoints (due-campaign runs, retention purges)."""
    if user.role != RoleEnum.admin:
        raise AuthorizationError("Admin account required")
    return user


# =============================================================================
# SERVICE PROVIDERS
# =============================================================================

def get_polar_client(settings: Settings = Depends(get_settings)):
    return PolarClient(
        api_url=settings.POLAR_API_URL,
        access_token=settings.POLAR_ACCESS_TOKEN,
        organization_id=settings.POLAR_ORGANIZATION_ID,
    )


def get_resend_client(settings: Settings = Depends(get_settings)):
    return ResendClient(api_key=settings.RESEND_API_KEY, from_email=settings.RESEND_FROM_EMAIL)


def get_article_service(db: Session = Depends(get_db)):
    return ArticleService(db)


def get_ad_revenue_service(db: Session = Depends(get_db)):
    return AdRevenueService(db)


def get_affiliate_service(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    policy = LastUnconvertedClickPolicy(window_days=settings.AFFILIATE_ATTRIBUTION_WINDOW_DAYS)
    return AffiliateService(db, attribution_policy=policy)


def get_analytics_service(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    return AnalyticsService(db, growth_mode=settings.ANALYTICS_GROWTH_MODE)


def get_email_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_client=Depends(get_resend_client),
):
    return EmailService(
        db,
        email_client=email_client,
        batch_size=settings.EMAIL_BATCH_SIZE,
        batch_delay_seconds=settings.EMAIL_BATCH_DELAY_SECONDS,
        frontend_url=settings.FRONTEND_URL,
    )


def get_subscription_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    polar=Depends(get_polar_client),
):
    return SubscriptionService(db, polar=polar, frontend_url=settings.FRONTEND_URL)
