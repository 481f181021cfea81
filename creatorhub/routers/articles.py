"""Article authoring, public tracking and per-article performance.

Authoring routes are creator-only and scoped to the caller's own articles.
The tracking routes are public: the reader-facing site posts page views,
shares and engagement samples for published articles.
"""

import logging
from dataclasses import asdict
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import Settings, get_article_service, get_current_creator, get_email_service, get_settings, require_admin
from ..models import ArticleStatusEnum, User
from ..services.article_service import ArticleService
from ..services.email_service import EmailService
from ..stores.articles import ArticleFilters

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/articles",
    tags=["Articles"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
        422: {"model": schemas.ErrorResponse, "description": "Validation error"},
    },
)


@router.post("", response_model=schemas.ArticleOut, status_code=status.HTTP_201_CREATED)
def create_article(
    payload: schemas.ArticleCreate,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    return service.create_article(author_id=user.id, **payload.model_dump())


@router.get("", response_model=schemas.ArticleListResponse)
def list_articles(
    status_filter: Optional[ArticleStatusEnum] = Query(None, alias="status"),
    tag: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    is_premium: Optional[bool] = Query(None),
    limit: int = Query(20),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    filters = ArticleFilters(author_id=user.id, status=status_filter, is_premium=is_premium, tag=tag, search=search)
    items, total = service.list_articles(filters, limit=limit, offset=offset)
    return schemas.ArticleListResponse(items=items, total=total)


@router.post("/analytics/purge", response_model=schemas.PurgeResultOut)
def purge_old_analytics(
    days_to_keep: Optional[int] = Query(None, description="Defaults to ARTICLE_ANALYTICS_RETENTION_DAYS"),
    user: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    service: ArticleService = Depends(get_article_service),
):
    """Retention purge of daily article analytics (cron hook, admin only)."""
    days_to_keep = days_to_keep or settings.ARTICLE_ANALYTICS_RETENTION_DAYS
    deleted = service.purge_old_analytics(days_to_keep)
    return schemas.PurgeResultOut(deleted=deleted, days_to_keep=days_to_keep)


@router.get("/{article_id}", response_model=schemas.ArticleOut)
def get_article(
    article_id: UUID,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    return service.get_article(article_id, user.id)


@router.patch("/{article_id}", response_model=schemas.ArticleOut)
def update_article(
    article_id: UUID,
    payload: schemas.ArticleUpdate,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    return service.update_article(article_id, user.id, **payload.model_dump(exclude_unset=True))


@router.post("/{article_id}/publish", response_model=schemas.ArticleOut)
async def publish_article(
    article_id: UUID,
    notify_subscribers: bool = Query(False, description="Email active subscribers about the new article"),
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
    email_service: EmailService = Depends(get_email_service),
):
    article = service.publish_article(article_id, user.id)
    if notify_subscribers:
        result = await email_service.notify_new_article(article)
        logger.info("Article %s announced: sent=%d failed=%d", article.id, result.sent, result.failed)
    return article


@router.post("/{article_id}/archive", response_model=schemas.ArticleOut)
def archive_article(
    article_id: UUID,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    return service.archive_article(article_id, user.id)


@router.delete("/{article_id}", response_model=schemas.SuccessResponse)
def delete_article(
    article_id: UUID,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    service.delete_article(article_id, user.id)
    return schemas.SuccessResponse(detail="Article deleted")


@router.get("/{article_id}/performance", response_model=schemas.ArticlePerformanceOut)
def article_performance(
    article_id: UUID,
    period: str = Query("30d", description="7d, 30d, 90d, 1y or all"),
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    return asdict(service.performance(article_id, user.id, period))


@router.post("/{article_id}/ad-revenue", response_model=schemas.SuccessResponse)
def add_article_ad_revenue(
    article_id: UUID,
    payload: schemas.ArticleAdRevenueRequest,
    user: User = Depends(get_current_creator),
    service: ArticleService = Depends(get_article_service),
):
    service.add_ad_revenue(article_id, user.id, payload.amount, payload.day)
    return schemas.SuccessResponse(detail="Ad revenue recorded")


# =============================================================================
# PUBLIC TRACKING
# =============================================================================

@router.post("/{article_id}/track", response_model=schemas.SuccessResponse)
def track_article_event(
    article_id: UUID,
    payload: schemas.ArticleTrackRequest,
    service: ArticleService = Depends(get_article_service),
):
    service.track_event(article_id, payload.event)
    return schemas.SuccessResponse()


@router.post("/{article_id}/engagement", response_model=schemas.SuccessResponse)
def record_article_engagement(
    article_id: UUID,
    payload: schemas.ArticleEngagementRequest,
    service: ArticleService = Depends(get_article_service),
):
    service.record_engagement(article_id, payload.avg_time_on_page, payload.bounce_rate, payload.day)
    return schemas.SuccessResponse()
