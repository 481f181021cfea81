"""Affiliate link endpoints.

WHAT: Link management and analytics for creators, plus the public
      click redirect
WHY: Readers follow `/r/{tracking_code}`; the click is recorded (IP hashed)
     and the reader is sent on to the merchant URL. Conversions are
     reported by the creator (or their network postback integration) and
     credited to a click through the configured attribution policy.

Routes:
    /affiliate-links/...         creator-only management and analytics
    /affiliate-links/conversions record a conversion by tracking code
    /r/{tracking_code}           public redirect
"""

import logging
from dataclasses import asdict
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import RedirectResponse, Response

from .. import schemas
from ..deps import get_affiliate_service, get_current_creator
from ..models import AffiliateNetworkEnum, User
from ..services.affiliate_service import AffiliateService, LinkAnalytics
from ..stores.affiliate import LinkFilters

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/affiliate-links",
    tags=["Affiliates"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
        422: {"model": schemas.ErrorResponse, "description": "Validation error"},
    },
)

redirect_router = APIRouter(tags=["Affiliates"])


def _link_analytics_out(item: LinkAnalytics) -> schemas.LinkAnalyticsOut:
    """LinkAnalytics holds an ORM row, so it is converted field by field."""
    return schemas.LinkAnalyticsOut(
        link=schemas.AffiliateLinkOut.model_validate(item.link),
        performance=schemas.LinkPerformanceOut(**asdict(item.performance)),
        performance_level=item.performance_level,
        time_series=[schemas.ClickTimePointOut(**asdict(point)) for point in item.time_series],
        top_articles=[schemas.SourceArticleOut(**asdict(source)) for source in item.top_articles],
    )


# =============================================================================
# LINK MANAGEMENT
# =============================================================================

@router.post("", response_model=schemas.AffiliateLinkOut, status_code=status.HTTP_201_CREATED)
def create_link(
    payload: schemas.AffiliateLinkCreate,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.create_link(creator_id=user.id, **payload.model_dump())


@router.get("", response_model=schemas.AffiliateLinkListResponse)
def list_links(
    network: Optional[AffiliateNetworkEnum] = Query(None),
    is_active: Optional[bool] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    filters = LinkFilters(network=network, is_active=is_active, category=category, search=search)
    items, total = service.list_links(user.id, filters, limit=limit, offset=offset)
    return schemas.AffiliateLinkListResponse(items=items, total=total)


@router.get("/summary", response_model=schemas.CreatorAffiliateSummaryOut)
def creator_summary(
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.creator_summary(user.id, days)


@router.get("/export")
def export_analytics(
    export_format: str = Query("json", alias="format", description="json or csv"),
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    exported = service.export_analytics(user.id, export_format, days)
    if export_format == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="affiliate-analytics.csv"'},
        )
    return exported


@router.post("/conversions", response_model=schemas.ConversionResponse)
def record_conversion(
    payload: schemas.ConversionRequest,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    click_id = service.record_conversion(payload.tracking_code, payload.commission_amount, creator_id=user.id)
    return schemas.ConversionResponse(click_id=click_id)


@router.get("/{link_id}", response_model=schemas.AffiliateLinkOut)
def get_link(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.get_link(link_id, user.id)


@router.patch("/{link_id}", response_model=schemas.AffiliateLinkOut)
def update_link(
    link_id: UUID,
    payload: schemas.AffiliateLinkUpdate,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.update_link(link_id, user.id, **payload.model_dump(exclude_unset=True))


@router.delete("/{link_id}", response_model=schemas.LinkDeleteResponse)
def delete_link(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return schemas.LinkDeleteResponse(action=service.delete_link(link_id, user.id))


@router.post("/{link_id}/activate", response_model=schemas.AffiliateLinkOut)
def activate_link(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.activate_link(link_id, user.id)


@router.post("/{link_id}/deactivate", response_model=schemas.AffiliateLinkOut)
def deactivate_link(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.deactivate_link(link_id, user.id)


@router.post("/{link_id}/regenerate-code", response_model=schemas.AffiliateLinkOut)
def regenerate_tracking_code(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.regenerate_tracking_code(link_id, user.id)


@router.get("/{link_id}/tracked-url", response_model=schemas.TrackedUrlResponse)
def tracked_url(
    link_id: UUID,
    base_url: Optional[str] = Query(None, description="Defaults to the link's original URL"),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return schemas.TrackedUrlResponse(tracked_url=service.tracked_url(link_id, user.id, base_url))


@router.post("/{link_id}/articles", response_model=schemas.SuccessResponse)
def attach_to_article(
    link_id: UUID,
    payload: schemas.AttachArticleRequest,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    service.attach_to_article(link_id, payload.article_id, user.id)
    return schemas.SuccessResponse(detail="Link attached to article")


# =============================================================================
# CLICKS AND ANALYTICS
# =============================================================================

@router.post("/{link_id}/clicks/import", response_model=schemas.ClickImportResponse)
def import_clicks(
    link_id: UUID,
    payload: schemas.ClickImportRequest,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    clicks = [click.model_dump() for click in payload.clicks]
    return schemas.ClickImportResponse(imported=service.bulk_record_clicks(link_id, user.id, clicks))


@router.get("/{link_id}/clicks", response_model=List[schemas.ClickOut])
def click_history(
    link_id: UUID,
    limit: int = Query(50),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.click_history(link_id, user.id, limit=limit, offset=offset)


@router.get("/{link_id}/analytics", response_model=schemas.LinkAnalyticsOut)
def link_analytics(
    link_id: UUID,
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return _link_analytics_out(service.link_analytics(link_id, user.id, days))


@router.get("/{link_id}/suggestions", response_model=List[schemas.SuggestionOut])
def optimization_suggestions(
    link_id: UUID,
    user: User = Depends(get_current_creator),
    service: AffiliateService = Depends(get_affiliate_service),
):
    return service.optimization_suggestions(link_id, user.id)


# =============================================================================
# PUBLIC REDIRECT
# =============================================================================

@redirect_router.get(
    "/r/{tracking_code}",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
    responses={
        404: {"model": schemas.ErrorResponse, "description": "Unknown tracking code"},
        410: {"model": schemas.ErrorResponse, "description": "Link deactivated"},
    },
)
def follow_link(
    tracking_code: str,
    request: Request,
    article_id: Optional[UUID] = Query(None, description="Article the click came from"),
    user_agent: Optional[str] = Header(None),
    referer: Optional[str] = Header(None),
    service: AffiliateService = Depends(get_affiliate_service),
):
    """Record the click, then redirect to the merchant URL."""
    destination = service.track_click(
        tracking_code,
        ip_address=request.client.host if request.client else None,
        user_agent=user_agent,
        referrer=referer,
        article_id=article_id,
    )
    return RedirectResponse(url=destination, status_code=status.HTTP_302_FOUND)
