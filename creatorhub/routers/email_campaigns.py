"""Email campaign endpoints.

Campaign lifecycle:
    draft -> scheduled -> sending -> sent | failed

Only draft and scheduled campaigns can be edited; only drafts can be
deleted. Sending is synchronous from the caller's point of view and
returns the per-recipient delivery summary.
"""

import logging
from dataclasses import asdict
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import get_current_creator, get_email_service, require_admin
from ..models import CampaignStatusEnum, CampaignTypeEnum, User
from ..services.email_service import EmailService
from ..stores.email_campaigns import CampaignFilters

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/email-campaigns",
    tags=["Email Campaigns"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
        409: {"model": schemas.ErrorResponse, "description": "Campaign is in the wrong state"},
        422: {"model": schemas.ErrorResponse, "description": "Validation error"},
    },
)


@router.post("", response_model=schemas.CampaignOut, status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: schemas.CampaignCreate,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.create_campaign(creator_id=user.id, **payload.model_dump())


@router.get("", response_model=schemas.CampaignListResponse)
def list_campaigns(
    status_filter: Optional[CampaignStatusEnum] = Query(None, alias="status"),
    campaign_type: Optional[CampaignTypeEnum] = Query(None, alias="type"),
    search: Optional[str] = Query(None),
    limit: int = Query(20),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    filters = CampaignFilters(status=status_filter, type=campaign_type, search=search)
    items, total = service.list_campaigns(user.id, filters, limit=limit, offset=offset)
    return schemas.CampaignListResponse(items=items, total=total)


@router.get("/stats", response_model=schemas.CreatorCampaignStatsOut)
def creator_stats(
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.creator_stats(user.id)


@router.get("/recent", response_model=List[schemas.CampaignOut])
def recent_campaigns(
    limit: int = Query(5),
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.recent_campaigns(user.id, limit)


@router.post("/send-due", response_model=List[schemas.BulkSendResultOut])
async def send_due_campaigns(
    user: User = Depends(require_admin),
    service: EmailService = Depends(get_email_service),
):
    """Send every scheduled campaign whose time has passed (cron hook, admin only)."""
    results = await service.send_due_campaigns()
    logger.info("[EMAIL] Due campaign run sent %d campaigns", len(results))
    return [asdict(result) for result in results]


@router.get("/{campaign_id}", response_model=schemas.CampaignOut)
def get_campaign(
    campaign_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.get_campaign(campaign_id, user.id)


@router.patch("/{campaign_id}", response_model=schemas.CampaignOut)
def update_campaign(
    campaign_id: UUID,
    payload: schemas.CampaignUpdate,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.update_campaign(campaign_id, user.id, **payload.model_dump(exclude_unset=True))


@router.delete("/{campaign_id}", response_model=schemas.SuccessResponse)
def delete_campaign(
    campaign_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    service.delete_campaign(campaign_id, user.id)
    return schemas.SuccessResponse(detail="Campaign deleted")


@router.post("/{campaign_id}/schedule", response_model=schemas.CampaignOut)
def schedule_campaign(
    campaign_id: UUID,
    payload: schemas.CampaignScheduleRequest,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.schedule_campaign(campaign_id, user.id, payload.scheduled_at)


@router.post("/{campaign_id}/duplicate", response_model=schemas.CampaignOut, status_code=status.HTTP_201_CREATED)
def duplicate_campaign(
    campaign_id: UUID,
    payload: schemas.CampaignDuplicateRequest,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.duplicate_campaign(campaign_id, user.id, payload.name)


@router.post("/{campaign_id}/send", response_model=schemas.BulkSendResultOut)
async def send_campaign(
    campaign_id: UUID,
    payload: schemas.CampaignSendRequest,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    result = await service.send_campaign(campaign_id, user.id, payload.tag)
    return asdict(result)


@router.get("/{campaign_id}/performance", response_model=schemas.CampaignPerformanceOut)
def campaign_performance(
    campaign_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.campaign_performance(campaign_id, user.id)
