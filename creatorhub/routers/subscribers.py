"""Newsletter subscriber endpoints.

Subscribing and unsubscribing are public (signup form, unsubscribe link);
everything else is for creators.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import get_current_creator, get_email_service
from ..models import SubscriberSourceEnum, SubscriberStatusEnum, User
from ..services.email_service import EmailService
from ..stores.subscribers import SubscriberFilters

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/subscribers",
    tags=["Subscribers"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
        409: {"model": schemas.ErrorResponse, "description": "Conflict"},
        422: {"model": schemas.ErrorResponse, "description": "Validation error"},
    },
)


# =============================================================================
# PUBLIC
# =============================================================================

@router.post("", response_model=schemas.SubscriberOut, status_code=status.HTTP_201_CREATED)
async def subscribe(
    payload: schemas.SubscriberCreate,
    service: EmailService = Depends(get_email_service),
):
    subscriber = service.add_subscriber(payload.email, payload.name, payload.source, payload.tags)
    if payload.send_welcome:
        # Delivery failures are logged by the service and never fail the signup
        await service.send_welcome_email(subscriber)
    return subscriber


@router.post("/unsubscribe", response_model=schemas.SuccessResponse)
def unsubscribe_by_email(
    payload: schemas.UnsubscribeRequest,
    service: EmailService = Depends(get_email_service),
):
    service.unsubscribe_by_email(payload.email)
    return schemas.SuccessResponse(detail="Unsubscribed")


# =============================================================================
# CREATOR MANAGEMENT
# =============================================================================

@router.get("", response_model=schemas.SubscriberListResponse)
def list_subscribers(
    status_filter: Optional[SubscriberStatusEnum] = Query(None, alias="status"),
    source: Optional[SubscriberSourceEnum] = Query(None),
    tag: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    filters = SubscriberFilters(status=status_filter, source=source, tag=tag, search=search)
    items, total = service.list_subscribers(filters, limit=limit, offset=offset)
    return schemas.SubscriberListResponse(items=items, total=total)


@router.get("/stats", response_model=schemas.SubscriberStatsOut)
def subscriber_stats(
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    counts = service.subscriber_stats()
    return schemas.SubscriberStatsOut(
        total=counts.total,
        active=counts.active,
        unsubscribed=counts.unsubscribed,
        bounced=counts.bounced,
        bounce_rate=counts.bounce_rate,
    )


@router.get("/{subscriber_id}", response_model=schemas.SubscriberOut)
def get_subscriber(
    subscriber_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.get_subscriber(subscriber_id)


@router.patch("/{subscriber_id}", response_model=schemas.SubscriberOut)
def update_subscriber(
    subscriber_id: UUID,
    payload: schemas.SubscriberUpdate,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.update_subscriber(subscriber_id, **payload.model_dump(exclude_unset=True))


@router.delete("/{subscriber_id}", response_model=schemas.SuccessResponse)
def delete_subscriber(
    subscriber_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    service.delete_subscriber(subscriber_id)
    return schemas.SuccessResponse(detail="Subscriber deleted")


@router.post("/{subscriber_id}/unsubscribe", response_model=schemas.SubscriberOut)
def unsubscribe(
    subscriber_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.unsubscribe(subscriber_id)


@router.post("/{subscriber_id}/resubscribe", response_model=schemas.SubscriberOut)
def resubscribe(
    subscriber_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    return service.resubscribe(subscriber_id)


@router.post("/{subscriber_id}/engagement-score", response_model=schemas.SubscriberOut)
def refresh_engagement_score(
    subscriber_id: UUID,
    user: User = Depends(get_current_creator),
    service: EmailService = Depends(get_email_service),
):
    service.update_engagement_score(subscriber_id)
    return service.get_subscriber(subscriber_id)
