"""Paid subscription plans and reader subscriptions (billed through Polar).

Key flows:
    1. Plan: POST /plans -> Polar product + local plan
    2. Checkout: POST /subscriptions/checkout -> Polar checkout session,
       local subscription row stays `incomplete` until the webhook lands
    3. Cancel / reactivate: toggles cancel_at_period_end at Polar
    4. Portal: GET /subscriptions/portal -> Polar customer portal URL

Webhook processing lives in routers/webhooks.py.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import get_current_creator, get_current_user, get_subscription_service
from ..models import User
from ..services.subscription_service import PlanWithStats, SubscriptionService

logger = logging.getLogger(__name__)

_error_responses = {
    401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
    403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
    404: {"model": schemas.ErrorResponse, "description": "Not found"},
    409: {"model": schemas.ErrorResponse, "description": "Conflict"},
    502: {"model": schemas.ErrorResponse, "description": "Payment provider error"},
}

plans_router = APIRouter(prefix="/plans", tags=["Subscription Plans"], responses=_error_responses)
router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"], responses=_error_responses)


def _plan_out(item: PlanWithStats) -> schemas.PlanOut:
    plan = schemas.PlanOut.model_validate(item.plan)
    return plan.model_copy(update={"subscriber_count": item.subscriber_count, "monthly_revenue": item.monthly_revenue})


# =============================================================================
# PLANS
# =============================================================================

@plans_router.post("", response_model=schemas.PlanOut, status_code=status.HTTP_201_CREATED)
async def create_plan(
    payload: schemas.PlanCreate,
    user: User = Depends(get_current_creator),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _plan_out(await service.create_plan(creator_id=user.id, **payload.model_dump()))


@plans_router.get("", response_model=List[schemas.PlanOut])
def list_plans(
    creator_id: Optional[UUID] = Query(None, description="Only this creator's plans"),
    active_only: bool = Query(True),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Public plan catalogue shown on the pricing page."""
    return [_plan_out(item) for item in service.list_plans(creator_id, active_only)]


@plans_router.get("/{plan_id}", response_model=schemas.PlanOut)
def get_plan(
    plan_id: UUID,
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _plan_out(service.get_plan(plan_id))


@plans_router.patch("/{plan_id}", response_model=schemas.PlanOut)
async def update_plan(
    plan_id: UUID,
    payload: schemas.PlanUpdate,
    user: User = Depends(get_current_creator),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _plan_out(await service.update_plan(plan_id, user.id, **payload.model_dump(exclude_unset=True)))


@plans_router.post("/{plan_id}/deactivate", response_model=schemas.PlanOut)
async def deactivate_plan(
    plan_id: UUID,
    user: User = Depends(get_current_creator),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return _plan_out(await service.deactivate_plan(plan_id, user.id))


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

@router.post("/checkout", response_model=schemas.CheckoutCreateResponse)
async def create_checkout(
    payload: schemas.CheckoutCreateRequest,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    session = await service.create_checkout(user, payload.plan_id)
    return schemas.CheckoutCreateResponse(
        checkout_url=session.url,
        checkout_id=session.id,
        subscription_id=session.subscription_id,
    )


@router.get("/portal", response_model=schemas.BillingPortalResponse)
async def customer_portal(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    session = await service.customer_portal(user)
    return schemas.BillingPortalResponse(portal_url=session.url)


@router.get("/access", response_model=schemas.AccessLevelResponse)
def access_level(
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return schemas.AccessLevelResponse(access_level=service.access_level(user.id))


@router.get("/stats", response_model=schemas.SubscriptionStatsOut)
def subscription_stats(
    churn_days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Subscriber, revenue and churn figures across the creator's plans."""
    return service.stats(user.id, churn_days)


@router.get("", response_model=List[schemas.SubscriptionOut])
def list_my_subscriptions(
    active_only: bool = Query(False),
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.list_user_subscriptions(user.id, active_only)


@router.get("/{subscription_id}", response_model=schemas.SubscriptionOut)
def get_subscription(
    subscription_id: UUID,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return service.get_subscription(subscription_id, user.id)


@router.post("/{subscription_id}/cancel", response_model=schemas.SubscriptionOut)
async def cancel_subscription(
    subscription_id: UUID,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return await service.cancel_subscription(subscription_id, user.id)


@router.post("/{subscription_id}/reactivate", response_model=schemas.SubscriptionOut)
async def reactivate_subscription(
    subscription_id: UUID,
    user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return await service.reactivate_subscription(subscription_id, user.id)
