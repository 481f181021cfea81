"""
Subscription Service
====================

Creator subscription plans, reader subscriptions and Polar billing events.

WHAT: Plan CRUD (mirrored to Polar products), checkout, cancel/reactivate,
      customer portal, subscription stats and access checks, plus the
      subscription state machine driven by Polar webhooks
WHY: Polar is the source of truth for billing. Local rows hold the mapped
     status so revenue and access queries never call the provider.

Plan rules:
    name 1-100 chars, description 1-500 chars,
    price 1..100,000,000 cents per month, currency in CurrencyEnum,
    features 1-20 items of 1-200 chars each

Provider status mapping (map_provider_status):
    active, trialing          -> active
    past_due                  -> past_due
    canceled, unpaid          -> canceled
    incomplete, incomplete_expired, anything else -> incomplete

Webhook events:
    checkout.created          acknowledged
    checkout.updated          succeeded/confirmed -> subscription active
    order.paid                subscription active
    subscription.created      link/refresh local row from provider status
    subscription.updated      refresh from provider status
    subscription.active       refresh (active)
    subscription.canceled     cancel_at_period_end, status from provider
    subscription.revoked      canceled immediately

References:
- https://docs.polar.sh/developers/webhooks
- creatorhub/services/polar_client.py
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import CurrencyEnum, Subscription, SubscriptionPlan, SubscriptionStatusEnum, User
from ..stores.subscriptions import PlanStore, SubscriptionStats, SubscriptionStore
from ..utils.dates import parse_provider_datetime
from ..validators import validate_enum, validate_int_range, validate_length, validate_string_list
from .polar_client import PolarClient

logger = logging.getLogger(__name__)


MIN_PRICE_CENTS = 1
MAX_PRICE_CENTS = 100_000_000
MAX_FEATURES = 20
FEATURE_MAX_LENGTH = 200

CHECKOUT_SUCCESS_STATUSES = ("succeeded", "confirmed")

PROVIDER_STATUS_MAP = {
    "active": SubscriptionStatusEnum.active,
    "trialing": SubscriptionStatusEnum.active,
    "past_due": SubscriptionStatusEnum.past_due,
    "canceled": SubscriptionStatusEnum.canceled,
    "unpaid": SubscriptionStatusEnum.canceled,
    "incomplete": SubscriptionStatusEnum.incomplete,
    "incomplete_expired": SubscriptionStatusEnum.incomplete,
}


def map_provider_status(provider_status: Optional[str]) -> SubscriptionStatusEnum:
    return PROVIDER_STATUS_MAP.get((provider_status or "").lower(), SubscriptionStatusEnum.incomplete)


@dataclass
class PlanWithStats:
    plan: SubscriptionPlan
    subscriber_count: int
    monthly_revenue: int


@dataclass
class CheckoutSession:
    id: str
    url: str
    customer_email: str
    subscription_id: UUID


@dataclass
class PortalSession:
    url: str


class SubscriptionService:
    def __init__(self, db: Session, polar: Optional[PolarClient] = None,
                 frontend_url: str = "http://localhost:3000"):
        self.db = db
        self.polar = polar or PolarClient()
        self.frontend_url = frontend_url.rstrip("/")
        self.plans = PlanStore(db)
        self.subscriptions = SubscriptionStore(db)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def create_plan(
        self,
        creator_id: UUID,
        name: str,
        description: str,
        price: int,
        features: List[str],
        currency=CurrencyEnum.USD,
    ) -> PlanWithStats:
        name = validate_length(name, "name", 1, 100)
        description = validate_length(description, "description", 1, 500)
        validate_int_range(price, "price", MIN_PRICE_CENTS, MAX_PRICE_CENTS)
        currency = validate_enum(currency, CurrencyEnum, "currency")
        features = self._validate_features(features)

        product_id = None
        if self.polar.configured:
            product = await self.polar.create_product(name, description, price, currency.value)
            product_id = product.get("id")
        else:
            logger.warning("[BILLING] Polar not configured, plan '%s' created without a product", name)

        plan = self.plans.create(
            creator_id=creator_id,
            name=name,
            description=description,
            price=price,
            currency=currency,
            features=features,
            polar_product_id=product_id,
        )
        logger.info("[BILLING] Created plan %s for creator %s", plan.id, creator_id)
        return self._with_stats(plan)

    async def update_plan(self, plan_id: UUID, creator_id: UUID, name: Optional[str] = None,
                          description: Optional[str] = None, features: Optional[List[str]] = None) -> PlanWithStats:
        """Price and currency are fixed once a plan exists; create a new plan instead."""
        plan = self._get_owned_plan(plan_id, creator_id)
        fields = {}
        if name is not None:
            fields["name"] = validate_length(name, "name", 1, 100)
        if description is not None:
            fields["description"] = validate_length(description, "description", 1, 500)
        if features is not None:
            fields["features"] = self._validate_features(features)
        if not fields:
            return self._with_stats(plan)

        if plan.polar_product_id and ("name" in fields or "description" in fields):
            await self.polar.update_product(
                plan.polar_product_id, name=fields.get("name"), description=fields.get("description")
            )
        return self._with_stats(self.plans.update(plan, **fields))

    async def deactivate_plan(self, plan_id: UUID, creator_id: UUID) -> PlanWithStats:
        plan = self._get_owned_plan(plan_id, creator_id)
        if not plan.is_active:
            return self._with_stats(plan)
        if plan.polar_product_id:
            await self.polar.archive_product(plan.polar_product_id)
        logger.info("[BILLING] Deactivated plan %s", plan.id)
        return self._with_stats(self.plans.update(plan, is_active=False))

    def get_plan(self, plan_id: UUID) -> PlanWithStats:
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Subscription plan", plan_id)
        return self._with_stats(plan)

    def list_plans(self, creator_id: Optional[UUID] = None, active_only: bool = True) -> List[PlanWithStats]:
        return [self._with_stats(plan) for plan in self.plans.list(creator_id, active_only)]

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def create_checkout(self, user: User, plan_id: UUID) -> CheckoutSession:
        plan = self.plans.get(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError("Subscription plan", plan_id)
        if self.subscriptions.has_active(user.id, plan.id):
            raise ConflictError("You already have an active subscription for this plan")
        if not plan.polar_product_id:
            raise InvalidStateError("This plan is not available for purchase yet")

        checkout = await self.polar.create_checkout(
            product_id=plan.polar_product_id,
            success_url=f"{self.frontend_url}/subscription/success?checkout_id={{CHECKOUT_ID}}",
            customer_email=user.email,
            metadata={"user_id": str(user.id), "plan_id": str(plan.id)},
        )
        subscription = self.subscriptions.create(
            subscriber_id=user.id,
            plan_id=plan.id,
            polar_checkout_id=checkout["id"],
        )
        logger.info("[BILLING] Checkout %s created for user %s plan %s", checkout["id"], user.id, plan.id)
        return CheckoutSession(
            id=checkout["id"],
            url=checkout["url"],
            customer_email=user.email,
            subscription_id=subscription.id,
        )

    def get_subscription(self, subscription_id: UUID, user_id: UUID) -> Subscription:
        return self._get_owned_subscription(subscription_id, user_id)

    def list_user_subscriptions(self, user_id: UUID, active_only: bool = False) -> List[Subscription]:
        return self.subscriptions.list_for_user(user_id, active_only)

    async def cancel_subscription(self, subscription_id: UUID, user_id: UUID,
                                  now: Optional[datetime] = None) -> Subscription:
        subscription = self._get_owned_subscription(subscription_id, user_id)
        if subscription.status == SubscriptionStatusEnum.canceled:
            raise InvalidStateError("Subscription is already canceled")
        if subscription.polar_subscription_id:
            await self.polar.set_cancel_at_period_end(subscription.polar_subscription_id, True)
        logger.info("[BILLING] Subscription %s canceled by user %s", subscription.id, user_id)
        return self.subscriptions.update(
            subscription,
            status=SubscriptionStatusEnum.canceled,
            canceled_at=now or datetime.utcnow(),
            cancel_at_period_end=True,
        )

    async def reactivate_subscription(self, subscription_id: UUID, user_id: UUID,
                                      now: Optional[datetime] = None) -> Subscription:
        """Undo a user cancel while the paid period is still running.

        Only rows Polar billed (polar_subscription_id set) that the user
        canceled at period end, and whose current period has not ended, can
        go back to active. Abandoned checkouts never can.
        """
        subscription = self._get_owned_subscription(subscription_id, user_id)
        if subscription.status != SubscriptionStatusEnum.canceled:
            raise InvalidStateError("Only canceled subscriptions can be reactivated")
        if not subscription.polar_subscription_id:
            raise InvalidStateError("Subscription was never paid and cannot be reactivated")
        if not subscription.cancel_at_period_end:
            raise InvalidStateError("Subscription has ended and cannot be reactivated")
        now = now or datetime.utcnow()
        if subscription.current_period_end is None or subscription.current_period_end <= now:
            raise InvalidStateError("Subscription period has ended; start a new checkout instead")
        await self.polar.set_cancel_at_period_end(subscription.polar_subscription_id, False)
        return self.subscriptions.update(
            subscription,
            status=SubscriptionStatusEnum.active,
            canceled_at=None,
            cancel_at_period_end=False,
        )

    async def customer_portal(self, user: User) -> PortalSession:
        """Polar customer portal; creates the Polar customer on first use."""
        if not user.polar_customer_id:
            customer = await self.polar.create_customer(user.email, user.name, external_id=str(user.id))
            user.polar_customer_id = customer.get("id")
            self.db.commit()
        url = await self.polar.create_customer_portal_session(user.polar_customer_id)
        return PortalSession(url=url)

    def stats(self, creator_id: Optional[UUID] = None, churn_days: int = 30,
              now: Optional[datetime] = None) -> SubscriptionStats:
        return self.subscriptions.stats(creator_id, churn_days, now)

    def has_access(self, user_id: UUID, plan_id: UUID) -> bool:
        return self.subscriptions.has_active(user_id, plan_id)

    def has_any_active_subscription(self, user_id: UUID) -> bool:
        return self.subscriptions.has_any_active(user_id)

    def access_level(self, user_id: UUID) -> str:
        return "premium" if self.has_any_active_subscription(user_id) else "free"

    def expiring_subscriptions(self, days: int = 7, now: Optional[datetime] = None) -> List[Subscription]:
        return self.subscriptions.expiring_within(days, now)

    # ------------------------------------------------------------------
    # Polar webhooks
    # ------------------------------------------------------------------

    def handle_polar_event(self, event_type: str, data: Dict) -> str:
        """Apply one Polar webhook event; returns the action taken."""
        data = data or {}
        if event_type == "checkout.created":
            logger.info("[WEBHOOK] Checkout created: %s", data.get("id"))
            return "acknowledged"
        if event_type == "checkout.updated":
            return self._handle_checkout_updated(data)
        if event_type == "order.paid":
            return self._handle_order_paid(data)
        if event_type in (
            "subscription.created",
            "subscription.updated",
            "subscription.active",
            "subscription.canceled",
            "subscription.revoked",
        ):
            return self._handle_subscription_event(event_type, data)
        logger.info("[WEBHOOK] Unhandled Polar event type: %s", event_type)
        return "ignored"

    def _handle_checkout_updated(self, data: Dict) -> str:
        checkout_status = (data.get("status") or "").lower()
        if checkout_status not in CHECKOUT_SUCCESS_STATUSES:
            logger.info("[WEBHOOK] Checkout %s is %s", data.get("id"), checkout_status or "unknown")
            return "acknowledged"

        subscription = self._find_subscription(checkout_id=data.get("id"), metadata=data.get("metadata"))
        if subscription is None:
            logger.warning("[WEBHOOK] No subscription for checkout %s", data.get("id"))
            return "ignored"

        self._link_customer(subscription, data.get("customer_id"))
        fields = {"status": SubscriptionStatusEnum.active}
        if data.get("subscription_id"):
            fields["polar_subscription_id"] = data["subscription_id"]
        self.subscriptions.update(subscription, **fields)
        logger.info("[BILLING] Subscription %s activated by checkout %s", subscription.id, data.get("id"))
        return "activated"

    def _handle_order_paid(self, data: Dict) -> str:
        polar_subscription_id = data.get("subscription_id")
        if not polar_subscription_id:
            return "ignored"
        subscription = self.subscriptions.get_by_polar_id(polar_subscription_id)
        if subscription is None:
            subscription = self._find_subscription(checkout_id=data.get("checkout_id"), metadata=data.get("metadata"))
        if subscription is None:
            return "ignored"
        self.subscriptions.update(
            subscription,
            status=SubscriptionStatusEnum.active,
            polar_subscription_id=polar_subscription_id,
        )
        return "activated"

    def _handle_subscription_event(self, event_type: str, data: Dict) -> str:
        polar_subscription_id = data.get("id")
        subscription = self.subscriptions.get_by_polar_id(polar_subscription_id) if polar_subscription_id else None
        if subscription is None:
            subscription = self._find_subscription(checkout_id=data.get("checkout_id"), metadata=data.get("metadata"))
        if subscription is None:
            logger.warning("[WEBHOOK] No local subscription for Polar subscription %s", polar_subscription_id)
            return "ignored"

        status = map_provider_status(data.get("status"))
        if event_type == "subscription.revoked":
            status = SubscriptionStatusEnum.canceled

        fields = {
            "status": status,
            "polar_subscription_id": polar_subscription_id or subscription.polar_subscription_id,
        }
        period_start = parse_provider_datetime(data.get("current_period_start"))
        period_end = parse_provider_datetime(data.get("current_period_end"))
        if period_start is not None:
            fields["current_period_start"] = period_start
        if period_end is not None:
            fields["current_period_end"] = period_end
        if "cancel_at_period_end" in data:
            fields["cancel_at_period_end"] = bool(data.get("cancel_at_period_end"))
        if event_type == "subscription.canceled":
            fields["cancel_at_period_end"] = True
        if event_type == "subscription.revoked":
            fields["cancel_at_period_end"] = False
        if status == SubscriptionStatusEnum.canceled:
            fields["canceled_at"] = (
                parse_provider_datetime(data.get("canceled_at"))
                or parse_provider_datetime(data.get("ended_at"))
                or subscription.canceled_at
                or datetime.utcnow()
            )

        self._link_customer(subscription, data.get("customer_id"))
        self.subscriptions.update(subscription, **fields)
        logger.info("[BILLING] Subscription %s -> %s (%s)", subscription.id, status.value, event_type)
        return "updated" if status != SubscriptionStatusEnum.canceled else "canceled"

    def _find_subscription(self, checkout_id: Optional[str], metadata: Optional[Dict]) -> Optional[Subscription]:
        """Local row for a checkout, created from checkout metadata when missing."""
        if checkout_id:
            subscription = self.subscriptions.get_by_checkout_id(checkout_id)
            if subscription is not None:
                return subscription

        metadata = metadata or {}
        user_id, plan_id = _as_uuid(metadata.get("user_id")), _as_uuid(metadata.get("plan_id"))
        if user_id is None or plan_id is None:
            return None
        if self.db.query(User.id).filter(User.id == user_id).first() is None or self.plans.get(plan_id) is None:
            return None
        return self.subscriptions.create(subscriber_id=user_id, plan_id=plan_id, polar_checkout_id=checkout_id)

    def _link_customer(self, subscription: Subscription, customer_id: Optional[str]) -> None:
        if not customer_id:
            return
        user = subscription.subscriber
        if user is not None and user.polar_customer_id != customer_id:
            user.polar_customer_id = customer_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _with_stats(self, plan: SubscriptionPlan) -> PlanWithStats:
        return PlanWithStats(
            plan=plan,
            subscriber_count=self.plans.subscriber_count(plan.id),
            monthly_revenue=self.plans.monthly_revenue(plan.id),
        )

    def _get_owned_plan(self, plan_id: UUID, creator_id: UUID) -> SubscriptionPlan:
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Subscription plan", plan_id)
        if plan.creator_id != creator_id:
            raise AuthorizationError("You can only manage your own subscription plans")
        return plan

    def _get_owned_subscription(self, subscription_id: UUID, user_id: UUID) -> Subscription:
        subscription = self.subscriptions.get(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        if subscription.subscriber_id != user_id:
            raise AuthorizationError("You can only manage your own subscriptions")
        return subscription

    @staticmethod
    def _validate_features(features: Optional[List[str]]) -> List[str]:
        if features is None:
            raise ValidationError("features is required", field="features")
        return validate_string_list(features, "features", MAX_FEATURES, FEATURE_MAX_LENGTH, min_items=1)


def _as_uuid(value) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
