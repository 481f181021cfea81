"""Subscription plan and subscription stores.

WHAT: Plans a creator sells, the subscriptions users hold on them, and the
      revenue/churn rollups over those subscriptions
WHY: Billing state is driven by Polar webhooks; the store only persists the
     mapped local status. Creator scoping goes through the plan
     (subscription -> plan.creator_id).

Status values: incomplete, active, past_due, canceled.
Monthly recurring revenue = sum of plan prices over active subscriptions.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..metrics.timeframe import TimeWindow, validate_days
from ..models import Subscription, SubscriptionPlan, SubscriptionStatusEnum
from .base import as_int

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionStats:
    total_subscriptions: int
    active_subscriptions: int
    canceled_subscriptions: int
    monthly_revenue: int
    churn_rate: float
    average_revenue_per_user: int


# =============================================================================
# PLANS
# =============================================================================

class PlanStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> SubscriptionPlan:
        plan = SubscriptionPlan(**fields)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def get(self, plan_id: UUID) -> Optional[SubscriptionPlan]:
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    def list(self, creator_id: Optional[UUID] = None, active_only: bool = True) -> List[SubscriptionPlan]:
        query = self.db.query(SubscriptionPlan)
        if creator_id is not None:
            query = query.filter(SubscriptionPlan.creator_id == creator_id)
        if active_only:
            query = query.filter(SubscriptionPlan.is_active.is_(True))
        return query.order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.created_at.asc()).all()

    def update(self, plan: SubscriptionPlan, **fields) -> SubscriptionPlan:
        for key, value in fields.items():
            setattr(plan, key, value)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def subscriber_count(self, plan_id: UUID) -> int:
        return as_int(
            self.db.query(func.count(Subscription.id))
            .filter(Subscription.plan_id == plan_id, Subscription.status == SubscriptionStatusEnum.active)
            .scalar()
        )

    def monthly_revenue(self, plan_id: UUID) -> int:
        plan = self.get(plan_id)
        if plan is None:
            return 0
        return plan.price * self.subscriber_count(plan_id)


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

class SubscriptionStore:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        subscriber_id: UUID,
        plan_id: UUID,
        polar_checkout_id: Optional[str] = None,
        polar_subscription_id: Optional[str] = None,
        status: SubscriptionStatusEnum = SubscriptionStatusEnum.incomplete,
    ) -> Subscription:
        subscription = Subscription(
            subscriber_id=subscriber_id,
            plan_id=plan_id,
            polar_checkout_id=polar_checkout_id,
            polar_subscription_id=polar_subscription_id,
            status=status,
        )
        self.db.add(subscription)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def get(self, subscription_id: UUID) -> Optional[Subscription]:
        return self.db.query(Subscription).filter(Subscription.id == subscription_id).first()

    def get_by_polar_id(self, polar_subscription_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.polar_subscription_id == polar_subscription_id)
            .first()
        )

    def get_by_checkout_id(self, polar_checkout_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.polar_checkout_id == polar_checkout_id)
            .first()
        )

    def list_for_user(self, user_id: UUID, active_only: bool = False) -> List[Subscription]:
        query = self.db.query(Subscription).filter(Subscription.subscriber_id == user_id)
        if active_only:
            query = query.filter(Subscription.status == SubscriptionStatusEnum.active)
        return query.order_by(Subscription.created_at.desc()).all()

    def update(self, subscription: Subscription, **fields) -> Subscription:
        for key, value in fields.items():
            setattr(subscription, key, value)
        self.db.commit()
        self.db.refresh(subscription)
        return subscription

    def has_active(self, user_id: UUID, plan_id: UUID) -> bool:
        return (
            self.db.query(Subscription.id)
            .filter(
                Subscription.subscriber_id == user_id,
                Subscription.plan_id == plan_id,
                Subscription.status == SubscriptionStatusEnum.active,
            )
            .first()
            is not None
        )

    def has_any_active(self, user_id: UUID) -> bool:
        return (
            self.db.query(Subscription.id)
            .filter(Subscription.subscriber_id == user_id, Subscription.status == SubscriptionStatusEnum.active)
            .first()
            is not None
        )

    def expiring_within(self, days: int, now: Optional[datetime] = None) -> List[Subscription]:
        days = validate_days(days)
        now = now or datetime.utcnow()
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.status == SubscriptionStatusEnum.active,
                Subscription.current_period_end.isnot(None),
                Subscription.current_period_end <= now + timedelta(days=days),
            )
            .order_by(Subscription.current_period_end.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Rollups
    # ------------------------------------------------------------------

    def _scoped(self, query, creator_id: Optional[UUID]):
        query = query.select_from(Subscription).join(SubscriptionPlan, SubscriptionPlan.id == Subscription.plan_id)
        if creator_id is not None:
            query = query.filter(SubscriptionPlan.creator_id == creator_id)
        return query

    def monthly_recurring_revenue(self, creator_id: Optional[UUID] = None) -> int:
        query = self.db.query(func.coalesce(func.sum(SubscriptionPlan.price), 0))
        query = self._scoped(query, creator_id).filter(Subscription.status == SubscriptionStatusEnum.active)
        return as_int(query.scalar())

    def active_count(self, creator_id: Optional[UUID] = None) -> int:
        query = self.db.query(func.count(Subscription.id))
        query = self._scoped(query, creator_id).filter(Subscription.status == SubscriptionStatusEnum.active)
        return as_int(query.scalar())

    def new_in_window(self, creator_id: Optional[UUID], window: TimeWindow) -> int:
        query = self._scoped(self.db.query(func.count(Subscription.id)), creator_id)
        query = query.filter(Subscription.created_at < window.end_datetime_exclusive())
        if window.start is not None:
            query = query.filter(Subscription.created_at >= window.start_datetime())
        return as_int(query.scalar())

    def churn_rate(self, creator_id: Optional[UUID] = None, days: int = 30,
                   now: Optional[datetime] = None) -> float:
        """Percent of subscriptions older than the window canceled inside it."""
        days = validate_days(days)
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)
        canceled = case(
            (Subscription.canceled_at.isnot(None) & (Subscription.canceled_at > cutoff), 1),
            else_=0,
        )
        query = self.db.query(
            func.count(Subscription.id).label("base"),
            func.coalesce(func.sum(canceled), 0).label("canceled"),
        )
        row = self._scoped(query, creator_id).filter(Subscription.created_at <= cutoff).one()
        return round(formulas.churn_rate(as_int(row.canceled), as_int(row.base)), 2)

    def stats(self, creator_id: Optional[UUID] = None, churn_days: int = 30,
              now: Optional[datetime] = None) -> SubscriptionStats:
        is_active = Subscription.status == SubscriptionStatusEnum.active
        is_canceled = Subscription.status == SubscriptionStatusEnum.canceled
        query = self.db.query(
            func.count(Subscription.id).label("total"),
            func.coalesce(func.sum(case((is_active, 1), else_=0)), 0).label("active"),
            func.coalesce(func.sum(case((is_canceled, 1), else_=0)), 0).label("canceled"),
            func.coalesce(func.sum(case((is_active, SubscriptionPlan.price), else_=0)), 0).label("revenue"),
        )
        row = self._scoped(query, creator_id).one()
        active = as_int(row.active)
        revenue = as_int(row.revenue)
        return SubscriptionStats(
            total_subscriptions=as_int(row.total),
            active_subscriptions=active,
            canceled_subscriptions=as_int(row.canceled),
            monthly_revenue=revenue,
            churn_rate=self.churn_rate(creator_id, churn_days, now),
            average_revenue_per_user=int(round(revenue / active)) if active else 0,
        )
