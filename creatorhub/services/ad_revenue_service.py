"""Ad revenue service.

WHAT: Validated, creator-scoped access to the ad revenue store
WHY: Revenue reports come from external ad networks and are merged per
     (creator, date, source). Bounds are checked here so an out-of-range
     report never reaches the upsert.

Bounds:
    revenue      0 .. 10,000,000 cents
    impressions  0 .. 10,000,000
    clicks       0 .. 1,000,000
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..metrics import formulas
from ..metrics.timeframe import validate_days, validate_months
from ..models import AdRevenue, AdSourceEnum
from ..stores.ad_revenue import (
    AdRevenueFilters,
    AdRevenueStore,
    DailyRevenue,
    MonthlySourceBreakdown,
    RevenueWindowMetrics,
    SourceComparison,
)
from ..utils.dates import utc_today
from ..validators import validate_enum, validate_int_range

logger = logging.getLogger(__name__)


MAX_REVENUE_CENTS = 10_000_000
MAX_IMPRESSIONS = 10_000_000
MAX_CLICKS = 1_000_000


class AdRevenueService:
    def __init__(self, db: Session):
        self.db = db
        self.store = AdRevenueStore(db)

    def record_revenue(
        self,
        creator_id: UUID,
        day: date,
        source,
        revenue: int,
        impressions: int = 0,
        clicks: int = 0,
    ) -> AdRevenue:
        source = validate_enum(source, AdSourceEnum, "source")
        self._validate_counters(revenue, impressions, clicks)
        if not isinstance(day, date):
            raise ValidationError("date must be a calendar date", field="date")
        if day > utc_today():
            raise ValidationError("date cannot be in the future", field="date")
        return self.store.record_revenue(creator_id, day, source, revenue, impressions, clicks)

    def update_record(self, record_id: UUID, creator_id: UUID, revenue: Optional[int] = None,
                      impressions: Optional[int] = None, clicks: Optional[int] = None) -> AdRevenue:
        self._get_owned(record_id, creator_id)
        self._validate_counters(revenue, impressions, clicks)
        return self.store.update_record(record_id, revenue=revenue, impressions=impressions, clicks=clicks)

    def delete_record(self, record_id: UUID, creator_id: UUID) -> None:
        self._get_owned(record_id, creator_id)
        self.store.delete(record_id)

    def get_record(self, record_id: UUID, creator_id: UUID) -> AdRevenue:
        return self._get_owned(record_id, creator_id)

    def list_records(self, creator_id: UUID, filters: Optional[AdRevenueFilters] = None,
                     limit: int = 50, offset: int = 0):
        validate_int_range(limit, "limit", 1, 500)
        validate_int_range(offset, "offset", 0, 1_000_000)
        if filters is not None and filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")
        return self.store.list_records(creator_id, filters, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def windowed_metrics(self, creator_id: UUID, days: int = 30,
                         today: Optional[date] = None) -> RevenueWindowMetrics:
        return self.store.windowed_metrics(creator_id, validate_days(days), today)

    def monthly_breakdown(self, creator_id: UUID, months: int = 12,
                          today: Optional[date] = None) -> List[MonthlySourceBreakdown]:
        return self.store.monthly_breakdown(creator_id, validate_months(months), today)

    def top_performing_days(self, creator_id: UUID, limit: int = 10, days: int = 30,
                            today: Optional[date] = None) -> List[DailyRevenue]:
        validate_int_range(limit, "limit", 1, 100)
        return self.store.top_performing_days(creator_id, limit, validate_days(days), today)

    def source_comparison(self, creator_id: UUID, days: int = 30,
                          today: Optional[date] = None) -> List[SourceComparison]:
        return self.store.source_comparison(creator_id, validate_days(days), today)

    def monthly_revenue(self, creator_id: UUID, year: int, month: int) -> int:
        """Total cents for one calendar month."""
        validate_int_range(year, "year", 2000, 2100)
        validate_int_range(month, "month", 1, 12)
        return self.store.monthly_revenue(creator_id, year, month)

    def daily_revenue(self, creator_id: UUID, days: int = 30,
                      today: Optional[date] = None) -> List[DailyRevenue]:
        return self.store.daily_revenue(creator_id, validate_days(days), today)

    def high_performance_days(self, creator_id: UUID, days: int = 30,
                              today: Optional[date] = None) -> List[DailyRevenue]:
        """Days whose CTR and RPM both clear the high-performance bar."""
        return [
            day for day in self.daily_revenue(creator_id, days, today)
            if formulas.is_high_performance_ad(day.ctr, day.rpm)
        ]

    def purge_old_records(self, days_to_keep: int = 365, today: Optional[date] = None) -> int:
        """Delete daily rows older than the retention window, across all creators."""
        return self.store.delete_older_than(validate_days(days_to_keep, field="days_to_keep"), today)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_counters(revenue: Optional[int], impressions: Optional[int], clicks: Optional[int]) -> None:
        if revenue is not None:
            validate_int_range(revenue, "revenue", 0, MAX_REVENUE_CENTS)
        if impressions is not None:
            validate_int_range(impressions, "impressions", 0, MAX_IMPRESSIONS)
        if clicks is not None:
            validate_int_range(clicks, "clicks", 0, MAX_CLICKS)

    def _get_owned(self, record_id: UUID, creator_id: UUID) -> AdRevenue:
        record = self.store.get(record_id)
        if record is None:
            raise NotFoundError("Ad revenue record", record_id)
        if record.creator_id != creator_id:
            raise AuthorizationError("You can only manage your own revenue records")
        return record
