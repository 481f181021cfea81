"""Ad revenue store.

WHAT: Daily revenue/impressions/clicks per (creator, date, source), and the
      windowed rollups built on them
WHY: Ad networks report incrementally; a second report for the same day and
     source must merge into the existing row, never create a duplicate.

Invariants:
  - One row per (creator_id, date, source), enforced by
    uq_ad_revenue_creator_date_source and written with ON CONFLICT
  - ctr/rpm are recomputed from clicks/impressions/revenue in the same
    statement that changes them
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..metrics.timeframe import TimeWindow, month_keys, month_starts, previous_window, trailing_window
from ..models import AdRevenue, AdSourceEnum
from .base import as_date_key, as_int, month_bucket, upsert_insert

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class SourceRevenue:
    source: str
    revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float
    percentage: float


@dataclass
class RevenueWindowMetrics:
    total_revenue: int
    total_impressions: int
    total_clicks: int
    avg_ctr: float
    avg_rpm: float
    revenue_by_source: List[SourceRevenue] = field(default_factory=list)


@dataclass
class MonthlySourceBreakdown:
    month: str
    total: int
    adsense: int
    media_net: int
    direct: int


@dataclass
class DailyRevenue:
    date: str
    revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float


@dataclass
class SourceComparison:
    source: str
    revenue: int
    previous_revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float
    growth_rate: float


@dataclass
class AdRevenueFilters:
    """Optional predicates for list_records; None means 'no filter'."""

    source: Optional[AdSourceEnum] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_revenue: Optional[int] = None

    def apply(self, query):
        if self.source is not None:
            query = query.filter(AdRevenue.source == self.source)
        if self.start_date is not None:
            query = query.filter(AdRevenue.date >= self.start_date)
        if self.end_date is not None:
            query = query.filter(AdRevenue.date <= self.end_date)
        if self.min_revenue is not None:
            query = query.filter(AdRevenue.revenue >= self.min_revenue)
        return query


# =============================================================================
# STORE
# =============================================================================

class AdRevenueStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_revenue(
        self,
        creator_id: UUID,
        day: date,
        source: AdSourceEnum,
        revenue: int,
        impressions: int = 0,
        clicks: int = 0,
    ) -> AdRevenue:
        """Insert a day's figures, or merge them into the existing row.

        Merging sums revenue/impressions/clicks and recomputes ctr/rpm from
        the merged totals inside the same INSERT ... ON CONFLICT statement.
        """
        stmt = upsert_insert(self.db, AdRevenue).values(
            creator_id=creator_id,
            date=day,
            source=source,
            revenue=revenue,
            impressions=impressions,
            clicks=clicks,
            ctr=formulas.calculate_ctr(clicks, impressions),
            rpm=formulas.calculate_rpm(revenue, impressions),
        )
        total_revenue = AdRevenue.revenue + stmt.excluded.revenue
        total_impressions = AdRevenue.impressions + stmt.excluded.impressions
        total_clicks = AdRevenue.clicks + stmt.excluded.clicks
        stmt = stmt.on_conflict_do_update(
            index_elements=["creator_id", "date", "source"],
            set_={
                "revenue": total_revenue,
                "impressions": total_impressions,
                "clicks": total_clicks,
                "ctr": case((total_impressions > 0, total_clicks * 100.0 / total_impressions), else_=0),
                "rpm": case((total_impressions > 0, total_revenue * 1000.0 / total_impressions), else_=0),
                "updated_at": datetime.utcnow(),
            },
        )
        self.db.execute(stmt)
        self.db.commit()

        record = (
            self.db.query(AdRevenue)
            .populate_existing()
            .filter(
                AdRevenue.creator_id == creator_id,
                AdRevenue.date == day,
                AdRevenue.source == source,
            )
            .one()
        )
        logger.info(
            "[AD_REVENUE] Recorded %s for creator=%s date=%s (total=%s)",
            source.value, creator_id, day, record.revenue,
        )
        return record

    def update_record(
        self,
        record_id: UUID,
        revenue: Optional[int] = None,
        impressions: Optional[int] = None,
        clicks: Optional[int] = None,
    ) -> Optional[AdRevenue]:
        """Replace the given counters; ctr/rpm always follow them."""
        record = self.get(record_id)
        if record is None:
            return None
        if revenue is not None:
            record.revenue = revenue
        if impressions is not None:
            record.impressions = impressions
        if clicks is not None:
            record.clicks = clicks
        record.ctr = formulas.calculate_ctr(record.clicks, record.impressions)
        record.rpm = formulas.calculate_rpm(record.revenue, record.impressions)
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record_id: UUID) -> bool:
        deleted = self.db.query(AdRevenue).filter(AdRevenue.id == record_id).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def delete_older_than(self, days_to_keep: int = 365, today: Optional[date] = None) -> int:
        cutoff = trailing_window(days_to_keep, today).start
        deleted = self.db.query(AdRevenue).filter(AdRevenue.date < cutoff).delete(synchronize_session=False)
        self.db.commit()
        logger.info("[AD_REVENUE] Purged %d rows older than %s", deleted, cutoff)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: UUID) -> Optional[AdRevenue]:
        return self.db.query(AdRevenue).filter(AdRevenue.id == record_id).first()

    def list_records(
        self,
        creator_id: UUID,
        filters: Optional[AdRevenueFilters] = None,
        limit: int = 50,
        offset: int = 0,
    ):
        """Return (records, total) newest first."""
        query = self.db.query(AdRevenue).filter(AdRevenue.creator_id == creator_id)
        query = (filters or AdRevenueFilters()).apply(query)
        total = query.count()
        records = (
            query.order_by(AdRevenue.date.desc(), AdRevenue.source.asc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return records, total

    def window_totals(self, creator_id: UUID, window: TimeWindow) -> Dict[str, int]:
        """Raw revenue/impressions/clicks totals for a window (zeros when empty)."""
        query = self.db.query(
            func.coalesce(func.sum(AdRevenue.revenue), 0).label("revenue"),
            func.coalesce(func.sum(AdRevenue.impressions), 0).label("impressions"),
            func.coalesce(func.sum(AdRevenue.clicks), 0).label("clicks"),
        ).filter(AdRevenue.creator_id == creator_id)
        query = self._apply_window(query, window)
        row = query.one()
        return {
            "revenue": as_int(row.revenue),
            "impressions": as_int(row.impressions),
            "clicks": as_int(row.clicks),
        }

    def windowed_metrics(self, creator_id: UUID, days: int = 30, today: Optional[date] = None) -> RevenueWindowMetrics:
        window = trailing_window(days, today)
        per_source = self._totals_by_source(creator_id, window)

        total_revenue = sum(v["revenue"] for v in per_source.values())
        total_impressions = sum(v["impressions"] for v in per_source.values())
        total_clicks = sum(v["clicks"] for v in per_source.values())
        shares = formulas.percentage_breakdown({s: v["revenue"] for s, v in per_source.items()})

        by_source = [
            SourceRevenue(
                source=source,
                revenue=values["revenue"],
                impressions=values["impressions"],
                clicks=values["clicks"],
                ctr=formulas.calculate_ctr(values["clicks"], values["impressions"]),
                rpm=formulas.calculate_rpm(values["revenue"], values["impressions"]),
                percentage=shares[source],
            )
            for source, values in per_source.items()
        ]
        return RevenueWindowMetrics(
            total_revenue=total_revenue,
            total_impressions=total_impressions,
            total_clicks=total_clicks,
            avg_ctr=formulas.calculate_ctr(total_clicks, total_impressions),
            avg_rpm=formulas.calculate_rpm(total_revenue, total_impressions),
            revenue_by_source=by_source,
        )

    def monthly_breakdown(self, creator_id: UUID, months: int = 12, today: Optional[date] = None) -> List[MonthlySourceBreakdown]:
        """Per calendar month, per source; months without data are omitted."""
        start, end = month_starts(months, today)
        month_col = month_bucket(self.db, AdRevenue.date)
        rows = (
            self.db.query(
                month_col.label("month"),
                AdRevenue.source.label("source"),
                func.coalesce(func.sum(AdRevenue.revenue), 0).label("revenue"),
            )
            .filter(AdRevenue.creator_id == creator_id)
            .filter(AdRevenue.date >= start, AdRevenue.date <= end)
            .group_by(month_col, AdRevenue.source)
            .all()
        )

        by_month: Dict[str, Dict[str, int]] = {}
        for row in rows:
            source = row.source.value if isinstance(row.source, AdSourceEnum) else str(row.source)
            by_month.setdefault(str(row.month), {})[source] = as_int(row.revenue)

        result = []
        for month in month_keys(months, today):
            if month not in by_month:
                continue
            values = by_month[month]
            result.append(
                MonthlySourceBreakdown(
                    month=month,
                    total=sum(values.values()),
                    adsense=values.get(AdSourceEnum.adsense.value, 0),
                    media_net=values.get(AdSourceEnum.media_net.value, 0),
                    direct=values.get(AdSourceEnum.direct.value, 0),
                )
            )
        return result

    def top_performing_days(
        self, creator_id: UUID, limit: int = 10, days: int = 30, today: Optional[date] = None
    ) -> List[DailyRevenue]:
        """Days in the window ordered by revenue desc, ties by earlier day."""
        window = trailing_window(days, today)
        revenue_sum = func.coalesce(func.sum(AdRevenue.revenue), 0)
        rows = (
            self.db.query(
                AdRevenue.date.label("day"),
                revenue_sum.label("revenue"),
                func.coalesce(func.sum(AdRevenue.impressions), 0).label("impressions"),
                func.coalesce(func.sum(AdRevenue.clicks), 0).label("clicks"),
            )
            .filter(AdRevenue.creator_id == creator_id)
            .filter(AdRevenue.date >= window.start, AdRevenue.date <= window.end)
            .group_by(AdRevenue.date)
            .order_by(revenue_sum.desc(), AdRevenue.date.asc())
            .limit(limit)
            .all()
        )
        return [self._daily(row) for row in rows]

    def daily_revenue(self, creator_id: UUID, days: int = 30, today: Optional[date] = None) -> List[DailyRevenue]:
        """Per-day totals for the window, oldest first."""
        window = trailing_window(days, today)
        rows = (
            self.db.query(
                AdRevenue.date.label("day"),
                func.coalesce(func.sum(AdRevenue.revenue), 0).label("revenue"),
                func.coalesce(func.sum(AdRevenue.impressions), 0).label("impressions"),
                func.coalesce(func.sum(AdRevenue.clicks), 0).label("clicks"),
            )
            .filter(AdRevenue.creator_id == creator_id)
            .filter(AdRevenue.date >= window.start, AdRevenue.date <= window.end)
            .group_by(AdRevenue.date)
            .order_by(AdRevenue.date.asc())
            .all()
        )
        return [self._daily(row) for row in rows]

    def monthly_revenue(self, creator_id: UUID, year: int, month: int) -> int:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        total = (
            self.db.query(func.coalesce(func.sum(AdRevenue.revenue), 0))
            .filter(AdRevenue.creator_id == creator_id)
            .filter(AdRevenue.date >= start, AdRevenue.date < end)
            .scalar()
        )
        return as_int(total)

    def source_comparison(self, creator_id: UUID, days: int = 30, today: Optional[date] = None) -> List[SourceComparison]:
        """Per-source totals with growth vs the preceding equal-length window."""
        current_window = trailing_window(days, today)
        prior_window = previous_window(current_window)
        current = self._totals_by_source(creator_id, current_window)
        previous = self._totals_by_source(creator_id, prior_window)

        result = []
        for source in sorted(set(current) | set(previous)):
            values = current.get(source, {"revenue": 0, "impressions": 0, "clicks": 0})
            prev_revenue = previous.get(source, {}).get("revenue", 0)
            result.append(
                SourceComparison(
                    source=source,
                    revenue=values["revenue"],
                    previous_revenue=prev_revenue,
                    impressions=values["impressions"],
                    clicks=values["clicks"],
                    ctr=formulas.calculate_ctr(values["clicks"], values["impressions"]),
                    rpm=formulas.calculate_rpm(values["revenue"], values["impressions"]),
                    growth_rate=formulas.growth_rate(values["revenue"], prev_revenue),
                )
            )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_window(query, window: TimeWindow):
        if window.start is not None:
            query = query.filter(AdRevenue.date >= window.start)
        return query.filter(AdRevenue.date <= window.end)

    def _totals_by_source(self, creator_id: UUID, window: TimeWindow) -> Dict[str, Dict[str, int]]:
        query = self.db.query(
            AdRevenue.source.label("source"),
            func.coalesce(func.sum(AdRevenue.revenue), 0).label("revenue"),
            func.coalesce(func.sum(AdRevenue.impressions), 0).label("impressions"),
            func.coalesce(func.sum(AdRevenue.clicks), 0).label("clicks"),
        ).filter(AdRevenue.creator_id == creator_id)
        rows = self._apply_window(query, window).group_by(AdRevenue.source).all()

        totals = {}
        for row in rows:
            source = row.source.value if isinstance(row.source, AdSourceEnum) else str(row.source)
            totals[source] = {
                "revenue": as_int(row.revenue),
                "impressions": as_int(row.impressions),
                "clicks": as_int(row.clicks),
            }
        return totals

    @staticmethod
    def _daily(row) -> DailyRevenue:
        revenue = as_int(row.revenue)
        impressions = as_int(row.impressions)
        clicks = as_int(row.clicks)
        return DailyRevenue(
            date=as_date_key(row.day),
            revenue=revenue,
            impressions=impressions,
            clicks=clicks,
            ctr=formulas.calculate_ctr(clicks, impressions),
            rpm=formulas.calculate_rpm(revenue, impressions),
        )
