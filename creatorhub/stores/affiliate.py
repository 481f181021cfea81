"""Affiliate link and click stores.

WHAT: Persistence and rollups for affiliate links (`affiliate_links`) and the
      per-click records (`affiliate_link_stats`)
WHY: Click volume, uniqueness and conversions are aggregated in SQL over a
     time window; the service layer adds validation and ownership.

Invariants:
  - A click stores only a sha256 hash of the visitor IP
  - commission_amount stays 0 until the click is converted
  - Conversion is one-way: `mark_converted` only matches rows where
    converted is still false, so two concurrent writers cannot both win
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, case, distinct, func, or_
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..metrics.timeframe import TimeWindow, month_keys, month_starts
from ..models import AffiliateClick, AffiliateLink, AffiliateNetworkEnum, Article
from .base import as_date_key, as_int, day_bucket, month_bucket

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class LinkPerformance:
    link_id: UUID
    link_name: str
    total_clicks: int
    unique_clicks: int
    conversions: int
    conversion_rate: float
    total_commission: int
    avg_commission_per_conversion: float


@dataclass
class SourceArticle:
    article_id: Optional[UUID]
    article_title: Optional[str]
    clicks: int
    conversions: int
    conversion_rate: float
    commission: int


@dataclass
class ClickTimePoint:
    date: str
    clicks: int
    unique_clicks: int
    conversions: int
    commission: int


@dataclass
class NetworkPerformance:
    network: str
    total_links: int
    total_clicks: int
    total_conversions: int
    total_commission: int
    conversion_rate: float
    avg_commission_per_conversion: float


@dataclass
class MonthlyCommission:
    month: str
    commission: int
    clicks: int
    conversions: int


@dataclass
class LinkFilters:
    """Optional predicates for listing links."""

    network: Optional[AffiliateNetworkEnum] = None
    is_active: Optional[bool] = None
    category: Optional[str] = None
    search: Optional[str] = None

    def apply(self, query):
        if self.network is not None:
            query = query.filter(AffiliateLink.network == self.network)
        if self.is_active is not None:
            query = query.filter(AffiliateLink.is_active.is_(self.is_active))
        if self.category:
            query = query.filter(AffiliateLink.category == self.category)
        if self.search:
            pattern = f"%{self.search}%"
            query = query.filter(or_(AffiliateLink.name.ilike(pattern), AffiliateLink.original_url.ilike(pattern)))
        return query


# SQL fragments shared by the rollups
_CONVERTED = AffiliateClick.converted.is_(True)


def _conversions_expr():
    return func.coalesce(func.sum(case((_CONVERTED, 1), else_=0)), 0)


def _commission_expr():
    return func.coalesce(func.sum(case((_CONVERTED, AffiliateClick.commission_amount), else_=0)), 0)


def _click_window_condition(window: Optional[TimeWindow]):
    conditions = []
    if window is not None:
        if window.start is not None:
            conditions.append(AffiliateClick.clicked_at >= window.start_datetime())
        conditions.append(AffiliateClick.clicked_at < window.end_datetime_exclusive())
    return conditions


# =============================================================================
# LINKS
# =============================================================================

class AffiliateLinkStore:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        creator_id: UUID,
        name: str,
        original_url: str,
        tracking_code: str,
        network: AffiliateNetworkEnum,
        commission_rate: float = 0,
        category: Optional[str] = None,
    ) -> AffiliateLink:
        link = AffiliateLink(
            creator_id=creator_id,
            name=name,
            original_url=original_url,
            tracking_code=tracking_code,
            network=network,
            commission_rate=commission_rate,
            category=category,
            is_active=True,
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return link

    def get(self, link_id: UUID) -> Optional[AffiliateLink]:
        return self.db.query(AffiliateLink).filter(AffiliateLink.id == link_id).first()

    def get_by_tracking_code(self, tracking_code: str) -> Optional[AffiliateLink]:
        return self.db.query(AffiliateLink).filter(AffiliateLink.tracking_code == tracking_code).first()

    def tracking_code_exists(self, tracking_code: str) -> bool:
        return self.get_by_tracking_code(tracking_code) is not None

    def list_for_creator(self, creator_id: UUID, filters: Optional[LinkFilters] = None,
                         limit: Optional[int] = 50, offset: int = 0):
        """Return (links, total) newest first."""
        query = self.db.query(AffiliateLink).filter(AffiliateLink.creator_id == creator_id)
        query = (filters or LinkFilters()).apply(query)
        total = query.count()
        query = query.order_by(AffiliateLink.created_at.desc())
        if limit is not None:
            query = query.limit(limit).offset(offset)
        return query.all(), total

    def update(self, link: AffiliateLink, **fields) -> AffiliateLink:
        for key, value in fields.items():
            setattr(link, key, value)
        self.db.commit()
        self.db.refresh(link)
        return link

    def set_active(self, link: AffiliateLink, is_active: bool) -> AffiliateLink:
        return self.update(link, is_active=is_active)

    def has_clicks(self, link_id: UUID) -> bool:
        return (
            self.db.query(AffiliateClick.id).filter(AffiliateClick.link_id == link_id).first()
            is not None
        )

    def hard_delete(self, link: AffiliateLink) -> None:
        self.db.delete(link)
        self.db.commit()

    def attach_to_article(self, link: AffiliateLink, article: Article) -> None:
        if article not in link.articles:
            link.articles.append(article)
            self.db.commit()

    def performance(self, link_id: UUID, window: Optional[TimeWindow] = None) -> Optional[LinkPerformance]:
        rows = self._performance_query(window).filter(AffiliateLink.id == link_id).all()
        return self._performance(rows[0]) if rows else None

    def top_performing_links(self, creator_id: UUID, limit: int = 10,
                             window: Optional[TimeWindow] = None) -> List[LinkPerformance]:
        clicks = func.count(AffiliateClick.id)
        rows = (
            self._performance_query(window)
            .filter(AffiliateLink.creator_id == creator_id, AffiliateLink.is_active.is_(True))
            .order_by(clicks.desc(), _commission_expr().desc())
            .limit(limit)
            .all()
        )
        return [self._performance(row) for row in rows]

    def network_performance(self, creator_id: UUID, window: Optional[TimeWindow] = None) -> List[NetworkPerformance]:
        join_on = and_(AffiliateClick.link_id == AffiliateLink.id, *_click_window_condition(window))
        commission = _commission_expr()
        rows = (
            self.db.query(
                AffiliateLink.network.label("network"),
                func.count(distinct(AffiliateLink.id)).label("total_links"),
                func.count(AffiliateClick.id).label("total_clicks"),
                _conversions_expr().label("conversions"),
                commission.label("commission"),
            )
            .outerjoin(AffiliateClick, join_on)
            .filter(AffiliateLink.creator_id == creator_id)
            .group_by(AffiliateLink.network)
            .order_by(commission.desc())
            .all()
        )
        result = []
        for row in rows:
            clicks = as_int(row.total_clicks)
            conversions = as_int(row.conversions)
            commission_total = as_int(row.commission)
            network = row.network.value if isinstance(row.network, AffiliateNetworkEnum) else str(row.network)
            result.append(
                NetworkPerformance(
                    network=network,
                    total_links=as_int(row.total_links),
                    total_clicks=clicks,
                    total_conversions=conversions,
                    total_commission=commission_total,
                    conversion_rate=formulas.conversion_rate(conversions, clicks),
                    avg_commission_per_conversion=formulas.average_commission(commission_total, conversions),
                )
            )
        return result

    def _performance_query(self, window: Optional[TimeWindow]):
        join_on = and_(AffiliateClick.link_id == AffiliateLink.id, *_click_window_condition(window))
        return (
            self.db.query(
                AffiliateLink.id.label("link_id"),
                AffiliateLink.name.label("link_name"),
                func.count(AffiliateClick.id).label("total_clicks"),
                func.count(distinct(AffiliateClick.ip_address_hash)).label("unique_clicks"),
                _conversions_expr().label("conversions"),
                _commission_expr().label("commission"),
            )
            .outerjoin(AffiliateClick, join_on)
            .group_by(AffiliateLink.id, AffiliateLink.name)
        )

    @staticmethod
    def _performance(row) -> LinkPerformance:
        clicks = as_int(row.total_clicks)
        conversions = as_int(row.conversions)
        commission = as_int(row.commission)
        return LinkPerformance(
            link_id=row.link_id,
            link_name=row.link_name,
            total_clicks=clicks,
            unique_clicks=as_int(row.unique_clicks),
            conversions=conversions,
            conversion_rate=formulas.conversion_rate(conversions, clicks),
            total_commission=commission,
            avg_commission_per_conversion=formulas.average_commission(commission, conversions),
        )


# =============================================================================
# CLICKS
# =============================================================================

class AffiliateClickStore:
    def __init__(self, db: Session):
        self.db = db

    def record_click(
        self,
        link_id: UUID,
        ip_address_hash: Optional[str],
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        article_id: Optional[UUID] = None,
        clicked_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> AffiliateClick:
        click = AffiliateClick(
            link_id=link_id,
            article_id=article_id,
            ip_address_hash=ip_address_hash,
            user_agent=user_agent,
            referrer=referrer,
            clicked_at=clicked_at or datetime.utcnow(),
            converted=False,
            commission_amount=0,
        )
        self.db.add(click)
        if commit:
            self.db.commit()
            self.db.refresh(click)
        return click

    def bulk_record(self, clicks: Iterable[dict]) -> List[AffiliateClick]:
        """Insert many click rows in one transaction."""
        records = [self.record_click(commit=False, **values) for values in clicks]
        self.db.commit()
        for record in records:
            self.db.refresh(record)
        return records

    def unconverted_candidates(self, link_id: UUID, since: datetime, until: datetime, limit: int = 5) -> List[UUID]:
        """Ids of unconverted clicks in [since, until], newest first."""
        rows = (
            self.db.query(AffiliateClick.id)
            .filter(
                AffiliateClick.link_id == link_id,
                AffiliateClick.converted.is_(False),
                AffiliateClick.clicked_at >= since,
                AffiliateClick.clicked_at <= until,
            )
            .order_by(AffiliateClick.clicked_at.desc(), AffiliateClick.id.desc())
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def mark_converted(self, click_id: UUID, commission_amount: int, converted_at: datetime) -> bool:
        """Conditionally convert one click; False when another writer got there first."""
        updated = (
            self.db.query(AffiliateClick)
            .filter(AffiliateClick.id == click_id, AffiliateClick.converted.is_(False))
            .update(
                {
                    AffiliateClick.converted: True,
                    AffiliateClick.commission_amount: commission_amount,
                    AffiliateClick.conversion_date: converted_at,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def get(self, click_id: UUID) -> Optional[AffiliateClick]:
        return self.db.query(AffiliateClick).populate_existing().filter(AffiliateClick.id == click_id).first()

    def top_source_articles(self, link_id: UUID, limit: int = 5,
                            window: Optional[TimeWindow] = None) -> List[SourceArticle]:
        """Articles that sent the most clicks to a link."""
        clicks = func.count(AffiliateClick.id)
        rows = (
            self.db.query(
                AffiliateClick.article_id.label("article_id"),
                Article.title.label("article_title"),
                clicks.label("clicks"),
                _conversions_expr().label("conversions"),
                _commission_expr().label("commission"),
            )
            .outerjoin(Article, Article.id == AffiliateClick.article_id)
            .filter(AffiliateClick.link_id == link_id, AffiliateClick.article_id.isnot(None))
            .filter(*_click_window_condition(window))
            .group_by(AffiliateClick.article_id, Article.title)
            .order_by(clicks.desc())
            .limit(limit)
            .all()
        )
        return [
            SourceArticle(
                article_id=row.article_id,
                article_title=row.article_title,
                clicks=as_int(row.clicks),
                conversions=as_int(row.conversions),
                conversion_rate=formulas.conversion_rate(as_int(row.conversions), as_int(row.clicks)),
                commission=as_int(row.commission),
            )
            for row in rows
        ]

    def time_series(self, link_id: UUID, window: TimeWindow) -> List[ClickTimePoint]:
        bucket = day_bucket(self.db, AffiliateClick.clicked_at)
        rows = (
            self.db.query(
                bucket.label("day"),
                func.count(AffiliateClick.id).label("clicks"),
                func.count(distinct(AffiliateClick.ip_address_hash)).label("unique_clicks"),
                _conversions_expr().label("conversions"),
                _commission_expr().label("commission"),
            )
            .filter(AffiliateClick.link_id == link_id)
            .filter(*_click_window_condition(window))
            .group_by(bucket)
            .order_by(bucket.asc())
            .all()
        )
        return [
            ClickTimePoint(
                date=as_date_key(row.day),
                clicks=as_int(row.clicks),
                unique_clicks=as_int(row.unique_clicks),
                conversions=as_int(row.conversions),
                commission=as_int(row.commission),
            )
            for row in rows
        ]

    def click_history(self, link_id: UUID, limit: int = 50, offset: int = 0) -> List[AffiliateClick]:
        return (
            self.db.query(AffiliateClick)
            .filter(AffiliateClick.link_id == link_id)
            .order_by(AffiliateClick.clicked_at.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def creator_totals(self, creator_id: UUID, window: Optional[TimeWindow] = None) -> Dict[str, int]:
        """Clicks/conversions/commission over all of a creator's links (by click time)."""
        row = (
            self.db.query(
                func.count(AffiliateClick.id).label("clicks"),
                _conversions_expr().label("conversions"),
                _commission_expr().label("commission"),
            )
            .join(AffiliateLink, AffiliateLink.id == AffiliateClick.link_id)
            .filter(AffiliateLink.creator_id == creator_id)
            .filter(*_click_window_condition(window))
            .one()
        )
        return {
            "clicks": as_int(row.clicks),
            "conversions": as_int(row.conversions),
            "commission": as_int(row.commission),
        }

    def commission_by_conversion_date(self, creator_id: UUID, window: TimeWindow) -> int:
        """Commission earned from conversions recorded inside the window."""
        query = (
            self.db.query(func.coalesce(func.sum(AffiliateClick.commission_amount), 0))
            .join(AffiliateLink, AffiliateLink.id == AffiliateClick.link_id)
            .filter(AffiliateLink.creator_id == creator_id, _CONVERTED)
            .filter(AffiliateClick.conversion_date < window.end_datetime_exclusive())
        )
        if window.start is not None:
            query = query.filter(AffiliateClick.conversion_date >= window.start_datetime())
        return as_int(query.scalar())

    def monthly_commission(self, creator_id: UUID, months: int = 12,
                           today: Optional[date] = None) -> List[MonthlyCommission]:
        start, _ = month_starts(months, today)
        bucket = month_bucket(self.db, AffiliateClick.clicked_at)
        rows = (
            self.db.query(
                bucket.label("month"),
                _commission_expr().label("commission"),
                func.count(AffiliateClick.id).label("clicks"),
                _conversions_expr().label("conversions"),
            )
            .join(AffiliateLink, AffiliateLink.id == AffiliateClick.link_id)
            .filter(AffiliateLink.creator_id == creator_id)
            .filter(AffiliateClick.clicked_at >= datetime.combine(start, datetime.min.time()))
            .group_by(bucket)
            .all()
        )
        by_month = {str(row.month): row for row in rows}
        return [
            MonthlyCommission(
                month=month,
                commission=as_int(by_month[month].commission),
                clicks=as_int(by_month[month].clicks),
                conversions=as_int(by_month[month].conversions),
            )
            for month in month_keys(months, today)
            if month in by_month
        ]

    def commission_by_conversion_month(self, creator_id: UUID, months: int = 12,
                                       today: Optional[date] = None) -> Dict[str, int]:
        """{'YYYY-MM': commission} keyed by the month the conversion was recorded."""
        start, _ = month_starts(months, today)
        bucket = month_bucket(self.db, AffiliateClick.conversion_date)
        rows = (
            self.db.query(
                bucket.label("month"),
                func.coalesce(func.sum(AffiliateClick.commission_amount), 0).label("commission"),
            )
            .join(AffiliateLink, AffiliateLink.id == AffiliateClick.link_id)
            .filter(AffiliateLink.creator_id == creator_id, _CONVERTED)
            .filter(AffiliateClick.conversion_date >= datetime.combine(start, datetime.min.time()))
            .group_by(bucket)
            .all()
        )
        return {str(row.month): as_int(row.commission) for row in rows}
