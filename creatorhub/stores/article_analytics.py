"""Article analytics store.

WHAT: Per-(article, day) counters and the rollups over them
WHY: Counters are bumped by tracking events one at a time; each bump is a
     single INSERT ... ON CONFLICT DO UPDATE SET col = col + n so concurrent
     events never lose an increment or create a second row for the day.

Increments are not idempotent: two calls add two. Callers that need
uniqueness (unique visitors) gate it themselves, e.g. per session.
Rollups COALESCE missing counters to zero. Engagement columns stay NULL
until a snapshot is recorded, so AVG only covers measured days and an
unmeasured window reports None.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..metrics.timeframe import TimeWindow, trailing_window
from ..models import Article, ArticleAnalytics, ArticleStatusEnum
from ..utils.dates import utc_today
from .base import as_date_key, as_int, upsert_insert

logger = logging.getLogger(__name__)


COUNTERS = (
    "page_views",
    "unique_visitors",
    "social_shares",
    "affiliate_clicks",
    "newsletter_signups",
    "ad_revenue",
)


@dataclass
class AnalyticsTotals:
    page_views: int = 0
    unique_visitors: int = 0
    avg_time_on_page: Optional[float] = None
    bounce_rate: Optional[float] = None
    social_shares: int = 0
    ad_revenue: int = 0
    affiliate_clicks: int = 0
    newsletter_signups: int = 0

    @property
    def performance_score(self) -> int:
        return formulas.article_performance_score(
            page_views=self.page_views,
            avg_time_on_page=self.avg_time_on_page,
            bounce_rate=self.bounce_rate,
            social_shares=self.social_shares,
            ad_revenue=self.ad_revenue,
            affiliate_clicks=self.affiliate_clicks,
            newsletter_signups=self.newsletter_signups,
        )


@dataclass
class DailyArticleMetrics:
    date: str
    page_views: int
    unique_visitors: int
    avg_time_on_page: Optional[float]
    bounce_rate: Optional[float]
    social_shares: int
    ad_revenue: int
    affiliate_clicks: int
    newsletter_signups: int


@dataclass
class ArticleRollup:
    article_id: UUID
    title: str
    slug: str
    tags: List[str]
    published_at: Optional[datetime]
    totals: AnalyticsTotals


def _totals_columns():
    return (
        func.coalesce(func.sum(ArticleAnalytics.page_views), 0).label("page_views"),
        func.coalesce(func.sum(ArticleAnalytics.unique_visitors), 0).label("unique_visitors"),
        func.avg(ArticleAnalytics.avg_time_on_page).label("avg_time_on_page"),
        func.avg(ArticleAnalytics.bounce_rate).label("bounce_rate"),
        func.coalesce(func.sum(ArticleAnalytics.social_shares), 0).label("social_shares"),
        func.coalesce(func.sum(ArticleAnalytics.ad_revenue), 0).label("ad_revenue"),
        func.coalesce(func.sum(ArticleAnalytics.affiliate_clicks), 0).label("affiliate_clicks"),
        func.coalesce(func.sum(ArticleAnalytics.newsletter_signups), 0).label("newsletter_signups"),
    )


def _optional_rate(value) -> Optional[float]:
    return None if value is None else round(float(value), 2)


def _to_totals(row) -> AnalyticsTotals:
    if row is None:
        return AnalyticsTotals()
    return AnalyticsTotals(
        page_views=as_int(row.page_views),
        unique_visitors=as_int(row.unique_visitors),
        avg_time_on_page=_optional_rate(row.avg_time_on_page),
        bounce_rate=_optional_rate(row.bounce_rate),
        social_shares=as_int(row.social_shares),
        ad_revenue=as_int(row.ad_revenue),
        affiliate_clicks=as_int(row.affiliate_clicks),
        newsletter_signups=as_int(row.newsletter_signups),
    )


class ArticleAnalyticsStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def increment(self, article_id: UUID, counter: str, amount: int = 1, day: Optional[date] = None) -> None:
        """Atomically add `amount` to one counter of the day's row."""
        if counter not in COUNTERS:
            raise ValueError(f"Unknown analytics counter: {counter}")
        day = day or utc_today()
        stmt = upsert_insert(self.db, ArticleAnalytics).values(
            article_id=article_id, date=day, **{counter: amount}
        )
        column = getattr(ArticleAnalytics, counter)
        stmt = stmt.on_conflict_do_update(
            index_elements=["article_id", "date"],
            set_={counter: column + getattr(stmt.excluded, counter)},
        )
        self.db.execute(stmt)
        self.db.commit()

    def record_page_view(self, article_id: UUID, day: Optional[date] = None) -> None:
        self.increment(article_id, "page_views", 1, day)

    def record_unique_visitor(self, article_id: UUID, day: Optional[date] = None) -> None:
        self.increment(article_id, "unique_visitors", 1, day)

    def record_social_share(self, article_id: UUID, day: Optional[date] = None) -> None:
        self.increment(article_id, "social_shares", 1, day)

    def record_affiliate_click(self, article_id: UUID, day: Optional[date] = None) -> None:
        self.increment(article_id, "affiliate_clicks", 1, day)

    def record_newsletter_signup(self, article_id: UUID, day: Optional[date] = None) -> None:
        self.increment(article_id, "newsletter_signups", 1, day)

    def add_ad_revenue(self, article_id: UUID, amount: int, day: Optional[date] = None) -> None:
        self.increment(article_id, "ad_revenue", amount, day)

    def record_engagement(self, article_id: UUID, avg_time_on_page: int, bounce_rate: float,
                          day: Optional[date] = None) -> None:
        """Store the day's engagement snapshot (replaces, does not add)."""
        day = day or utc_today()
        stmt = upsert_insert(self.db, ArticleAnalytics).values(
            article_id=article_id, date=day, avg_time_on_page=avg_time_on_page, bounce_rate=bounce_rate
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["article_id", "date"],
            set_={
                "avg_time_on_page": stmt.excluded.avg_time_on_page,
                "bounce_rate": stmt.excluded.bounce_rate,
            },
        )
        self.db.execute(stmt)
        self.db.commit()

    def delete_older_than(self, days_to_keep: int = 730, today: Optional[date] = None) -> int:
        cutoff = trailing_window(days_to_keep, today).start
        deleted = (
            self.db.query(ArticleAnalytics)
            .filter(ArticleAnalytics.date < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("[ANALYTICS] Purged %d article analytics rows older than %s", deleted, cutoff)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def article_totals(self, article_id: UUID, window: TimeWindow) -> AnalyticsTotals:
        query = self.db.query(*_totals_columns()).filter(ArticleAnalytics.article_id == article_id)
        return _to_totals(self._apply_window(query, window).one())

    def creator_totals(self, author_id: UUID, window: TimeWindow) -> AnalyticsTotals:
        query = (
            self.db.query(*_totals_columns())
            .join(Article, Article.id == ArticleAnalytics.article_id)
            .filter(Article.author_id == author_id)
        )
        return _to_totals(self._apply_window(query, window).one())

    def time_series(self, article_id: UUID, window: TimeWindow) -> List[DailyArticleMetrics]:
        query = self.db.query(ArticleAnalytics).filter(ArticleAnalytics.article_id == article_id)
        rows = self._apply_window(query, window).order_by(ArticleAnalytics.date.asc()).all()
        return [
            DailyArticleMetrics(
                date=as_date_key(row.date),
                page_views=row.page_views,
                unique_visitors=row.unique_visitors,
                avg_time_on_page=_optional_rate(row.avg_time_on_page),
                bounce_rate=_optional_rate(row.bounce_rate),
                social_shares=row.social_shares,
                ad_revenue=row.ad_revenue,
                affiliate_clicks=row.affiliate_clicks,
                newsletter_signups=row.newsletter_signups,
            )
            for row in rows
        ]

    def article_rollups(self, author_id: UUID, window: TimeWindow,
                        published_only: bool = True) -> List[ArticleRollup]:
        """Window totals per article (articles without analytics count as zero)."""
        per_article = self.db.query(ArticleAnalytics.article_id.label("article_id"), *_totals_columns())
        per_article = (
            self._apply_window(per_article, window)
            .group_by(ArticleAnalytics.article_id)
            .subquery()
        )

        query = (
            self.db.query(Article, per_article)
            .outerjoin(per_article, per_article.c.article_id == Article.id)
            .filter(Article.author_id == author_id)
        )
        if published_only:
            query = query.filter(Article.status == ArticleStatusEnum.published)

        result = []
        for row in query.all():
            article = row[0]
            result.append(
                ArticleRollup(
                    article_id=article.id,
                    title=article.title,
                    slug=article.slug,
                    tags=list(article.tags or []),
                    published_at=article.published_at,
                    totals=_to_totals(row) if row.article_id is not None else AnalyticsTotals(),
                )
            )
        return result

    @staticmethod
    def _apply_window(query, window: TimeWindow):
        if window.start is not None:
            query = query.filter(ArticleAnalytics.date >= window.start)
        return query.filter(ArticleAnalytics.date <= window.end)
