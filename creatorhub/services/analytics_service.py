"""
Analytics Service
=================

Cross-domain dashboard and report aggregation for a creator.

WHAT: Fans out to the revenue, affiliate, article analytics, article,
      subscriber and subscription stores for one creator and window, then
      combines the raw sums with the calculators in metrics/formulas.py
WHY: Every dashboard card (overview, revenue, traffic, engagement, content)
     must agree on the same window and the same formulas; routers never
     aggregate on their own.

Timeframe:
    period      7d | 30d | 90d | 1y | all   (current window, 'all' = no lower bound)
    comparison  7d | 30d | 90d | 1y         (optional, enables growth metrics)

Growth modes (see GrowthMode):
    disjoint (default)
        previous = metric over the `comparison`-length window that ends the
        day before the current window starts
    overlap_subtract
        previous = metric over the trailing `comparison` window
                   - metric over the current window
        Kept for parity with older reports. When the comparison window is not
        longer than the current one, the result is meaningless (often <= 0).

Revenue:
    ad revenue (window)
  + subscription revenue (monthly recurring revenue of active subscriptions)
  + affiliate commission (conversions recorded inside the window)
    The percentage breakdown is all zeros when the total is 0.

References:
- creatorhub/metrics/timeframe.py: window resolution
- creatorhub/metrics/formulas.py: growth, percentage breakdown, engagement
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..metrics import formulas
from ..metrics.timeframe import (
    PERIOD_DAYS,
    GrowthMode,
    Period,
    TimeWindow,
    month_keys,
    parse_comparison,
    parse_period,
    previous_window,
    resolve_window,
    trailing_window,
    validate_months,
)
from ..stores.ad_revenue import AdRevenueStore
from ..stores.affiliate import AffiliateClickStore
from ..stores.article_analytics import AnalyticsTotals, ArticleAnalyticsStore, ArticleRollup
from ..stores.articles import ArticleStore
from ..stores.subscribers import SubscriberStore
from ..stores.subscriptions import SubscriptionStore

logger = logging.getLogger(__name__)


COMPARABLE_METRICS = ("page_views", "revenue", "subscribers")


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ArticleSummary:
    article_id: UUID
    title: str
    slug: str
    page_views: int
    unique_visitors: int
    ad_revenue: int
    performance_score: int
    performance_level: str


@dataclass
class GrowthMetrics:
    page_views_growth: float = 0.0
    revenue_growth: float = 0.0
    subscriber_growth: float = 0.0


@dataclass
class DashboardOverview:
    total_page_views: int
    total_unique_visitors: int
    total_revenue: int
    active_subscriptions: int
    newsletter_subscribers: int
    top_articles: List[ArticleSummary]
    growth: GrowthMetrics


@dataclass
class RevenueBreakdown:
    ads: float
    subscriptions: float
    affiliates: float


@dataclass
class MonthlyRevenuePoint:
    month: str
    total: int
    ads: int
    subscriptions: int
    affiliates: int


@dataclass
class RevenueArticle:
    article_id: UUID
    title: str
    revenue: int


@dataclass
class RevenueAnalytics:
    total_revenue: int
    ad_revenue: int
    subscription_revenue: int
    affiliate_revenue: int
    breakdown: RevenueBreakdown
    monthly_trend: List[MonthlyRevenuePoint] = field(default_factory=list)
    top_revenue_articles: List[RevenueArticle] = field(default_factory=list)


@dataclass
class TrafficAnalytics:
    total_page_views: int
    total_unique_visitors: int
    average_time_on_page: Optional[float]
    average_bounce_rate: Optional[float]


@dataclass
class ConversionFunnel:
    visitors: int
    email_signups: int
    subscriptions: int
    signup_rate: float
    conversion_rate: float


@dataclass
class EngagementAnalytics:
    total_social_shares: int
    total_newsletter_signups: int
    total_affiliate_clicks: int
    engagement_rate: float
    funnel: ConversionFunnel


@dataclass
class TagRollup:
    tag: str
    articles: int
    total_views: int
    average_views: float


@dataclass
class ContentPerformance:
    total_articles: int
    published_articles: int
    draft_articles: int
    average_reading_time: float
    top_articles: List[ArticleSummary]
    tags: List[TagRollup]
    publishing_trend: List[Dict[str, object]]


@dataclass
class MetricComparison:
    metric: str
    current: float
    previous: float
    growth: float
    growth_percentage: float
    mode: str


@dataclass
class AnalyticsReport:
    overview: DashboardOverview
    revenue: RevenueAnalytics
    traffic: TrafficAnalytics
    engagement: EngagementAnalytics
    content: ContentPerformance
    generated_at: datetime


# =============================================================================
# SERVICE
# =============================================================================

class AnalyticsService:
    """Creator dashboard aggregation."""

    def __init__(self, db: Session, growth_mode: GrowthMode = GrowthMode.disjoint):
        self.db = db
        self.growth_mode = GrowthMode(growth_mode)
        self.ad_revenue = AdRevenueStore(db)
        self.clicks = AffiliateClickStore(db)
        self.article_analytics = ArticleAnalyticsStore(db)
        self.articles = ArticleStore(db)
        self.subscribers = SubscriberStore(db)
        self.subscriptions = SubscriptionStore(db)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def dashboard_overview(self, creator_id: UUID, period="30d", comparison=None,
                           today: Optional[date] = None) -> DashboardOverview:
        window = resolve_window(period, today)
        totals = self.article_analytics.creator_totals(creator_id, window)
        revenue = self._revenue_sources(creator_id, window)

        growth = GrowthMetrics()
        if comparison is not None:
            growth = self.growth_metrics(creator_id, period, comparison, today)

        return DashboardOverview(
            total_page_views=totals.page_views,
            total_unique_visitors=totals.unique_visitors,
            total_revenue=sum(revenue.values()),
            active_subscriptions=self.subscriptions.active_count(creator_id),
            newsletter_subscribers=self.subscribers.counts().active,
            top_articles=self._top_articles(creator_id, window, limit=5),
            growth=growth,
        )

    def revenue_analytics(self, creator_id: UUID, period="30d",
                          today: Optional[date] = None) -> RevenueAnalytics:
        window = resolve_window(period, today)
        revenue = self._revenue_sources(creator_id, window)
        shares = formulas.percentage_breakdown(revenue)
        return RevenueAnalytics(
            total_revenue=sum(revenue.values()),
            ad_revenue=revenue["ads"],
            subscription_revenue=revenue["subscriptions"],
            affiliate_revenue=revenue["affiliates"],
            breakdown=RevenueBreakdown(
                ads=shares["ads"],
                subscriptions=shares["subscriptions"],
                affiliates=shares["affiliates"],
            ),
            monthly_trend=self.monthly_revenue_trend(creator_id, 12, today),
            top_revenue_articles=self.top_revenue_articles(creator_id, period, 10, today),
        )

    def traffic_analytics(self, creator_id: UUID, period="30d",
                          today: Optional[date] = None) -> TrafficAnalytics:
        totals = self.article_analytics.creator_totals(creator_id, resolve_window(period, today))
        return TrafficAnalytics(
            total_page_views=totals.page_views,
            total_unique_visitors=totals.unique_visitors,
            average_time_on_page=totals.avg_time_on_page,
            average_bounce_rate=totals.bounce_rate,
        )

    def engagement_analytics(self, creator_id: UUID, period="30d",
                             today: Optional[date] = None) -> EngagementAnalytics:
        totals = self.article_analytics.creator_totals(creator_id, resolve_window(period, today))
        active = self.subscriptions.active_count(creator_id)
        return EngagementAnalytics(
            total_social_shares=totals.social_shares,
            total_newsletter_signups=totals.newsletter_signups,
            total_affiliate_clicks=totals.affiliate_clicks,
            engagement_rate=round(
                formulas.engagement_rate(
                    totals.social_shares, totals.newsletter_signups, totals.affiliate_clicks, totals.unique_visitors
                ),
                2,
            ),
            funnel=ConversionFunnel(
                visitors=totals.unique_visitors,
                email_signups=totals.newsletter_signups,
                subscriptions=active,
                signup_rate=round(formulas.percentage(totals.newsletter_signups, totals.unique_visitors), 2),
                conversion_rate=round(formulas.percentage(active, totals.unique_visitors), 2),
            ),
        )

    def content_performance(self, creator_id: UUID, period="30d",
                            today: Optional[date] = None) -> ContentPerformance:
        window = resolve_window(period, today)
        counts = self.articles.content_counts(creator_id)
        rollups = self.article_analytics.article_rollups(creator_id, window)
        return ContentPerformance(
            total_articles=counts.total_articles,
            published_articles=counts.published_articles,
            draft_articles=counts.draft_articles,
            average_reading_time=counts.avg_reading_time,
            top_articles=self._summaries(self._rank(rollups, "page_views")[:10]),
            tags=self._tag_rollups(rollups)[:10],
            publishing_trend=self.articles.publishing_trend(creator_id, 12, today),
        )

    def full_report(self, creator_id: UUID, period="30d", comparison=None,
                    today: Optional[date] = None) -> AnalyticsReport:
        report = AnalyticsReport(
            overview=self.dashboard_overview(creator_id, period, comparison, today),
            revenue=self.revenue_analytics(creator_id, period, today),
            traffic=self.traffic_analytics(creator_id, period, today),
            engagement=self.engagement_analytics(creator_id, period, today),
            content=self.content_performance(creator_id, period, today),
            generated_at=datetime.utcnow(),
        )
        logger.info("[ANALYTICS] Built full report for creator=%s period=%s", creator_id, parse_period(period).value)
        return report

    # ------------------------------------------------------------------
    # Trends and rankings
    # ------------------------------------------------------------------

    def monthly_revenue_trend(self, creator_id: UUID, months: int = 12,
                              today: Optional[date] = None) -> List[MonthlyRevenuePoint]:
        """Zero-filled monthly totals, oldest first.

        Subscription revenue is the current recurring revenue applied to every
        month; historical MRR is not snapshotted.
        """
        months = validate_months(months)
        ads = {row.month: row.total for row in self.ad_revenue.monthly_breakdown(creator_id, months, today)}
        affiliates = self.clicks.commission_by_conversion_month(creator_id, months, today)
        mrr = self.subscriptions.monthly_recurring_revenue(creator_id)
        points = []
        for month in month_keys(months, today):
            ad_total = ads.get(month, 0)
            affiliate_total = affiliates.get(month, 0)
            points.append(
                MonthlyRevenuePoint(
                    month=month,
                    total=ad_total + mrr + affiliate_total,
                    ads=ad_total,
                    subscriptions=mrr,
                    affiliates=affiliate_total,
                )
            )
        return points

    def top_revenue_articles(self, creator_id: UUID, period="30d", limit: int = 10,
                             today: Optional[date] = None) -> List[RevenueArticle]:
        rollups = self.article_analytics.article_rollups(creator_id, resolve_window(period, today))
        return [
            RevenueArticle(article_id=r.article_id, title=r.title, revenue=r.totals.ad_revenue)
            for r in self._rank(rollups, "ad_revenue")[:limit]
        ]

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    def compare_metric(self, creator_id: UUID, metric: str, period="30d", comparison="30d",
                       today: Optional[date] = None) -> MetricComparison:
        """Current vs previous value of one metric under the configured growth mode."""
        if metric not in COMPARABLE_METRICS:
            raise ValidationError(f"metric must be one of: {', '.join(COMPARABLE_METRICS)}", field="metric")
        current_window, comparison_window = self._comparison_windows(period, comparison, today)

        current = self._metric_value(creator_id, metric, current_window)
        if self.growth_mode is GrowthMode.overlap_subtract:
            previous = self._metric_value(creator_id, metric, comparison_window) - current
        else:
            previous = self._metric_value(creator_id, metric, comparison_window)

        return MetricComparison(
            metric=metric,
            current=current,
            previous=previous,
            growth=current - previous,
            growth_percentage=round(formulas.growth_rate(current, previous), 2),
            mode=self.growth_mode.value,
        )

    def growth_metrics(self, creator_id: UUID, period="30d", comparison="30d",
                       today: Optional[date] = None) -> GrowthMetrics:
        if parse_period(period) is Period.all_time:
            return GrowthMetrics()
        return GrowthMetrics(
            page_views_growth=self.compare_metric(creator_id, "page_views", period, comparison, today).growth_percentage,
            revenue_growth=self.compare_metric(creator_id, "revenue", period, comparison, today).growth_percentage,
            subscriber_growth=self.compare_metric(creator_id, "subscribers", period, comparison, today).growth_percentage,
        )

    def _comparison_windows(self, period, comparison, today: Optional[date]):
        current_window = resolve_window(period, today)
        comparison_days = PERIOD_DAYS[parse_comparison(comparison)]
        if current_window.start is None:
            raise ValidationError("period 'all' cannot be compared", field="period")
        if self.growth_mode is GrowthMode.overlap_subtract:
            return current_window, trailing_window(comparison_days, current_window.end)
        return current_window, previous_window(current_window, comparison_days)

    def _metric_value(self, creator_id: UUID, metric: str, window: TimeWindow) -> int:
        if metric == "page_views":
            return self.article_analytics.creator_totals(creator_id, window).page_views
        if metric == "revenue":
            ads = self.ad_revenue.window_totals(creator_id, window)["revenue"]
            return ads + self.clicks.commission_by_conversion_date(creator_id, window)
        return self.subscriptions.new_in_window(creator_id, window)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _revenue_sources(self, creator_id: UUID, window: TimeWindow) -> Dict[str, int]:
        return {
            "ads": self.ad_revenue.window_totals(creator_id, window)["revenue"],
            "subscriptions": self.subscriptions.monthly_recurring_revenue(creator_id),
            "affiliates": self.clicks.commission_by_conversion_date(creator_id, window),
        }

    def _top_articles(self, creator_id: UUID, window: TimeWindow, limit: int) -> List[ArticleSummary]:
        rollups = self.article_analytics.article_rollups(creator_id, window)
        return self._summaries(self._rank(rollups, "page_views")[:limit])

    @staticmethod
    def _rank(rollups: List[ArticleRollup], counter: str) -> List[ArticleRollup]:
        ranked = sorted(rollups, key=lambda r: r.title)
        ranked.sort(key=lambda r: getattr(r.totals, counter), reverse=True)
        return ranked

    @staticmethod
    def _summaries(rollups: List[ArticleRollup]) -> List[ArticleSummary]:
        summaries = []
        for rollup in rollups:
            totals: AnalyticsTotals = rollup.totals
            score = totals.performance_score
            summaries.append(
                ArticleSummary(
                    article_id=rollup.article_id,
                    title=rollup.title,
                    slug=rollup.slug,
                    page_views=totals.page_views,
                    unique_visitors=totals.unique_visitors,
                    ad_revenue=totals.ad_revenue,
                    performance_score=score,
                    performance_level=formulas.article_performance_level(score),
                )
            )
        return summaries

    @staticmethod
    def _tag_rollups(rollups: List[ArticleRollup]) -> List[TagRollup]:
        by_tag: Dict[str, List[int]] = {}
        for rollup in rollups:
            for tag in set(rollup.tags):
                by_tag.setdefault(tag, []).append(rollup.totals.page_views)
        tags = [
            TagRollup(
                tag=tag,
                articles=len(views),
                total_views=sum(views),
                average_views=round(sum(views) / len(views), 2),
            )
            for tag, views in by_tag.items()
        ]
        tags.sort(key=lambda t: t.tag)
        tags.sort(key=lambda t: t.total_views, reverse=True)
        return tags
