"""Dashboard aggregation tests.

NOTE: Growth tests pin `today` so the current and previous windows are
      deterministic; revenue tests use the real date because affiliate
      conversions are stamped with the current time.
"""

from datetime import date, timedelta

import pytest

from creatorhub.errors import ValidationError
from creatorhub.metrics.timeframe import GrowthMode
from creatorhub.models import AdSourceEnum, SubscriptionStatusEnum
from creatorhub.services.ad_revenue_service import AdRevenueService
from creatorhub.services.affiliate_service import AffiliateService
from creatorhub.services.analytics_service import AnalyticsService
from creatorhub.services.article_service import ArticleService
from creatorhub.stores.subscriptions import PlanStore, SubscriptionStore
from creatorhub.utils.dates import utc_today

TODAY = date(2025, 3, 15)


@pytest.fixture
def article(test_db_session, creator):
    service = ArticleService(test_db_session)
    article = service.create_article(creator.id, "Growth Story", "Body", tags=["growth"])
    return service.publish_article(article.id, creator.id)


@pytest.fixture
def views(test_db_session, article):
    """200 views in the last 7 days, 100 the week before, 50 a fortnight before that."""
    store = ArticleService(test_db_session).analytics
    store.increment(article.id, "page_views", 200, TODAY - timedelta(days=5))
    store.increment(article.id, "page_views", 100, TODAY - timedelta(days=10))
    store.increment(article.id, "page_views", 50, TODAY - timedelta(days=20))
    return article


def _active_subscription(db, creator, reader, price=500):
    plan = PlanStore(db).create(
        creator_id=creator.id,
        name="Supporter",
        description="Premium",
        price=price,
        features=["Premium articles"],
    )
    return SubscriptionStore(db).create(reader.id, plan.id, status=SubscriptionStatusEnum.active)


class TestRevenue:
    def test_empty_creator_has_zero_breakdown(self, test_db_session, creator):
        revenue = AnalyticsService(test_db_session).revenue_analytics(creator.id, "30d", today=TODAY)

        assert revenue.total_revenue == 0
        assert (revenue.breakdown.ads, revenue.breakdown.subscriptions, revenue.breakdown.affiliates) == (0, 0, 0)
        assert len(revenue.monthly_trend) == 12
        assert all(point.total == 0 for point in revenue.monthly_trend)

    def test_three_revenue_sources(self, test_db_session, creator, reader):
        today = utc_today()
        AdRevenueService(test_db_session).record_revenue(
            creator.id, today - timedelta(days=1), AdSourceEnum.adsense, 3000, 30000, 90
        )
        _active_subscription(test_db_session, creator, reader)
        affiliates = AffiliateService(test_db_session)
        link = affiliates.create_link(creator.id, "Desk", "https://shop.example.com", "amazon")
        affiliates.track_click(link.tracking_code, ip_address="203.0.113.7")
        affiliates.record_conversion(link.tracking_code, 500)

        revenue = AnalyticsService(test_db_session).revenue_analytics(creator.id, "30d", today=today)

        assert revenue.total_revenue == 4000
        assert revenue.ad_revenue == 3000
        assert revenue.subscription_revenue == 500
        assert revenue.affiliate_revenue == 500
        assert revenue.breakdown.ads == pytest.approx(75.0)
        assert revenue.breakdown.subscriptions == pytest.approx(12.5)
        assert sum(point.ads for point in revenue.monthly_trend) == 3000

    def test_revenue_is_scoped_to_creator(self, test_db_session, creator, other_creator, reader):
        _active_subscription(test_db_session, other_creator, reader)

        revenue = AnalyticsService(test_db_session).revenue_analytics(creator.id, "30d", today=TODAY)

        assert revenue.subscription_revenue == 0


class TestGrowth:
    def test_disjoint_previous_window(self, test_db_session, creator, views):
        comparison = AnalyticsService(test_db_session).compare_metric(
            creator.id, "page_views", "7d", "7d", today=TODAY
        )

        assert comparison.current == 200
        assert comparison.previous == 100
        assert comparison.growth_percentage == pytest.approx(100.0)
        assert comparison.mode == "disjoint"

    def test_overlap_subtract_mode(self, test_db_session, creator, views):
        service = AnalyticsService(test_db_session, growth_mode=GrowthMode.overlap_subtract)

        comparison = service.compare_metric(creator.id, "page_views", "7d", "30d", today=TODAY)

        # trailing 30 days (350) minus the current 7 days (200)
        assert comparison.previous == 150
        assert comparison.growth_percentage == pytest.approx(33.33)

    def test_overlap_subtract_with_equal_windows_degenerates(self, test_db_session, creator, views):
        service = AnalyticsService(test_db_session, growth_mode="overlap_subtract")

        comparison = service.compare_metric(creator.id, "page_views", "7d", "7d", today=TODAY)

        assert comparison.previous == 0
        assert comparison.growth_percentage == 100.0

    def test_all_time_period_has_no_growth(self, test_db_session, creator, views):
        growth = AnalyticsService(test_db_session).growth_metrics(creator.id, "all", "30d", today=TODAY)
        assert (growth.page_views_growth, growth.revenue_growth, growth.subscriber_growth) == (0.0, 0.0, 0.0)

    def test_comparison_cannot_be_all_time(self, test_db_session, creator):
        with pytest.raises(ValidationError) as exc:
            AnalyticsService(test_db_session).compare_metric(creator.id, "revenue", "30d", "all", today=TODAY)
        assert exc.value.field == "comparison"

    def test_unknown_metric(self, test_db_session, creator):
        with pytest.raises(ValidationError) as exc:
            AnalyticsService(test_db_session).compare_metric(creator.id, "likes", today=TODAY)
        assert exc.value.field == "metric"


class TestSections:
    def test_overview_top_articles(self, test_db_session, creator, views):
        overview = AnalyticsService(test_db_session).dashboard_overview(creator.id, "30d", "30d", today=TODAY)

        assert overview.total_page_views == 350
        assert overview.top_articles[0].title == "Growth Story"
        assert overview.top_articles[0].page_views == 350
        assert overview.growth.page_views_growth == pytest.approx(100.0)

    def test_content_tags(self, test_db_session, creator, views):
        content = AnalyticsService(test_db_session).content_performance(creator.id, "30d", today=TODAY)

        assert content.published_articles == 1
        assert content.tags[0].tag == "growth"
        assert content.tags[0].total_views == 350

    def test_engagement_funnel_without_visitors(self, test_db_session, creator):
        engagement = AnalyticsService(test_db_session).engagement_analytics(creator.id, "30d", today=TODAY)

        assert engagement.engagement_rate == 0.0
        assert engagement.funnel.signup_rate == 0.0
        assert engagement.funnel.conversion_rate == 0.0


class TestAnalyticsEndpoints:
    def test_full_report(self, creator_client):
        response = creator_client.get("/analytics/report", params={"period": "30d", "comparison": "30d"})

        assert response.status_code == 200
        body = response.json()
        assert set(body) >= {"overview", "revenue", "traffic", "engagement", "content", "generated_at"}

    def test_compare_all_time_rejected(self, creator_client):
        response = creator_client.get(
            "/analytics/compare", params={"metric": "revenue", "period": "30d", "comparison": "all"}
        )

        assert response.status_code == 422
        assert response.json()["code"] == "ERR_001"

    def test_bad_period(self, creator_client):
        assert creator_client.get("/analytics/overview", params={"period": "2w"}).status_code == 422

    def test_readers_have_no_dashboard(self, client, login_as, reader):
        login_as(reader)
        assert client.get("/analytics/overview").status_code == 403
