"""Article authoring, tracking and performance tests."""

from datetime import date, timedelta

import pytest

from creatorhub.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from creatorhub.models import ArticleStatusEnum
from creatorhub.services.article_service import ArticleService

TODAY = date(2025, 3, 15)


@pytest.fixture
def service(test_db_session):
    return ArticleService(test_db_session)


@pytest.fixture
def article(service, creator):
    return service.create_article(
        creator.id,
        title="Ten Tips for Remote Work!",
        content="<p>" + "word " * 450 + "</p>",
        tags=["remote", "productivity"],
    )


class TestAuthoring:
    def test_new_article_is_draft_with_slug(self, article):
        assert article.status == ArticleStatusEnum.draft
        assert article.slug == "ten-tips-for-remote-work"
        assert article.reading_time == 2
        assert article.published_at is None

    def test_slug_clash_gets_suffix(self, service, article, creator):
        second = service.create_article(creator.id, "Ten tips for remote work", "Body")
        assert second.slug == "ten-tips-for-remote-work-2"

    def test_same_slug_allowed_for_other_author(self, service, article, other_creator):
        other = service.create_article(other_creator.id, "Ten Tips for Remote Work!", "Body")
        assert other.slug == article.slug

    def test_title_required(self, service, creator):
        with pytest.raises(ValidationError) as exc:
            service.create_article(creator.id, "   ", "Body")
        assert exc.value.field == "title"

    def test_too_many_tags(self, service, creator):
        with pytest.raises(ValidationError):
            service.create_article(creator.id, "Title", "Body", tags=[f"t{i}" for i in range(11)])

    def test_publish_once(self, service, article, creator):
        published = service.publish_article(article.id, creator.id)
        assert published.status == ArticleStatusEnum.published
        assert published.published_at is not None

        with pytest.raises(InvalidStateError):
            service.publish_article(article.id, creator.id)

    def test_retitle_moves_slug(self, service, article, creator):
        updated = service.update_article(article.id, creator.id, title="Remote Work, Revisited")
        assert updated.slug == "remote-work-revisited"

    def test_other_author_cannot_edit(self, service, article, other_creator):
        with pytest.raises(AuthorizationError):
            service.update_article(article.id, other_creator.id, title="Taken")


class TestTracking:
    def test_draft_is_not_trackable(self, service, article):
        with pytest.raises(NotFoundError):
            service.track_event(article.id, "page_view")

    def test_unknown_event(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        with pytest.raises(ValidationError) as exc:
            service.track_event(article.id, "scroll")
        assert exc.value.field == "event"

    def test_counters_accumulate_per_day(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        yesterday = TODAY - timedelta(days=1)
        for _ in range(3):
            service.track_event(article.id, "page_view", TODAY)
        service.track_event(article.id, "page_view", yesterday)
        service.track_event(article.id, "unique_visitor", TODAY)
        service.track_event(article.id, "social_share", TODAY)

        performance = service.performance(article.id, creator.id, "7d", today=TODAY)

        assert performance.totals.page_views == 4
        assert performance.totals.unique_visitors == 1
        assert performance.totals.social_shares == 1
        assert [point.date for point in performance.time_series] == [yesterday.isoformat(), TODAY.isoformat()]

    def test_window_excludes_older_days(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        service.track_event(article.id, "page_view", TODAY - timedelta(days=10))

        assert service.performance(article.id, creator.id, "7d", today=TODAY).totals.page_views == 0
        assert service.performance(article.id, creator.id, "30d", today=TODAY).totals.page_views == 1

    def test_bounce_rate_bounds(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        with pytest.raises(ValidationError):
            service.record_engagement(article.id, 120, 140.0)

    def test_unmeasured_days_do_not_dilute_engagement(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        service.track_event(article.id, "page_view", TODAY - timedelta(days=1))
        service.record_engagement(article.id, 120, 80.0, TODAY)

        totals = service.performance(article.id, creator.id, "7d", today=TODAY).totals

        assert totals.bounce_rate == pytest.approx(80.0)
        assert totals.avg_time_on_page == pytest.approx(120.0)

    def test_missing_engagement_earns_no_bounce_credit(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        service.analytics.increment(article.id, "page_views", 1000, TODAY)

        performance = service.performance(article.id, creator.id, "7d", today=TODAY)

        assert performance.totals.bounce_rate is None
        assert performance.totals.avg_time_on_page is None
        assert performance.performance_score == 25

    def test_strong_article_is_high_performance(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        service.analytics.increment(article.id, "page_views", 1000, TODAY)
        service.analytics.increment(article.id, "social_shares", 50, TODAY)
        service.analytics.increment(article.id, "newsletter_signups", 20, TODAY)
        service.record_engagement(article.id, 300, 0.0, TODAY)
        service.add_ad_revenue(article.id, creator.id, 10000, TODAY)

        performance = service.performance(article.id, creator.id, "30d", today=TODAY)

        assert performance.performance_score >= 90
        assert performance.performance_level == "excellent"
        assert performance.is_high_performance is True


class TestRetention:
    def test_purge_drops_only_old_daily_rows(self, service, article, creator):
        service.publish_article(article.id, creator.id)
        service.track_event(article.id, "page_view", TODAY - timedelta(days=800))
        service.track_event(article.id, "page_view", TODAY - timedelta(days=5))

        assert service.purge_old_analytics(730, today=TODAY) == 1

        assert service.performance(article.id, creator.id, "all", today=TODAY).totals.page_views == 1
        assert service.get_article(article.id, creator.id).status == ArticleStatusEnum.published


class TestArticleEndpoints:
    def test_create_publish_track(self, creator_client, client):
        created = creator_client.post("/articles", json={"title": "Hello World", "content": "<p>Hi</p>"})
        assert created.status_code == 201
        article_id = created.json()["id"]

        draft_track = client.post(f"/articles/{article_id}/track", json={"event": "page_view"})
        assert draft_track.status_code == 404

        published = creator_client.post(f"/articles/{article_id}/publish")
        assert published.json()["status"] == "published"

        assert client.post(f"/articles/{article_id}/track", json={"event": "page_view"}).status_code == 200

        performance = creator_client.get(f"/articles/{article_id}/performance", params={"period": "7d"}).json()
        assert performance["totals"]["page_views"] == 1

    def test_publish_with_notification(self, creator_client, subscribers, resend_client):
        article_id = creator_client.post("/articles", json={"title": "Launch", "content": "Body"}).json()["id"]

        response = creator_client.post(f"/articles/{article_id}/publish", params={"notify_subscribers": True})

        assert response.status_code == 200
        assert resend_client.send_email.call_count == 3
        assert resend_client.send_email.call_args.kwargs["subject"] == "New article: Launch"

    def test_bad_period(self, creator_client):
        article_id = creator_client.post("/articles", json={"title": "Hello", "content": "Body"}).json()["id"]

        response = creator_client.get(f"/articles/{article_id}/performance", params={"period": "2w"})

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "period"

    def test_analytics_purge_is_admin_only(self, creator_client, client, login_as, admin):
        assert creator_client.post("/articles/analytics/purge").status_code == 403

        login_as(admin)
        response = client.post("/articles/analytics/purge", params={"days_to_keep": 90})

        assert response.status_code == 200
        assert response.json() == {"deleted": 0, "days_to_keep": 90}
