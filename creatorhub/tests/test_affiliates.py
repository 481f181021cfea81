"""Affiliate link, click tracking and conversion attribution tests."""

from datetime import date, datetime, timedelta
from typing import List
from uuid import UUID

import pytest

from creatorhub.errors import (
    AuthorizationError,
    LinkInactiveError,
    NoEligibleClickError,
    NotFoundError,
    ValidationError,
)
from creatorhub.models import AffiliateClick, AffiliateNetworkEnum
from creatorhub.security import hash_ip_address
from creatorhub.services.affiliate_service import HIGH_CLICK_SOURCE, AffiliateService, build_tracked_url
from creatorhub.services.article_service import ArticleService
from creatorhub.services.attribution import AttributionPolicy, LastUnconvertedClickPolicy
from creatorhub.stores.affiliate import AffiliateClickStore


@pytest.fixture
def service(test_db_session):
    return AffiliateService(test_db_session)


@pytest.fixture
def link(service, creator):
    return service.create_link(
        creator_id=creator.id,
        name="Standing desk",
        original_url="https://shop.example.com/desk",
        network=AffiliateNetworkEnum.amazon,
        commission_rate=4.5,
    )


def _click_count(db) -> int:
    return db.query(AffiliateClick).count()


class TestLinkManagement:
    def test_tracking_code_format(self, link):
        assert len(link.tracking_code) == 16
        assert link.tracking_code == link.tracking_code.upper()
        int(link.tracking_code, 16)

    def test_invalid_url_rejected(self, service, creator):
        with pytest.raises(ValidationError) as exc:
            service.create_link(creator.id, "Bad", "not a url", "amazon")
        assert exc.value.field == "original_url"

    def test_commission_rate_bounds(self, service, creator):
        with pytest.raises(ValidationError):
            service.create_link(creator.id, "Desk", "https://shop.example.com", "amazon", commission_rate=101)

    def test_other_creator_cannot_manage(self, service, link, other_creator):
        with pytest.raises(AuthorizationError):
            service.update_link(link.id, other_creator.id, name="Mine now")

    def test_delete_without_clicks_removes(self, service, link, creator):
        assert service.delete_link(link.id, creator.id) == "deleted"
        with pytest.raises(NotFoundError):
            service.get_link(link.id, creator.id)

    def test_delete_with_clicks_deactivates(self, service, link, creator):
        service.track_click(link.tracking_code, ip_address="203.0.113.7")

        assert service.delete_link(link.id, creator.id) == "deactivated"
        assert service.get_link(link.id, creator.id).is_active is False

    def test_tracked_url_separator(self):
        assert build_tracked_url("https://a.example/p", "ABC") == "https://a.example/p?ref=ABC"
        assert build_tracked_url("https://a.example/p?x=1", "ABC") == "https://a.example/p?x=1&ref=ABC"


class TestClickTracking:
    def test_click_stores_hashed_ip(self, service, link, test_db_session):
        destination = service.track_click(link.tracking_code, ip_address="203.0.113.7", user_agent="pytest")

        assert destination == "https://shop.example.com/desk"
        click = test_db_session.query(AffiliateClick).one()
        assert click.ip_address_hash == hash_ip_address("203.0.113.7")
        assert click.ip_address_hash != "203.0.113.7"
        assert click.converted is False

    def test_unknown_code_writes_nothing(self, service, test_db_session):
        with pytest.raises(NotFoundError):
            service.track_click("0000000000000000", ip_address="203.0.113.7")
        assert _click_count(test_db_session) == 0

    def test_inactive_link_writes_nothing(self, service, link, creator, test_db_session):
        service.deactivate_link(link.id, creator.id)

        with pytest.raises(LinkInactiveError):
            service.track_click(link.tracking_code, ip_address="203.0.113.7")
        assert _click_count(test_db_session) == 0


class TestConversions:
    def test_conversion_marks_latest_click(self, service, link, test_db_session):
        clicks = AffiliateClickStore(test_db_session)
        now = datetime.utcnow()
        older = clicks.record_click(link.id, "a", clicked_at=now - timedelta(days=2))
        newer = clicks.record_click(link.id, "b", clicked_at=now - timedelta(hours=1))

        click_id = service.record_conversion(link.tracking_code, 250, now=now)

        assert click_id == newer.id
        assert clicks.get(newer.id).converted is True
        assert clicks.get(newer.id).commission_amount == 250
        assert clicks.get(older.id).converted is False

    def test_clicks_outside_window_are_not_eligible(self, service, link, test_db_session):
        now = datetime.utcnow()
        AffiliateClickStore(test_db_session).record_click(link.id, "a", clicked_at=now - timedelta(days=31))

        with pytest.raises(NoEligibleClickError) as exc:
            service.record_conversion(link.tracking_code, 250, now=now)
        assert exc.value.code.value == "ERR_007"

    def test_each_click_converts_once(self, service, link):
        service.track_click(link.tracking_code, ip_address="203.0.113.7")
        service.record_conversion(link.tracking_code, 250)

        with pytest.raises(NoEligibleClickError):
            service.record_conversion(link.tracking_code, 250)

    def test_negative_commission_rejected(self, service, link):
        service.track_click(link.tracking_code, ip_address="203.0.113.7")
        with pytest.raises(ValidationError):
            service.record_conversion(link.tracking_code, -1)

    def test_conversion_for_someone_elses_link(self, service, link, other_creator):
        service.track_click(link.tracking_code, ip_address="203.0.113.7")
        with pytest.raises(AuthorizationError):
            service.record_conversion(link.tracking_code, 100, creator_id=other_creator.id)

    def test_claim_race_falls_through_to_next_candidate(self, link, test_db_session):
        """A candidate converted by another writer is skipped."""
        clicks = AffiliateClickStore(test_db_session)
        now = datetime.utcnow()
        older = clicks.record_click(link.id, "a", clicked_at=now - timedelta(hours=2))
        newer = clicks.record_click(link.id, "b", clicked_at=now - timedelta(hours=1))

        class StaleCandidates(LastUnconvertedClickPolicy):
            def candidates(self, click_store, link_id, now):
                ids = super().candidates(click_store, link_id, now)
                # Another writer converts the newest click between read and claim
                click_store.mark_converted(ids[0], 999, now)
                return ids

        click_id = StaleCandidates().attribute(clicks, link.id, link.tracking_code, 250, now)

        assert click_id == older.id
        assert clicks.get(newer.id).commission_amount == 999

    def test_policy_is_swappable(self, link, test_db_session):
        clicks = AffiliateClickStore(test_db_session)
        now = datetime.utcnow()
        first = clicks.record_click(link.id, "a", clicked_at=now - timedelta(days=3))
        clicks.record_click(link.id, "b", clicked_at=now - timedelta(hours=1))

        class FirstClickPolicy(AttributionPolicy):
            name = "first_click"

            def candidates(self, click_store, link_id, now) -> List[UUID]:
                since = now - timedelta(days=self.window_days)
                return list(reversed(click_store.unconverted_candidates(link_id, since, now, limit=100)))

        service = AffiliateService(test_db_session, attribution_policy=FirstClickPolicy())
        assert service.record_conversion(link.tracking_code, 100, now=now) == first.id


class TestAnalytics:
    def test_unique_clicks_count_distinct_ips(self, service, link, creator):
        service.track_click(link.tracking_code, ip_address="203.0.113.7")
        service.track_click(link.tracking_code, ip_address="203.0.113.7")
        service.track_click(link.tracking_code, ip_address="198.51.100.2")

        analytics = service.link_analytics(link.id, creator.id)

        assert analytics.performance.total_clicks == 3
        assert analytics.performance.unique_clicks == 2
        assert analytics.performance_level == "poor"

    def test_summary_for_creator_without_links(self, service, creator):
        summary = service.creator_summary(creator.id)
        assert summary.total_links == 0
        assert summary.conversion_rate == 0.0

    def test_suggestions_for_quiet_link(self, service, link, creator):
        types = {item.type for item in service.optimization_suggestions(link.id, creator.id)}
        assert "placement" in types

    def test_csv_export(self, service, link, creator):
        exported = service.export_analytics(creator.id, "csv")
        header = exported.splitlines()[0]
        assert header.startswith('"Link Name","Network"')
        assert "Standing desk" in exported

    def test_unknown_export_format(self, service, creator):
        with pytest.raises(ValidationError):
            service.export_analytics(creator.id, "xml")


class TestBulkImport:
    def test_import_hashes_ips(self, service, link, creator, test_db_session):
        clicked = datetime(2025, 3, 1, 9, 30)
        imported = service.bulk_record_clicks(link.id, creator.id, [
            {"ip_address": "203.0.113.7", "clicked_at": clicked},
            {"ip_address": None, "referrer": "https://news.example.com"},
        ])

        assert imported == 2
        stored = test_db_session.query(AffiliateClick).order_by(AffiliateClick.clicked_at.asc()).all()
        assert stored[0].clicked_at == clicked
        assert stored[0].ip_address_hash == hash_ip_address("203.0.113.7")
        assert stored[0].ip_address_hash != "203.0.113.7"
        assert stored[1].ip_address_hash is None

    def test_import_for_someone_elses_link(self, service, link, other_creator, test_db_session):
        with pytest.raises(AuthorizationError):
            service.bulk_record_clicks(link.id, other_creator.id, [{"ip_address": "203.0.113.7"}])
        assert _click_count(test_db_session) == 0


class TestOptimizationSuggestions:
    TODAY = date(2025, 3, 15)

    def _import(self, service, link, creator, count, article_id=None):
        clicked = datetime(2025, 3, 14, 10, 0)
        rows = [
            {"ip_address": f"198.51.100.{i}", "clicked_at": clicked, "article_id": article_id}
            for i in range(count)
        ]
        service.bulk_record_clicks(link.id, creator.id, rows)

    def _convert(self, service, link, times):
        for _ in range(times):
            service.record_conversion(link.tracking_code, 500, now=datetime(2025, 3, 14, 12, 0))

    def _types(self, service, link, creator):
        return [item.type for item in service.optimization_suggestions(link.id, creator.id, today=self.TODAY)]

    def test_healthy_link(self, service, link, creator):
        self._import(service, link, creator, 20)
        self._convert(service, link, 2)

        suggestions = service.optimization_suggestions(link.id, creator.id, today=self.TODAY)

        assert len(suggestions) == 1
        assert suggestions[0].potential_impact == "low"
        assert suggestions[0].description == "Link is performing normally."

    def test_busy_link_without_conversions(self, service, link, creator):
        self._import(service, link, creator, 20)

        types = self._types(service, link, creator)

        assert "content" in types
        assert "placement" not in types
        assert "network" not in types

    def test_custom_network_converting_poorly(self, service, creator):
        custom = service.create_link(
            creator_id=creator.id,
            name="Indie shop",
            original_url="https://indie.example.com/item",
            network=AffiliateNetworkEnum.custom,
            commission_rate=10,
        )
        self._import(service, custom, creator, 20)

        assert "network" in self._types(service, custom, creator)

    def test_top_article_with_clicks_but_no_sales(self, service, link, creator, test_db_session):
        article = ArticleService(test_db_session).create_article(creator.id, "Desk review", "Standing all day")
        self._import(service, link, creator, HIGH_CLICK_SOURCE + 1, article_id=article.id)

        assert "timing" in self._types(service, link, creator)

    def test_clicks_outside_window_are_ignored(self, service, link, creator):
        self._import(service, link, creator, 20)

        types = [
            item.type
            for item in service.optimization_suggestions(link.id, creator.id, today=self.TODAY + timedelta(days=60))
        ]
        assert "placement" in types


class TestAffiliateFlowEndpoints:
    """Create -> click via redirect -> convert -> analytics."""

    def test_end_to_end(self, creator_client):
        created = creator_client.post(
            "/affiliate-links",
            json={"name": "Desk", "original_url": "https://shop.example.com/desk", "network": "amazon"},
        )
        assert created.status_code == 201
        link = created.json()

        redirect = creator_client.get(f"/r/{link['tracking_code']}", follow_redirects=False)
        assert redirect.status_code == 302
        assert redirect.headers["location"] == "https://shop.example.com/desk"

        conversion = creator_client.post(
            "/affiliate-links/conversions",
            json={"tracking_code": link["tracking_code"], "commission_amount": 250},
        )
        assert conversion.status_code == 200

        analytics = creator_client.get(f"/affiliate-links/{link['id']}/analytics").json()
        performance = analytics["performance"]
        assert performance["total_clicks"] == 1
        assert performance["unique_clicks"] == 1
        assert performance["conversions"] == 1
        assert performance["conversion_rate"] == pytest.approx(100.0)
        assert performance["total_commission"] == 250
        assert analytics["performance_level"] == "excellent"

        second = creator_client.post(
            "/affiliate-links/conversions",
            json={"tracking_code": link["tracking_code"], "commission_amount": 250},
        )
        assert second.status_code == 404
        assert second.json()["code"] == "ERR_007"

    def test_unknown_tracking_code_redirect(self, client, test_db_session):
        response = client.get("/r/FFFFFFFFFFFFFFFF", follow_redirects=False)

        assert response.status_code == 404
        assert response.json()["code"] == "ERR_002"
        assert _click_count(test_db_session) == 0

    def test_inactive_link_redirect(self, creator_client, service, link, creator):
        service.deactivate_link(link.id, creator.id)

        response = creator_client.get(f"/r/{link.tracking_code}", follow_redirects=False)

        assert response.status_code == 410
        assert response.json()["code"] == "ERR_005"

    def test_csv_export_endpoint(self, creator_client, link):
        response = creator_client.get("/affiliate-links/export", params={"format": "csv"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
