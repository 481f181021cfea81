"""Ad revenue store, service and endpoint tests."""

from datetime import date, timedelta

import pytest

from creatorhub.errors import AuthorizationError, ValidationError
from creatorhub.models import AdSourceEnum
from creatorhub.services.ad_revenue_service import AdRevenueService
from creatorhub.utils.dates import utc_today

YESTERDAY = utc_today() - timedelta(days=1)


class TestRecordRevenue:
    """Daily rows are merged per (creator, date, source)."""

    def test_first_record_derives_ctr_and_rpm(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)

        record = service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1000, 10000, 50)

        assert record.revenue == 1000
        assert float(record.ctr) == pytest.approx(0.5)
        assert float(record.rpm) == pytest.approx(100.0)

    def test_second_record_same_day_merges(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        first = service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1000, 10000, 50)

        merged = service.record_revenue(creator.id, YESTERDAY, "adsense", 500, 5000, 10)

        assert merged.id == first.id
        assert merged.revenue == 1500
        assert merged.impressions == 15000
        assert merged.clicks == 60
        assert float(merged.ctr) == pytest.approx(0.4)
        assert float(merged.rpm) == pytest.approx(100.0)
        _, total = service.list_records(creator.id)
        assert total == 1

    def test_other_source_gets_its_own_row(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1000, 10000, 50)
        service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.media_net, 200, 4000, 4)

        _, total = service.list_records(creator.id)
        assert total == 2

    def test_future_date_rejected(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        with pytest.raises(ValidationError) as exc:
            service.record_revenue(creator.id, utc_today() + timedelta(days=1), AdSourceEnum.direct, 100)
        assert exc.value.field == "date"
        assert service.list_records(creator.id)[1] == 0

    def test_negative_revenue_rejected(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        with pytest.raises(ValidationError):
            service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.direct, -1)

    def test_unknown_source_rejected(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        with pytest.raises(ValidationError) as exc:
            service.record_revenue(creator.id, YESTERDAY, "banner-farm", 100)
        assert exc.value.field == "source"


class TestUpdateAndOwnership:
    def test_update_recomputes_rates(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        record = service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1000, 10000, 50)

        updated = service.update_record(record.id, creator.id, impressions=20000)

        assert float(updated.ctr) == pytest.approx(0.25)
        assert float(updated.rpm) == pytest.approx(50.0)

    def test_other_creator_cannot_read(self, test_db_session, creator, other_creator):
        service = AdRevenueService(test_db_session)
        record = service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1000, 10000, 50)

        with pytest.raises(AuthorizationError):
            service.get_record(record.id, other_creator.id)


class TestReports:
    def test_windowed_metrics(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.adsense, 1500, 15000, 60)
        service.record_revenue(creator.id, YESTERDAY, AdSourceEnum.direct, 500, 5000, 0)

        metrics = service.windowed_metrics(creator.id, days=7)

        assert metrics.total_revenue == 2000
        assert metrics.total_impressions == 20000
        assert metrics.avg_rpm == pytest.approx(100.0)
        shares = {item.source: item.percentage for item in metrics.revenue_by_source}
        assert shares["adsense"] == pytest.approx(75.0)
        assert shares["direct"] == pytest.approx(25.0)

    def test_empty_window_is_zero(self, test_db_session, creator):
        metrics = AdRevenueService(test_db_session).windowed_metrics(creator.id, days=30)
        assert metrics.total_revenue == 0
        assert metrics.avg_ctr == 0.0
        assert metrics.revenue_by_source == []

    def test_invalid_days_rejected(self, test_db_session, creator):
        with pytest.raises(ValidationError):
            AdRevenueService(test_db_session).windowed_metrics(creator.id, days=0)


class TestWindowReports:
    """Fixed calendar so window edges are deterministic."""

    TODAY = date(2025, 3, 15)

    @pytest.fixture
    def service(self, test_db_session, creator):
        service = AdRevenueService(test_db_session)
        service.record_revenue(creator.id, date(2025, 1, 10), AdSourceEnum.adsense, 100, 1000, 1)
        service.record_revenue(creator.id, date(2025, 3, 4), AdSourceEnum.direct, 300, 3000, 3)
        service.record_revenue(creator.id, date(2025, 3, 5), AdSourceEnum.adsense, 500, 5000, 5)
        service.record_revenue(creator.id, date(2025, 3, 12), AdSourceEnum.direct, 1000, 10000, 10)
        service.record_revenue(creator.id, date(2025, 3, 13), AdSourceEnum.media_net, 400, 4000, 4)
        service.record_revenue(creator.id, date(2025, 3, 14), AdSourceEnum.adsense, 1000, 10000, 10)
        return service

    def test_source_comparison_against_previous_window(self, service, creator):
        comparison = {
            item.source: item for item in service.source_comparison(creator.id, days=7, today=self.TODAY)
        }

        assert sorted(comparison) == ["adsense", "direct", "media_net"]
        # Mar 9-15 against Mar 2-8
        assert comparison["adsense"].revenue == 1000
        assert comparison["adsense"].previous_revenue == 500
        assert comparison["adsense"].growth_rate == pytest.approx(100.0)
        assert comparison["direct"].revenue == 1000
        assert comparison["direct"].previous_revenue == 300
        assert comparison["direct"].growth_rate == pytest.approx(233.33, abs=0.01)
        assert comparison["media_net"].previous_revenue == 0
        assert comparison["media_net"].growth_rate == pytest.approx(100.0)
        assert comparison["media_net"].rpm == pytest.approx(100.0)

    def test_source_only_in_previous_window(self, service, creator):
        comparison = {
            item.source: item for item in service.source_comparison(creator.id, days=3, today=date(2025, 3, 8))
        }

        # Mar 6-8 is empty; Mar 3-5 had direct and adsense
        assert comparison["direct"].revenue == 0
        assert comparison["direct"].growth_rate == pytest.approx(-100.0)
        assert comparison["adsense"].growth_rate == pytest.approx(-100.0)

    def test_monthly_breakdown_skips_empty_months(self, service, creator):
        months = service.monthly_breakdown(creator.id, months=3, today=self.TODAY)

        assert [item.month for item in months] == ["2025-01", "2025-03"]
        march = months[1]
        assert march.total == 3200
        assert march.adsense == 1500
        assert march.direct == 1300
        assert march.media_net == 400

    def test_monthly_total(self, service, creator):
        assert service.monthly_revenue(creator.id, 2025, 3) == 3200
        assert service.monthly_revenue(creator.id, 2025, 2) == 0

    def test_monthly_total_rejects_bad_month(self, service, creator):
        with pytest.raises(ValidationError) as exc:
            service.monthly_revenue(creator.id, 2025, 13)
        assert exc.value.field == "month"

    def test_top_days_order_by_revenue_then_day(self, service, creator):
        days = service.top_performing_days(creator.id, limit=3, days=7, today=self.TODAY)

        # Mar 12 and Mar 14 tie at 1000; the earlier day comes first
        assert [item.date for item in days] == ["2025-03-12", "2025-03-14", "2025-03-13"]
        assert [item.revenue for item in days] == [1000, 1000, 400]

    def test_other_creators_rows_are_excluded(self, service, other_creator):
        assert service.source_comparison(other_creator.id, days=7, today=self.TODAY) == []
        assert service.monthly_breakdown(other_creator.id, months=3, today=self.TODAY) == []


class TestRetention:
    def test_purge_keeps_recent_rows(self, test_db_session, creator, other_creator):
        service = AdRevenueService(test_db_session)
        today = date(2025, 3, 15)
        service.record_revenue(creator.id, today - timedelta(days=400), AdSourceEnum.adsense, 100)
        service.record_revenue(other_creator.id, today - timedelta(days=366), AdSourceEnum.direct, 100)
        kept = service.record_revenue(creator.id, today - timedelta(days=10), AdSourceEnum.adsense, 100)

        assert service.purge_old_records(365, today=today) == 2

        records, total = service.list_records(creator.id)
        assert total == 1
        assert records[0].id == kept.id
        assert service.list_records(other_creator.id)[1] == 0

    def test_purge_rejects_non_positive_retention(self, test_db_session):
        with pytest.raises(ValidationError) as exc:
            AdRevenueService(test_db_session).purge_old_records(0)
        assert exc.value.field == "days_to_keep"


class TestAdRevenueEndpoints:
    def test_record_and_list(self, creator_client):
        payload = {
            "date": YESTERDAY.isoformat(),
            "source": "adsense",
            "revenue": 1000,
            "impressions": 10000,
            "clicks": 50,
        }
        response = creator_client.post("/ad-revenue", json=payload)
        assert response.status_code == 201
        assert response.json()["ctr"] == pytest.approx(0.5)

        listing = creator_client.get("/ad-revenue").json()
        assert listing["total"] == 1

    def test_validation_error_body(self, creator_client):
        payload = {"date": YESTERDAY.isoformat(), "source": "adsense", "revenue": -5}
        response = creator_client.post("/ad-revenue", json=payload)

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "ERR_001"
        assert body["category"] == "validation"
        assert body["details"]["field"] == "revenue"

    def test_reader_cannot_record(self, client, login_as, reader):
        login_as(reader)
        payload = {"date": YESTERDAY.isoformat(), "source": "adsense", "revenue": 100}

        response = client.post("/ad-revenue", json=payload)

        assert response.status_code == 403
        assert response.json()["code"] == "ERR_003"

    def test_requires_login(self, client):
        assert client.get("/ad-revenue").status_code == 401

    def test_bad_days_param(self, creator_client):
        response = creator_client.get("/ad-revenue/metrics", params={"days": 0})
        assert response.status_code == 422

    def test_monthly_total_endpoint(self, creator_client):
        payload = {"date": YESTERDAY.isoformat(), "source": "direct", "revenue": 700}
        creator_client.post("/ad-revenue", json=payload)

        response = creator_client.get(f"/ad-revenue/monthly/{YESTERDAY.year}/{YESTERDAY.month}")

        assert response.status_code == 200
        assert response.json() == {"year": YESTERDAY.year, "month": YESTERDAY.month, "revenue": 700}
        assert creator_client.get("/ad-revenue/monthly/2025/13").json()["details"]["field"] == "month"

    def test_purge_is_admin_only(self, creator_client):
        response = creator_client.post("/ad-revenue/purge")
        assert response.status_code == 403
        assert response.json()["code"] == "ERR_003"

    def test_purge_as_admin(self, client, login_as, admin):
        login_as(admin)
        response = client.post("/ad-revenue/purge")

        assert response.status_code == 200
        assert response.json() == {"deleted": 0, "days_to_keep": 365}
