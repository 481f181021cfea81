"""
Derived Metric Formula Tests (Unit)
===================================

WHAT: Unit tests for the pure calculators in creatorhub/metrics/formulas.py
WHY: Every dashboard number goes through these functions; a divide-by-zero
     or threshold regression shows up on every card at once.

NOTE:
These tests live outside `creatorhub/tests/` to avoid loading the
integration-test `conftest.py` (database, app, provider mocks).

REFERENCES:
- creatorhub/metrics/formulas.py
- creatorhub/metrics/formatters.py
"""

import pytest

from creatorhub.metrics import formulas
from creatorhub.metrics.formatters import format_money, format_percentage


class TestAdRevenueFormulas:
    def test_ctr_and_rpm(self) -> None:
        assert formulas.calculate_ctr(50, 10000) == pytest.approx(0.5)
        assert formulas.calculate_rpm(1000, 10000) == pytest.approx(100.0)

    def test_zero_impressions_yield_zero(self) -> None:
        assert formulas.calculate_ctr(5, 0) == 0.0
        assert formulas.calculate_rpm(500, 0) == 0.0

    def test_high_performance_needs_both_thresholds(self) -> None:
        assert formulas.is_high_performance_ad(2.5, 600) is True
        assert formulas.is_high_performance_ad(2.5, 500) is False
        assert formulas.is_high_performance_ad(2.0, 900) is False


class TestGrowthAndShares:
    def test_growth_rate(self) -> None:
        assert formulas.growth_rate(150, 100) == pytest.approx(50.0)
        assert formulas.growth_rate(50, 100) == pytest.approx(-50.0)

    def test_growth_from_zero(self) -> None:
        """No previous value: 100% when something happened, else 0."""
        assert formulas.growth_rate(10, 0) == 100.0
        assert formulas.growth_rate(0, 0) == 0.0

    def test_percentage_breakdown_sums_to_100(self) -> None:
        shares = formulas.percentage_breakdown({"ads": 500, "subscriptions": 300, "affiliates": 200})
        assert shares == {"ads": 50.0, "subscriptions": 30.0, "affiliates": 20.0}

    def test_percentage_breakdown_all_zero(self) -> None:
        shares = formulas.percentage_breakdown({"ads": 0, "subscriptions": 0, "affiliates": 0})
        assert shares == {"ads": 0.0, "subscriptions": 0.0, "affiliates": 0.0}


class TestAffiliateFormulas:
    def test_conversion_rate(self) -> None:
        assert formulas.conversion_rate(1, 1) == 100.0
        assert formulas.conversion_rate(0, 0) == 0.0

    def test_average_commission(self) -> None:
        assert formulas.average_commission(750, 3) == pytest.approx(250.0)
        assert formulas.average_commission(750, 0) == 0.0

    @pytest.mark.parametrize(
        "rate,level",
        [(7.5, "excellent"), (5, "excellent"), (3, "good"), (1, "average"), (0.99, "poor")],
    )
    def test_performance_level(self, rate, level) -> None:
        assert formulas.affiliate_performance_level(rate) == level


class TestEngagementFormulas:
    def test_engagement_score_uses_delivered_as_base(self) -> None:
        # open rate 0.5 * 40 + click rate 0.25 * 60
        assert formulas.engagement_score(delivered=4, opened=2, clicked=1) == 35

    def test_engagement_score_nothing_delivered(self) -> None:
        assert formulas.engagement_score(0, 0, 0) == 0

    def test_engagement_rate(self) -> None:
        assert formulas.engagement_rate(5, 3, 2, 100) == pytest.approx(10.0)
        assert formulas.engagement_rate(5, 3, 2, 0) == 0.0

    def test_churn_rate(self) -> None:
        assert formulas.churn_rate(2, 40) == pytest.approx(5.0)


class TestArticleScore:
    def test_empty_article_scores_engagement_only(self) -> None:
        # bounce 0 -> full 12.5 for the bounce half of engagement
        assert formulas.article_performance_score(0, 0, 0, 0, 0, 0, 0) == 12

    def test_score_is_capped_at_100(self) -> None:
        score = formulas.article_performance_score(10**6, 10**4, 0, 10**4, 10**8, 10**5, 10**4)
        assert score == 100

    def test_score_is_monotonic_in_views(self) -> None:
        low = formulas.article_performance_score(100, 60, 50, 0, 0, 0, 0)
        high = formulas.article_performance_score(900, 60, 50, 0, 0, 0, 0)
        assert high > low

    def test_lower_bounce_rate_scores_higher(self) -> None:
        bouncy = formulas.article_performance_score(500, 60, 90, 0, 0, 0, 0)
        sticky = formulas.article_performance_score(500, 60, 10, 0, 0, 0, 0)
        assert sticky > bouncy

    def test_unmeasured_bounce_rate_earns_nothing(self) -> None:
        assert formulas.article_performance_score(0, 0, None, 0, 0, 0, 0) == 0
        assert formulas.article_performance_score(1000, 0, None, 0, 0, 0, 0) == 25

    @pytest.mark.parametrize("score,level", [(95, "excellent"), (90, "excellent"), (75, "good"), (50, "average"), (49, "poor")])
    def test_performance_level(self, score, level) -> None:
        assert formulas.article_performance_level(score) == level

    def test_high_performance_article(self) -> None:
        assert formulas.is_high_performance_article(75) is True
        assert formulas.is_high_performance_article(74) is False


class TestFormatters:
    def test_round_or_zero(self) -> None:
        assert formulas.round_or_zero(None) == 0.0
        assert formulas.round_or_zero(1.23456) == 1.23

    def test_format_money(self) -> None:
        assert format_money(1999) == "$19.99"
        assert format_money(123456, "EUR") == "€1,234.56"
        assert format_money(500, "JPY") == "¥500"

    def test_format_percentage(self) -> None:
        assert format_percentage(12.3456) == "12.35%"
