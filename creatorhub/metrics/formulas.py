"""Derived-metric calculators.

WHAT: Pure functions that turn raw sums/counts into rates, scores and levels
WHY: Stores return raw totals; every derived number is computed in one place
     so the API, the stores and the dashboard agree on divide-by-zero rules
REFERENCES:
  - creatorhub/stores/*.py: feed raw totals into these functions
  - creatorhub/services/analytics_service.py: dashboard composition
  - tests_unit/test_formulas.py: unit tests

Conventions:
  - Money is in integer cents; rates are percentages (0-100)
  - Any ratio whose denominator is zero returns 0, never NaN/Infinity
"""

from typing import Dict, Mapping, Optional, Union

Number = Union[int, float]


# =============================================================================
# AD REVENUE
# =============================================================================

CTR_HIGH_PERFORMANCE_THRESHOLD = 2.0
RPM_HIGH_PERFORMANCE_THRESHOLD = 500  # cents, i.e. $5


def calculate_ctr(clicks: Number, impressions: Number) -> float:
    """Click-through rate: clicks/impressions x 100 (0 when no impressions)."""
    if not impressions:
        return 0.0
    return float(clicks) / float(impressions) * 100


def calculate_rpm(revenue: Number, impressions: Number) -> float:
    """Revenue per mille: revenue/impressions x 1000 (0 when no impressions)."""
    if not impressions:
        return 0.0
    return float(revenue) / float(impressions) * 1000


def is_high_performance_ad(ctr: Number, rpm: Number) -> bool:
    return float(ctr) > CTR_HIGH_PERFORMANCE_THRESHOLD and float(rpm) > RPM_HIGH_PERFORMANCE_THRESHOLD


# =============================================================================
# GENERIC RATIOS
# =============================================================================

def percentage(part: Number, whole: Number) -> float:
    if not whole:
        return 0.0
    return float(part) / float(whole) * 100


def growth_rate(current: Number, previous: Number) -> float:
    """Period-over-period growth in percent.

    previous == 0 -> 100 when current > 0, else 0.
    """
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def percentage_breakdown(parts: Mapping[str, Number]) -> Dict[str, float]:
    """Share of each part in the total, in percent.

    Every share is 0 when the total is 0.
    """
    total = sum(float(v or 0) for v in parts.values())
    return {key: percentage(value or 0, total) for key, value in parts.items()}


# =============================================================================
# AFFILIATE
# =============================================================================

def conversion_rate(conversions: Number, clicks: Number) -> float:
    return percentage(conversions, clicks)


def average_commission(total_commission: Number, conversions: Number) -> float:
    if not conversions:
        return 0.0
    return float(total_commission) / float(conversions)


def affiliate_performance_level(rate: Number) -> str:
    """Classify a link by its conversion rate (percent)."""
    if rate >= 5:
        return "excellent"
    if rate >= 3:
        return "good"
    if rate >= 1:
        return "average"
    return "poor"


# =============================================================================
# SUBSCRIPTIONS / EMAIL
# =============================================================================

def churn_rate(canceled: Number, base: Number) -> float:
    """Canceled subscriptions as a percentage of the subscription base."""
    return percentage(canceled, base)


def engagement_score(delivered: Number, opened: Number, clicked: Number) -> int:
    """Email engagement: round(openRate x 40 + clickRate x 60).

    Rates are fractions of delivered (not sent) emails; 0 if nothing delivered.
    """
    if not delivered:
        return 0
    open_rate = float(opened) / float(delivered)
    click_rate = float(clicked) / float(delivered)
    return int(round(open_rate * 40 + click_rate * 60))


def engagement_rate(shares: Number, signups: Number, affiliate_clicks: Number, visitors: Number) -> float:
    """Engagement actions relative to visitors, in percent."""
    actions = float(shares or 0) + float(signups or 0) + float(affiliate_clicks or 0)
    return percentage(actions, visitors)


# =============================================================================
# ARTICLES
# =============================================================================

def _term(value: float, cap: float) -> float:
    return max(0.0, min(value, cap))


def article_performance_score(
    page_views: Number,
    avg_time_on_page: Number,
    bounce_rate: Optional[Number],
    social_shares: Number,
    ad_revenue: Number,
    affiliate_clicks: Number,
    newsletter_signups: Number,
) -> int:
    """Weighted 0-100 article score.

    Weights: views 25, engagement 25, shares 20, monetization 20, signups 10.
    Each term is floored at 0 and capped at its weight, so the score is
    monotonic in every input (lower bounce rate counts as better).
    An unmeasured bounce rate (None) earns no bounce credit.
    """
    views = _term(float(page_views or 0) / 1000 * 25, 25)
    bounce_credit = 0.0
    if bounce_rate is not None:
        bounce = min(max(float(bounce_rate), 0.0), 100.0)
        bounce_credit = (100 - bounce) / 100 * 12.5
    engagement = _term(float(avg_time_on_page or 0) / 300 * 12.5 + bounce_credit, 25)
    shares = _term(float(social_shares or 0) / 50 * 20, 20)
    monetization = _term(
        float(ad_revenue or 0) / 10000 * 10 + float(affiliate_clicks or 0) / 100 * 10, 20
    )
    signups = _term(float(newsletter_signups or 0) / 20 * 10, 10)
    return int(round(min(views + engagement + shares + monetization + signups, 100)))


def article_performance_level(score: Number) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 50:
        return "average"
    return "poor"


def is_high_performance_article(score: Number) -> bool:
    return score >= 75


def round_or_zero(value: Optional[Number], digits: int = 2) -> float:
    """Round a possibly-NULL aggregate (Decimal/None) to a float."""
    if value is None:
        return 0.0
    return round(float(value), digits)
