"""
Affiliate Service
=================

WHAT: Link management, click tracking, conversion recording and the
      per-link / per-creator analytics built on the affiliate stores
WHY: The stores only persist and aggregate. Everything a creator-facing
     request needs on top of that lives here:
       - input validation (before any write)
       - ownership checks (a creator only sees their own links)
       - tracking code generation
       - conversion attribution through a swappable AttributionPolicy

Tracking codes:
    secrets.token_hex(8).upper() -> 16 upper-case hex characters

Deletion:
    A link with recorded clicks is only deactivated so its statistics
    survive; a link without clicks is removed.

References:
- creatorhub/stores/affiliate.py: link and click persistence
- creatorhub/services/attribution.py: conversion attribution policies
- creatorhub/metrics/formulas.py: conversion rate, performance level
"""

import csv
import io
import logging
import secrets
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, ConflictError, LinkInactiveError, NotFoundError, ValidationError
from ..metrics import formulas
from ..metrics.formatters import format_money, format_percentage
from ..metrics.timeframe import trailing_window, validate_days
from ..models import AffiliateLink, AffiliateNetworkEnum
from ..security import hash_ip_address
from ..stores.affiliate import (
    AffiliateClickStore,
    AffiliateLinkStore,
    ClickTimePoint,
    LinkFilters,
    LinkPerformance,
    MonthlyCommission,
    NetworkPerformance,
    SourceArticle,
)
from ..stores.article_analytics import ArticleAnalyticsStore
from ..stores.articles import ArticleStore
from ..validators import (
    validate_enum,
    validate_int_range,
    validate_length,
    validate_number_range,
    validate_tracking_code,
    validate_url,
)
from .attribution import AttributionPolicy, LastUnconvertedClickPolicy

logger = logging.getLogger(__name__)


TRACKING_CODE_ATTEMPTS = 5
MAX_COMMISSION_CENTS = 100_000_000

# Optimization heuristics
LOW_CLICK_THRESHOLD = 10
LOW_CONVERSION_RATE = 2.0
CUSTOM_NETWORK_MIN_RATE = 1.0
HIGH_CLICK_SOURCE = 50

CSV_HEADERS = [
    "Link Name",
    "Network",
    "Category",
    "Total Clicks",
    "Unique Clicks",
    "Conversions",
    "Conversion Rate",
    "Commission",
    "Status",
]


@dataclass
class Suggestion:
    type: str  # placement | timing | content | network
    description: str
    potential_impact: str  # low | medium | high
    action_required: str


@dataclass
class LinkAnalytics:
    link: AffiliateLink
    performance: LinkPerformance
    performance_level: str
    time_series: List[ClickTimePoint]
    top_articles: List[SourceArticle]


@dataclass
class CreatorAffiliateSummary:
    total_links: int
    active_links: int
    total_clicks: int
    total_conversions: int
    total_commission: int
    conversion_rate: float
    top_performing_links: List[LinkPerformance] = field(default_factory=list)
    network_breakdown: List[NetworkPerformance] = field(default_factory=list)
    monthly_commission: List[MonthlyCommission] = field(default_factory=list)


def generate_tracking_code() -> str:
    return secrets.token_hex(8).upper()


def build_tracked_url(url: str, tracking_code: str) -> str:
    """Append `ref=<code>` with `?` or `&` depending on the existing query."""
    separator = "&" if urlparse(url).query else "?"
    return f"{url}{separator}ref={tracking_code}"


class AffiliateService:
    """Creator-facing affiliate operations."""

    def __init__(self, db: Session, attribution_policy: Optional[AttributionPolicy] = None):
        self.db = db
        self.links = AffiliateLinkStore(db)
        self.clicks = AffiliateClickStore(db)
        self.articles = ArticleStore(db)
        self.article_analytics = ArticleAnalyticsStore(db)
        self.attribution_policy = attribution_policy or LastUnconvertedClickPolicy()

    # =========================================================================
    # LINK MANAGEMENT
    # =========================================================================

    def create_link(
        self,
        creator_id: UUID,
        name: str,
        original_url: str,
        network,
        commission_rate: float = 0,
        category: Optional[str] = None,
    ) -> AffiliateLink:
        name = validate_length(name, "name", 1, 200)
        original_url = validate_url(original_url, "original_url")
        network = validate_enum(network, AffiliateNetworkEnum, "network")
        commission_rate = validate_number_range(commission_rate, "commission_rate", 0, 100)
        category = validate_length(category, "category", 0, 100, required=False)

        link = self.links.create(
            creator_id=creator_id,
            name=name,
            original_url=original_url,
            tracking_code=self._unique_tracking_code(),
            network=network,
            commission_rate=commission_rate,
            category=category or None,
        )
        logger.info("[AFFILIATE] Created link %s for creator %s", link.id, creator_id)
        return link

    def get_link(self, link_id: UUID, creator_id: UUID) -> AffiliateLink:
        return self._get_owned_link(link_id, creator_id)

    def list_links(self, creator_id: UUID, filters: Optional[LinkFilters] = None,
                   limit: int = 50, offset: int = 0):
        validate_int_range(limit, "limit", 1, 200)
        return self.links.list_for_creator(creator_id, filters, limit=limit, offset=offset)

    def update_link(self, link_id: UUID, creator_id: UUID, **changes) -> AffiliateLink:
        link = self._get_owned_link(link_id, creator_id)

        updates: Dict[str, Any] = {}
        if changes.get("name") is not None:
            updates["name"] = validate_length(changes["name"], "name", 1, 200)
        if changes.get("original_url") is not None:
            updates["original_url"] = validate_url(changes["original_url"], "original_url")
        if changes.get("network") is not None:
            updates["network"] = validate_enum(changes["network"], AffiliateNetworkEnum, "network")
        if changes.get("commission_rate") is not None:
            updates["commission_rate"] = validate_number_range(changes["commission_rate"], "commission_rate", 0, 100)
        if "category" in changes:
            category = validate_length(changes["category"], "category", 0, 100, required=False)
            updates["category"] = category or None
        if changes.get("is_active") is not None:
            updates["is_active"] = bool(changes["is_active"])

        if not updates:
            return link
        return self.links.update(link, **updates)

    def activate_link(self, link_id: UUID, creator_id: UUID) -> AffiliateLink:
        return self.links.set_active(self._get_owned_link(link_id, creator_id), True)

    def deactivate_link(self, link_id: UUID, creator_id: UUID) -> AffiliateLink:
        return self.links.set_active(self._get_owned_link(link_id, creator_id), False)

    def delete_link(self, link_id: UUID, creator_id: UUID) -> str:
        """Return "deleted" (no clicks) or "deactivated" (clicks preserved)."""
        link = self._get_owned_link(link_id, creator_id)
        if self.links.has_clicks(link.id):
            self.links.set_active(link, False)
            logger.info("[AFFILIATE] Link %s has clicks, deactivated instead of deleted", link.id)
            return "deactivated"
        self.links.hard_delete(link)
        logger.info("[AFFILIATE] Link %s deleted", link_id)
        return "deleted"

    def regenerate_tracking_code(self, link_id: UUID, creator_id: UUID) -> AffiliateLink:
        link = self._get_owned_link(link_id, creator_id)
        return self.links.update(link, tracking_code=self._unique_tracking_code())

    def tracked_url(self, link_id: UUID, creator_id: UUID, base_url: Optional[str] = None) -> str:
        link = self._get_owned_link(link_id, creator_id)
        url = validate_url(base_url, "base_url") if base_url else link.original_url
        return build_tracked_url(url, link.tracking_code)

    def attach_to_article(self, link_id: UUID, article_id: UUID, creator_id: UUID) -> None:
        link = self._get_owned_link(link_id, creator_id)
        article = self.articles.get(article_id)
        if article is None:
            raise NotFoundError("Article", article_id)
        if article.author_id != creator_id:
            raise AuthorizationError("You can only link your own articles")
        self.links.attach_to_article(link, article)

    # =========================================================================
    # CLICK TRACKING
    # =========================================================================

    def track_click(
        self,
        tracking_code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        article_id: Optional[UUID] = None,
    ) -> str:
        """Record a click and return the URL to redirect the visitor to.

        Raises:
            NotFoundError: unknown tracking code
            LinkInactiveError: link is deactivated
        """
        link = self.links.get_by_tracking_code(tracking_code)
        if link is None:
            raise NotFoundError("Affiliate link", tracking_code)
        if not link.is_active:
            raise LinkInactiveError(tracking_code)

        if article_id is not None and self.articles.get(article_id) is None:
            logger.info("[AFFILIATE] Click on %s references unknown article, ignoring source", link.id)
            article_id = None

        self.clicks.record_click(
            link_id=link.id,
            ip_address_hash=hash_ip_address(ip_address),
            user_agent=user_agent,
            referrer=referrer,
            article_id=article_id,
        )
        if article_id is not None:
            self.article_analytics.record_affiliate_click(article_id)
        return link.original_url

    def record_conversion(self, tracking_code: str, commission_amount: int,
                          now: Optional[datetime] = None, creator_id: Optional[UUID] = None) -> UUID:
        """Credit a conversion to one click chosen by the attribution policy.

        Returns the converted click id.

        Raises:
            NotFoundError: unknown tracking code
            AuthorizationError: creator_id given and the link belongs to someone else
            NoEligibleClickError: nothing left to convert inside the window
        """
        validate_tracking_code(tracking_code)
        commission_amount = validate_int_range(commission_amount, "commission_amount", 0, MAX_COMMISSION_CENTS)
        link = self.links.get_by_tracking_code(tracking_code)
        if link is None:
            raise NotFoundError("Affiliate link", tracking_code)
        if creator_id is not None and link.creator_id != creator_id:
            raise AuthorizationError("You can only record conversions for your own links")
        return self.attribution_policy.attribute(self.clicks, link.id, tracking_code, commission_amount, now)

    def bulk_record_clicks(self, link_id: UUID, creator_id: UUID, clicks: List[Dict[str, Any]]) -> int:
        """Import historical clicks for a link. Raw IPs are hashed on the way in."""
        link = self._get_owned_link(link_id, creator_id)
        rows = []
        for click in clicks:
            rows.append(
                {
                    "link_id": link.id,
                    "ip_address_hash": hash_ip_address(click.get("ip_address")),
                    "user_agent": click.get("user_agent"),
                    "referrer": click.get("referrer"),
                    "article_id": click.get("article_id"),
                    "clicked_at": click.get("clicked_at"),
                }
            )
        records = self.clicks.bulk_record(rows)
        logger.info("[AFFILIATE] Imported %d clicks for link %s", len(records), link.id)
        return len(records)

    def click_history(self, link_id: UUID, creator_id: UUID, limit: int = 50, offset: int = 0):
        self._get_owned_link(link_id, creator_id)
        validate_int_range(limit, "limit", 1, 500)
        return self.clicks.click_history(link_id, limit=limit, offset=offset)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def link_analytics(self, link_id: UUID, creator_id: UUID, days: int = 30,
                       today: Optional[date] = None) -> LinkAnalytics:
        link = self._get_owned_link(link_id, creator_id)
        window = trailing_window(days, today)
        performance = self.links.performance(link.id, window)
        return LinkAnalytics(
            link=link,
            performance=performance,
            performance_level=formulas.affiliate_performance_level(performance.conversion_rate),
            time_series=self.clicks.time_series(link.id, window),
            top_articles=self.clicks.top_source_articles(link.id, limit=10, window=window),
        )

    def creator_summary(self, creator_id: UUID, days: int = 30,
                        today: Optional[date] = None) -> CreatorAffiliateSummary:
        window = trailing_window(days, today)
        links, total_links = self.links.list_for_creator(creator_id, limit=None)
        totals = self.clicks.creator_totals(creator_id, window)
        return CreatorAffiliateSummary(
            total_links=total_links,
            active_links=sum(1 for link in links if link.is_active),
            total_clicks=totals["clicks"],
            total_conversions=totals["conversions"],
            total_commission=totals["commission"],
            conversion_rate=formulas.conversion_rate(totals["conversions"], totals["clicks"]),
            top_performing_links=self.links.top_performing_links(creator_id, limit=10, window=window),
            network_breakdown=self.links.network_performance(creator_id, window),
            monthly_commission=self.clicks.monthly_commission(creator_id, 12, today),
        )

    def optimization_suggestions(self, link_id: UUID, creator_id: UUID,
                                 today: Optional[date] = None) -> List[Suggestion]:
        link = self._get_owned_link(link_id, creator_id)
        window = trailing_window(30, today)
        performance = self.links.performance(link.id, window)
        suggestions: List[Suggestion] = []

        if performance.total_clicks < LOW_CLICK_THRESHOLD:
            suggestions.append(Suggestion(
                type="placement",
                description="Low click volume detected. Consider placing this link in more prominent positions.",
                potential_impact="high",
                action_required="Review link placement in articles and consider adding it to high-traffic content.",
            ))
        if performance.conversion_rate < LOW_CONVERSION_RATE:
            suggestions.append(Suggestion(
                type="content",
                description="Low conversion rate suggests a weak product-content fit.",
                potential_impact="high",
                action_required="Check that the linked product matches your content and audience interests.",
            ))
        if link.network == AffiliateNetworkEnum.custom and performance.conversion_rate < CUSTOM_NETWORK_MIN_RATE:
            suggestions.append(Suggestion(
                type="network",
                description="Custom network link is converting poorly.",
                potential_impact="medium",
                action_required="Consider an established affiliate network for this product.",
            ))

        sources = self.clicks.top_source_articles(link.id, limit=1, window=window)
        if sources and sources[0].clicks > HIGH_CLICK_SOURCE and sources[0].conversions == 0:
            suggestions.append(Suggestion(
                type="timing",
                description="High clicks but no conversions from the top source article.",
                potential_impact="medium",
                action_required="Review the timing and context of the link in your top-performing content.",
            ))

        if not suggestions:
            suggestions.append(Suggestion(
                type="content",
                description="Link is performing normally.",
                potential_impact="low",
                action_required="Keep monitoring performance and consider testing different placements.",
            ))
        return suggestions

    def export_analytics(self, creator_id: UUID, export_format: str = "json", days: int = 30,
                         today: Optional[date] = None) -> Union[Dict[str, Any], str]:
        if export_format not in ("json", "csv"):
            raise ValidationError("format must be one of: json, csv", field="format")
        days = validate_days(days)
        summary = self.creator_summary(creator_id, days, today)
        links, _ = self.links.list_for_creator(creator_id, limit=None)
        analytics = [self.link_analytics(link.id, creator_id, days, today) for link in links]

        if export_format == "csv":
            return self._to_csv(analytics)
        return {
            "summary": asdict(summary),
            "links": [
                {
                    "link_id": str(item.link.id),
                    "name": item.link.name,
                    "network": item.link.network.value,
                    "category": item.link.category,
                    "is_active": item.link.is_active,
                    "performance": asdict(item.performance),
                    "performance_level": item.performance_level,
                    "time_series": [asdict(point) for point in item.time_series],
                    "top_articles": [asdict(source) for source in item.top_articles],
                }
                for item in analytics
            ],
            "exported_at": datetime.utcnow().isoformat(),
            "timeframe": f"{days} days",
        }

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_owned_link(self, link_id: UUID, creator_id: UUID) -> AffiliateLink:
        link = self.links.get(link_id)
        if link is None:
            raise NotFoundError("Affiliate link", link_id)
        if link.creator_id != creator_id:
            raise AuthorizationError("You can only manage your own affiliate links")
        return link

    def _unique_tracking_code(self) -> str:
        for _ in range(TRACKING_CODE_ATTEMPTS):
            code = generate_tracking_code()
            if not self.links.tracking_code_exists(code):
                return code
        raise ConflictError("Could not allocate a unique tracking code")

    @staticmethod
    def _to_csv(analytics: List[LinkAnalytics]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for item in analytics:
            perf = item.performance
            writer.writerow([
                item.link.name,
                item.link.network.value,
                item.link.category or "",
                perf.total_clicks,
                perf.unique_clicks,
                perf.conversions,
                format_percentage(perf.conversion_rate),
                format_money(perf.total_commission),
                "Active" if item.link.is_active else "Inactive",
            ])
        return buffer.getvalue()
