"""Pydantic schemas for request/response payloads.

Range and length rules are enforced by the services (so every violation
renders as the same ValidationError body); schemas only fix the shape.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from .models import (
    AdSourceEnum,
    AffiliateNetworkEnum,
    ArticleStatusEnum,
    CampaignStatusEnum,
    CampaignTypeEnum,
    CurrencyEnum,
    SubscriberSourceEnum,
    SubscriberStatusEnum,
    SubscriptionStatusEnum,
)


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str = Field(description="Error message", examples=["Article not found"])
    code: Optional[str] = Field(None, description="Machine-readable error code", examples=["ERR_002"])
    category: Optional[str] = Field(None, description="Error category", examples=["not_found"])
    details: Optional[Dict[str, Any]] = Field(None, description="Structured context (field, ids)")

    model_config = {
        "json_schema_extra": {
            "example": {"detail": "Article not found", "code": "ERR_002", "category": "not_found"}
        }
    }


class SuccessResponse(BaseModel):
    """Standard success response."""

    status: str = Field(default="ok", description="Status message")
    detail: Optional[str] = Field(default=None, description="Success message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])


class WebhookResponse(BaseModel):
    """Acknowledges a provider webhook; providers only look at the 200."""

    received: bool = Field(default=True, description="Webhook received successfully")
    event_type: Optional[str] = Field(None, description="Event type processed")
    action: Optional[str] = Field(None, description="Action taken (activated, skipped, ignored, error, ...)")


# =============================================================================
# ARTICLES
# =============================================================================

class ArticleCreate(BaseModel):
    title: str = Field(description="Article title (1-200 characters)")
    content: str = Field(description="Article body (HTML or plain text)")
    tags: List[str] = Field(default_factory=list, description="Up to 10 tags")
    is_premium: bool = Field(False, description="Only paying subscribers can read premium articles")
    excerpt: Optional[str] = Field(None, description="Defaults to the first sentences of the content")
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None


class ArticleUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[List[str]] = None
    is_premium: Optional[bool] = None
    excerpt: Optional[str] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None


class ArticleOut(BaseModel):
    id: UUID
    author_id: UUID
    title: str
    slug: str
    content: str
    excerpt: Optional[str] = None
    status: ArticleStatusEnum
    is_premium: bool
    tags: List[str] = Field(default_factory=list)
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    reading_time: int = Field(description="Minutes")
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ArticleListResponse(BaseModel):
    items: List[ArticleOut]
    total: int


class ArticleTrackRequest(BaseModel):
    event: Literal["page_view", "unique_visitor", "social_share", "newsletter_signup"] = Field(
        description="Counter to increment for today"
    )


class ArticleEngagementRequest(BaseModel):
    avg_time_on_page: int = Field(description="Seconds")
    bounce_rate: float = Field(description="Percent 0-100")
    day: Optional[date] = Field(None, description="Defaults to today (UTC)")


class ArticleAdRevenueRequest(BaseModel):
    amount: int = Field(description="Revenue in cents")
    day: Optional[date] = Field(None, description="Defaults to today (UTC)")


class AnalyticsTotalsOut(BaseModel):
    page_views: int
    unique_visitors: int
    avg_time_on_page: Optional[float] = None
    bounce_rate: Optional[float] = None
    social_shares: int
    ad_revenue: int
    affiliate_clicks: int
    newsletter_signups: int


class DailyArticleMetricsOut(BaseModel):
    date: str
    page_views: int
    unique_visitors: int
    avg_time_on_page: Optional[float] = None
    bounce_rate: Optional[float] = None
    social_shares: int
    ad_revenue: int
    affiliate_clicks: int
    newsletter_signups: int


class ArticlePerformanceOut(BaseModel):
    article_id: UUID
    totals: AnalyticsTotalsOut
    performance_score: int = Field(description="Weighted 0-100 score")
    performance_level: str
    is_high_performance: bool
    time_series: List[DailyArticleMetricsOut]


# =============================================================================
# AD REVENUE
# =============================================================================

class AdRevenueCreate(BaseModel):
    """One day's report from an ad network; repeated reports for the same day and source are summed."""

    date: date
    source: AdSourceEnum
    revenue: int = Field(description="Cents")
    impressions: int = 0
    clicks: int = 0

    model_config = {
        "json_schema_extra": {
            "example": {"date": "2025-01-15", "source": "adsense", "revenue": 100, "impressions": 1000, "clicks": 5}
        }
    }


class AdRevenueUpdate(BaseModel):
    revenue: Optional[int] = None
    impressions: Optional[int] = None
    clicks: Optional[int] = None


class AdRevenueOut(BaseModel):
    id: UUID
    creator_id: UUID
    date: date
    source: AdSourceEnum
    revenue: int
    impressions: int
    clicks: int
    ctr: float = Field(description="Click-through rate, percent")
    rpm: float = Field(description="Revenue per 1000 impressions, cents")
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AdRevenueListResponse(BaseModel):
    items: List[AdRevenueOut]
    total: int


class SourceRevenueOut(BaseModel):
    source: str
    revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float
    percentage: float


class RevenueWindowMetricsOut(BaseModel):
    total_revenue: int
    total_impressions: int
    total_clicks: int
    avg_ctr: float
    avg_rpm: float
    revenue_by_source: List[SourceRevenueOut]


class MonthlySourceBreakdownOut(BaseModel):
    month: str
    total: int
    adsense: int
    media_net: int
    direct: int


class MonthlyRevenueTotalOut(BaseModel):
    year: int
    month: int
    revenue: int = Field(description="Cents")


class PurgeResultOut(BaseModel):
    """Rows removed by a retention purge."""

    deleted: int
    days_to_keep: int


class DailyRevenueOut(BaseModel):
    date: str
    revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float


class SourceComparisonOut(BaseModel):
    source: str
    revenue: int
    previous_revenue: int
    impressions: int
    clicks: int
    ctr: float
    rpm: float
    growth_rate: float


# =============================================================================
# AFFILIATES
# =============================================================================

class AffiliateLinkCreate(BaseModel):
    name: str
    original_url: str
    network: AffiliateNetworkEnum
    commission_rate: float = Field(0, description="Percent 0-100")
    category: Optional[str] = None


class AffiliateLinkUpdate(BaseModel):
    name: Optional[str] = None
    original_url: Optional[str] = None
    network: Optional[AffiliateNetworkEnum] = None
    commission_rate: Optional[float] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class AffiliateLinkOut(BaseModel):
    id: UUID
    creator_id: UUID
    name: str
    original_url: str
    tracking_code: str
    network: AffiliateNetworkEnum
    commission_rate: float
    category: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AffiliateLinkListResponse(BaseModel):
    items: List[AffiliateLinkOut]
    total: int


class LinkDeleteResponse(BaseModel):
    action: Literal["deleted", "deactivated"] = Field(
        description="Links with recorded clicks are deactivated instead of deleted"
    )


class TrackedUrlResponse(BaseModel):
    tracked_url: str


class AttachArticleRequest(BaseModel):
    article_id: UUID


class ConversionRequest(BaseModel):
    tracking_code: str
    commission_amount: int = Field(description="Cents")


class ConversionResponse(BaseModel):
    click_id: UUID


class ClickImport(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    article_id: Optional[UUID] = None
    clicked_at: Optional[datetime] = None


class ClickImportRequest(BaseModel):
    clicks: List[ClickImport]


class ClickImportResponse(BaseModel):
    imported: int


class ClickOut(BaseModel):
    id: UUID
    link_id: UUID
    article_id: Optional[UUID] = None
    clicked_at: datetime
    referrer: Optional[str] = None
    converted: bool
    commission_amount: int
    conversion_date: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LinkPerformanceOut(BaseModel):
    link_id: UUID
    link_name: str
    total_clicks: int
    unique_clicks: int
    conversions: int
    conversion_rate: float
    total_commission: int
    avg_commission_per_conversion: float


class ClickTimePointOut(BaseModel):
    date: str
    clicks: int
    unique_clicks: int
    conversions: int
    commission: int


class SourceArticleOut(BaseModel):
    article_id: Optional[UUID] = None
    article_title: Optional[str] = None
    clicks: int
    conversions: int
    conversion_rate: float
    commission: int


class LinkAnalyticsOut(BaseModel):
    link: AffiliateLinkOut
    performance: LinkPerformanceOut
    performance_level: str
    time_series: List[ClickTimePointOut]
    top_articles: List[SourceArticleOut]


class NetworkPerformanceOut(BaseModel):
    network: str
    total_links: int
    total_clicks: int
    total_conversions: int
    total_commission: int
    conversion_rate: float
    avg_commission_per_conversion: float


class MonthlyCommissionOut(BaseModel):
    month: str
    commission: int
    clicks: int
    conversions: int


class CreatorAffiliateSummaryOut(BaseModel):
    total_links: int
    active_links: int
    total_clicks: int
    total_conversions: int
    total_commission: int
    conversion_rate: float
    top_performing_links: List[LinkPerformanceOut]
    network_breakdown: List[NetworkPerformanceOut]
    monthly_commission: List[MonthlyCommissionOut]


class SuggestionOut(BaseModel):
    type: str
    description: str
    potential_impact: str
    action_required: str


# =============================================================================
# EMAIL CAMPAIGNS
# =============================================================================

class CampaignCreate(BaseModel):
    name: str
    subject: str
    content: str = Field(description="HTML body; supports {{first_name}} style placeholders")
    type: CampaignTypeEnum = CampaignTypeEnum.newsletter
    scheduled_at: Optional[datetime] = Field(None, description="Creates the campaign as scheduled when set")


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    type: Optional[CampaignTypeEnum] = None


class CampaignScheduleRequest(BaseModel):
    scheduled_at: datetime = Field(description="Must be in the future")


class CampaignDuplicateRequest(BaseModel):
    name: Optional[str] = Field(None, description="Defaults to '<name> (Copy)'")


class CampaignSendRequest(BaseModel):
    tag: Optional[str] = Field(None, description="Only send to active subscribers carrying this tag")


class CampaignOut(BaseModel):
    id: UUID
    creator_id: UUID
    name: str
    subject: str
    content: str
    type: CampaignTypeEnum
    status: CampaignStatusEnum
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    recipient_count: int
    open_rate: float
    click_rate: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CampaignListResponse(BaseModel):
    items: List[CampaignOut]
    total: int


class RecipientFailureOut(BaseModel):
    subscriber_id: UUID
    email: str
    error: str


class BulkSendResultOut(BaseModel):
    campaign_id: Optional[UUID] = None
    status: Optional[str] = None
    recipients: int
    sent: int
    failed: int
    failures: List[RecipientFailureOut]


class CampaignPerformanceOut(BaseModel):
    campaign_id: UUID
    status: str
    recipients: int
    delivered: int
    opened: int
    clicked: int
    unsubscribed: int
    delivery_rate: float
    open_rate: float
    click_rate: float
    unsubscribe_rate: float


class CreatorCampaignStatsOut(BaseModel):
    total_campaigns: int
    sent_campaigns: int
    avg_open_rate: float
    avg_click_rate: float
    total_recipients: int


# =============================================================================
# SUBSCRIBERS
# =============================================================================

class SubscriberCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    source: SubscriberSourceEnum = SubscriberSourceEnum.website
    tags: List[str] = Field(default_factory=list, description="Up to 20 tags of 1-50 characters")
    send_welcome: bool = Field(True, description="Send the welcome email after subscribing")


class SubscriberUpdate(BaseModel):
    name: Optional[str] = None
    tags: Optional[List[str]] = None


class UnsubscribeRequest(BaseModel):
    email: EmailStr


class SubscriberOut(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    status: SubscriberStatusEnum
    source: SubscriberSourceEnum
    tags: List[str] = Field(default_factory=list)
    engagement_score: int
    last_opened: Optional[datetime] = None
    subscribed_at: datetime
    unsubscribed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubscriberListResponse(BaseModel):
    items: List[SubscriberOut]
    total: int


class SubscriberStatsOut(BaseModel):
    total: int
    active: int
    unsubscribed: int
    bounced: int
    bounce_rate: float


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

class PlanCreate(BaseModel):
    name: str
    description: str
    price: int = Field(description="Cents per month")
    currency: CurrencyEnum = CurrencyEnum.USD
    features: List[str]

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "Supporter",
                "description": "All premium articles",
                "price": 500,
                "currency": "USD",
                "features": ["Premium articles", "Monthly Q&A"],
            }
        }
    }


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    features: Optional[List[str]] = None


class PlanOut(BaseModel):
    id: UUID
    creator_id: UUID
    name: str
    description: str
    price: int
    currency: CurrencyEnum
    features: List[str]
    is_active: bool
    polar_product_id: Optional[str] = None
    subscriber_count: int = 0
    monthly_revenue: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class CheckoutCreateRequest(BaseModel):
    plan_id: UUID = Field(description="Plan to subscribe to")


class CheckoutCreateResponse(BaseModel):
    checkout_url: str = Field(description="Polar checkout page URL")
    checkout_id: str = Field(description="Polar checkout ID for tracking")
    subscription_id: UUID = Field(description="Local subscription (incomplete until paid)")


class BillingPortalResponse(BaseModel):
    portal_url: str = Field(description="Polar customer portal URL")


class SubscriptionOut(BaseModel):
    id: UUID
    subscriber_id: UUID
    plan_id: UUID
    status: SubscriptionStatusEnum
    polar_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    canceled_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionStatsOut(BaseModel):
    total_subscriptions: int
    active_subscriptions: int
    canceled_subscriptions: int
    monthly_revenue: int
    churn_rate: float
    average_revenue_per_user: int


class AccessLevelResponse(BaseModel):
    access_level: Literal["free", "premium"]


# =============================================================================
# ANALYTICS
# =============================================================================

class ArticleSummaryOut(BaseModel):
    article_id: UUID
    title: str
    slug: str
    page_views: int
    unique_visitors: int
    ad_revenue: int
    performance_score: int
    performance_level: str


class GrowthMetricsOut(BaseModel):
    page_views_growth: float
    revenue_growth: float
    subscriber_growth: float


class DashboardOverviewOut(BaseModel):
    total_page_views: int
    total_unique_visitors: int
    total_revenue: int = Field(description="Cents: ads + subscriptions (MRR) + affiliate commission")
    active_subscriptions: int
    newsletter_subscribers: int
    top_articles: List[ArticleSummaryOut]
    growth: GrowthMetricsOut


class RevenueBreakdownOut(BaseModel):
    ads: float
    subscriptions: float
    affiliates: float


class MonthlyRevenuePointOut(BaseModel):
    month: str
    total: int
    ads: int
    subscriptions: int
    affiliates: int


class RevenueArticleOut(BaseModel):
    article_id: UUID
    title: str
    revenue: int


class RevenueAnalyticsOut(BaseModel):
    total_revenue: int
    ad_revenue: int
    subscription_revenue: int
    affiliate_revenue: int
    breakdown: RevenueBreakdownOut
    monthly_trend: List[MonthlyRevenuePointOut]
    top_revenue_articles: List[RevenueArticleOut]


class TrafficAnalyticsOut(BaseModel):
    total_page_views: int
    total_unique_visitors: int
    average_time_on_page: Optional[float] = None
    average_bounce_rate: Optional[float] = None


class ConversionFunnelOut(BaseModel):
    visitors: int
    email_signups: int
    subscriptions: int
    signup_rate: float
    conversion_rate: float


class EngagementAnalyticsOut(BaseModel):
    total_social_shares: int
    total_newsletter_signups: int
    total_affiliate_clicks: int
    engagement_rate: float
    funnel: ConversionFunnelOut


class TagRollupOut(BaseModel):
    tag: str
    articles: int
    total_views: int
    average_views: float


class ContentPerformanceOut(BaseModel):
    total_articles: int
    published_articles: int
    draft_articles: int
    average_reading_time: float
    top_articles: List[ArticleSummaryOut]
    tags: List[TagRollupOut]
    publishing_trend: List[Dict[str, Any]]


class MetricComparisonOut(BaseModel):
    metric: str
    current: float
    previous: float
    growth: float
    growth_percentage: float
    mode: str


class AnalyticsReportOut(BaseModel):
    overview: DashboardOverviewOut
    revenue: RevenueAnalyticsOut
    traffic: TrafficAnalyticsOut
    engagement: EngagementAnalyticsOut
    content: ContentPerformanceOut
    generated_at: datetime
