"""SQLAlchemy ORM models and enums.

This module defines the creator-platform schema using UUID primary keys and
explicit relationships. Every creator-scoped table carries the owner's id
(`creator_id` / `author_id`) so the service layer can enforce ownership.

Uniqueness that the write paths rely on for atomic upserts:
  - ad_revenue (creator_id, date, source)
  - article_analytics (article_id, date)
  - email_campaign_stats (campaign_id, subscriber_id)
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class RoleEnum(str, enum.Enum):
    creator = "creator"
    subscriber = "subscriber"
    admin = "admin"


class ArticleStatusEnum(str, enum.Enum):
    draft = "draft"
    published = "published"
    archived = "archived"


class AdSourceEnum(str, enum.Enum):
    adsense = "adsense"
    media_net = "media_net"
    direct = "direct"


class AffiliateNetworkEnum(str, enum.Enum):
    amazon = "amazon"
    shareasale = "shareasale"
    cj = "cj"
    custom = "custom"


class CampaignTypeEnum(str, enum.Enum):
    newsletter = "newsletter"
    automation = "automation"
    announcement = "announcement"


class CampaignStatusEnum(str, enum.Enum):
    draft = "draft"
    scheduled = "scheduled"
    sending = "sending"
    sent = "sent"
    failed = "failed"


class SubscriberStatusEnum(str, enum.Enum):
    active = "active"
    unsubscribed = "unsubscribed"
    bounced = "bounced"


class SubscriberSourceEnum(str, enum.Enum):
    website = "website"
    social = "social"
    referral = "referral"
    import_ = "import"


class SubscriptionStatusEnum(str, enum.Enum):
    incomplete = "incomplete"
    active = "active"
    past_due = "past_due"
    canceled = "canceled"


class CurrencyEnum(str, enum.Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    JPY = "JPY"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# Association tables ---------------------------------------------

article_affiliate_links = Table(
    "article_affiliate_links",
    Base.metadata,
    Column("article_id", UUID(as_uuid=True), ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
    Column("affiliate_link_id", UUID(as_uuid=True), ForeignKey("affiliate_links.id", ondelete="CASCADE"), primary_key=True),
)


# Core ---------------------------------------------------------------

class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    role = Column(Enum(RoleEnum, name="userrole", values_callable=_enum_values), nullable=False, default=RoleEnum.creator)
    polar_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    articles = relationship("Article", back_populates="author")
    subscriptions = relationship("Subscription", back_populates="subscriber")

    def __str__(self):
        return f"{self.name} ({self.email})"


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (UniqueConstraint("author_id", "slug", name="uq_article_author_slug"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    author_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    excerpt = Column(Text, nullable=True)
    status = Column(
        Enum(ArticleStatusEnum, name="articlestatus", values_callable=_enum_values),
        nullable=False,
        default=ArticleStatusEnum.draft,
    )
    is_premium = Column(Boolean, nullable=False, default=False)
    tags = Column(JSON, nullable=False, default=list)
    seo_title = Column(String(200), nullable=True)
    seo_description = Column(String(300), nullable=True)
    reading_time = Column(Integer, nullable=False, default=1)  # minutes
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    author = relationship("User", back_populates="articles")
    analytics = relationship("ArticleAnalytics", back_populates="article", cascade="all, delete-orphan")
    affiliate_links = relationship("AffiliateLink", secondary=article_affiliate_links, back_populates="articles")

    def __str__(self):
        return self.title


class ArticleAnalytics(Base):
    """Per-day counters for one article."""

    __tablename__ = "article_analytics"
    __table_args__ = (UniqueConstraint("article_id", "date", name="uq_article_analytics_article_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    article_id = Column(UUID(as_uuid=True), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    page_views = Column(Integer, nullable=False, default=0)
    unique_visitors = Column(Integer, nullable=False, default=0)
    avg_time_on_page = Column(Integer, nullable=True)  # seconds; NULL until an engagement snapshot lands
    bounce_rate = Column(Numeric(5, 2), nullable=True)  # percent 0-100; NULL until an engagement snapshot lands
    social_shares = Column(Integer, nullable=False, default=0)
    ad_revenue = Column(Integer, nullable=False, default=0)  # cents
    affiliate_clicks = Column(Integer, nullable=False, default=0)
    newsletter_signups = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    article = relationship("Article", back_populates="analytics")


# Ad revenue -----------------------------------------------------------

class AdRevenue(Base):
    """Daily ad revenue per creator and source. ctr/rpm are derived columns."""

    __tablename__ = "ad_revenue"
    __table_args__ = (UniqueConstraint("creator_id", "date", "source", name="uq_ad_revenue_creator_date_source"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    source = Column(Enum(AdSourceEnum, name="adsource", values_callable=_enum_values), nullable=False)
    revenue = Column(Integer, nullable=False, default=0)  # cents
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    ctr = Column(Numeric(8, 4), nullable=False, default=0)  # percent
    rpm = Column(Numeric(12, 4), nullable=False, default=0)  # cents per 1000 impressions
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# Affiliate -----------------------------------------------------------

class AffiliateLink(Base):
    __tablename__ = "affiliate_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    original_url = Column(Text, nullable=False)
    tracking_code = Column(String(16), nullable=False, unique=True, index=True)
    network = Column(Enum(AffiliateNetworkEnum, name="affiliatenetwork", values_callable=_enum_values), nullable=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    category = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    clicks = relationship("AffiliateClick", back_populates="link", cascade="all, delete-orphan")
    articles = relationship("Article", secondary=article_affiliate_links, back_populates="affiliate_links")

    def __str__(self):
        return f"{self.name} [{self.tracking_code}]"


class AffiliateClick(Base):
    """One click on a tracked link. The visitor IP is stored only as a hash."""

    __tablename__ = "affiliate_link_stats"
    __table_args__ = (
        Index("ix_affiliate_link_stats_link_clicked", "link_id", "clicked_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    link_id = Column(UUID(as_uuid=True), ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False)
    article_id = Column(UUID(as_uuid=True), ForeignKey("articles.id", ondelete="SET NULL"), nullable=True, index=True)
    clicked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip_address_hash = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    converted = Column(Boolean, nullable=False, default=False)
    commission_amount = Column(Integer, nullable=False, default=0)  # cents
    conversion_date = Column(DateTime, nullable=True)

    link = relationship("AffiliateLink", back_populates="clicks")


# Email ---------------------------------------------------------------

class Subscriber(Base):
    """Newsletter subscriber (mailing list member, not a paying user)."""

    __tablename__ = "subscribers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    status = Column(
        Enum(SubscriberStatusEnum, name="subscriberstatus", values_callable=_enum_values),
        nullable=False,
        default=SubscriberStatusEnum.active,
    )
    source = Column(
        Enum(SubscriberSourceEnum, name="subscribersource", values_callable=_enum_values),
        nullable=False,
        default=SubscriberSourceEnum.website,
    )
    tags = Column(JSON, nullable=False, default=list)
    engagement_score = Column(Integer, nullable=False, default=0)
    last_opened = Column(DateTime, nullable=True)
    subscribed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    unsubscribed_at = Column(DateTime, nullable=True)

    def __str__(self):
        return self.email


class EmailCampaign(Base):
    __tablename__ = "email_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    subject = Column(String(300), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(
        Enum(CampaignTypeEnum, name="campaigntype", values_callable=_enum_values),
        nullable=False,
        default=CampaignTypeEnum.newsletter,
    )
    status = Column(
        Enum(CampaignStatusEnum, name="campaignstatus", values_callable=_enum_values),
        nullable=False,
        default=CampaignStatusEnum.draft,
    )
    scheduled_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, nullable=False, default=0)
    open_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    click_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    stats = relationship("EmailCampaignStat", back_populates="campaign", cascade="all, delete-orphan")

    def __str__(self):
        return self.name


class EmailCampaignStat(Base):
    """Delivery record for one (campaign, subscriber) pair.

    opened_at and clicked_at are first-event timestamps and never overwritten.
    """

    __tablename__ = "email_campaign_stats"
    __table_args__ = (UniqueConstraint("campaign_id", "subscriber_id", name="uq_email_stats_campaign_subscriber"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("email_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    subscriber_id = Column(UUID(as_uuid=True), ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False, index=True)
    delivered_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    clicked_at = Column(DateTime, nullable=True)
    unsubscribed_at = Column(DateTime, nullable=True)

    campaign = relationship("EmailCampaign", back_populates="stats")
    subscriber = relationship("Subscriber")


# Subscriptions -------------------------------------------------------

class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    price = Column(Integer, nullable=False)  # cents per month
    currency = Column(Enum(CurrencyEnum, name="currency", values_callable=_enum_values), nullable=False, default=CurrencyEnum.USD)
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    polar_product_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    subscriptions = relationship("Subscription", back_populates="plan")

    def __str__(self):
        return self.name


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subscriber_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False, index=True)
    polar_subscription_id = Column(String, nullable=True, unique=True)
    polar_checkout_id = Column(String, nullable=True, unique=True)
    status = Column(
        Enum(SubscriptionStatusEnum, name="subscriptionstatus", values_callable=_enum_values),
        nullable=False,
        default=SubscriptionStatusEnum.incomplete,
    )
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    subscriber = relationship("User", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan", back_populates="subscriptions")


class WebhookEvent(Base):
    """Idempotency ledger for provider webhooks (Polar, Resend)."""

    __tablename__ = "payment_webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String(32), nullable=False)
    event_key = Column(String, nullable=False, unique=True)
    event_type = Column(String, nullable=False)
    data_id = Column(String, nullable=True)
    payload_json = Column(JSON, nullable=True)
    processing_result = Column(String, nullable=True)
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
