"""Initial creator platform schema

Revision ID: 20250301_000001
Revises:
Create Date: 2025-03-01 09:00:00.000000

WHAT:
    Creates every creatorhub table:
    - users, articles, article_analytics
    - ad_revenue
    - affiliate_links, affiliate_link_stats, article_affiliate_links
    - subscribers, email_campaigns, email_campaign_stats
    - subscription_plans, subscriptions
    - payment_webhook_events

WHY:
    The write paths rely on unique constraints for atomic upserts
    (ad_revenue per creator/date/source, article_analytics per article/date,
    email_campaign_stats per campaign/subscriber) and on the webhook
    event_key for idempotency, so they are created here rather than
    added later.

REFERENCES:
    - creatorhub/models.py
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20250301_000001'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "userrole": ("creator", "subscriber", "admin"),
    "articlestatus": ("draft", "published", "archived"),
    "adsource": ("adsense", "media_net", "direct"),
    "affiliatenetwork": ("amazon", "shareasale", "cj", "custom"),
    "campaigntype": ("newsletter", "automation", "announcement"),
    "campaignstatus": ("draft", "scheduled", "sending", "sent", "failed"),
    "subscriberstatus": ("active", "unsubscribed", "bounced"),
    "subscribersource": ("website", "social", "referral", "import"),
    "subscriptionstatus": ("incomplete", "active", "past_due", "canceled"),
    "currency": ("USD", "EUR", "GBP", "CAD", "AUD", "JPY"),
}


def _enum(name: str) -> postgresql.ENUM:
    # Types are created up front in upgrade()
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Enum types
    # =========================================================================
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # =========================================================================
    # STEP 2: Users and articles
    # =========================================================================
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False),
        sa.Column("polar_customer_id", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "articles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("author_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.Text(), nullable=True),
        sa.Column("status", _enum("articlestatus"), nullable=False),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("seo_title", sa.String(200), nullable=True),
        sa.Column("seo_description", sa.String(300), nullable=True),
        sa.Column("reading_time", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("author_id", "slug", name="uq_article_author_slug"),
    )
    op.create_index("ix_articles_author_id", "articles", ["author_id"])

    op.create_table(
        "article_analytics",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("article_id", _uuid(), sa.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("page_views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unique_visitors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_time_on_page", sa.Integer(), nullable=True),
        sa.Column("bounce_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("social_shares", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ad_revenue", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("affiliate_clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("newsletter_signups", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("article_id", "date", name="uq_article_analytics_article_date"),
    )
    op.create_index("ix_article_analytics_article_id", "article_analytics", ["article_id"])
    op.create_index("ix_article_analytics_date", "article_analytics", ["date"])

    # =========================================================================
    # STEP 3: Ad revenue
    # =========================================================================
    op.create_table(
        "ad_revenue",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("creator_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("source", _enum("adsource"), nullable=False),
        sa.Column("revenue", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("impressions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("clicks", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ctr", sa.Numeric(8, 4), nullable=False, server_default="0"),
        sa.Column("rpm", sa.Numeric(12, 4), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("creator_id", "date", "source", name="uq_ad_revenue_creator_date_source"),
    )
    op.create_index("ix_ad_revenue_creator_id", "ad_revenue", ["creator_id"])
    op.create_index("ix_ad_revenue_date", "ad_revenue", ["date"])

    # =========================================================================
    # STEP 4: Affiliate links and clicks
    # =========================================================================
    op.create_table(
        "affiliate_links",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("creator_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("tracking_code", sa.String(16), nullable=False),
        sa.Column("network", _enum("affiliatenetwork"), nullable=False),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_affiliate_links_creator_id", "affiliate_links", ["creator_id"])
    op.create_index("ix_affiliate_links_tracking_code", "affiliate_links", ["tracking_code"], unique=True)

    op.create_table(
        "affiliate_link_stats",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("link_id", _uuid(), sa.ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("article_id", _uuid(), sa.ForeignKey("articles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("clicked_at", sa.DateTime(), nullable=False),
        sa.Column("ip_address_hash", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("converted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("commission_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conversion_date", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_affiliate_link_stats_link_clicked", "affiliate_link_stats", ["link_id", "clicked_at"])
    op.create_index("ix_affiliate_link_stats_article_id", "affiliate_link_stats", ["article_id"])

    op.create_table(
        "article_affiliate_links",
        sa.Column("article_id", _uuid(), sa.ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "affiliate_link_id", _uuid(), sa.ForeignKey("affiliate_links.id", ondelete="CASCADE"), primary_key=True
        ),
    )

    # =========================================================================
    # STEP 5: Newsletter subscribers and email campaigns
    # =========================================================================
    op.create_table(
        "subscribers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("status", _enum("subscriberstatus"), nullable=False),
        sa.Column("source", _enum("subscribersource"), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("engagement_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_opened", sa.DateTime(), nullable=True),
        sa.Column("subscribed_at", sa.DateTime(), nullable=False),
        sa.Column("unsubscribed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_subscribers_email", "subscribers", ["email"], unique=True)

    op.create_table(
        "email_campaigns",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("creator_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subject", sa.String(300), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", _enum("campaigntype"), nullable=False),
        sa.Column("status", _enum("campaignstatus"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("recipient_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("open_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("click_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_email_campaigns_creator_id", "email_campaigns", ["creator_id"])

    op.create_table(
        "email_campaign_stats",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("campaign_id", _uuid(), sa.ForeignKey("email_campaigns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subscriber_id", _uuid(), sa.ForeignKey("subscribers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("opened_at", sa.DateTime(), nullable=True),
        sa.Column("clicked_at", sa.DateTime(), nullable=True),
        sa.Column("unsubscribed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("campaign_id", "subscriber_id", name="uq_email_stats_campaign_subscriber"),
    )
    op.create_index("ix_email_campaign_stats_campaign_id", "email_campaign_stats", ["campaign_id"])
    op.create_index("ix_email_campaign_stats_subscriber_id", "email_campaign_stats", ["subscriber_id"])

    # =========================================================================
    # STEP 6: Paid subscriptions and webhook ledger
    # =========================================================================
    op.create_table(
        "subscription_plans",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("creator_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("currency", _enum("currency"), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("polar_product_id", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_subscription_plans_creator_id", "subscription_plans", ["creator_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("subscriber_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "plan_id", _uuid(), sa.ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("polar_subscription_id", sa.String(), nullable=True, unique=True),
        sa.Column("polar_checkout_id", sa.String(), nullable=True, unique=True),
        sa.Column("status", _enum("subscriptionstatus"), nullable=False),
        sa.Column("current_period_start", sa.DateTime(), nullable=True),
        sa.Column("current_period_end", sa.DateTime(), nullable=True),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("canceled_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_subscriptions_subscriber_id", "subscriptions", ["subscriber_id"])
    op.create_index("ix_subscriptions_plan_id", "subscriptions", ["plan_id"])

    op.create_table(
        "payment_webhook_events",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("event_key", sa.String(), nullable=False, unique=True),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("data_id", sa.String(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("processing_result", sa.String(), nullable=True),
        sa.Column("received_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "payment_webhook_events",
        "subscriptions",
        "subscription_plans",
        "email_campaign_stats",
        "email_campaigns",
        "subscribers",
        "article_affiliate_links",
        "affiliate_link_stats",
        "affiliate_links",
        "ad_revenue",
        "article_analytics",
        "articles",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
