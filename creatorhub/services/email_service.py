"""
Email Service
=============

Campaign lifecycle, bulk delivery, engagement tracking and newsletter
subscriber management.

WHAT: Creator-facing campaign operations on top of the campaign and
      delivery-record stores, plus the mailing-list operations and the
      handling of Resend delivery webhooks
WHY: The state machine lives in conditional UPDATEs (see
     stores/email_campaigns.py); this layer validates input, checks
     ownership and turns a refused transition into InvalidStateError.

Sending:
    1. campaign must be draft or scheduled, with at least one active subscriber
    2. draft/scheduled -> sending (conditional, so a second sender loses)
    3. recipients are sent in batches of `batch_size` with
       `batch_delay_seconds` between batches (provider rate limits)
    4. a failed recipient is recorded and the send continues
    5. sending -> sent, or -> failed when no recipient was accepted
    An unexpected error mid-send marks the campaign failed and propagates.

Personalization:
    `{{first_name}}`, `{{full_name}}`, `{{email}}`, `{{unsubscribe_url}}`
    (plus `{{article_title}}` / `{{article_url}}` for article notifications)

Engagement score:
    round(openRate x 40 + clickRate x 60) over deliveries in the last 90 days

References:
- creatorhub/stores/email_campaigns.py: transitions and delivery records
- creatorhub/services/resend_client.py: provider calls
- Resend webhooks: https://resend.com/docs/dashboard/webhooks/event-types
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    AuthorizationError,
    ConflictError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..metrics import formulas
from ..models import (
    Article,
    CampaignTypeEnum,
    EmailCampaign,
    Subscriber,
    SubscriberSourceEnum,
    SubscriberStatusEnum,
)
from ..stores.email_campaigns import (
    CampaignFilters,
    CreatorCampaignStats,
    EmailCampaignStore,
    EmailStatsStore,
    can_delete,
    can_edit,
    can_send,
)
from ..stores.subscribers import SubscriberCounts, SubscriberFilters, SubscriberStore
from ..utils.dates import parse_provider_datetime
from ..utils.text import personalization_variables, personalize
from ..validators import validate_email, validate_enum, validate_int_range, validate_length, validate_string_list
from .resend_client import ResendClient, build_tags

logger = logging.getLogger(__name__)


MAX_CONTENT_LENGTH = 1_000_000
MAX_SUBSCRIBER_TAGS = 20
SUBSCRIBER_TAG_MAX_LENGTH = 50
ENGAGEMENT_WINDOW_DAYS = 90

WELCOME_SUBJECT = "Welcome to our newsletter, {{first_name}}!"
WELCOME_HTML = (
    "<h1>Welcome {{first_name}}!</h1>"
    "<p>Thank you for subscribing to our newsletter. We're excited to have you!</p>"
    "<p>You'll receive our best content directly in your inbox.</p>"
    '<p><a href="{{unsubscribe_url}}">Unsubscribe</a></p>'
)
ARTICLE_SUBJECT = "New article: {{article_title}}"
ARTICLE_HTML = (
    "<h1>New Article Published!</h1>"
    "<h2>{{article_title}}</h2>"
    "<p>We've just published a new article that we think you'll enjoy.</p>"
    '<a href="{{article_url}}">Read Article</a>'
    '<p><a href="{{unsubscribe_url}}">Unsubscribe</a></p>'
)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class RecipientFailure:
    subscriber_id: UUID
    email: str
    error: str


@dataclass
class BulkSendResult:
    recipients: int
    sent: int = 0
    failed: int = 0
    failures: List[RecipientFailure] = field(default_factory=list)
    campaign_id: Optional[UUID] = None
    status: Optional[str] = None


@dataclass
class CampaignPerformance:
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


# =============================================================================
# SERVICE
# =============================================================================

class EmailService:
    def __init__(
        self,
        db: Session,
        email_client=None,
        batch_size: int = 100,
        batch_delay_seconds: float = 1.0,
        frontend_url: str = "http://localhost:3000",
    ):
        self.db = db
        self.email_client = email_client or ResendClient()
        self.batch_size = validate_int_range(batch_size, "batch_size", 1, 1000)
        self.batch_delay_seconds = max(0.0, float(batch_delay_seconds))
        self.frontend_url = frontend_url.rstrip("/")
        self.campaigns = EmailCampaignStore(db)
        self.stats = EmailStatsStore(db)
        self.subscribers = SubscriberStore(db)

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    def create_campaign(
        self,
        creator_id: UUID,
        name: str,
        subject: str,
        content: str,
        type=CampaignTypeEnum.newsletter,
        scheduled_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> EmailCampaign:
        name, subject, content = self._validate_fields(name, subject, content)
        campaign_type = validate_enum(type, CampaignTypeEnum, "type")
        if scheduled_at is not None:
            scheduled_at = self._future_timestamp(scheduled_at, now)
        campaign = self.campaigns.create(creator_id, name, subject, content, campaign_type, scheduled_at)
        logger.info("[EMAIL] Created campaign %s (%s) for creator %s", campaign.id, campaign.status.value, creator_id)
        return campaign

    def get_campaign(self, campaign_id: UUID, creator_id: UUID) -> EmailCampaign:
        return self._get_owned(campaign_id, creator_id)

    def list_campaigns(self, creator_id: UUID, filters: Optional[CampaignFilters] = None,
                       limit: int = 20, offset: int = 0):
        validate_int_range(limit, "limit", 1, 100)
        validate_int_range(offset, "offset", 0, 1_000_000)
        return self.campaigns.list_for_creator(creator_id, filters, limit=limit, offset=offset)

    def update_campaign(self, campaign_id: UUID, creator_id: UUID, name: Optional[str] = None,
                        subject: Optional[str] = None, content: Optional[str] = None,
                        type=None) -> EmailCampaign:
        campaign = self._get_owned(campaign_id, creator_id)
        if not can_edit(campaign):
            raise InvalidStateError("Cannot edit a campaign that has been sent or is currently sending")

        fields = {}
        if name is not None:
            fields["name"] = validate_length(name, "name", 1, 200)
        if subject is not None:
            fields["subject"] = validate_length(subject, "subject", 1, 300)
        if content is not None:
            fields["content"] = validate_length(content, "content", 1, MAX_CONTENT_LENGTH)
        if type is not None:
            fields["type"] = validate_enum(type, CampaignTypeEnum, "type")
        if not fields:
            return campaign

        if not self.campaigns.update_if_editable(campaign.id, fields):
            raise InvalidStateError("Cannot edit a campaign that has been sent or is currently sending")
        return self.campaigns.get(campaign.id)

    def schedule_campaign(self, campaign_id: UUID, creator_id: UUID, scheduled_at: datetime,
                          now: Optional[datetime] = None) -> EmailCampaign:
        campaign = self._get_owned(campaign_id, creator_id)
        if not can_edit(campaign):
            raise InvalidStateError(f"Campaign cannot be scheduled while {campaign.status.value}")
        scheduled_at = self._future_timestamp(scheduled_at, now)
        if not self.campaigns.schedule(campaign.id, scheduled_at):
            raise InvalidStateError("Campaign cannot be scheduled in its current status")
        logger.info("[EMAIL] Scheduled campaign %s for %s", campaign.id, scheduled_at.isoformat())
        return self.campaigns.get(campaign.id)

    def delete_campaign(self, campaign_id: UUID, creator_id: UUID) -> None:
        campaign = self._get_owned(campaign_id, creator_id)
        if not can_delete(campaign):
            raise InvalidStateError("Only draft campaigns can be deleted")
        if not self.campaigns.delete_draft(campaign.id):
            raise InvalidStateError("Only draft campaigns can be deleted")

    def duplicate_campaign(self, campaign_id: UUID, creator_id: UUID, name: Optional[str] = None) -> EmailCampaign:
        """Copy content into a new draft."""
        source = self._get_owned(campaign_id, creator_id)
        if name is None:
            name = f"{source.name} (Copy)"[:200]
        name = validate_length(name, "name", 1, 200)
        return self.campaigns.create(creator_id, name, source.subject, source.content, source.type)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_campaign(self, campaign_id: UUID, creator_id: UUID, tag: Optional[str] = None) -> BulkSendResult:
        campaign = self._get_owned(campaign_id, creator_id)
        if not can_send(campaign):
            raise InvalidStateError(f"Campaign cannot be sent while {campaign.status.value}")
        return await self._send(campaign, tag)

    async def send_due_campaigns(self, now: Optional[datetime] = None) -> List[BulkSendResult]:
        """Send every scheduled campaign whose time has come."""
        results = []
        for campaign in self.campaigns.find_due_scheduled(now):
            try:
                results.append(await self._send(campaign, None))
            except (ValidationError, InvalidStateError) as e:
                logger.warning("[EMAIL] Skipped due campaign %s: %s", campaign.id, e.message)
        return results

    async def _send(self, campaign: EmailCampaign, tag: Optional[str]) -> BulkSendResult:
        recipients = self.subscribers.active_subscribers(tag)
        if not recipients:
            raise ValidationError("No active subscribers found for this campaign", field="recipients")
        if not self.campaigns.start_sending(campaign.id, len(recipients)):
            raise InvalidStateError("Campaign is already being sent")

        campaign_id = campaign.id
        subject, content = campaign.subject, campaign.content
        logger.info("[EMAIL] Sending campaign %s to %d recipients", campaign_id, len(recipients))

        def build(subscriber: Subscriber) -> Dict:
            variables = self._variables(subscriber)
            return {
                "to": subscriber.email,
                "subject": personalize(subject, variables),
                "html": personalize(content, variables),
                "tags": build_tags(campaign_id=campaign_id, subscriber_id=subscriber.id),
            }

        def delivered(subscriber: Subscriber, message_id: Optional[str]) -> None:
            self.stats.mark_delivered(campaign_id, subscriber.id)

        try:
            result = await self._deliver(recipients, build, delivered)
        except Exception:
            logger.exception("[EMAIL] Campaign %s send aborted", campaign_id)
            self.db.rollback()
            self.campaigns.mark_failed(campaign_id)
            raise

        if result.sent:
            self.campaigns.mark_sent(campaign_id)
        else:
            self.campaigns.mark_failed(campaign_id)
        self.refresh_campaign_stats(campaign_id)

        final = self.campaigns.get(campaign_id)
        result.campaign_id = campaign_id
        result.status = final.status.value if final else None
        logger.info(
            "[EMAIL] Campaign %s finished: sent=%d failed=%d status=%s",
            campaign_id, result.sent, result.failed, result.status,
        )
        return result

    async def _deliver(
        self,
        recipients: List[Subscriber],
        build: Callable[[Subscriber], Dict],
        on_sent: Optional[Callable[[Subscriber, Optional[str]], None]] = None,
    ) -> BulkSendResult:
        result = BulkSendResult(recipients=len(recipients))
        for start in range(0, len(recipients), self.batch_size):
            batch = recipients[start:start + self.batch_size]
            for subscriber in batch:
                message = build(subscriber)
                try:
                    message_id = self.email_client.send_email(**message)
                except ExternalServiceError as e:
                    result.failed += 1
                    result.failures.append(
                        RecipientFailure(
                            subscriber_id=subscriber.id,
                            email=subscriber.email,
                            error=e.provider_message or e.message,
                        )
                    )
                    continue
                result.sent += 1
                if on_sent is not None:
                    on_sent(subscriber, message_id)

            if start + self.batch_size < len(recipients) and self.batch_delay_seconds:
                await asyncio.sleep(self.batch_delay_seconds)
        return result

    async def send_welcome_email(self, subscriber: Subscriber) -> bool:
        """Returns False when the provider refused the message."""
        variables = self._variables(subscriber)
        try:
            self.email_client.send_email(
                to=subscriber.email,
                subject=personalize(WELCOME_SUBJECT, variables),
                html=personalize(WELCOME_HTML, variables),
                tags=build_tags(type="welcome", subscriber_id=subscriber.id),
            )
        except ExternalServiceError as e:
            logger.warning("[EMAIL] Welcome email to subscriber %s failed: %s", subscriber.id, e.provider_message)
            return False
        return True

    async def notify_new_article(self, article: Article, tag: Optional[str] = None) -> BulkSendResult:
        """Announce a published article to every active subscriber."""
        if article.published_at is None:
            raise InvalidStateError("Only published articles can be announced")
        recipients = self.subscribers.active_subscribers(tag)
        article_url = f"{self.frontend_url}/articles/{article.slug}"

        def build(subscriber: Subscriber) -> Dict:
            variables = self._variables(subscriber)
            variables.update({"article_title": article.title, "article_url": article_url})
            return {
                "to": subscriber.email,
                "subject": personalize(ARTICLE_SUBJECT, variables),
                "html": personalize(ARTICLE_HTML, variables),
                "tags": build_tags(type="article_notification", article_id=article.id, subscriber_id=subscriber.id),
            }

        result = await self._deliver(recipients, build)
        logger.info("[EMAIL] Article %s notification: sent=%d failed=%d", article.id, result.sent, result.failed)
        return result

    # ------------------------------------------------------------------
    # Engagement tracking
    # ------------------------------------------------------------------

    def track_open(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> bool:
        """Record the first open; returns False for repeats."""
        at = at or datetime.utcnow()
        stored = self.stats.mark_opened(campaign_id, subscriber_id, at)
        if stored:
            self.subscribers.touch_last_opened(subscriber_id, at)
            self.update_engagement_score(subscriber_id)
            self.refresh_campaign_stats(campaign_id)
        return stored

    def track_click(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> bool:
        at = at or datetime.utcnow()
        stored = self.stats.mark_clicked(campaign_id, subscriber_id, at)
        if stored:
            self.subscribers.touch_last_opened(subscriber_id, at)
            self.update_engagement_score(subscriber_id)
            self.refresh_campaign_stats(campaign_id)
        return stored

    def track_unsubscribe(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> None:
        at = at or datetime.utcnow()
        self.stats.mark_unsubscribed(campaign_id, subscriber_id, at)
        subscriber = self.subscribers.get(subscriber_id)
        if subscriber is not None and subscriber.status == SubscriberStatusEnum.active:
            self.subscribers.set_status(subscriber, SubscriberStatusEnum.unsubscribed, at)

    def refresh_campaign_stats(self, campaign_id: UUID) -> Optional[EmailCampaign]:
        return self.campaigns.update_stats(campaign_id, self.stats.campaign_counts(campaign_id))

    def campaign_performance(self, campaign_id: UUID, creator_id: UUID) -> CampaignPerformance:
        campaign = self._get_owned(campaign_id, creator_id)
        counts = self.stats.campaign_counts(campaign.id)
        recipients = campaign.recipient_count or counts.total
        return CampaignPerformance(
            campaign_id=campaign.id,
            status=campaign.status.value,
            recipients=recipients,
            delivered=counts.delivered,
            opened=counts.opened,
            clicked=counts.clicked,
            unsubscribed=counts.unsubscribed,
            delivery_rate=round(formulas.percentage(counts.delivered, recipients), 2),
            open_rate=round(formulas.percentage(counts.opened, counts.delivered), 2),
            click_rate=round(formulas.percentage(counts.clicked, counts.delivered), 2),
            unsubscribe_rate=round(formulas.percentage(counts.unsubscribed, counts.delivered), 2),
        )

    def creator_stats(self, creator_id: UUID) -> CreatorCampaignStats:
        return self.campaigns.creator_stats(creator_id)

    def recent_campaigns(self, creator_id: UUID, limit: int = 5) -> List[EmailCampaign]:
        validate_int_range(limit, "limit", 1, 50)
        return self.campaigns.recent_sent(creator_id, limit)

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def add_subscriber(self, email: str, name: Optional[str] = None, source=SubscriberSourceEnum.website,
                       tags: Optional[List[str]] = None) -> Subscriber:
        email = validate_email(email)
        validate_length(name, "name", 1, 100, required=False)
        source = validate_enum(source, SubscriberSourceEnum, "source")
        tags = validate_string_list(tags, "tags", MAX_SUBSCRIBER_TAGS, SUBSCRIBER_TAG_MAX_LENGTH)

        if self.subscribers.get_by_email(email) is not None:
            raise ConflictError("Email already subscribed", {"field": "email"})
        try:
            subscriber = self.subscribers.create(email, name, source, tags)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Email already subscribed", {"field": "email"})
        logger.info("[EMAIL] Added subscriber %s (source=%s)", subscriber.id, source.value)
        return subscriber

    def get_subscriber(self, subscriber_id: UUID) -> Subscriber:
        subscriber = self.subscribers.get(subscriber_id)
        if subscriber is None:
            raise NotFoundError("Subscriber", subscriber_id)
        return subscriber

    def list_subscribers(self, filters: Optional[SubscriberFilters] = None, limit: int = 50, offset: int = 0):
        validate_int_range(limit, "limit", 1, 500)
        validate_int_range(offset, "offset", 0, 1_000_000)
        return self.subscribers.list(filters, limit=limit, offset=offset)

    def update_subscriber(self, subscriber_id: UUID, name: Optional[str] = None,
                          tags: Optional[List[str]] = None) -> Subscriber:
        subscriber = self.get_subscriber(subscriber_id)
        fields = {}
        if name is not None:
            fields["name"] = validate_length(name, "name", 1, 100)
        if tags is not None:
            fields["tags"] = validate_string_list(tags, "tags", MAX_SUBSCRIBER_TAGS, SUBSCRIBER_TAG_MAX_LENGTH)
        if not fields:
            return subscriber
        return self.subscribers.update(subscriber, **fields)

    def unsubscribe(self, subscriber_id: UUID, at: Optional[datetime] = None) -> Subscriber:
        subscriber = self.get_subscriber(subscriber_id)
        if subscriber.status == SubscriberStatusEnum.unsubscribed:
            return subscriber
        return self.subscribers.set_status(subscriber, SubscriberStatusEnum.unsubscribed, at)

    def unsubscribe_by_email(self, email: str) -> Subscriber:
        subscriber = self.subscribers.get_by_email(validate_email(email))
        if subscriber is None:
            raise NotFoundError("Subscriber")
        return self.unsubscribe(subscriber.id)

    def resubscribe(self, subscriber_id: UUID) -> Subscriber:
        subscriber = self.get_subscriber(subscriber_id)
        if subscriber.status == SubscriberStatusEnum.bounced:
            raise InvalidStateError("Bounced addresses cannot be resubscribed")
        if subscriber.status == SubscriberStatusEnum.active:
            return subscriber
        return self.subscribers.set_status(subscriber, SubscriberStatusEnum.active)

    def mark_bounced(self, subscriber_id: UUID) -> Subscriber:
        subscriber = self.get_subscriber(subscriber_id)
        if subscriber.status == SubscriberStatusEnum.bounced:
            return subscriber
        logger.info("[EMAIL] Subscriber %s bounced", subscriber.id)
        return self.subscribers.set_status(subscriber, SubscriberStatusEnum.bounced)

    def delete_subscriber(self, subscriber_id: UUID) -> None:
        self.subscribers.delete(self.get_subscriber(subscriber_id))

    def subscriber_stats(self) -> SubscriberCounts:
        return self.subscribers.counts()

    def update_engagement_score(self, subscriber_id: UUID, now: Optional[datetime] = None) -> int:
        since = (now or datetime.utcnow()) - timedelta(days=ENGAGEMENT_WINDOW_DAYS)
        counts = self.stats.subscriber_counts(subscriber_id, since=since)
        score = min(100, formulas.engagement_score(counts.delivered, counts.opened, counts.clicked))
        self.subscribers.set_engagement_score(subscriber_id, score)
        return score

    # ------------------------------------------------------------------
    # Provider webhooks
    # ------------------------------------------------------------------

    def handle_resend_event(self, event_type: str, data: Dict, occurred_at=None) -> str:
        """Apply one Resend webhook event; returns the action taken."""
        data = data or {}
        at = parse_provider_datetime(occurred_at) or parse_provider_datetime(data.get("created_at")) or datetime.utcnow()
        tags = _event_tags(data)
        campaign = self._campaign_from_tags(tags)
        subscriber = self._subscriber_from_event(tags, data)

        if event_type == "contact.updated":
            if subscriber is None or not data.get("unsubscribed"):
                return "ignored"
            self.unsubscribe(subscriber.id, at)
            return "unsubscribed"

        if subscriber is None:
            logger.info("[WEBHOOK] Resend %s without a known subscriber", event_type)
            return "ignored"

        if event_type == "email.bounced":
            self.mark_bounced(subscriber.id)
            return "bounced"

        if event_type == "email.complained":
            if campaign is not None:
                self.stats.mark_unsubscribed(campaign.id, subscriber.id, at)
            self.unsubscribe(subscriber.id, at)
            return "unsubscribed"

        if campaign is None:
            return "ignored"

        if event_type == "email.delivered":
            self.stats.mark_delivered(campaign.id, subscriber.id, at)
            self.refresh_campaign_stats(campaign.id)
            return "delivered"
        if event_type == "email.opened":
            return "opened" if self.track_open(campaign.id, subscriber.id, at) else "duplicate"
        if event_type == "email.clicked":
            return "clicked" if self.track_click(campaign.id, subscriber.id, at) else "duplicate"
        return "ignored"

    def _campaign_from_tags(self, tags: Dict[str, str]) -> Optional[EmailCampaign]:
        campaign_id = _as_uuid(tags.get("campaign_id"))
        return self.campaigns.get(campaign_id) if campaign_id else None

    def _subscriber_from_event(self, tags: Dict[str, str], data: Dict) -> Optional[Subscriber]:
        subscriber_id = _as_uuid(tags.get("subscriber_id"))
        if subscriber_id is not None:
            subscriber = self.subscribers.get(subscriber_id)
            if subscriber is not None:
                return subscriber
        email = data.get("email")
        if not email:
            recipients = data.get("to") or []
            email = recipients[0] if isinstance(recipients, list) and recipients else recipients or None
        if not email or not isinstance(email, str):
            return None
        return self.subscribers.get_by_email(email)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_owned(self, campaign_id: UUID, creator_id: UUID) -> EmailCampaign:
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            raise NotFoundError("Email campaign", campaign_id)
        if campaign.creator_id != creator_id:
            raise AuthorizationError("You can only manage your own campaigns")
        return campaign

    def _variables(self, subscriber: Subscriber) -> Dict[str, str]:
        variables = personalization_variables(subscriber.email, subscriber.name)
        variables["unsubscribe_url"] = f"{self.frontend_url}/newsletter/unsubscribe/{subscriber.id}"
        return variables

    @staticmethod
    def _validate_fields(name: str, subject: str, content: str):
        return (
            validate_length(name, "name", 1, 200),
            validate_length(subject, "subject", 1, 300),
            validate_length(content, "content", 1, MAX_CONTENT_LENGTH),
        )

    @staticmethod
    def _future_timestamp(value: datetime, now: Optional[datetime]) -> datetime:
        parsed = parse_provider_datetime(value)
        if parsed is None:
            raise ValidationError("scheduled_at must be an ISO 8601 timestamp", field="scheduled_at")
        if parsed <= (now or datetime.utcnow()):
            raise ValidationError("Scheduled time must be in the future", field="scheduled_at")
        return parsed


def _event_tags(data: Dict) -> Dict[str, str]:
    """Resend echoes tags either as a mapping or as a list of {name, value}."""
    tags = data.get("tags") or {}
    if isinstance(tags, dict):
        return {str(k): str(v) for k, v in tags.items()}
    result = {}
    for item in tags:
        if isinstance(item, dict) and "name" in item:
            result[str(item["name"])] = str(item.get("value", ""))
    return result


def _as_uuid(value) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
