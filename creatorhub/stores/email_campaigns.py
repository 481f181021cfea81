"""Email campaign and delivery-record stores.

WHAT: Campaign lifecycle persistence and per-(campaign, subscriber) stats
WHY: Every lifecycle transition is a conditional UPDATE guarded by the
     allowed source states, so two concurrent requests cannot both move a
     campaign (e.g. both start sending it).

State machine:

    draft ──► scheduled ──► sending ──► sent
      │           │            │
      └───────────┴────────────┴──► failed

  - editable:  draft, scheduled
  - deletable: draft
  - sendable:  draft, scheduled

Delivery records:
  - one row per (campaign, subscriber)
  - opened_at / clicked_at keep the FIRST event and are never overwritten
  - a click with no prior open backfills opened_at with the click time
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..models import (
    CampaignStatusEnum,
    CampaignTypeEnum,
    EmailCampaign,
    EmailCampaignStat,
)
from .base import as_float, as_int, upsert_insert

logger = logging.getLogger(__name__)


EDITABLE_STATUSES = (CampaignStatusEnum.draft, CampaignStatusEnum.scheduled)
DELETABLE_STATUSES = (CampaignStatusEnum.draft,)
SENDABLE_STATUSES = (CampaignStatusEnum.draft, CampaignStatusEnum.scheduled)
FAILABLE_STATUSES = (CampaignStatusEnum.draft, CampaignStatusEnum.scheduled, CampaignStatusEnum.sending)


def can_edit(campaign: EmailCampaign) -> bool:
    return campaign.status in EDITABLE_STATUSES


def can_delete(campaign: EmailCampaign) -> bool:
    return campaign.status in DELETABLE_STATUSES


def can_send(campaign: EmailCampaign) -> bool:
    return campaign.status in SENDABLE_STATUSES


def _positive(column):
    """NULL for zero rates so AVG only counts campaigns that registered any."""
    return case((column > 0, column), else_=None)


@dataclass
class CampaignFilters:
    status: Optional[CampaignStatusEnum] = None
    type: Optional[CampaignTypeEnum] = None
    search: Optional[str] = None

    def apply(self, query):
        if self.status is not None:
            query = query.filter(EmailCampaign.status == self.status)
        if self.type is not None:
            query = query.filter(EmailCampaign.type == self.type)
        if self.search:
            pattern = f"%{self.search}%"
            query = query.filter(or_(EmailCampaign.name.ilike(pattern), EmailCampaign.subject.ilike(pattern)))
        return query


@dataclass
class DeliveryCounts:
    total: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    unsubscribed: int = 0


@dataclass
class CreatorCampaignStats:
    total_campaigns: int
    sent_campaigns: int
    avg_open_rate: float
    avg_click_rate: float
    total_recipients: int


# =============================================================================
# CAMPAIGNS
# =============================================================================

class EmailCampaignStore:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        creator_id: UUID,
        name: str,
        subject: str,
        content: str,
        type: CampaignTypeEnum = CampaignTypeEnum.newsletter,
        scheduled_at: Optional[datetime] = None,
    ) -> EmailCampaign:
        campaign = EmailCampaign(
            creator_id=creator_id,
            name=name,
            subject=subject,
            content=content,
            type=type,
            scheduled_at=scheduled_at,
            status=CampaignStatusEnum.scheduled if scheduled_at else CampaignStatusEnum.draft,
        )
        self.db.add(campaign)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def get(self, campaign_id: UUID) -> Optional[EmailCampaign]:
        return (
            self.db.query(EmailCampaign)
            .populate_existing()
            .filter(EmailCampaign.id == campaign_id)
            .first()
        )

    def list_for_creator(self, creator_id: UUID, filters: Optional[CampaignFilters] = None,
                         limit: int = 20, offset: int = 0):
        query = self.db.query(EmailCampaign).filter(EmailCampaign.creator_id == creator_id)
        query = (filters or CampaignFilters()).apply(query)
        total = query.count()
        campaigns = query.order_by(EmailCampaign.created_at.desc()).limit(limit).offset(offset).all()
        return campaigns, total

    # ------------------------------------------------------------------
    # Conditional transitions
    # ------------------------------------------------------------------

    def _transition(self, campaign_id: UUID, allowed: Iterable[CampaignStatusEnum], values: Dict) -> bool:
        values = dict(values)
        values[EmailCampaign.updated_at] = datetime.utcnow()
        updated = (
            self.db.query(EmailCampaign)
            .filter(EmailCampaign.id == campaign_id, EmailCampaign.status.in_(list(allowed)))
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def update_if_editable(self, campaign_id: UUID, fields: Dict) -> bool:
        values = {getattr(EmailCampaign, key): value for key, value in fields.items()}
        return self._transition(campaign_id, EDITABLE_STATUSES, values)

    def schedule(self, campaign_id: UUID, scheduled_at: datetime) -> bool:
        return self._transition(
            campaign_id,
            EDITABLE_STATUSES,
            {EmailCampaign.status: CampaignStatusEnum.scheduled, EmailCampaign.scheduled_at: scheduled_at},
        )

    def start_sending(self, campaign_id: UUID, recipient_count: int) -> bool:
        return self._transition(
            campaign_id,
            SENDABLE_STATUSES,
            {EmailCampaign.status: CampaignStatusEnum.sending, EmailCampaign.recipient_count: recipient_count},
        )

    def mark_sent(self, campaign_id: UUID, sent_at: Optional[datetime] = None) -> bool:
        return self._transition(
            campaign_id,
            (CampaignStatusEnum.sending,),
            {EmailCampaign.status: CampaignStatusEnum.sent, EmailCampaign.sent_at: sent_at or datetime.utcnow()},
        )

    def mark_failed(self, campaign_id: UUID) -> bool:
        return self._transition(campaign_id, FAILABLE_STATUSES, {EmailCampaign.status: CampaignStatusEnum.failed})

    def delete_draft(self, campaign_id: UUID) -> bool:
        deleted = (
            self.db.query(EmailCampaign)
            .filter(EmailCampaign.id == campaign_id, EmailCampaign.status.in_(list(DELETABLE_STATUSES)))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted == 1

    # ------------------------------------------------------------------
    # Stats rollups
    # ------------------------------------------------------------------

    def update_stats(self, campaign_id: UUID, counts: DeliveryCounts) -> Optional[EmailCampaign]:
        """Store open/click rates as percentages of delivered, 2 decimals."""
        campaign = self.get(campaign_id)
        if campaign is None:
            return None
        campaign.open_rate = round(formulas.percentage(counts.opened, counts.delivered), 2)
        campaign.click_rate = round(formulas.percentage(counts.clicked, counts.delivered), 2)
        self.db.commit()
        self.db.refresh(campaign)
        return campaign

    def find_due_scheduled(self, now: Optional[datetime] = None) -> List[EmailCampaign]:
        now = now or datetime.utcnow()
        return (
            self.db.query(EmailCampaign)
            .filter(EmailCampaign.status == CampaignStatusEnum.scheduled, EmailCampaign.scheduled_at <= now)
            .order_by(EmailCampaign.scheduled_at.asc())
            .all()
        )

    def recent_sent(self, creator_id: UUID, limit: int = 5) -> List[EmailCampaign]:
        return (
            self.db.query(EmailCampaign)
            .filter(EmailCampaign.creator_id == creator_id, EmailCampaign.status == CampaignStatusEnum.sent)
            .order_by(EmailCampaign.sent_at.desc())
            .limit(limit)
            .all()
        )

    def creator_stats(self, creator_id: UUID) -> CreatorCampaignStats:
        sent = EmailCampaign.status == CampaignStatusEnum.sent
        total = (
            self.db.query(func.count(EmailCampaign.id))
            .filter(EmailCampaign.creator_id == creator_id)
            .scalar()
        )
        row = (
            self.db.query(
                func.count(EmailCampaign.id).label("sent"),
                func.coalesce(func.avg(_positive(EmailCampaign.open_rate)), 0).label("avg_open"),
                func.coalesce(func.avg(_positive(EmailCampaign.click_rate)), 0).label("avg_click"),
                func.coalesce(func.sum(EmailCampaign.recipient_count), 0).label("recipients"),
            )
            .filter(EmailCampaign.creator_id == creator_id, sent)
            .one()
        )
        return CreatorCampaignStats(
            total_campaigns=as_int(total),
            sent_campaigns=as_int(row.sent),
            avg_open_rate=round(as_float(row.avg_open), 2),
            avg_click_rate=round(as_float(row.avg_click), 2),
            total_recipients=as_int(row.recipients),
        )


# =============================================================================
# DELIVERY RECORDS
# =============================================================================

class EmailStatsStore:
    def __init__(self, db: Session):
        self.db = db

    def _ensure_row(self, campaign_id: UUID, subscriber_id: UUID, delivered_at: datetime) -> None:
        stmt = upsert_insert(self.db, EmailCampaignStat).values(
            campaign_id=campaign_id, subscriber_id=subscriber_id, delivered_at=delivered_at
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["campaign_id", "subscriber_id"])
        self.db.execute(stmt)

    def mark_delivered(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> None:
        at = at or datetime.utcnow()
        stmt = upsert_insert(self.db, EmailCampaignStat).values(
            campaign_id=campaign_id, subscriber_id=subscriber_id, delivered_at=at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["campaign_id", "subscriber_id"],
            set_={"delivered_at": func.coalesce(EmailCampaignStat.delivered_at, stmt.excluded.delivered_at)},
        )
        self.db.execute(stmt)
        self.db.commit()

    def mark_opened(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> bool:
        """Record the first open; later opens are ignored. Returns True if stored."""
        at = at or datetime.utcnow()
        self._ensure_row(campaign_id, subscriber_id, datetime.utcnow())
        updated = (
            self._pair(campaign_id, subscriber_id)
            .filter(EmailCampaignStat.opened_at.is_(None))
            .update({EmailCampaignStat.opened_at: at}, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def mark_clicked(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> bool:
        """Record the first click; backfills opened_at when no open was seen."""
        at = at or datetime.utcnow()
        self._ensure_row(campaign_id, subscriber_id, datetime.utcnow())
        updated = (
            self._pair(campaign_id, subscriber_id)
            .filter(EmailCampaignStat.clicked_at.is_(None))
            .update(
                {
                    EmailCampaignStat.clicked_at: at,
                    EmailCampaignStat.opened_at: func.coalesce(EmailCampaignStat.opened_at, at),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return updated == 1

    def mark_unsubscribed(self, campaign_id: UUID, subscriber_id: UUID, at: Optional[datetime] = None) -> bool:
        at = at or datetime.utcnow()
        self._ensure_row(campaign_id, subscriber_id, datetime.utcnow())
        updated = (
            self._pair(campaign_id, subscriber_id)
            .filter(EmailCampaignStat.unsubscribed_at.is_(None))
            .update({EmailCampaignStat.unsubscribed_at: at}, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def get(self, campaign_id: UUID, subscriber_id: UUID) -> Optional[EmailCampaignStat]:
        return self._pair(campaign_id, subscriber_id).populate_existing().first()

    def campaign_counts(self, campaign_id: UUID) -> DeliveryCounts:
        row = (
            self.db.query(
                func.count(EmailCampaignStat.id).label("total"),
                func.count(EmailCampaignStat.delivered_at).label("delivered"),
                func.count(EmailCampaignStat.opened_at).label("opened"),
                func.count(EmailCampaignStat.clicked_at).label("clicked"),
                func.count(EmailCampaignStat.unsubscribed_at).label("unsubscribed"),
            )
            .filter(EmailCampaignStat.campaign_id == campaign_id)
            .one()
        )
        return DeliveryCounts(
            total=as_int(row.total),
            delivered=as_int(row.delivered),
            opened=as_int(row.opened),
            clicked=as_int(row.clicked),
            unsubscribed=as_int(row.unsubscribed),
        )

    def subscriber_counts(self, subscriber_id: UUID, since: Optional[datetime] = None) -> DeliveryCounts:
        query = self.db.query(
            func.count(EmailCampaignStat.id).label("total"),
            func.count(EmailCampaignStat.delivered_at).label("delivered"),
            func.count(EmailCampaignStat.opened_at).label("opened"),
            func.count(EmailCampaignStat.clicked_at).label("clicked"),
            func.count(EmailCampaignStat.unsubscribed_at).label("unsubscribed"),
        ).filter(EmailCampaignStat.subscriber_id == subscriber_id)
        if since is not None:
            query = query.filter(EmailCampaignStat.delivered_at >= since)
        row = query.one()
        return DeliveryCounts(
            total=as_int(row.total),
            delivered=as_int(row.delivered),
            opened=as_int(row.opened),
            clicked=as_int(row.clicked),
            unsubscribed=as_int(row.unsubscribed),
        )

    def _pair(self, campaign_id: UUID, subscriber_id: UUID):
        return self.db.query(EmailCampaignStat).filter(
            EmailCampaignStat.campaign_id == campaign_id,
            EmailCampaignStat.subscriber_id == subscriber_id,
        )
