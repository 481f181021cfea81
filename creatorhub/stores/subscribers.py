"""Newsletter subscriber store."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Session

from ..metrics import formulas
from ..metrics.timeframe import TimeWindow
from ..models import Subscriber, SubscriberSourceEnum, SubscriberStatusEnum
from .base import as_int


@dataclass
class SubscriberFilters:
    status: Optional[SubscriberStatusEnum] = None
    source: Optional[SubscriberSourceEnum] = None
    tag: Optional[str] = None
    search: Optional[str] = None

    def apply(self, query):
        if self.status is not None:
            query = query.filter(Subscriber.status == self.status)
        if self.source is not None:
            query = query.filter(Subscriber.source == self.source)
        if self.tag:
            query = query.filter(cast(Subscriber.tags, String).like(f'%"{self.tag}"%'))
        if self.search:
            pattern = f"%{self.search}%"
            query = query.filter(or_(Subscriber.email.ilike(pattern), Subscriber.name.ilike(pattern)))
        return query


@dataclass
class SubscriberCounts:
    total: int
    active: int
    unsubscribed: int
    bounced: int

    @property
    def bounce_rate(self) -> float:
        return round(formulas.percentage(self.bounced, self.total), 2)


class SubscriberStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, email: str, name: Optional[str] = None,
               source: SubscriberSourceEnum = SubscriberSourceEnum.website,
               tags: Optional[List[str]] = None) -> Subscriber:
        subscriber = Subscriber(email=email, name=name, source=source, tags=list(tags or []))
        self.db.add(subscriber)
        self.db.commit()
        self.db.refresh(subscriber)
        return subscriber

    def get(self, subscriber_id: UUID) -> Optional[Subscriber]:
        return self.db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()

    def get_by_email(self, email: str) -> Optional[Subscriber]:
        return self.db.query(Subscriber).filter(func.lower(Subscriber.email) == email.lower()).first()

    def list(self, filters: Optional[SubscriberFilters] = None, limit: int = 50, offset: int = 0):
        query = (filters or SubscriberFilters()).apply(self.db.query(Subscriber))
        total = query.count()
        subscribers = query.order_by(Subscriber.subscribed_at.desc()).limit(limit).offset(offset).all()
        return subscribers, total

    def active_subscribers(self, tag: Optional[str] = None) -> List[Subscriber]:
        filters = SubscriberFilters(status=SubscriberStatusEnum.active, tag=tag)
        return filters.apply(self.db.query(Subscriber)).order_by(Subscriber.subscribed_at.asc()).all()

    def set_status(self, subscriber: Subscriber, status: SubscriberStatusEnum,
                   at: Optional[datetime] = None) -> Subscriber:
        subscriber.status = status
        if status == SubscriberStatusEnum.unsubscribed:
            subscriber.unsubscribed_at = at or datetime.utcnow()
        elif status == SubscriberStatusEnum.active:
            subscriber.unsubscribed_at = None
        self.db.commit()
        self.db.refresh(subscriber)
        return subscriber

    def update(self, subscriber: Subscriber, **fields) -> Subscriber:
        for key, value in fields.items():
            setattr(subscriber, key, value)
        self.db.commit()
        self.db.refresh(subscriber)
        return subscriber

    def set_engagement_score(self, subscriber_id: UUID, score: int) -> None:
        (
            self.db.query(Subscriber)
            .filter(Subscriber.id == subscriber_id)
            .update({Subscriber.engagement_score: score}, synchronize_session=False)
        )
        self.db.commit()

    def touch_last_opened(self, subscriber_id: UUID, at: datetime) -> None:
        """Move last_opened forward only."""
        (
            self.db.query(Subscriber)
            .filter(
                Subscriber.id == subscriber_id,
                or_(Subscriber.last_opened.is_(None), Subscriber.last_opened < at),
            )
            .update({Subscriber.last_opened: at}, synchronize_session=False)
        )
        self.db.commit()

    def delete(self, subscriber: Subscriber) -> None:
        self.db.delete(subscriber)
        self.db.commit()

    def counts(self) -> SubscriberCounts:
        rows = self.db.query(Subscriber.status, func.count(Subscriber.id)).group_by(Subscriber.status).all()
        by_status = {status: as_int(count) for status, count in rows}
        return SubscriberCounts(
            total=sum(by_status.values()),
            active=by_status.get(SubscriberStatusEnum.active, 0),
            unsubscribed=by_status.get(SubscriberStatusEnum.unsubscribed, 0),
            bounced=by_status.get(SubscriberStatusEnum.bounced, 0),
        )

    def new_in_window(self, window: TimeWindow) -> int:
        query = self.db.query(func.count(Subscriber.id)).filter(
            Subscriber.subscribed_at < window.end_datetime_exclusive()
        )
        if window.start is not None:
            query = query.filter(Subscriber.subscribed_at >= window.start_datetime())
        return as_int(query.scalar())
