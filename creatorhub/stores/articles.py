"""Article store: CRUD plus the content-side rollups used by the dashboard."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Session

from ..metrics.timeframe import month_keys, month_starts
from ..models import Article, ArticleStatusEnum
from .base import as_float, as_int, month_bucket


@dataclass
class ArticleFilters:
    author_id: Optional[UUID] = None
    status: Optional[ArticleStatusEnum] = None
    is_premium: Optional[bool] = None
    tag: Optional[str] = None
    search: Optional[str] = None

    def apply(self, query):
        if self.author_id is not None:
            query = query.filter(Article.author_id == self.author_id)
        if self.status is not None:
            query = query.filter(Article.status == self.status)
        if self.is_premium is not None:
            query = query.filter(Article.is_premium.is_(self.is_premium))
        if self.tag:
            # tags is a JSON list; match the quoted element in its text form
            query = query.filter(cast(Article.tags, String).like(f'%"{self.tag}"%'))
        if self.search:
            pattern = f"%{self.search}%"
            query = query.filter(or_(Article.title.ilike(pattern), Article.excerpt.ilike(pattern)))
        return query


@dataclass
class ContentCounts:
    total_articles: int
    published_articles: int
    draft_articles: int
    avg_reading_time: float


class ArticleStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> Article:
        article = Article(**fields)
        self.db.add(article)
        self.db.commit()
        self.db.refresh(article)
        return article

    def get(self, article_id: UUID) -> Optional[Article]:
        return self.db.query(Article).filter(Article.id == article_id).first()

    def get_by_slug(self, author_id: UUID, slug: str) -> Optional[Article]:
        return (
            self.db.query(Article)
            .filter(Article.author_id == author_id, Article.slug == slug)
            .first()
        )

    def slug_exists(self, author_id: UUID, slug: str, exclude_id: Optional[UUID] = None) -> bool:
        query = self.db.query(Article.id).filter(Article.author_id == author_id, Article.slug == slug)
        if exclude_id is not None:
            query = query.filter(Article.id != exclude_id)
        return query.first() is not None

    def list(self, filters: Optional[ArticleFilters] = None, limit: int = 20, offset: int = 0):
        """Return (articles, total): published by publish date, others by creation."""
        query = (filters or ArticleFilters()).apply(self.db.query(Article))
        total = query.count()
        articles = (
            query.order_by(func.coalesce(Article.published_at, Article.created_at).desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return articles, total

    def update(self, article: Article, **fields) -> Article:
        for key, value in fields.items():
            setattr(article, key, value)
        self.db.commit()
        self.db.refresh(article)
        return article

    def delete(self, article: Article) -> None:
        self.db.delete(article)
        self.db.commit()

    def content_counts(self, author_id: UUID) -> ContentCounts:
        published = Article.status == ArticleStatusEnum.published
        draft = Article.status == ArticleStatusEnum.draft
        total = self.db.query(func.count(Article.id)).filter(Article.author_id == author_id).scalar()
        published_count = (
            self.db.query(func.count(Article.id)).filter(Article.author_id == author_id, published).scalar()
        )
        draft_count = self.db.query(func.count(Article.id)).filter(Article.author_id == author_id, draft).scalar()
        avg_reading = (
            self.db.query(func.coalesce(func.avg(Article.reading_time), 0))
            .filter(Article.author_id == author_id, published)
            .scalar()
        )
        return ContentCounts(
            total_articles=as_int(total),
            published_articles=as_int(published_count),
            draft_articles=as_int(draft_count),
            avg_reading_time=round(as_float(avg_reading), 1),
        )

    def publishing_trend(self, author_id: UUID, months: int = 12,
                         today: Optional[date] = None) -> List[Dict[str, object]]:
        """Articles published per month, zero-filled, oldest first."""
        start, _ = month_starts(months, today)
        bucket = month_bucket(self.db, Article.published_at)
        rows = (
            self.db.query(bucket.label("month"), func.count(Article.id).label("count"))
            .filter(
                Article.author_id == author_id,
                Article.status == ArticleStatusEnum.published,
                Article.published_at >= datetime.combine(start, datetime.min.time()),
            )
            .group_by(bucket)
            .all()
        )
        counts = {str(row.month): as_int(row.count) for row in rows}
        return [{"month": month, "count": counts.get(month, 0)} for month in month_keys(months, today)]
