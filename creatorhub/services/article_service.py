"""Article service: authoring lifecycle, tracking events and per-article performance.

Slugs are unique per author; a clash gets a numeric suffix (`my-post-2`).
Reading time and excerpt are derived from the content on every write.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from ..metrics import formulas
from ..metrics.timeframe import TimeWindow, resolve_window, validate_days
from ..models import Article, ArticleStatusEnum
from ..stores.article_analytics import AnalyticsTotals, ArticleAnalyticsStore, DailyArticleMetrics
from ..stores.articles import ArticleFilters, ArticleStore
from ..utils.text import make_excerpt, reading_time, slugify
from ..validators import validate_int_range, validate_length, validate_number_range, validate_string_list

logger = logging.getLogger(__name__)


MAX_CONTENT_LENGTH = 100_000
MAX_TAGS = 10
TAG_MAX_LENGTH = 50

# Event name -> counter bumped by the public tracking endpoint
TRACKING_EVENTS = {
    "page_view": "page_views",
    "unique_visitor": "unique_visitors",
    "social_share": "social_shares",
    "newsletter_signup": "newsletter_signups",
}


@dataclass
class ArticlePerformance:
    article_id: UUID
    totals: AnalyticsTotals
    performance_score: int
    performance_level: str
    is_high_performance: bool
    time_series: List[DailyArticleMetrics]


class ArticleService:
    def __init__(self, db: Session):
        self.db = db
        self.articles = ArticleStore(db)
        self.analytics = ArticleAnalyticsStore(db)

    # ------------------------------------------------------------------
    # Authoring
    # ------------------------------------------------------------------

    def create_article(
        self,
        author_id: UUID,
        title: str,
        content: str,
        tags: Optional[List[str]] = None,
        is_premium: bool = False,
        excerpt: Optional[str] = None,
        seo_title: Optional[str] = None,
        seo_description: Optional[str] = None,
    ) -> Article:
        title = validate_length(title, "title", 1, 200)
        content = validate_length(content, "content", 1, MAX_CONTENT_LENGTH)
        tags = validate_string_list(tags, "tags", MAX_TAGS, TAG_MAX_LENGTH)
        validate_length(seo_title, "seo_title", 0, 200, required=False)
        validate_length(seo_description, "seo_description", 0, 300, required=False)

        article = self.articles.create(
            author_id=author_id,
            title=title,
            slug=self._available_slug(author_id, title),
            content=content,
            excerpt=excerpt or make_excerpt(content),
            tags=tags,
            is_premium=bool(is_premium),
            seo_title=seo_title or title,
            seo_description=seo_description or make_excerpt(content, 160),
            reading_time=reading_time(content),
            status=ArticleStatusEnum.draft,
        )
        logger.info("Created article %s for author %s", article.id, author_id)
        return article

    def update_article(self, article_id: UUID, author_id: UUID, **changes) -> Article:
        article = self._get_owned(article_id, author_id)
        updates = {}
        if changes.get("title") is not None:
            updates["title"] = validate_length(changes["title"], "title", 1, 200)
            if updates["title"] != article.title:
                updates["slug"] = self._available_slug(author_id, updates["title"], exclude_id=article.id)
        if changes.get("content") is not None:
            content = validate_length(changes["content"], "content", 1, MAX_CONTENT_LENGTH)
            updates["content"] = content
            updates["reading_time"] = reading_time(content)
            if changes.get("excerpt") is None:
                updates["excerpt"] = make_excerpt(content)
        if changes.get("excerpt") is not None:
            updates["excerpt"] = changes["excerpt"]
        if changes.get("tags") is not None:
            updates["tags"] = validate_string_list(changes["tags"], "tags", MAX_TAGS, TAG_MAX_LENGTH)
        if changes.get("is_premium") is not None:
            updates["is_premium"] = bool(changes["is_premium"])
        if changes.get("seo_title") is not None:
            updates["seo_title"] = validate_length(changes["seo_title"], "seo_title", 1, 200)
        if changes.get("seo_description") is not None:
            updates["seo_description"] = validate_length(changes["seo_description"], "seo_description", 1, 300)
        if not updates:
            return article
        return self.articles.update(article, **updates)

    def publish_article(self, article_id: UUID, author_id: UUID,
                        published_at: Optional[datetime] = None) -> Article:
        article = self._get_owned(article_id, author_id)
        if article.status == ArticleStatusEnum.published:
            raise InvalidStateError("Article is already published")
        return self.articles.update(
            article,
            status=ArticleStatusEnum.published,
            published_at=published_at or datetime.utcnow(),
        )

    def archive_article(self, article_id: UUID, author_id: UUID) -> Article:
        article = self._get_owned(article_id, author_id)
        return self.articles.update(article, status=ArticleStatusEnum.archived)

    def delete_article(self, article_id: UUID, author_id: UUID) -> None:
        self.articles.delete(self._get_owned(article_id, author_id))

    def get_article(self, article_id: UUID, author_id: UUID) -> Article:
        return self._get_owned(article_id, author_id)

    def list_articles(self, filters: ArticleFilters, limit: int = 20, offset: int = 0):
        validate_int_range(limit, "limit", 1, 100)
        validate_int_range(offset, "offset", 0, 1_000_000)
        return self.articles.list(filters, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_event(self, article_id: UUID, event: str, day: Optional[date] = None) -> None:
        """Bump one daily counter for a published article."""
        counter = TRACKING_EVENTS.get(event)
        if counter is None:
            allowed = ", ".join(sorted(TRACKING_EVENTS))
            raise ValidationError(f"event must be one of: {allowed}", field="event")
        self._get_published(article_id)
        self.analytics.increment(article_id, counter, 1, day)

    def record_engagement(self, article_id: UUID, avg_time_on_page: int, bounce_rate: float,
                          day: Optional[date] = None) -> None:
        validate_int_range(avg_time_on_page, "avg_time_on_page", 0, 86_400)
        validate_number_range(bounce_rate, "bounce_rate", 0, 100)
        self._get_published(article_id)
        self.analytics.record_engagement(article_id, avg_time_on_page, bounce_rate, day)

    def add_ad_revenue(self, article_id: UUID, author_id: UUID, amount: int,
                       day: Optional[date] = None) -> None:
        validate_int_range(amount, "amount", 0, 10_000_000)
        self._get_owned(article_id, author_id)
        self.analytics.add_ad_revenue(article_id, amount, day)

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------

    def performance(self, article_id: UUID, author_id: UUID, period: str = "30d",
                    today: Optional[date] = None) -> ArticlePerformance:
        self._get_owned(article_id, author_id)
        window: TimeWindow = resolve_window(period, today)
        totals = self.analytics.article_totals(article_id, window)
        score = totals.performance_score
        return ArticlePerformance(
            article_id=article_id,
            totals=totals,
            performance_score=score,
            performance_level=formulas.article_performance_level(score),
            is_high_performance=formulas.is_high_performance_article(score),
            time_series=self.analytics.time_series(article_id, window),
        )

    def purge_old_analytics(self, days_to_keep: int = 730, today: Optional[date] = None) -> int:
        """Drop daily analytics rows past retention; article rows are untouched."""
        return self.analytics.delete_older_than(validate_days(days_to_keep, field="days_to_keep"), today)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_owned(self, article_id: UUID, author_id: UUID) -> Article:
        article = self.articles.get(article_id)
        if article is None:
            raise NotFoundError("Article", article_id)
        if article.author_id != author_id:
            raise AuthorizationError("You can only manage your own articles")
        return article

    def _get_published(self, article_id: UUID) -> Article:
        article = self.articles.get(article_id)
        if article is None or article.status != ArticleStatusEnum.published:
            raise NotFoundError("Article", article_id)
        return article

    def _available_slug(self, author_id: UUID, title: str, exclude_id: Optional[UUID] = None) -> str:
        base = slugify(title) or "article"
        slug, suffix = base, 2
        while self.articles.slug_exists(author_id, slug, exclude_id):
            tail = f"-{suffix}"
            slug = f"{base[:100 - len(tail)]}{tail}"
            suffix += 1
        return slug
