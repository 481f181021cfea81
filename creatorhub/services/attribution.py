"""Affiliate conversion attribution policies.

WHAT: Decides which recorded click a conversion is credited to
WHY: Attribution is a business rule, not a storage concern. The service
     asks a policy for candidate clicks and claims them through the store's
     conditional update; swapping the policy (first click, multi-touch)
     does not touch the store.

Default: LastUnconvertedClickPolicy
  - only clicks of the converting link
  - only clicks not yet converted
  - clicked within the trailing window (30 days) and not in the future
  - most recent first; if a concurrent writer claims the newest click,
    the next one is tried
"""

import abc
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from ..errors import NoEligibleClickError
from ..metrics.timeframe import validate_days
from ..stores.affiliate import AffiliateClickStore

logger = logging.getLogger(__name__)


class AttributionPolicy(abc.ABC):
    """Strategy interface: pick click ids to credit, in preference order."""

    name = "abstract"

    def __init__(self, window_days: int = 30):
        self.window_days = validate_days(window_days, field="window_days")

    @abc.abstractmethod
    def candidates(self, clicks: AffiliateClickStore, link_id: UUID, now: datetime) -> List[UUID]:
        """Return candidate click ids, most preferred first."""

    def attribute(
        self,
        clicks: AffiliateClickStore,
        link_id: UUID,
        tracking_code: str,
        commission_amount: int,
        now: Optional[datetime] = None,
    ) -> UUID:
        """Convert exactly one click and return its id.

        Raises:
            NoEligibleClickError: no candidate could be claimed
        """
        now = now or datetime.utcnow()
        for click_id in self.candidates(clicks, link_id, now):
            if clicks.mark_converted(click_id, commission_amount, now):
                logger.info(
                    "[AFFILIATE] Conversion attributed via %s: link=%s click=%s commission=%s",
                    self.name, link_id, click_id, commission_amount,
                )
                return click_id
            logger.info("[AFFILIATE] Click %s already converted, trying next candidate", click_id)
        raise NoEligibleClickError(tracking_code, self.window_days)


class LastUnconvertedClickPolicy(AttributionPolicy):
    """Most recent unconverted click inside the trailing window wins."""

    name = "last_unconverted_click"

    def __init__(self, window_days: int = 30, max_candidates: int = 5):
        super().__init__(window_days)
        self.max_candidates = max_candidates

    def candidates(self, clicks: AffiliateClickStore, link_id: UUID, now: datetime) -> List[UUID]:
        since = now - timedelta(days=self.window_days)
        return clicks.unconverted_candidates(link_id, since=since, until=now, limit=self.max_candidates)
