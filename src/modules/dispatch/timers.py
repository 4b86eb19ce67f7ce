"""Offer expiry timers.

Each offer's deadline is persisted on the row; the timer is only a prompt to
look at it. The beat sweep covers timers lost to restarts or broker outages.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)


class OfferTimer(Protocol):
    def arm(self, offer_id: uuid.UUID, expires_at: datetime) -> None: ...


class CeleryOfferTimer:
    """Schedules ``expire_offer`` on the dispatch-timers queue at the deadline."""

    def arm(self, offer_id: uuid.UUID, expires_at: datetime) -> None:
        # Deferred: the task module imports the dispatch service
        from src.modules.dispatch.tasks import expire_offer

        try:
            expire_offer.apply_async(args=[str(offer_id)], eta=expires_at)
        except Exception:
            logger.exception(
                "Could not arm expiry timer for offer %s; the sweep will expire it", offer_id
            )
