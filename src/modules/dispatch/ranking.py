"""Candidate ranking — which drivers an order is offered to, and in what order."""

from __future__ import annotations

import logging
import math
import uuid
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.depot import Depot
from src.models.dispatch_offer import DispatchOffer
from src.models.driver import Driver
from src.models.enums import FulfillmentMode
from src.models.order import Order
from src.utils.geo import haversine_km

logger = logging.getLogger(__name__)


class CandidateRanker(Protocol):
    async def rank(self, db: AsyncSession, order: Order) -> list[uuid.UUID]:
        """Ordered driver user ids to offer ``order`` to."""
        ...


class NearestDriverRanker:
    """Approved, available drivers near the pickup point, premium drivers first.

    A driver qualifies when the pickup point lies inside both the platform
    dispatch radius and the driver's own radius preference. Drivers already
    offered this order in any earlier round are skipped.
    """

    def __init__(self, radius_km: float | None = None, max_candidates: int | None = None):
        self.radius_km = settings.dispatch_radius_km if radius_km is None else radius_km
        self.max_candidates = (
            settings.dispatch_max_candidates if max_candidates is None else max_candidates
        )

    async def _pickup_point(self, db: AsyncSession, order: Order) -> tuple[float, float]:
        if order.fulfillment_mode == FulfillmentMode.DEPOT_PICKUP:
            depot = await db.get(Depot, order.depot_id)
            if depot is not None:
                return depot.lat, depot.lng
        return order.drop_lat, order.drop_lng

    async def rank(self, db: AsyncSession, order: Order) -> list[uuid.UUID]:
        lat, lng = await self._pickup_point(db, order)

        offered_result = await db.execute(
            select(DispatchOffer.driver_id).where(DispatchOffer.order_id == order.id).distinct()
        )
        already_offered = set(offered_result.scalars().all())

        result = await db.execute(
            select(Driver).where(
                Driver.is_available.is_(True),
                Driver.is_approved.is_(True),
                Driver.current_lat.is_not(None),
                Driver.current_lng.is_not(None),
            )
        )

        ranked: list[tuple[bool, float, uuid.UUID]] = []
        for driver in result.scalars().all():
            if driver.user_id in already_offered:
                continue
            distance = haversine_km(lat, lng, driver.current_lat, driver.current_lng)
            reach = min(self.radius_km, driver.radius_km or math.inf)
            if distance > reach:
                continue
            ranked.append((not driver.is_premium, distance, driver.user_id))

        ranked.sort(key=lambda item: (item[0], item[1]))
        candidates = [user_id for _, _, user_id in ranked[: self.max_candidates]]
        logger.info(
            "Ranked %d candidate drivers for order %s (%d already offered)",
            len(candidates), order.id, len(already_offered),
        )
        return candidates
