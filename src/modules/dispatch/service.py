"""Dispatch offer engine — sequential, time-bounded offers of an order to drivers.

One order has at most one PENDING offer at a time. A rejected or expired
offer moves straight on to the next candidate of the current round; running
out of candidates puts the order back in PENDING_DISPATCH and alerts admins.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NoReturn

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.base import utcnow
from src.database.cas import compare_and_swap, try_compare_and_swap
from src.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
)
from src.models.dispatch_offer import DispatchOffer
from src.models.enums import (
    FulfillmentMode,
    OfferDecision,
    OfferStatus,
    OrderStatus,
    OrderTransitionType,
)
from src.models.order import Order
from src.modules.depot.service import DepotService
from src.modules.dispatch.constants import EXPIRY_SWEEP_BATCH_SIZE, OFFER_RESOLVED_STATUSES
from src.modules.dispatch.ranking import CandidateRanker, NearestDriverRanker
from src.modules.dispatch.timers import CeleryOfferTimer, OfferTimer
from src.modules.events.publisher import EventPublisher
from src.modules.identity.auth import SYSTEM_USER, AuthenticatedUser
from src.modules.order.service import OrderService
from src.modules.realtime.events import (
    DispatchExhausted,
    DispatchExhaustedPayload,
    OfferCreated,
    OfferCreatedPayload,
    OfferResolved,
    OfferResolvedPayload,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    """What a dispatch step left behind.

    ``offer`` is the live offer after the step, if any. ``exhausted`` means the
    round ran out of candidates and the order is waiting in PENDING_DISPATCH.
    """

    order: Order
    offer: DispatchOffer | None = None
    exhausted: bool = False


class DispatchService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
        timer: OfferTimer | None = None,
        ranker: CandidateRanker | None = None,
    ):
        self.db = db
        self.events = publisher or EventPublisher(db)
        self.clock = clock
        self.timer = timer or CeleryOfferTimer()
        self.ranker = ranker or NearestDriverRanker()
        self.orders = OrderService(db, self.events, clock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_offer(self, offer_id: uuid.UUID) -> DispatchOffer:
        offer = await self.db.get(DispatchOffer, offer_id)
        if offer is None:
            raise NotFoundException(f"Offer {offer_id} not found")
        return offer

    async def list_offers_for_driver(
        self,
        driver_id: uuid.UUID,
        status: OfferStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[DispatchOffer]:
        query = select(DispatchOffer).where(DispatchOffer.driver_id == driver_id)
        if status is not None:
            query = query.where(DispatchOffer.status == status)
        query = query.order_by(DispatchOffer.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def due_offer_ids(self, limit: int = EXPIRY_SWEEP_BATCH_SIZE) -> list[uuid.UUID]:
        """PENDING offers whose deadline has passed, oldest deadline first."""
        result = await self.db.execute(
            select(DispatchOffer.id)
            .where(
                DispatchOffer.status == OfferStatus.PENDING,
                DispatchOffer.expires_at <= self.clock(),
            )
            .order_by(DispatchOffer.expires_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Dispatch rounds
    # ------------------------------------------------------------------

    async def request_dispatch(
        self,
        order_id: uuid.UUID,
        actor: AuthenticatedUser,
        candidates: list[uuid.UUID] | None = None,
    ) -> DispatchOutcome:
        """Start a dispatch round for an order.

        ``candidates`` overrides the ranker. The order is queued first if it is
        still CREATED; an empty round leaves it in PENDING_DISPATCH and the
        outcome is reported as exhausted.
        """
        order = await self.orders.get_order(order_id)
        if not actor.is_admin and actor.id != order.customer_id:
            raise ForbiddenException(
                f"Only the customer or an admin may dispatch order {order.order_number}"
            )

        if order.status == OrderStatus.CREATED:
            order = await self.orders.transition(
                order.id, OrderTransitionType.QUEUE_DISPATCH, actor
            )
        elif order.status != OrderStatus.PENDING_DISPATCH:
            raise InvalidTransitionException(
                f"Order {order.order_number} is {order.status.value}; "
                "dispatch can only start from CREATED or PENDING_DISPATCH"
            )

        if candidates is None:
            candidates = await self.ranker.rank(self.db, order)
        candidates = list(dict.fromkeys(candidates))

        order = await compare_and_swap(
            self.db,
            Order,
            order.id,
            order.version,
            {
                "dispatch_candidates": [str(c) for c in candidates],
                "dispatch_round": order.dispatch_round + 1,
            },
            Order.status == OrderStatus.PENDING_DISPATCH,
        )
        logger.info(
            "Dispatch round %d for order %s with %d candidates",
            order.dispatch_round, order.id, len(candidates),
        )
        return await self._offer_next(order, 0, actor)

    async def _offer_next(
        self, order: Order, position: int, actor: AuthenticatedUser
    ) -> DispatchOutcome:
        """Offer the order to the candidate at ``position`` of the current round.

        Moving an OFFERED order on to its next candidate writes the order row
        too, so a cancel racing a reject or an expiry loses its CAS instead of
        leaving a live offer on a closed order.
        """
        if order.status not in (OrderStatus.PENDING_DISPATCH, OrderStatus.OFFERED):
            return self._stand_down(order)

        candidates = order.dispatch_candidates or []
        if position >= len(candidates):
            return await self._exhaust(order, actor)

        if order.status == OrderStatus.PENDING_DISPATCH:
            order = await self.orders.transition(
                order.id,
                OrderTransitionType.OFFER,
                actor,
                metadata={"driver_id": candidates[position], "sequence": position},
            )
        else:
            claimed = await try_compare_and_swap(
                self.db,
                Order,
                order.id,
                order.version,
                {},
                Order.status == OrderStatus.OFFERED,
            )
            if claimed is None:
                return self._stand_down(await self._current_order(order.id))
            order = claimed

        expires_at = self.clock() + timedelta(seconds=settings.dispatch_offer_ttl_seconds)
        offer = DispatchOffer(
            order_id=order.id,
            driver_id=uuid.UUID(candidates[position]),
            status=OfferStatus.PENDING,
            dispatch_round=order.dispatch_round,
            sequence=position,
            expires_at=expires_at,
        )
        self.db.add(offer)
        await self.db.flush()

        await self.events.emit(
            OfferCreated(
                order_id=order.id,
                payload=OfferCreatedPayload(
                    offer_id=offer.id,
                    driver_id=offer.driver_id,
                    expires_at=expires_at,
                    fuel_type=order.fuel_type,
                    litres=str(order.litres),
                    drop_lat=order.drop_lat,
                    drop_lng=order.drop_lng,
                    delivery_fee_cents=order.delivery_fee_cents,
                ),
            )
        )
        self.timer.arm(offer.id, expires_at)

        logger.info(
            "Offered order %s to driver %s (round %d, #%d, expires %s)",
            order.id, offer.driver_id, offer.dispatch_round, position, expires_at.isoformat(),
        )
        return DispatchOutcome(order=order, offer=offer)

    async def _exhaust(self, order: Order, actor: AuthenticatedUser) -> DispatchOutcome:
        if order.status == OrderStatus.OFFERED:
            order = await self.orders.transition(
                order.id,
                OrderTransitionType.REQUEUE,
                actor,
                reason="dispatch candidates exhausted",
            )

        tried = len(order.dispatch_candidates or [])
        await self.events.emit(
            DispatchExhausted(
                order_id=order.id,
                payload=DispatchExhaustedPayload(
                    order_number=order.order_number,
                    dispatch_round=order.dispatch_round,
                    candidates_tried=tried,
                ),
            )
        )
        logger.warning(
            "Dispatch exhausted for order %s after %d candidates in round %d",
            order.id, tried, order.dispatch_round,
        )
        return DispatchOutcome(order=order, exhausted=True)

    def _stand_down(self, order: Order) -> DispatchOutcome:
        logger.info(
            "Order %s is %s; not offering it further", order.id, order.status.value
        )
        return DispatchOutcome(order=order)

    async def _current_order(self, order_id: uuid.UUID) -> Order:
        """The order row as committed now, not as this session last saw it."""
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundException(f"Order {order_id} not found")
        return order

    # ------------------------------------------------------------------
    # Offer resolution
    # ------------------------------------------------------------------

    async def resolve_offer(
        self,
        offer_id: uuid.UUID,
        actor: AuthenticatedUser,
        decision: OfferDecision,
        reason: str | None = None,
    ) -> DispatchOutcome:
        """Accept or reject a live offer as the offered driver.

        Accepting assigns the order in the same transaction; rejecting moves
        on to the next candidate in the same transaction.
        """
        offer = await self.get_offer(offer_id)
        if actor.id != offer.driver_id:
            raise ForbiddenException(f"Offer {offer_id} was not made to this driver")
        if offer.status != OfferStatus.PENDING:
            raise InvalidTransitionException(
                f"Offer {offer_id} is already {offer.status.value}"
            )

        now = self.clock()
        new_status = (
            OfferStatus.ACCEPTED if decision == OfferDecision.ACCEPT else OfferStatus.REJECTED
        )
        values = {"status": new_status, "resolved_at": now}
        if decision == OfferDecision.REJECT:
            values["decline_reason"] = reason

        resolved = await try_compare_and_swap(
            self.db,
            DispatchOffer,
            offer.id,
            offer.version,
            values,
            DispatchOffer.status == OfferStatus.PENDING,
            DispatchOffer.expires_at > now,
        )
        if resolved is None:
            await self._explain_lost_resolution(offer)

        await self.events.emit(
            OfferResolved(
                order_id=resolved.order_id,
                payload=OfferResolvedPayload(
                    offer_id=resolved.id,
                    driver_id=resolved.driver_id,
                    status=resolved.status,
                    reason=reason,
                ),
            )
        )
        logger.info("Offer %s %s by driver %s", resolved.id, new_status.value, actor.id)

        if decision == OfferDecision.ACCEPT:
            order = await self.orders.transition(
                resolved.order_id,
                OrderTransitionType.ASSIGN,
                actor,
                metadata={"offer_id": str(resolved.id)},
            )
            if order.fulfillment_mode == FulfillmentMode.DEPOT_PICKUP:
                await DepotService(self.db, self.events, self.clock).open_for_order(order)
            return DispatchOutcome(order=order, offer=resolved)

        order = await self._current_order(resolved.order_id)
        return await self._offer_next(order, resolved.sequence + 1, SYSTEM_USER)

    async def _explain_lost_resolution(self, offer: DispatchOffer) -> NoReturn:
        """Raise the right error after a failed offer CAS."""
        result = await self.db.execute(
            select(DispatchOffer.status, DispatchOffer.version).where(
                DispatchOffer.id == offer.id
            )
        )
        status, version = result.one()
        if status in OFFER_RESOLVED_STATUSES:
            raise InvalidTransitionException(f"Offer {offer.id} is already {status.value}")
        if version == offer.version:
            raise InvalidTransitionException(f"Offer {offer.id} has expired")
        raise ConflictException(
            f"Offer {offer.id} was modified concurrently; re-fetch and retry"
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def expire_offer(self, offer_id: uuid.UUID) -> DispatchOutcome | None:
        """Expire a due offer and re-offer. Returns None when there was nothing to do.

        Safe to call any number of times, early or late: only a PENDING offer
        whose deadline has passed is touched.
        """
        now = self.clock()
        offer = await self.db.get(DispatchOffer, offer_id)
        if offer is None:
            logger.info("Expiry for unknown offer %s ignored", offer_id)
            return None

        expired = await try_compare_and_swap(
            self.db,
            DispatchOffer,
            offer.id,
            offer.version,
            {"status": OfferStatus.EXPIRED, "resolved_at": now},
            DispatchOffer.status == OfferStatus.PENDING,
            DispatchOffer.expires_at <= now,
        )
        if expired is None:
            logger.info("Expiry for offer %s is a no-op (resolved or not yet due)", offer_id)
            return None

        await self.events.emit(
            OfferResolved(
                order_id=expired.order_id,
                payload=OfferResolvedPayload(
                    offer_id=expired.id,
                    driver_id=expired.driver_id,
                    status=OfferStatus.EXPIRED,
                    reason="offer timed out",
                ),
            )
        )
        logger.info("Offer %s to driver %s expired", expired.id, expired.driver_id)

        order = await self._current_order(expired.order_id)
        return await self._offer_next(order, expired.sequence + 1, SYSTEM_USER)

    async def expire_due_offers(self) -> list[DispatchOutcome]:
        """Expire every due offer in this session (recovery and tests)."""
        outcomes = []
        for offer_id in await self.due_offer_ids():
            outcome = await self.expire_offer(offer_id)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes
