"""Order lifecycle service — creation, pricing, role-scoped reads, state machine."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.database.cas import compare_and_swap
from src.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.depot import Depot, DepotPrice
from src.models.depot_order import DepotOrder
from src.models.dispatch_offer import DispatchOffer
from src.models.enums import (
    DepotOrderStatus,
    FuelType,
    FulfillmentMode,
    OfferStatus,
    OrderStatus,
    OrderTransitionType,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from src.models.order import Order
from src.models.order_transition import OrderTransition
from src.modules.events.publisher import EventPublisher
from src.modules.identity.auth import AuthenticatedUser
from src.modules.order.constants import (
    DRIVER_TRANSITIONS,
    ORDER_NUMBER_PREFIX,
    ORDER_TRANSITIONS,
    STATUS_TIMESTAMPS,
)
from src.modules.order.pricing import quote_price
from src.modules.realtime.events import (
    OfferResolved,
    OfferResolvedPayload,
    OrderStateChanged,
    OrderStateChangedPayload,
)
from src.utils.geo import haversine_km

logger = logging.getLogger(__name__)


def order_state_event(
    order: Order,
    from_status: OrderStatus | None,
    transition: OrderTransitionType | None,
) -> OrderStateChanged:
    """Build the ``order.state_changed`` envelope for an order's current row."""
    return OrderStateChanged(
        order_id=order.id,
        payload=OrderStateChangedPayload(
            order_number=order.order_number,
            from_status=from_status,
            to_status=order.status,
            transition=transition,
            customer_id=order.customer_id,
            driver_id=order.driver_id,
            supplier_id=order.supplier_id,
            version=order.version,
        ),
    )


def ensure_participant(order: Order, user: AuthenticatedUser) -> None:
    """Raise ForbiddenException unless ``user`` has standing on ``order``."""
    if user.is_admin:
        return
    if user.id in (order.customer_id, order.driver_id, order.supplier_id):
        return
    raise ForbiddenException(f"Not a participant of order {order.order_number}")


class OrderService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.events = publisher or EventPublisher(db)
        self.clock = clock

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    async def _generate_order_number(self) -> str:
        """Generate FF-YYYY-NNNNNN using a DB sequence where the database has one."""
        if self.db.get_bind().dialect.name == "postgresql":
            result = await self.db.execute(text("SELECT nextval('order_number_seq')"))
            seq_val = result.scalar()
        else:
            result = await self.db.execute(select(func.count()).select_from(Order))
            seq_val = (result.scalar() or 0) + 1
        year = self.clock().year
        return f"{ORDER_NUMBER_PREFIX}-{year}-{seq_val:06d}"

    # ------------------------------------------------------------------
    # Pricing tiers
    # ------------------------------------------------------------------

    async def _price_tier(
        self, depot: Depot, fuel_type: FuelType, litres: Decimal
    ) -> DepotPrice:
        """Pick the tier with the highest ``min_litres`` not above ``litres``.

        Quantities below every tier floor fall back to the lowest tier. A tier
        that tracks stock refuses orders larger than what is on hand.
        """
        result = await self.db.execute(
            select(DepotPrice)
            .where(
                DepotPrice.depot_id == depot.id,
                DepotPrice.fuel_type == fuel_type,
            )
            .order_by(DepotPrice.min_litres.desc())
        )
        tiers = list(result.scalars().all())
        if not tiers:
            raise ValidationException(
                f"Depot {depot.name} does not sell {fuel_type.value}",
                details=[{"field": "fuel_type", "message": "not stocked at depot"}],
            )

        tier = next((t for t in tiers if litres >= t.min_litres), tiers[-1])
        if tier.available_litres is not None and litres > tier.available_litres:
            raise ValidationException(
                f"Depot {depot.name} has {tier.available_litres}L of "
                f"{fuel_type.value} available",
                details=[{"field": "litres", "message": "exceeds available stock"}],
            )
        return tier

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_order(
        self,
        customer_id: uuid.UUID,
        depot_id: uuid.UUID,
        fuel_type: FuelType,
        litres: Decimal,
        drop_lat: float,
        drop_lng: float,
        payment_method: PaymentMethod,
        fulfillment_mode: FulfillmentMode = FulfillmentMode.DIRECT,
        drop_address: str | None = None,
    ) -> Order:
        """Price and persist a new order in CREATED status."""
        depot = await self.db.get(Depot, depot_id)
        if depot is None or not depot.is_active:
            raise NotFoundException(f"Depot {depot_id} not found")

        tier = await self._price_tier(depot, fuel_type, litres)
        price_per_litre = tier.price_per_litre_cents

        distance = haversine_km(depot.lat, depot.lng, drop_lat, drop_lng)
        breakdown = quote_price(litres, price_per_litre, distance)

        order = Order(
            order_number=await self._generate_order_number(),
            customer_id=customer_id,
            fuel_type=fuel_type,
            litres=litres,
            drop_lat=drop_lat,
            drop_lng=drop_lng,
            drop_address=drop_address,
            depot_id=depot.id,
            supplier_id=depot.owner_id,
            fulfillment_mode=fulfillment_mode,
            price_per_litre_cents=price_per_litre,
            fuel_cost_cents=breakdown.fuel_cost_cents,
            delivery_fee_cents=breakdown.delivery_fee_cents,
            service_fee_cents=breakdown.service_fee_cents,
            total_cents=breakdown.total_cents,
            status=OrderStatus.CREATED,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            dispatch_candidates=[],
            dispatch_round=0,
        )
        self.db.add(order)
        await self.db.flush()

        await self.events.emit(order_state_event(order, None, None))
        logger.info(
            "Created order %s (%s) total=%d cents", order.id, order.order_number, order.total_cents
        )
        return order

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """Get an order by ID. Raises NotFoundException if not found."""
        order = await self.db.get(Order, order_id)
        if order is None:
            raise NotFoundException(f"Order {order_id} not found")
        return order

    async def get_order_for(self, order_id: uuid.UUID, user: AuthenticatedUser) -> Order:
        order = await self.get_order(order_id)
        ensure_participant(order, user)
        return order

    async def list_orders(
        self,
        user: AuthenticatedUser,
        status: OrderStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """List orders visible to the caller.

        Customers see their own orders, drivers the orders assigned to them,
        suppliers the orders sourced from their depots. Admins see all.
        """
        query = select(Order)
        count_query = select(func.count()).select_from(Order)

        scope = None
        if user.role == UserRole.CUSTOMER:
            scope = Order.customer_id == user.id
        elif user.role == UserRole.DRIVER:
            scope = Order.driver_id == user.id
        elif user.role == UserRole.SUPPLIER:
            scope = Order.supplier_id == user.id

        if scope is not None:
            query = query.where(scope)
            count_query = count_query.where(scope)

        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(Order.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        items = list(result.scalars().all())

        return items, total

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def transition(
        self,
        order_id: uuid.UUID,
        transition_type: OrderTransitionType,
        actor: AuthenticatedUser,
        reason: str | None = None,
        metadata: dict | None = None,
        values: dict[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> Order:
        """Execute a state machine transition on an order.

        Validates via ORDER_TRANSITIONS, runs guard conditions, applies the
        change as a compare-and-swap on (id, version, status), records the
        transition, and emits ``order.state_changed``. ``values`` carries
        extra columns written in the same update.
        """
        order = await self.get_order(order_id)
        current_status = order.status

        allowed_transitions = ORDER_TRANSITIONS.get(current_status, {})
        if transition_type not in allowed_transitions:
            raise InvalidTransitionException(
                f"Cannot perform '{transition_type.value}' on order {order.order_number} "
                f"from status '{current_status.value}'. "
                f"Allowed transitions: {[t.value for t in allowed_transitions.keys()]}"
            )

        new_status = allowed_transitions[transition_type]
        changes = dict(values or {})
        changes.update(await self._run_guards(order, transition_type, actor, metadata))

        now = self.clock()
        changes["status"] = new_status
        timestamp_field = STATUS_TIMESTAMPS.get(new_status)
        if timestamp_field is not None:
            changes[timestamp_field] = now
        if transition_type == OrderTransitionType.CANCEL:
            changes["cancellation_reason"] = reason
        elif transition_type == OrderTransitionType.REFUND:
            changes["payment_status"] = PaymentStatus.REFUNDED

        order = await compare_and_swap(
            self.db,
            Order,
            order.id,
            order.version if expected_version is None else expected_version,
            changes,
            Order.status == current_status,
        )

        self.db.add(
            OrderTransition(
                order_id=order.id,
                from_status=current_status,
                to_status=new_status,
                transition_type=transition_type,
                triggered_by=actor.id,
                trigger_source=actor.trigger_source,
                reason=reason,
                metadata_extra=metadata or {},
            )
        )
        await self.db.flush()

        await self.events.emit(order_state_event(order, current_status, transition_type))

        logger.info(
            "Order %s transitioned %s -> %s via %s (v%d)",
            order.id, current_status.value, new_status.value, transition_type.value, order.version,
        )
        return order

    async def _run_guards(
        self,
        order: Order,
        transition_type: OrderTransitionType,
        actor: AuthenticatedUser,
        metadata: dict | None,
    ) -> dict[str, Any]:
        """Run guard conditions for the given transition.

        Returns any columns the guard derives for the update (the driver on
        ASSIGN).
        """
        if transition_type == OrderTransitionType.OFFER:
            await self._guard_offer(order)
        elif transition_type == OrderTransitionType.ASSIGN:
            return await self._guard_assign(order, metadata)
        elif transition_type in DRIVER_TRANSITIONS:
            await self._guard_driver_action(order, transition_type, actor)
        elif transition_type == OrderTransitionType.CANCEL:
            self._guard_cancel(order, actor)
        elif transition_type == OrderTransitionType.REFUND:
            self._guard_refund(order, actor)
        return {}

    async def _pending_offer_count(self, order_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(DispatchOffer)
            .where(
                DispatchOffer.order_id == order_id,
                DispatchOffer.status == OfferStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def _guard_offer(self, order: Order) -> None:
        """OFFER requires no live offer for the order."""
        if await self._pending_offer_count(order.id):
            raise InvalidTransitionException(
                f"Order {order.order_number} already has a pending offer"
            )

    async def _guard_assign(self, order: Order, metadata: dict | None) -> dict[str, Any]:
        """ASSIGN requires an ACCEPTED offer for this order."""
        offer_id = (metadata or {}).get("offer_id")
        if offer_id is None:
            raise InvalidTransitionException("ASSIGN requires the accepted offer")

        offer = await self.db.get(DispatchOffer, uuid.UUID(str(offer_id)))
        if offer is None or offer.order_id != order.id:
            raise InvalidTransitionException(
                f"Offer {offer_id} does not belong to order {order.order_number}"
            )
        if offer.status != OfferStatus.ACCEPTED:
            raise InvalidTransitionException(
                f"Offer {offer_id} is {offer.status.value}, not ACCEPTED"
            )
        return {"driver_id": offer.driver_id}

    async def _guard_driver_action(
        self,
        order: Order,
        transition_type: OrderTransitionType,
        actor: AuthenticatedUser,
    ) -> None:
        """PICK_UP / START_ROUTE / DELIVER belong to the assigned driver alone."""
        if order.driver_id is None or actor.id != order.driver_id:
            raise ForbiddenException(
                f"Only the assigned driver may {transition_type.value} order {order.order_number}"
            )

        if (
            transition_type == OrderTransitionType.PICK_UP
            and order.fulfillment_mode == FulfillmentMode.DEPOT_PICKUP
        ):
            result = await self.db.execute(
                select(DepotOrder.status).where(DepotOrder.order_id == order.id)
            )
            depot_status = result.scalar_one_or_none()
            if depot_status != DepotOrderStatus.COMPLETED:
                raise InvalidTransitionException(
                    f"Order {order.order_number} cannot be picked up until its depot "
                    f"order is COMPLETED (currently {depot_status.value if depot_status else 'missing'})"
                )

    def _guard_cancel(self, order: Order, actor: AuthenticatedUser) -> None:
        """CANCEL is for the customer or an admin."""
        if not actor.is_admin and actor.id != order.customer_id:
            raise ForbiddenException(
                f"Only the customer or an admin may cancel order {order.order_number}"
            )

    def _guard_refund(self, order: Order, actor: AuthenticatedUser) -> None:
        """REFUND is admin-only and needs a collected payment."""
        if not actor.is_admin:
            raise ForbiddenException("Refunds require an admin")
        if order.payment_status != PaymentStatus.PAID:
            raise InvalidTransitionException(
                f"Order {order.order_number} cannot be refunded: payment is "
                f"{order.payment_status.value}"
            )

    # ------------------------------------------------------------------
    # Convenience operations
    # ------------------------------------------------------------------

    async def cancel_order(
        self,
        order_id: uuid.UUID,
        actor: AuthenticatedUser,
        reason: str | None = None,
    ) -> Order:
        """Cancel an order and supersede its live offer in the same transaction."""
        order = await self.transition(order_id, OrderTransitionType.CANCEL, actor, reason=reason)
        await self._supersede_pending_offers(order)
        return order

    async def _supersede_pending_offers(self, order: Order) -> None:
        result = await self.db.execute(
            update(DispatchOffer)
            .where(
                DispatchOffer.order_id == order.id,
                DispatchOffer.status == OfferStatus.PENDING,
            )
            .values(
                status=OfferStatus.SUPERSEDED,
                resolved_at=self.clock(),
                version=DispatchOffer.version + 1,
            )
            .returning(DispatchOffer.id, DispatchOffer.driver_id)
            .execution_options(synchronize_session=False)
        )
        superseded = result.all()
        if superseded:
            # Refresh offers this session already holds
            refreshed = await self.db.execute(
                select(DispatchOffer)
                .where(DispatchOffer.id.in_([offer_id for offer_id, _ in superseded]))
                .execution_options(populate_existing=True)
            )
            refreshed.scalars().all()
        for offer_id, driver_id in superseded:
            logger.info("Offer %s superseded by cancellation of order %s", offer_id, order.id)
            await self.events.emit(
                OfferResolved(
                    order_id=order.id,
                    payload=OfferResolvedPayload(
                        offer_id=offer_id,
                        driver_id=driver_id,
                        status=OfferStatus.SUPERSEDED,
                        reason="order cancelled",
                    ),
                )
            )

    async def mark_picked_up(self, order_id: uuid.UUID, actor: AuthenticatedUser) -> Order:
        return await self.transition(order_id, OrderTransitionType.PICK_UP, actor)

    async def mark_en_route(self, order_id: uuid.UUID, actor: AuthenticatedUser) -> Order:
        return await self.transition(order_id, OrderTransitionType.START_ROUTE, actor)

    async def mark_delivered(self, order_id: uuid.UUID, actor: AuthenticatedUser) -> Order:
        return await self.transition(order_id, OrderTransitionType.DELIVER, actor)

    async def refund_order(
        self,
        order_id: uuid.UUID,
        actor: AuthenticatedUser,
        reason: str | None = None,
    ) -> Order:
        return await self.transition(
            order_id, OrderTransitionType.REFUND, actor, reason=reason
        )

    async def mark_paid(
        self,
        order_id: uuid.UUID,
        actor: AuthenticatedUser,
        reference: str | None = None,
    ) -> Order:
        """Record a successful payment reported by the payment collaborator.

        Payment is not an order state; it is a guarded field update on the
        same versioned row.
        """
        if not actor.is_admin:
            raise ForbiddenException("Payment callbacks require an admin")

        order = await self.get_order(order_id)
        if order.payment_status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
            raise InvalidTransitionException(
                f"Order {order.order_number} payment is already {order.payment_status.value}"
            )

        order = await compare_and_swap(
            self.db,
            Order,
            order.id,
            order.version,
            {
                "payment_status": PaymentStatus.PAID,
                "payment_reference": reference,
                "paid_at": self.clock(),
            },
            Order.payment_status == order.payment_status,
        )
        await self.events.emit(order_state_event(order, order.status, None))
        logger.info("Order %s marked paid (ref=%s)", order.id, reference)
        return order
