"""Depot fulfillment service — the pickup workflow between driver and depot."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.base import utcnow
from src.database.cas import compare_and_swap
from src.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.depot_order import DepotOrder, DepotOrderTransition
from src.models.enums import (
    DepotAction,
    DepotOrderStatus,
    DepotPaymentStatus,
    OrderTransitionType,
    UserRole,
)
from src.models.order import Order
from src.modules.depot.constants import DEPOT_TRANSITIONS, DRIVER_ACTIONS, EVIDENCE_REQUIRED
from src.modules.events.publisher import EventPublisher
from src.modules.identity.auth import AuthenticatedUser
from src.modules.order.constants import ORDER_TERMINAL_STATUSES
from src.modules.order.service import OrderService
from src.modules.realtime.events import DepotStateChanged, DepotStateChangedPayload

logger = logging.getLogger(__name__)


def depot_state_event(
    depot_order: DepotOrder,
    customer_id: uuid.UUID,
    from_status: DepotOrderStatus | None,
    action: DepotAction | None,
) -> DepotStateChanged:
    return DepotStateChanged(
        order_id=depot_order.order_id,
        payload=DepotStateChangedPayload(
            depot_order_id=depot_order.id,
            from_status=from_status,
            to_status=depot_order.status,
            action=action,
            driver_id=depot_order.driver_id,
            supplier_id=depot_order.supplier_id,
            customer_id=customer_id,
            version=depot_order.version,
        ),
    )


class DepotService:
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
    # Creation and reads
    # ------------------------------------------------------------------

    async def open_for_order(self, order: Order) -> DepotOrder:
        """Attach a PENDING depot order to a freshly assigned DEPOT_PICKUP order."""
        existing = await self.db.execute(
            select(DepotOrder).where(DepotOrder.order_id == order.id)
        )
        depot_order = existing.scalar_one_or_none()
        if depot_order is not None:
            return depot_order

        depot_order = DepotOrder(
            order_id=order.id,
            depot_id=order.depot_id,
            supplier_id=order.supplier_id,
            driver_id=order.driver_id,
            status=DepotOrderStatus.PENDING,
            payment_status=DepotPaymentStatus.AWAITING_PROOF,
            payment_attempts=0,
        )
        self.db.add(depot_order)
        await self.db.flush()

        await self.events.emit(depot_state_event(depot_order, order.customer_id, None, None))
        logger.info("Opened depot order %s for order %s", depot_order.id, order.id)
        return depot_order

    async def get_depot_order(self, depot_order_id: uuid.UUID) -> DepotOrder:
        depot_order = await self.db.get(DepotOrder, depot_order_id)
        if depot_order is None:
            raise NotFoundException(f"Depot order {depot_order_id} not found")
        return depot_order

    async def _get_parent(self, depot_order: DepotOrder) -> Order:
        order = await self.db.get(Order, depot_order.order_id)
        if order is None:
            raise NotFoundException(f"Order {depot_order.order_id} not found")
        return order

    async def get_for(self, depot_order_id: uuid.UUID, user: AuthenticatedUser) -> DepotOrder:
        depot_order = await self.get_depot_order(depot_order_id)
        if user.is_admin or user.id in (depot_order.driver_id, depot_order.supplier_id):
            return depot_order
        order = await self._get_parent(depot_order)
        if user.id != order.customer_id:
            raise ForbiddenException(f"Not a participant of depot order {depot_order_id}")
        return depot_order

    async def list_depot_orders(
        self,
        user: AuthenticatedUser,
        status: DepotOrderStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DepotOrder], int]:
        """Depot orders visible to the caller's role."""
        query = select(DepotOrder)
        count_query = select(func.count()).select_from(DepotOrder)

        scope = None
        if user.role == UserRole.SUPPLIER:
            scope = DepotOrder.supplier_id == user.id
        elif user.role == UserRole.DRIVER:
            scope = DepotOrder.driver_id == user.id
        elif user.role == UserRole.CUSTOMER:
            scope = DepotOrder.order_id.in_(
                select(Order.id).where(Order.customer_id == user.id).scalar_subquery()
            )

        if scope is not None:
            query = query.where(scope)
            count_query = count_query.where(scope)

        if status is not None:
            query = query.where(DepotOrder.status == status)
            count_query = count_query.where(DepotOrder.status == status)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(DepotOrder.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def transition_depot_order(
        self,
        depot_order_id: uuid.UUID,
        action: DepotAction,
        actor: AuthenticatedUser,
        evidence_ref: str | None = None,
        reason: str | None = None,
    ) -> DepotOrder:
        """Apply one depot action.

        Validates via DEPOT_TRANSITIONS, checks the actor and evidence, applies
        the change as a compare-and-swap on (id, version, status), audits it,
        and emits ``depot.state_changed``. Completing the workflow picks up
        the parent order.
        """
        depot_order = await self.get_depot_order(depot_order_id)
        order = await self._get_parent(depot_order)
        current_status = depot_order.status

        if order.status in ORDER_TERMINAL_STATUSES:
            raise InvalidTransitionException(
                f"Order {order.order_number} is {order.status.value}; depot actions are closed"
            )

        allowed_actions = DEPOT_TRANSITIONS.get(current_status, {})
        if action not in allowed_actions:
            raise InvalidTransitionException(
                f"Cannot perform '{action.value}' on depot order {depot_order.id} "
                f"from status '{current_status.value}'. "
                f"Allowed actions: {[a.value for a in allowed_actions.keys()]}"
            )
        new_status = allowed_actions[action]

        self._guard_actor(depot_order, action, actor)
        if action in EVIDENCE_REQUIRED and not evidence_ref:
            raise ValidationException(
                f"{action.value} requires an evidence reference",
                details=[{"field": "evidence_ref", "message": "required"}],
            )

        values = self._action_values(depot_order, action, actor, evidence_ref, reason)
        values["status"] = new_status

        depot_order = await compare_and_swap(
            self.db,
            DepotOrder,
            depot_order.id,
            depot_order.version,
            values,
            DepotOrder.status == current_status,
        )

        self._record(depot_order, current_status, new_status, action, actor, evidence_ref, reason)
        await self.db.flush()

        await self.events.emit(
            depot_state_event(depot_order, order.customer_id, current_status, action)
        )
        logger.info(
            "Depot order %s: %s -> %s via %s by %s",
            depot_order.id, current_status.value, new_status.value, action.value, actor.id,
        )

        if new_status == DepotOrderStatus.COMPLETED:
            await OrderService(self.db, self.events, self.clock).transition(
                order.id,
                OrderTransitionType.PICK_UP,
                actor,
                reason="depot pickup completed",
                metadata={"depot_order_id": str(depot_order.id)},
            )

        return depot_order

    def _guard_actor(
        self, depot_order: DepotOrder, action: DepotAction, actor: AuthenticatedUser
    ) -> None:
        if action in DRIVER_ACTIONS:
            if actor.id != depot_order.driver_id:
                raise ForbiddenException(f"Only the assigned driver may {action.value}")
        elif actor.id != depot_order.supplier_id and not actor.is_admin:
            raise ForbiddenException(f"Only the depot's supplier may {action.value}")

    def _action_values(
        self,
        depot_order: DepotOrder,
        action: DepotAction,
        actor: AuthenticatedUser,
        evidence_ref: str | None,
        reason: str | None,
    ) -> dict[str, Any]:
        """Columns written alongside the status for ``action``; raises on a failed guard."""
        now = self.clock()

        if action == DepotAction.ACCEPT:
            return {"accepted_at": now}

        if action == DepotAction.REJECT:
            return {"rejection_reason": reason}

        if action == DepotAction.SUBMIT_PAYMENT_PROOF:
            if depot_order.payment_status == DepotPaymentStatus.PROOF_SUBMITTED:
                raise InvalidTransitionException(
                    "A payment proof is already awaiting verification"
                )
            max_attempts = settings.depot_payment_max_attempts
            if max_attempts is not None and depot_order.payment_attempts >= max_attempts:
                raise InvalidTransitionException(
                    f"Payment proof limit reached ({max_attempts} attempts)"
                )
            return {
                "payment_status": DepotPaymentStatus.PROOF_SUBMITTED,
                "payment_proof_ref": evidence_ref,
                "payment_proof_submitted_by": actor.id,
                "payment_proof_submitted_at": now,
                "payment_attempts": depot_order.payment_attempts + 1,
                "payment_dispute_reason": None,
            }

        if action in (DepotAction.VERIFY_PAYMENT, DepotAction.DISPUTE_PAYMENT):
            if (
                depot_order.payment_status != DepotPaymentStatus.PROOF_SUBMITTED
                or not depot_order.payment_proof_ref
            ):
                raise InvalidTransitionException(
                    f"No payment proof to {'verify' if action == DepotAction.VERIFY_PAYMENT else 'dispute'}"
                )
            if action == DepotAction.VERIFY_PAYMENT:
                return {
                    "payment_status": DepotPaymentStatus.VERIFIED,
                    "payment_verified_by": actor.id,
                    "paid_at": now,
                }
            return {
                "payment_status": DepotPaymentStatus.DISPUTED,
                "payment_proof_ref": None,
                "payment_dispute_reason": reason,
            }

        if action == DepotAction.SUPPLIER_SIGN:
            return {
                "supplier_signature_ref": evidence_ref,
                "supplier_signed_by": actor.id,
                "supplier_signed_at": now,
            }

        if action == DepotAction.RELEASE:
            if (
                depot_order.payment_status != DepotPaymentStatus.VERIFIED
                or not depot_order.supplier_signature_ref
            ):
                raise InvalidTransitionException(
                    "Fuel can only be released once paid and signed by the supplier"
                )
            return {"released_by": actor.id, "released_at": now}

        if action == DepotAction.DRIVER_SIGN:
            return {
                "driver_signature_ref": evidence_ref,
                "driver_signed_by": actor.id,
                "driver_signed_at": now,
                "completed_at": now,
            }

        raise InvalidTransitionException(f"Unsupported depot action '{action.value}'")

    def _record(
        self,
        depot_order: DepotOrder,
        from_status: DepotOrderStatus,
        to_status: DepotOrderStatus,
        action: DepotAction,
        actor: AuthenticatedUser,
        evidence_ref: str | None,
        reason: str | None,
    ) -> None:
        steps = [(from_status, to_status)]
        if action == DepotAction.ACCEPT:
            steps = [
                (from_status, DepotOrderStatus.ACCEPTED),
                (DepotOrderStatus.ACCEPTED, to_status),
            ]
        for step_from, step_to in steps:
            self.db.add(
                DepotOrderTransition(
                    depot_order_id=depot_order.id,
                    from_status=step_from,
                    to_status=step_to,
                    action=action,
                    triggered_by=actor.id,
                    evidence_ref=evidence_ref,
                    reason=reason,
                )
            )
