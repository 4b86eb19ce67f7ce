"""Tests for the order lifecycle: creation, pricing, guards and optimistic writes."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select

from src.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import (
    FuelType,
    OrderStatus,
    OrderTransitionType,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from src.models.depot import DepotPrice
from src.models.event_outbox import EventOutbox
from src.models.order_transition import OrderTransition
from src.modules.events.publisher import EventPublisher
from src.modules.identity.auth import SYSTEM_USER
from src.modules.order.service import OrderService
from tests.helpers import (
    DROP_LAT,
    DROP_LNG,
    FixedClock,
    RecordingDistributor,
    make_user,
    seed_depot,
    seed_order,
)


@pytest.fixture
def customer():
    return make_user(UserRole.CUSTOMER)


@pytest.fixture
def admin():
    return make_user(UserRole.ADMIN)


@pytest.fixture
def recorder():
    return RecordingDistributor()


@pytest_asyncio.fixture
async def depot(db_session):
    return await seed_depot(db_session)


@pytest_asyncio.fixture
async def service(db_session, recorder):
    return OrderService(db_session, EventPublisher(db_session, recorder), FixedClock())


async def _transitions(db_session, order_id):
    result = await db_session.execute(
        select(OrderTransition)
        .where(OrderTransition.order_id == order_id)
        .order_by(OrderTransition.created_at)
    )
    return list(result.scalars().all())


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_creates_priced_order(self, service, customer, depot, recorder):
        order = await service.create_order(
            customer_id=customer.id,
            depot_id=depot.id,
            fuel_type=FuelType.DIESEL,
            litres=Decimal("500"),
            drop_lat=DROP_LAT,
            drop_lng=DROP_LNG,
            payment_method=PaymentMethod.CARD,
        )

        assert order.status == OrderStatus.CREATED
        assert order.payment_status == PaymentStatus.PENDING
        assert order.order_number == "FF-2026-000001"
        assert order.supplier_id == depot.owner_id
        assert order.fuel_cost_cents == 1_050_000
        assert order.total_cents == (
            order.fuel_cost_cents + order.delivery_fee_cents + order.service_fee_cents
        )
        assert order.version == 1

        events = recorder.of_type("order.state_changed")
        assert len(events) == 1
        assert events[0].payload.from_status is None
        assert events[0].payload.to_status == OrderStatus.CREATED

    @pytest.mark.asyncio
    async def test_order_numbers_increase(self, service, customer, depot):
        first = await seed_order(service.db, customer, depot, publisher=service.events)
        second = await seed_order(service.db, customer, depot, publisher=service.events)
        assert first.order_number.endswith("000001")
        assert second.order_number.endswith("000002")

    @pytest.mark.asyncio
    async def test_unstocked_fuel_rejected(self, service, customer, depot):
        with pytest.raises(ValidationException):
            await service.create_order(
                customer_id=customer.id,
                depot_id=depot.id,
                fuel_type=FuelType.PARAFFIN,
                litres=Decimal("100"),
                drop_lat=DROP_LAT,
                drop_lng=DROP_LNG,
                payment_method=PaymentMethod.CARD,
            )

    @pytest.mark.asyncio
    async def test_unknown_depot(self, service, customer):
        with pytest.raises(NotFoundException):
            await service.create_order(
                customer_id=customer.id,
                depot_id=uuid.uuid4(),
                fuel_type=FuelType.DIESEL,
                litres=Decimal("100"),
                drop_lat=DROP_LAT,
                drop_lng=DROP_LNG,
                payment_method=PaymentMethod.CARD,
            )

    @pytest.mark.asyncio
    async def test_outbox_row_written_with_order(self, db_session, service, customer, depot):
        order = await seed_order(db_session, customer, depot, publisher=service.events)
        result = await db_session.execute(
            select(EventOutbox).where(EventOutbox.aggregate_id == str(order.id))
        )
        rows = list(result.scalars().all())
        assert [r.event_type for r in rows] == ["order.state_changed"]


async def _add_tier(db_session, depot, min_litres, price_per_litre_cents, available_litres=None):
    db_session.add(
        DepotPrice(
            depot_id=depot.id,
            fuel_type=FuelType.DIESEL,
            price_per_litre_cents=price_per_litre_cents,
            min_litres=Decimal(min_litres),
            available_litres=None if available_litres is None else Decimal(available_litres),
        )
    )
    await db_session.flush()


async def _order_litres(service, customer, depot, litres):
    return await service.create_order(
        customer_id=customer.id,
        depot_id=depot.id,
        fuel_type=FuelType.DIESEL,
        litres=Decimal(litres),
        drop_lat=DROP_LAT,
        drop_lng=DROP_LNG,
        payment_method=PaymentMethod.CARD,
    )


class TestPriceTiers:
    @pytest.mark.asyncio
    async def test_highest_tier_at_or_below_quantity(self, db_session, service, customer, depot):
        await _add_tier(db_session, depot, "1000", 1900)
        await _add_tier(db_session, depot, "2000", 1800)

        small = await _order_litres(service, customer, depot, "999")
        boundary = await _order_litres(service, customer, depot, "1000")
        large = await _order_litres(service, customer, depot, "5000")

        assert small.price_per_litre_cents == 2100
        assert boundary.price_per_litre_cents == 1900
        assert boundary.fuel_cost_cents == 1_900_000
        assert large.price_per_litre_cents == 1800

    @pytest.mark.asyncio
    async def test_below_every_floor_uses_lowest_tier(self, service, customer):
        depot = await seed_depot(service.db)
        result = await service.db.execute(select(DepotPrice).where(DepotPrice.depot_id == depot.id))
        base = result.scalar_one()
        base.min_litres = Decimal("200")
        await service.db.flush()

        order = await _order_litres(service, customer, depot, "50")

        assert order.price_per_litre_cents == 2100

    @pytest.mark.asyncio
    async def test_order_over_stock_rejected(self, db_session, service, customer, depot):
        await _add_tier(db_session, depot, "1000", 1900, available_litres="1500")

        with pytest.raises(ValidationException) as exc_info:
            await _order_litres(service, customer, depot, "1600")
        assert exc_info.value.details == [{"field": "litres", "message": "exceeds available stock"}]

        order = await _order_litres(service, customer, depot, "1500")
        assert order.price_per_litre_cents == 1900

    @pytest.mark.asyncio
    async def test_untracked_stock_is_unlimited(self, service, customer, depot):
        order = await _order_litres(service, customer, depot, "40000")
        assert order.status == OrderStatus.CREATED


class TestTransitions:
    @pytest.mark.asyncio
    async def test_illegal_transition_rejected(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        with pytest.raises(InvalidTransitionException):
            await service.transition(order.id, OrderTransitionType.DELIVER, customer)

    @pytest.mark.asyncio
    async def test_queue_dispatch_sets_timestamp_and_audit(self, db_session, service, customer, depot):
        order = await seed_order(db_session, customer, depot, publisher=service.events)
        order = await service.transition(order.id, OrderTransitionType.QUEUE_DISPATCH, customer)

        assert order.status == OrderStatus.PENDING_DISPATCH
        assert order.dispatch_requested_at is not None
        assert order.version == 2

        audit = await _transitions(db_session, order.id)
        assert len(audit) == 1
        assert audit[0].from_status == OrderStatus.CREATED
        assert audit[0].to_status == OrderStatus.PENDING_DISPATCH
        assert audit[0].triggered_by == customer.id
        assert audit[0].trigger_source == "USER"

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        stale_version = order.version
        await service.transition(order.id, OrderTransitionType.QUEUE_DISPATCH, customer)

        with pytest.raises(ConflictException):
            await service.transition(
                order.id,
                OrderTransitionType.CANCEL,
                customer,
                expected_version=stale_version,
            )

        fresh = await service.get_order(order.id)
        assert fresh.status == OrderStatus.PENDING_DISPATCH

    @pytest.mark.asyncio
    async def test_assign_requires_accepted_offer(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.transition(order.id, OrderTransitionType.QUEUE_DISPATCH, customer)
        await service.transition(order.id, OrderTransitionType.OFFER, SYSTEM_USER)

        with pytest.raises(InvalidTransitionException):
            await service.transition(order.id, OrderTransitionType.ASSIGN, SYSTEM_USER)

        with pytest.raises(InvalidTransitionException):
            await service.transition(
                order.id,
                OrderTransitionType.ASSIGN,
                SYSTEM_USER,
                metadata={"offer_id": str(uuid.uuid4())},
            )

    @pytest.mark.asyncio
    async def test_system_actor_recorded_as_system(self, db_session, service, customer, depot):
        order = await seed_order(db_session, customer, depot, publisher=service.events)
        await service.transition(order.id, OrderTransitionType.QUEUE_DISPATCH, SYSTEM_USER)
        audit = await _transitions(db_session, order.id)
        assert audit[0].trigger_source == "SYSTEM"


class TestCancel:
    @pytest.mark.asyncio
    async def test_customer_cancels(self, service, customer, depot, recorder):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        order = await service.cancel_order(order.id, customer, reason="changed my mind")

        assert order.status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "changed my mind"
        assert order.cancelled_at is not None
        assert recorder.of_type("order.state_changed")[-1].payload.to_status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_admin_cancels(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        order = await service.cancel_order(order.id, admin)
        assert order.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_other_customer_cannot_cancel(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        with pytest.raises(ForbiddenException):
            await service.cancel_order(order.id, make_user(UserRole.CUSTOMER))

    @pytest.mark.asyncio
    async def test_cancel_is_not_repeatable(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.cancel_order(order.id, customer)
        with pytest.raises(InvalidTransitionException):
            await service.cancel_order(order.id, customer)


class TestPaymentAndRefund:
    @pytest.mark.asyncio
    async def test_refund_after_payment(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.mark_paid(order.id, admin, reference="PSP-123")
        await service.cancel_order(order.id, customer)

        order = await service.refund_order(order.id, admin, reason="cancelled before dispatch")
        assert order.status == OrderStatus.REFUNDED
        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.refunded_at is not None

    @pytest.mark.asyncio
    async def test_refund_requires_payment(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.cancel_order(order.id, customer)
        with pytest.raises(InvalidTransitionException):
            await service.refund_order(order.id, admin)

    @pytest.mark.asyncio
    async def test_refund_requires_admin(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.mark_paid(order.id, admin)
        await service.cancel_order(order.id, customer)
        with pytest.raises(ForbiddenException):
            await service.refund_order(order.id, customer)

    @pytest.mark.asyncio
    async def test_refund_only_from_terminal_states(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        await service.mark_paid(order.id, admin)
        with pytest.raises(InvalidTransitionException):
            await service.refund_order(order.id, admin)

    @pytest.mark.asyncio
    async def test_mark_paid_once(self, service, customer, admin, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        order = await service.mark_paid(order.id, admin, reference="PSP-1")
        assert order.payment_status == PaymentStatus.PAID
        assert order.payment_reference == "PSP-1"
        assert order.status == OrderStatus.CREATED

        with pytest.raises(InvalidTransitionException):
            await service.mark_paid(order.id, admin, reference="PSP-2")


class TestReads:
    @pytest.mark.asyncio
    async def test_list_is_role_scoped(self, service, customer, admin, depot):
        other = make_user(UserRole.CUSTOMER)
        await seed_order(service.db, customer, depot, publisher=service.events)
        await seed_order(service.db, customer, depot, publisher=service.events)
        await seed_order(service.db, other, depot, publisher=service.events)

        mine, total = await service.list_orders(customer)
        assert total == 2
        assert all(o.customer_id == customer.id for o in mine)

        _, admin_total = await service.list_orders(admin)
        assert admin_total == 3

        supplier = make_user(UserRole.SUPPLIER, user_id=depot.owner_id)
        _, supplier_total = await service.list_orders(supplier)
        assert supplier_total == 3

        driver_orders, driver_total = await service.list_orders(make_user(UserRole.DRIVER))
        assert driver_total == 0
        assert driver_orders == []

    @pytest.mark.asyncio
    async def test_get_order_for_outsider_forbidden(self, service, customer, depot):
        order = await seed_order(service.db, customer, depot, publisher=service.events)
        with pytest.raises(ForbiddenException):
            await service.get_order_for(order.id, make_user(UserRole.CUSTOMER))
        assert (await service.get_order_for(order.id, customer)).id == order.id
