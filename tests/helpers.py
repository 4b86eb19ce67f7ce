"""Shared test harness for FuelFlow service and router tests.

Seeds depots, drivers and orders straight into the test database and
provides the fakes services accept for time and offer timers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.models.depot import Depot, DepotPrice
from src.models.driver import Driver
from src.models.enums import FuelType, FulfillmentMode, OfferDecision, PaymentMethod, UserRole
from src.models.order import Order
from src.modules.identity.auth import AuthenticatedUser
from src.modules.order.service import OrderService
from src.modules.realtime.events import RealtimeEvent

# Johannesburg CBD and a drop point a few km away
DEPOT_LAT, DEPOT_LNG = -26.2041, 28.0473
DROP_LAT, DROP_LNG = -26.1952, 28.0340


def make_user(role: UserRole = UserRole.CUSTOMER, user_id: uuid.UUID | None = None) -> AuthenticatedUser:
    return AuthenticatedUser(id=user_id or uuid.uuid4(), role=role)


def make_token(user: AuthenticatedUser, expires_in: int = 3600) -> str:
    return jwt.encode(
        {
            "sub": str(user.id),
            "role": user.role.value,
            "exp": datetime.now(UTC) + timedelta(seconds=expires_in),
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(user: AuthenticatedUser) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user)}"}


class FixedClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@dataclass
class RecordingTimer:
    """Offer timer that records what would have been scheduled."""

    armed: list[tuple[uuid.UUID, datetime]] = field(default_factory=list)

    def arm(self, offer_id: uuid.UUID, expires_at: datetime) -> None:
        self.armed.append((offer_id, expires_at))


class RecordingDistributor:
    """Stand-in for EventDistributor that only remembers staged events."""

    def __init__(self) -> None:
        self.events: list[RealtimeEvent] = []

    def stage(self, session, event: RealtimeEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[RealtimeEvent]:
        return [e for e in self.events if e.type == event_type]


async def seed_depot(
    session: AsyncSession,
    owner_id: uuid.UUID | None = None,
    price_per_litre_cents: int = 2100,
    fuel_type: FuelType = FuelType.DIESEL,
    lat: float = DEPOT_LAT,
    lng: float = DEPOT_LNG,
) -> Depot:
    depot = Depot(owner_id=owner_id or uuid.uuid4(), name="Main Street Depot", lat=lat, lng=lng)
    session.add(depot)
    await session.flush()
    session.add(
        DepotPrice(
            depot_id=depot.id,
            fuel_type=fuel_type,
            price_per_litre_cents=price_per_litre_cents,
        )
    )
    await session.flush()
    return depot


async def seed_driver(
    session: AsyncSession,
    lat: float = DROP_LAT,
    lng: float = DROP_LNG,
    is_premium: bool = False,
    is_available: bool = True,
    is_approved: bool = True,
    radius_km: float | None = None,
    user_id: uuid.UUID | None = None,
) -> Driver:
    driver = Driver(
        user_id=user_id or uuid.uuid4(),
        display_name="Test Driver",
        is_available=is_available,
        is_approved=is_approved,
        is_premium=is_premium,
        current_lat=lat,
        current_lng=lng,
        radius_km=radius_km,
    )
    session.add(driver)
    await session.flush()
    return driver


async def seed_order(
    session: AsyncSession,
    customer: AuthenticatedUser,
    depot: Depot,
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DIRECT,
    litres: Decimal = Decimal("500"),
    publisher=None,
) -> Order:
    return await OrderService(session, publisher).create_order(
        customer_id=customer.id,
        depot_id=depot.id,
        fuel_type=FuelType.DIESEL,
        litres=litres,
        drop_lat=DROP_LAT,
        drop_lng=DROP_LNG,
        payment_method=PaymentMethod.CARD,
        fulfillment_mode=fulfillment_mode,
    )


async def assign_order(
    session: AsyncSession,
    customer: AuthenticatedUser,
    depot: Depot,
    driver: AuthenticatedUser,
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DIRECT,
    publisher=None,
) -> Order:
    """Create an order and walk it through dispatch to ASSIGNED for ``driver``."""
    from src.modules.dispatch.service import DispatchService

    order = await seed_order(
        session, customer, depot, fulfillment_mode=fulfillment_mode, publisher=publisher
    )
    dispatch = DispatchService(session, publisher, timer=RecordingTimer())
    outcome = await dispatch.request_dispatch(order.id, customer, candidates=[driver.id])
    accepted = await dispatch.resolve_offer(outcome.offer.id, driver, OfferDecision.ACCEPT)
    return accepted.order
