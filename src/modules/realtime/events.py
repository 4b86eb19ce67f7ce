"""Realtime event envelopes — one variant per kind of mutation.

Every envelope serializes as ``{"type", "order_id" | "thread_id", "payload"}``.
``RealtimeEvent`` is a closed union discriminated on ``type``;
:func:`interested_parties` and :func:`aggregate_of` handle every variant.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Annotated, Literal, Union, assert_never

from pydantic import BaseModel, Field, TypeAdapter

from src.models.enums import (
    ChatMessageType,
    DepotAction,
    DepotOrderStatus,
    FuelType,
    OfferStatus,
    OrderStatus,
    OrderTransitionType,
    UserRole,
)


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class OrderStateChangedPayload(BaseModel):
    order_number: str
    from_status: OrderStatus | None = None
    to_status: OrderStatus
    transition: OrderTransitionType | None = None
    customer_id: uuid.UUID
    driver_id: uuid.UUID | None = None
    supplier_id: uuid.UUID
    version: int
    occurred_at: datetime = Field(default_factory=_now)


class OfferCreatedPayload(BaseModel):
    offer_id: uuid.UUID
    driver_id: uuid.UUID
    expires_at: datetime
    fuel_type: FuelType
    litres: str
    drop_lat: float
    drop_lng: float
    delivery_fee_cents: int
    occurred_at: datetime = Field(default_factory=_now)


class OfferResolvedPayload(BaseModel):
    offer_id: uuid.UUID
    driver_id: uuid.UUID
    status: OfferStatus
    reason: str | None = None
    occurred_at: datetime = Field(default_factory=_now)


class DepotStateChangedPayload(BaseModel):
    depot_order_id: uuid.UUID
    from_status: DepotOrderStatus | None = None
    to_status: DepotOrderStatus
    action: DepotAction | None = None
    driver_id: uuid.UUID
    supplier_id: uuid.UUID
    customer_id: uuid.UUID
    version: int
    occurred_at: datetime = Field(default_factory=_now)


class ChatMessagePayload(BaseModel):
    message_id: uuid.UUID
    order_id: uuid.UUID
    sender_id: uuid.UUID
    sender_role: UserRole
    recipient_id: uuid.UUID
    message_type: ChatMessageType
    body: str
    attachment_ref: str | None = None
    created_at: datetime


class DispatchExhaustedPayload(BaseModel):
    order_number: str
    dispatch_round: int
    candidates_tried: int
    occurred_at: datetime = Field(default_factory=_now)


class SyncRequiredPayload(BaseModel):
    reason: str = "connected"
    server_time: datetime = Field(default_factory=_now)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class OrderStateChanged(BaseModel):
    type: Literal["order.state_changed"] = "order.state_changed"
    order_id: uuid.UUID
    payload: OrderStateChangedPayload


class OfferCreated(BaseModel):
    type: Literal["offer.created"] = "offer.created"
    order_id: uuid.UUID
    payload: OfferCreatedPayload


class OfferResolved(BaseModel):
    type: Literal["offer.resolved"] = "offer.resolved"
    order_id: uuid.UUID
    payload: OfferResolvedPayload


class DepotStateChanged(BaseModel):
    type: Literal["depot.state_changed"] = "depot.state_changed"
    order_id: uuid.UUID
    payload: DepotStateChangedPayload


class ChatMessagePosted(BaseModel):
    type: Literal["chat.message"] = "chat.message"
    thread_id: uuid.UUID
    payload: ChatMessagePayload


class DispatchExhausted(BaseModel):
    type: Literal["dispatch.exhausted"] = "dispatch.exhausted"
    order_id: uuid.UUID
    payload: DispatchExhaustedPayload


class SyncRequired(BaseModel):
    """Catch-up signal: pull current state before trusting further pushes."""

    type: Literal["sync.required"] = "sync.required"
    payload: SyncRequiredPayload = Field(default_factory=SyncRequiredPayload)


RealtimeEvent = Annotated[
    Union[
        OrderStateChanged,
        OfferCreated,
        OfferResolved,
        DepotStateChanged,
        ChatMessagePosted,
        DispatchExhausted,
        SyncRequired,
    ],
    Field(discriminator="type"),
]

realtime_event_adapter: TypeAdapter[RealtimeEvent] = TypeAdapter(RealtimeEvent)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Audience:
    """Identities (and whole roles) that should receive an event."""

    users: frozenset[uuid.UUID] = field(default_factory=frozenset)
    roles: frozenset[UserRole] = field(default_factory=frozenset)


def _users(*ids: uuid.UUID | None) -> frozenset[uuid.UUID]:
    return frozenset(i for i in ids if i is not None)


def interested_parties(event: RealtimeEvent) -> Audience:
    match event:
        case OrderStateChanged(payload=p):
            return Audience(users=_users(p.customer_id, p.driver_id, p.supplier_id))
        case OfferCreated(payload=p) | OfferResolved(payload=p):
            return Audience(users=_users(p.driver_id))
        case DepotStateChanged(payload=p):
            return Audience(users=_users(p.driver_id, p.supplier_id, p.customer_id))
        case ChatMessagePosted(payload=p):
            return Audience(users=_users(p.recipient_id))
        case DispatchExhausted():
            return Audience(roles=frozenset({UserRole.ADMIN}))
        case SyncRequired():
            # Sent directly to a single connection, never fanned out
            return Audience()
        case _:
            assert_never(event)


def aggregate_of(event: RealtimeEvent) -> tuple[str, str]:
    """(aggregate_type, aggregate_id) used for the outbox copy."""
    match event:
        case OrderStateChanged() | DispatchExhausted():
            return "order", str(event.order_id)
        case OfferCreated(payload=p) | OfferResolved(payload=p):
            return "dispatch_offer", str(p.offer_id)
        case DepotStateChanged(payload=p):
            return "depot_order", str(p.depot_order_id)
        case ChatMessagePosted():
            return "chat_thread", str(event.thread_id)
        case SyncRequired():
            return "session", "-"
        case _:
            assert_never(event)
