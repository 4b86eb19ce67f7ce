"""Pydantic v2 schemas for the order API endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    FuelType,
    FulfillmentMode,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OrderCreate(BaseModel):
    depot_id: uuid.UUID
    fuel_type: FuelType
    litres: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    drop_lat: float = Field(..., ge=-90, le=90)
    drop_lng: float = Field(..., ge=-180, le=180)
    drop_address: str | None = Field(None, max_length=1000)
    payment_method: PaymentMethod = PaymentMethod.CARD
    fulfillment_mode: FulfillmentMode = FulfillmentMode.DIRECT


class OrderCancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class OrderRefundRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class PaymentConfirmation(BaseModel):
    reference: str | None = Field(None, max_length=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    depot_id: uuid.UUID
    supplier_id: uuid.UUID
    driver_id: uuid.UUID | None = None
    fuel_type: FuelType
    litres: Decimal
    drop_lat: float
    drop_lng: float
    drop_address: str | None = None
    fulfillment_mode: FulfillmentMode
    status: OrderStatus
    price_per_litre_cents: int
    fuel_cost_cents: int
    delivery_fee_cents: int
    service_fee_cents: int
    total_cents: int
    currency: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_reference: str | None = None
    dispatch_round: int
    cancellation_reason: str | None = None
    dispatch_requested_at: datetime | None = None
    assigned_at: datetime | None = None
    picked_up_at: datetime | None = None
    en_route_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    refunded_at: datetime | None = None
    paid_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    limit: int
    offset: int
