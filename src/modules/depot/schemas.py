"""Pydantic v2 schemas for depot order endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import DepotAction, DepotOrderStatus, DepotPaymentStatus


class DepotActionRequest(BaseModel):
    action: DepotAction
    # Opaque artifact reference: payment proof or signature
    evidence_ref: str | None = Field(None, max_length=500)
    reason: str | None = Field(None, max_length=1000)


class DepotOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    depot_id: uuid.UUID
    supplier_id: uuid.UUID
    driver_id: uuid.UUID
    status: DepotOrderStatus
    rejection_reason: str | None = None
    payment_status: DepotPaymentStatus
    payment_proof_ref: str | None = None
    payment_proof_submitted_at: datetime | None = None
    payment_attempts: int
    payment_dispute_reason: str | None = None
    paid_at: datetime | None = None
    supplier_signature_ref: str | None = None
    supplier_signed_at: datetime | None = None
    released_at: datetime | None = None
    driver_signature_ref: str | None = None
    driver_signed_at: datetime | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class DepotOrderListResponse(BaseModel):
    items: list[DepotOrderResponse]
    total: int
    limit: int
    offset: int
