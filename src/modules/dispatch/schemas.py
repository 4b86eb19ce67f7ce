"""Pydantic v2 schemas for dispatch endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import OfferDecision, OfferStatus
from src.modules.order.schemas import OrderResponse


class DispatchRequest(BaseModel):
    # Explicit ordered candidates; omitted means the default ranking
    candidates: list[uuid.UUID] | None = None


class OfferResolveRequest(BaseModel):
    decision: OfferDecision
    reason: str | None = Field(None, max_length=500)


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    driver_id: uuid.UUID
    status: OfferStatus
    dispatch_round: int
    sequence: int
    expires_at: datetime
    resolved_at: datetime | None = None
    decline_reason: str | None = None
    version: int
    created_at: datetime


class DispatchOutcomeResponse(BaseModel):
    order: OrderResponse
    offer: OfferResponse | None = None
    exhausted: bool = False


class OfferListResponse(BaseModel):
    items: list[OfferResponse]
    limit: int
    offset: int
