"""Pydantic v2 schemas for the realtime sync endpoint."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.modules.depot.schemas import DepotOrderResponse
from src.modules.dispatch.schemas import OfferResponse
from src.modules.order.schemas import OrderResponse


class SyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    server_time: datetime
    orders: list[OrderResponse]
    offers: list[OfferResponse]
    depot_orders: list[DepotOrderResponse]
