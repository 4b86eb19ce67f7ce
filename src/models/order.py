"""Order model — one fuel-delivery request and its dispatch bookkeeping."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin
from src.models.enums import (
    FuelType,
    FulfillmentMode,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)

if TYPE_CHECKING:
    from src.models.depot import Depot


class Order(UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin, Base):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    fuel_type: Mapped[FuelType] = mapped_column(nullable=False)
    litres: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    drop_lat: Mapped[float] = mapped_column(nullable=False)
    drop_lng: Mapped[float] = mapped_column(nullable=False)
    drop_address: Mapped[str | None] = mapped_column(Text)

    depot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("depots.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    fulfillment_mode: Mapped[FulfillmentMode] = mapped_column(
        nullable=False, server_default="DIRECT"
    )

    # Pricing: integer minor units, always computed server-side
    price_per_litre_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    fuel_cost_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delivery_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    service_fee_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="ZAR", server_default="ZAR"
    )

    status: Mapped[OrderStatus] = mapped_column(nullable=False, server_default="CREATED")
    driver_id: Mapped[uuid.UUID | None] = mapped_column()

    # Payment
    payment_method: Mapped[PaymentMethod] = mapped_column(nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        nullable=False, server_default="PENDING"
    )
    payment_reference: Mapped[str | None] = mapped_column(String(100))

    # Dispatch round bookkeeping: ordered candidate driver ids (as strings)
    dispatch_candidates: Mapped[list] = mapped_column(nullable=False, default=list)
    dispatch_round: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    dispatch_requested_at: Mapped[datetime | None] = mapped_column()
    assigned_at: Mapped[datetime | None] = mapped_column()
    picked_up_at: Mapped[datetime | None] = mapped_column()
    en_route_at: Mapped[datetime | None] = mapped_column()
    delivered_at: Mapped[datetime | None] = mapped_column()
    cancelled_at: Mapped[datetime | None] = mapped_column()
    refunded_at: Mapped[datetime | None] = mapped_column()
    paid_at: Mapped[datetime | None] = mapped_column()

    depot: Mapped[Depot] = relationship("Depot", lazy="noload")

    __table_args__ = (
        Index("ix_orders_customer_id", "customer_id"),
        Index("ix_orders_driver_id", "driver_id"),
        Index("ix_orders_supplier_id", "supplier_id"),
        Index("ix_orders_status", "status"),
        CheckConstraint(
            "total_cents = fuel_cost_cents + delivery_fee_cents + service_fee_cents",
            name="ck_orders_total",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status} v{self.version}>"
