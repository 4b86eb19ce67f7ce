"""Supplier depots and their per-fuel prices."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import FuelType


class Depot(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "depots"

    # The supplier operator identity that owns and runs this depot
    owner_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lat: Mapped[float] = mapped_column(nullable=False)
    lng: Mapped[float] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    prices: Mapped[list[DepotPrice]] = relationship(
        "DepotPrice", back_populates="depot", lazy="noload", cascade="all, delete-orphan"
    )


class DepotPrice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "depot_prices"

    depot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("depots.id", ondelete="CASCADE"), nullable=False
    )
    fuel_type: Mapped[FuelType] = mapped_column(nullable=False)
    price_per_litre_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    # Tier floor: orders of at least this many litres get this price
    min_litres: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"), server_default="0"
    )
    # Stock on hand for this fuel; NULL means not tracked
    available_litres: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    depot: Mapped[Depot] = relationship("Depot", back_populates="prices", lazy="noload")

    __table_args__ = (
        UniqueConstraint(
            "depot_id", "fuel_type", "min_litres", name="uq_depot_prices_depot_fuel_tier"
        ),
    )
