"""DispatchOffer model — one time-bounded proposal of an order to a driver."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, VersionedMixin
from src.models.enums import OfferStatus


class DispatchOffer(UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin, Base):
    __tablename__ = "dispatch_offers"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    driver_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    status: Mapped[OfferStatus] = mapped_column(nullable=False, server_default="PENDING")
    dispatch_round: Mapped[int] = mapped_column(Integer, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column()
    decline_reason: Mapped[str | None] = mapped_column(String(500))

    __table_args__ = (
        # At most one live offer per order
        Index(
            "uq_dispatch_offers_one_pending",
            "order_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_dispatch_offers_driver_id", "driver_id"),
        Index(
            "ix_dispatch_offers_due",
            "expires_at",
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<DispatchOffer id={self.id} order={self.order_id} "
            f"driver={self.driver_id} status={self.status}>"
        )
