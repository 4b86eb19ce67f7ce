"""DepotOrder model — the depot pickup sub-workflow attached to an order."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    VersionedMixin,
    utcnow,
)
from src.models.enums import DepotAction, DepotOrderStatus, DepotPaymentStatus


class DepotOrder(UUIDPrimaryKeyMixin, TimestampMixin, VersionedMixin, Base):
    __tablename__ = "depot_orders"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    depot_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("depots.id", ondelete="RESTRICT"), nullable=False
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    driver_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    status: Mapped[DepotOrderStatus] = mapped_column(
        nullable=False, server_default="PENDING"
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Payment: driver submits proof, operator verifies or disputes
    payment_status: Mapped[DepotPaymentStatus] = mapped_column(
        nullable=False, server_default="AWAITING_PROOF"
    )
    payment_proof_ref: Mapped[str | None] = mapped_column(String(500))
    payment_proof_submitted_by: Mapped[uuid.UUID | None] = mapped_column()
    payment_proof_submitted_at: Mapped[datetime | None] = mapped_column()
    payment_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_dispute_reason: Mapped[str | None] = mapped_column(Text)
    payment_verified_by: Mapped[uuid.UUID | None] = mapped_column()
    paid_at: Mapped[datetime | None] = mapped_column()

    # Signatures are opaque artifact references
    supplier_signature_ref: Mapped[str | None] = mapped_column(String(500))
    supplier_signed_by: Mapped[uuid.UUID | None] = mapped_column()
    supplier_signed_at: Mapped[datetime | None] = mapped_column()

    released_by: Mapped[uuid.UUID | None] = mapped_column()
    released_at: Mapped[datetime | None] = mapped_column()

    driver_signature_ref: Mapped[str | None] = mapped_column(String(500))
    driver_signed_by: Mapped[uuid.UUID | None] = mapped_column()
    driver_signed_at: Mapped[datetime | None] = mapped_column()

    accepted_at: Mapped[datetime | None] = mapped_column()
    completed_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("ix_depot_orders_supplier_id", "supplier_id"),
        Index("ix_depot_orders_driver_id", "driver_id"),
        Index("ix_depot_orders_status", "status"),
    )


class DepotOrderTransition(UUIDPrimaryKeyMixin, Base):
    """Immutable audit log for depot sub-state changes."""

    __tablename__ = "depot_order_transitions"

    depot_order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("depot_orders.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[DepotOrderStatus] = mapped_column(nullable=False)
    to_status: Mapped[DepotOrderStatus] = mapped_column(nullable=False)
    action: Mapped[DepotAction] = mapped_column(nullable=False)
    triggered_by: Mapped[uuid.UUID] = mapped_column(nullable=False)
    evidence_ref: Mapped[str | None] = mapped_column(String(500))
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_depot_order_transitions_depot_order_id", "depot_order_id"),
    )
