from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UUIDPrimaryKeyMixin, utcnow
from src.models.enums import OrderStatus, OrderTransitionType


class OrderTransition(UUIDPrimaryKeyMixin, Base):
    """Immutable audit log for order state transitions. No updated_at column."""

    __tablename__ = "order_transitions"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    from_status: Mapped[OrderStatus] = mapped_column(nullable=False)
    to_status: Mapped[OrderStatus] = mapped_column(nullable=False)
    transition_type: Mapped[OrderTransitionType] = mapped_column(nullable=False)
    triggered_by: Mapped[uuid.UUID | None] = mapped_column()
    trigger_source: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="USER"
    )
    reason: Mapped[str | None] = mapped_column(Text)
    metadata_extra: Mapped[dict] = mapped_column(nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_order_transitions_order_id", "order_id"),
    )
