"""Driver dispatch profile — availability and location used for candidate ranking."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Driver(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "drivers"

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set by the external KYC review process
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_lat: Mapped[float | None] = mapped_column()
    current_lng: Mapped[float | None] = mapped_column()
    location_updated_at: Mapped[datetime | None] = mapped_column()
    radius_km: Mapped[float | None] = mapped_column()

    __table_args__ = (
        Index("ix_drivers_available", "is_available", "is_approved"),
    )
