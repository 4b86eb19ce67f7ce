"""Chat thread bound to an order, and its messages."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from src.models.enums import ChatMessageType, UserRole


class ChatThread(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "chat_threads"

    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    driver_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    last_message_at: Mapped[datetime | None] = mapped_column()


class ChatMessage(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Immutable once written except for ``read_at``."""

    __tablename__ = "chat_messages"

    thread_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    sender_role: Mapped[UserRole] = mapped_column(nullable=False)
    message_type: Mapped[ChatMessageType] = mapped_column(
        nullable=False, server_default="TEXT"
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_ref: Mapped[str | None] = mapped_column(String(500))
    read_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        Index("ix_chat_messages_thread_created", "thread_id", "created_at"),
    )
