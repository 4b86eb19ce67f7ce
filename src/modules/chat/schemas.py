"""Pydantic v2 schemas for chat endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import ChatMessageType, UserRole


class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=4000)
    message_type: ChatMessageType = ChatMessageType.TEXT
    attachment_ref: str | None = Field(None, max_length=500)


class ThreadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    customer_id: uuid.UUID
    driver_id: uuid.UUID
    last_message_at: datetime | None = None
    created_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    thread_id: uuid.UUID
    sender_id: uuid.UUID
    sender_role: UserRole
    message_type: ChatMessageType
    body: str
    attachment_ref: str | None = None
    read_at: datetime | None = None
    created_at: datetime


class MessageListResponse(BaseModel):
    items: list[MessageResponse]
    limit: int


class MarkReadResponse(BaseModel):
    updated: int
