"""Order chat API router."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.middleware.rate_limit import chat_limit, limiter
from src.modules.chat.schemas import (
    MarkReadResponse,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    ThreadResponse,
)
from src.modules.chat.service import ChatService
from src.modules.identity.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["chat"])


@router.post("/orders/{order_id}/chat", response_model=ThreadResponse)
async def open_thread(
    order_id: uuid.UUID,
    response: Response,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Open the order's chat thread, or return it if it already exists."""
    svc = ChatService(db)
    thread, created = await svc.get_or_create_thread(order_id, user)
    response.status_code = 201 if created else 200
    return ThreadResponse.model_validate(thread)


@router.get("/chat/{thread_id}/messages", response_model=MessageListResponse)
async def list_messages(
    thread_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    before: datetime | None = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ChatService(db)
    items = await svc.list_messages(thread_id, user, limit=limit, before=before)
    return MessageListResponse(
        items=[MessageResponse.model_validate(m) for m in items],
        limit=limit,
    )


@router.post("/chat/{thread_id}/messages", response_model=MessageResponse, status_code=201)
@limiter.limit(chat_limit)
async def send_message(
    request: Request,
    thread_id: uuid.UUID,
    body: MessageCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    svc = ChatService(db)
    message = await svc.send_message(
        thread_id,
        user,
        body.body,
        message_type=body.message_type,
        attachment_ref=body.attachment_ref,
    )
    return MessageResponse.model_validate(message)


@router.post("/chat/{thread_id}/read", response_model=MarkReadResponse)
async def mark_read(
    thread_id: uuid.UUID,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark the other participant's messages as read."""
    svc = ChatService(db)
    return MarkReadResponse(updated=await svc.mark_read(thread_id, user))
