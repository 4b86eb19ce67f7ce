"""Order chat service — threads, messages and read receipts behind the chat gate."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.exceptions import ForbiddenException, NotFoundException, ValidationException
from src.models.chat import ChatMessage, ChatThread
from src.models.enums import ChatMessageType
from src.models.order import Order
from src.modules.chat.gate import ChatAccess, chat_access
from src.modules.events.publisher import EventPublisher
from src.modules.identity.auth import AuthenticatedUser
from src.modules.realtime.events import ChatMessagePayload, ChatMessagePosted

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.events = publisher or EventPublisher(db)
        self.clock = clock

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if order is None:
            raise NotFoundException(f"Order {order_id} not found")
        return order

    async def get_thread(self, thread_id: uuid.UUID) -> ChatThread:
        thread = await self.db.get(ChatThread, thread_id)
        if thread is None:
            raise NotFoundException(f"Chat thread {thread_id} not found")
        return thread

    def _require(self, access: ChatAccess, order: Order) -> ChatAccess:
        if not access.allowed:
            raise ForbiddenException(
                f"Chat on order {order.order_number} is not available",
                details=[{"reason": access.reason}],
            )
        return access

    async def _authorize(
        self, thread_id: uuid.UUID, user: AuthenticatedUser
    ) -> tuple[ChatThread, ChatAccess]:
        """Gate against the order as it is now, not as it was when the thread opened."""
        thread = await self.get_thread(thread_id)
        order = await self._get_order(thread.order_id)
        return thread, self._require(chat_access(order, user.id), order)

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def get_or_create_thread(
        self, order_id: uuid.UUID, requester: AuthenticatedUser
    ) -> tuple[ChatThread, bool]:
        """Open (or return) the order's single thread. Returns (thread, created)."""
        order = await self._get_order(order_id)
        self._require(chat_access(order, requester.id), order)

        insert = pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
        statement = (
            insert(ChatThread)
            .values(
                id=uuid.uuid4(),
                order_id=order.id,
                customer_id=order.customer_id,
                driver_id=order.driver_id,
            )
            .on_conflict_do_nothing(index_elements=["order_id"])
        )
        result = await self.db.execute(statement)
        created = result.rowcount == 1

        thread_result = await self.db.execute(
            select(ChatThread).where(ChatThread.order_id == order.id)
        )
        thread = thread_result.scalar_one()
        if created:
            logger.info("Opened chat thread %s for order %s", thread.id, order.id)
        return thread, created

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(
        self,
        thread_id: uuid.UUID,
        sender: AuthenticatedUser,
        body: str,
        message_type: ChatMessageType = ChatMessageType.TEXT,
        attachment_ref: str | None = None,
    ) -> ChatMessage:
        thread, access = await self._authorize(thread_id, sender)

        if message_type == ChatMessageType.SYSTEM:
            raise ValidationException("System messages cannot be sent by participants")
        if message_type == ChatMessageType.IMAGE and not attachment_ref:
            raise ValidationException(
                "Image messages require an attachment reference",
                details=[{"field": "attachment_ref", "message": "required"}],
            )

        now = self.clock()
        message = ChatMessage(
            thread_id=thread.id,
            sender_id=sender.id,
            sender_role=access.role,
            message_type=message_type,
            body=body,
            attachment_ref=attachment_ref,
            created_at=now,
            updated_at=now,
        )
        self.db.add(message)
        thread.last_message_at = now
        await self.db.flush()

        await self.events.emit(
            ChatMessagePosted(
                thread_id=thread.id,
                payload=ChatMessagePayload(
                    message_id=message.id,
                    order_id=thread.order_id,
                    sender_id=sender.id,
                    sender_role=access.role,
                    recipient_id=access.counterpart_id,
                    message_type=message_type,
                    body=body,
                    attachment_ref=attachment_ref,
                    created_at=now,
                ),
            )
        )
        logger.debug("Chat message %s posted to thread %s", message.id, thread.id)
        return message

    async def list_messages(
        self,
        thread_id: uuid.UUID,
        requester: AuthenticatedUser,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[ChatMessage]:
        """Newest first; ``before`` pages back through history."""
        await self._authorize(thread_id, requester)

        query = select(ChatMessage).where(ChatMessage.thread_id == thread_id)
        if before is not None:
            query = query.where(ChatMessage.created_at < before)
        query = query.order_by(ChatMessage.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_read(self, thread_id: uuid.UUID, reader: AuthenticatedUser) -> int:
        """Stamp ``read_at`` on the other participant's unread messages."""
        await self._authorize(thread_id, reader)

        result = await self.db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.thread_id == thread_id,
                ChatMessage.sender_id != reader.id,
                ChatMessage.read_at.is_(None),
            )
            .values(read_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
