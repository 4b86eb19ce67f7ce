"""OutboxService — async service for publishing and managing outbox events."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


class OutboxService:
    """Manages the event outbox lifecycle (publish, claim, mark)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        schema_version: int = 1,
    ) -> EventOutbox:
        """Add a PENDING event to the outbox inside the caller's transaction."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def claim_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Oldest PENDING events, row-locked so concurrent workers skip them."""
        statement = (
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_for_aggregate(
        self, aggregate_type: str, aggregate_id: str, limit: int = 100
    ) -> list[EventOutbox]:
        """Event history of one aggregate, oldest first."""
        statement = (
            select(EventOutbox)
            .where(
                EventOutbox.aggregate_type == aggregate_type,
                EventOutbox.aggregate_id == aggregate_id,
            )
            .order_by(EventOutbox.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def mark_completed(self, event_id: uuid.UUID) -> None:
        statement = (
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(status=EventStatus.COMPLETED, processed_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)

    async def mark_failed(self, event: EventOutbox, error: str) -> EventStatus:
        """Record a failed attempt; FAILED once retries are used up, else PENDING."""
        new_retry_count = event.retry_count + 1
        new_status = (
            EventStatus.FAILED
            if new_retry_count >= event.max_retries
            else EventStatus.PENDING
        )
        statement = (
            update(EventOutbox)
            .where(EventOutbox.id == event.id)
            .values(retry_count=new_retry_count, last_error=error, status=new_status)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)
        return new_status

    async def delete_completed_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(EventOutbox).where(
                EventOutbox.status == EventStatus.COMPLETED,
                EventOutbox.processed_at < cutoff,
            )
        )
        return result.rowcount
