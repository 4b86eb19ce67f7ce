"""EventPublisher — the single exit for every state change.

Each emitted event is written to the outbox in the caller's transaction and
staged for realtime fan-out once that transaction commits.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.events.outbox_service import OutboxService
from src.modules.realtime.distributor import EventDistributor, distributor
from src.modules.realtime.events import RealtimeEvent, aggregate_of


class EventPublisher:
    def __init__(
        self, session: AsyncSession, event_distributor: EventDistributor | None = None
    ) -> None:
        self.session = session
        self.outbox = OutboxService(session)
        self.distributor = event_distributor or distributor

    async def emit(self, event: RealtimeEvent) -> None:
        aggregate_type, aggregate_id = aggregate_of(event)
        await self.outbox.publish_event(
            event_type=event.type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=event.model_dump(mode="json"),
        )
        self.distributor.stage(self.session, event)
