"""OutboxProcessor — batch processor run by the Celery outbox task."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.enums import EventStatus
from src.modules.events.handlers import EventHandlerRegistry
from src.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)


class OutboxProcessor:
    """Hands pending outbox events to registered handlers.

    Rows are claimed with ``FOR UPDATE SKIP LOCKED`` so several workers can run
    side by side. An event whose handlers fail goes back to PENDING until its
    retries are used up, then FAILED.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def process_batch(self, batch_size: int = 50) -> dict:
        processed_count = 0
        failed_count = 0

        async with self.session_factory() as session:
            outbox = OutboxService(session)
            events = await outbox.claim_pending_events(batch_size)

            for event in events:
                if not EventHandlerRegistry.get_handlers(event.event_type):
                    await outbox.mark_completed(event.id)
                    processed_count += 1
                    continue

                results = await EventHandlerRegistry.dispatch(event.event_type, event.payload)
                handler_errors = [r for r in results if r["status"] == "error"]
                if handler_errors:
                    error_messages = "; ".join(
                        f"{r['handler']}: {r['error']}" for r in handler_errors
                    )
                    new_status = await outbox.mark_failed(event, error_messages)
                    if new_status == EventStatus.FAILED:
                        logger.error(
                            "Event %s (type=%s) failed permanently: %s",
                            event.id, event.event_type, error_messages,
                        )
                    failed_count += 1
                else:
                    await outbox.mark_completed(event.id)
                    processed_count += 1

            await session.commit()

        return {"processed": processed_count, "failed": failed_count}

    async def cleanup_expired(self, retention_days: int = 30) -> int:
        """Delete completed outbox events older than ``retention_days``."""
        cutoff = datetime.now(UTC) - timedelta(days=retention_days)
        async with self.session_factory() as session:
            deleted = await OutboxService(session).delete_completed_before(cutoff)
            await session.commit()

        logger.info("Cleaned up %d completed outbox events", deleted)
        return deleted
