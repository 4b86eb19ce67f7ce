"""Celery tasks for event outbox processing."""

from celery_app import celery, run_async
from src.config import settings
from src.database.engine import async_session
from src.modules.dispatch import handlers as _dispatch_handlers  # noqa: F401  registers handlers
from src.modules.events.outbox_processor import OutboxProcessor


@celery.task(name="src.modules.events.tasks.process_outbox")
def process_outbox():
    """Process a batch of pending outbox events."""
    processor = OutboxProcessor(async_session)
    return run_async(processor.process_batch(settings.event_outbox_batch_size))


@celery.task(name="src.modules.events.tasks.cleanup_outbox")
def cleanup_outbox():
    """Delete old completed outbox entries."""
    processor = OutboxProcessor(async_session)
    return run_async(processor.cleanup_expired())
