"""Celery application configuration for FuelFlow background tasks."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

from celery import Celery
from celery.schedules import crontab

from src.config import settings

T = TypeVar("T")

celery = Celery("fuelflow")

celery.conf.update(
    broker_url=settings.celery_broker_url,
    result_backend=settings.celery_result_backend,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # --- Queue routing per job type ---
    task_routes={
        "src.modules.dispatch.tasks.expire_offer": {"queue": "dispatch-timers"},
        "src.modules.dispatch.tasks.expire_due_offers": {"queue": "dispatch-timers"},
        "src.modules.events.tasks.process_outbox": {"queue": "event-outbox"},
        "src.modules.events.tasks.cleanup_outbox": {"queue": "event-outbox"},
    },
    # --- Reliability settings ---
    task_default_retry_delay=60,
    task_max_retries=3,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    # --- Broker transport options (Redis reliability) ---
    broker_transport_options={
        "max_retries": 10,
        "interval_start": 0.2,
        "interval_step": 0.5,
        "interval_max": 5.0,
        "retry_on_timeout": True,
        # Must exceed the offer TTL or Redis redelivers armed ETA timers early
        "visibility_timeout": max(3600, settings.dispatch_offer_ttl_seconds * 2),
    },
    # --- Beat schedule ---
    beat_schedule={
        "expire-due-offers": {
            "task": "src.modules.dispatch.tasks.expire_due_offers",
            "schedule": settings.dispatch_sweep_seconds,
        },
        "process-event-outbox": {
            "task": "src.modules.events.tasks.process_outbox",
            "schedule": settings.event_outbox_poll_seconds,
        },
        "cleanup-outbox-daily": {
            "task": "src.modules.events.tasks.cleanup_outbox",
            "schedule": crontab(hour=3, minute=30),
        },
    },
)

celery.autodiscover_tasks([
    "src.modules.dispatch",
    "src.modules.events",
])


def run_async(coroutine: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from a sync task.

    Pooled asyncpg connections are bound to the loop that opened them, so the
    engine is disposed before the loop closes.
    """
    from src.database.engine import engine

    async def runner() -> T:
        try:
            return await coroutine
        finally:
            await engine.dispose()

    return asyncio.run(runner())
