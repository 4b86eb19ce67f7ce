"""Celery tasks for offer expiry — per-offer ETA timers and the recovery sweep."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from celery_app import celery, run_async
from src.database.engine import async_session
from src.modules.events.publisher import EventPublisher
from src.modules.realtime.distributor import EventDistributor, worker_distributor

logger = logging.getLogger(__name__)


def _dispatch_service(session: AsyncSession, event_distributor: EventDistributor):
    from src.modules.dispatch.service import DispatchService

    return DispatchService(session, EventPublisher(session, event_distributor))


async def _expire_offer_async(
    offer_id: uuid.UUID,
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    event_distributor: EventDistributor = worker_distributor,
) -> dict:
    """Expire one offer in its own transaction."""
    async with session_factory() as session:
        outcome = await _dispatch_service(session, event_distributor).expire_offer(offer_id)
        await session.commit()

    if outcome is None:
        return {"offer_id": str(offer_id), "expired": False}
    return {
        "offer_id": str(offer_id),
        "expired": True,
        "reoffered_to": str(outcome.offer.driver_id) if outcome.offer else None,
        "exhausted": outcome.exhausted,
    }


async def _expire_due_offers_async(
    session_factory: async_sessionmaker[AsyncSession] = async_session,
    event_distributor: EventDistributor = worker_distributor,
) -> dict:
    """Expire every due offer, one transaction per offer."""
    stats = {"due": 0, "expired": 0, "exhausted": 0, "errors": 0}

    async with session_factory() as session:
        due_ids = await _dispatch_service(session, event_distributor).due_offer_ids()
    stats["due"] = len(due_ids)

    for offer_id in due_ids:
        try:
            async with session_factory() as session:
                outcome = await _dispatch_service(session, event_distributor).expire_offer(
                    offer_id
                )
                await session.commit()
        except Exception:
            logger.exception("Error expiring offer %s", offer_id)
            stats["errors"] += 1
            continue
        if outcome is not None:
            stats["expired"] += 1
            if outcome.exhausted:
                stats["exhausted"] += 1

    if stats["due"]:
        logger.info("Offer expiry sweep: %s", stats)
    return stats


async def _run_and_flush(coroutine):
    try:
        return await coroutine
    finally:
        await worker_distributor.shutdown()


@celery.task(name="src.modules.dispatch.tasks.expire_offer")
def expire_offer(offer_id: str) -> dict:
    """Fired at an offer's deadline; a no-op if the offer was already resolved."""
    return run_async(_run_and_flush(_expire_offer_async(uuid.UUID(offer_id))))


@celery.task(name="src.modules.dispatch.tasks.expire_due_offers")
def expire_due_offers() -> dict:
    """Beat sweep: expire offers whose timers were lost or are late."""
    return run_async(_run_and_flush(_expire_due_offers_async()))
