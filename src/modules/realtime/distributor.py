"""EventDistributor — releases staged events only after their transaction commits."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from src.config import settings
from src.modules.realtime.bridge import RedisEventBridge
from src.modules.realtime.events import RealtimeEvent
from src.modules.realtime.hub import ConnectionHub

logger = logging.getLogger(__name__)

_STAGED_KEY = "realtime.staged_events"


class EventDistributor:
    """Turns committed mutations into pushes without blocking the mutation path.

    Events are staged on the database session; the ``after_commit`` hook hands
    them to fire-and-forget tasks and ``after_rollback`` discards them. With a
    bridge configured every process publishes to Redis and every API process
    delivers to its own sessions; without one, delivery is local.
    """

    def __init__(self, hub: ConnectionHub, bridge: RedisEventBridge | None = None) -> None:
        self.hub = hub
        self.bridge = bridge
        self._tasks: set[asyncio.Task] = set()

    def stage(self, session: AsyncSession | Session, event: RealtimeEvent) -> None:
        session.info.setdefault(_STAGED_KEY, []).append((self, event))

    def staged(self, session: AsyncSession | Session) -> list[RealtimeEvent]:
        return [e for owner, e in session.info.get(_STAGED_KEY, []) if owner is self]

    def release(self, events: list[RealtimeEvent]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; dropping %d realtime events", len(events))
            return
        for event in events:
            task = loop.create_task(self._push(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _push(self, event: RealtimeEvent) -> None:
        try:
            if self.bridge is not None:
                await self.bridge.publish(event)
            else:
                await self.hub.deliver(event)
        except Exception:
            logger.exception("Failed to push %s", event.type)

    async def wait_idle(self) -> None:
        """Wait for in-flight pushes (shutdown, Celery task exit, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Flush pushes and drop the bridge connection bound to the current loop."""
        await self.wait_idle()
        if self.bridge is not None:
            await self.bridge.disconnect()


def build_bridge() -> RedisEventBridge:
    return RedisEventBridge(settings.redis_url, settings.realtime_channel)


hub = ConnectionHub()
distributor = EventDistributor(hub, build_bridge() if settings.realtime_fanout == "redis" else None)

# Celery workers hold no push sessions, so their events always go out over Redis
worker_distributor = EventDistributor(ConnectionHub(), build_bridge())


@sa_event.listens_for(Session, "after_commit")
def _release_staged_events(session: Session) -> None:
    staged = session.info.pop(_STAGED_KEY, None)
    if not staged:
        return
    by_owner: dict[EventDistributor, list[RealtimeEvent]] = {}
    for owner, event in staged:
        by_owner.setdefault(owner, []).append(event)
    for owner, events in by_owner.items():
        owner.release(events)


@sa_event.listens_for(Session, "after_rollback")
def _discard_staged_events(session: Session) -> None:
    events = session.info.pop(_STAGED_KEY, None)
    if events:
        logger.debug("Discarded %d staged events on rollback", len(events))
