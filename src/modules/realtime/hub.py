"""ConnectionHub — process-local registry of open push sessions.

Sessions are added on connect and removed on disconnect, on a failed send, or
when their heartbeat goes stale. The hub is never a source of truth: a client
that missed a push reconciles by pulling current state.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable
from typing import Any, Protocol

from src.models.enums import UserRole
from src.modules.realtime.events import RealtimeEvent, interested_parties

logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    """The slice of a WebSocket the hub needs."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class ClientSession:
    """One open connection belonging to one identity."""

    def __init__(self, channel: PushChannel, user_id: uuid.UUID, role: UserRole) -> None:
        self.id = uuid.uuid4()
        self.channel = channel
        self.user_id = user_id
        self.role = role
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    async def send(self, message: dict) -> None:
        await self.channel.send_json(message)


class ConnectionHub:
    def __init__(self) -> None:
        self._sessions: dict[uuid.UUID, dict[uuid.UUID, ClientSession]] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def register(self, session: ClientSession) -> None:
        self._sessions.setdefault(session.user_id, {})[session.id] = session
        logger.info(
            "Push session %s opened for %s (%s)", session.id, session.user_id, session.role.value
        )

    def unregister(self, session: ClientSession) -> None:
        user_sessions = self._sessions.get(session.user_id)
        if not user_sessions or session.id not in user_sessions:
            return
        del user_sessions[session.id]
        if not user_sessions:
            del self._sessions[session.user_id]
        logger.info("Push session %s closed for %s", session.id, session.user_id)

    def sessions_for(self, user_id: uuid.UUID) -> list[ClientSession]:
        return list(self._sessions.get(user_id, {}).values())

    def sessions_with_role(self, role: UserRole) -> list[ClientSession]:
        return [s for s in self._all_sessions() if s.role == role]

    def is_connected(self, user_id: uuid.UUID) -> bool:
        return bool(self._sessions.get(user_id))

    @property
    def connected_users_count(self) -> int:
        return len(self._sessions)

    @property
    def connections_count(self) -> int:
        return sum(len(s) for s in self._sessions.values())

    def _all_sessions(self) -> Iterable[ClientSession]:
        for user_sessions in list(self._sessions.values()):
            yield from list(user_sessions.values())

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def deliver(self, event: RealtimeEvent) -> int:
        """Push ``event`` to every open session of every interested identity.

        Returns the number of sessions that accepted the message. Recipients
        with no open session are skipped; they catch up on next connect.
        """
        audience = interested_parties(event)
        targets: dict[uuid.UUID, ClientSession] = {}
        for user_id in audience.users:
            for session in self.sessions_for(user_id):
                targets[session.id] = session
        for role in audience.roles:
            for session in self.sessions_with_role(role):
                targets[session.id] = session

        if not targets:
            logger.debug("No open sessions for %s", event.type)
            return 0

        message = event.model_dump(mode="json")
        results = await asyncio.gather(*(self._send(s, message) for s in targets.values()))
        return sum(results)

    async def send_to_session(self, session: ClientSession, event: RealtimeEvent) -> bool:
        return await self._send(session, event.model_dump(mode="json"))

    async def _send(self, session: ClientSession, message: dict) -> bool:
        try:
            await session.send(message)
            return True
        except Exception as exc:
            logger.warning(
                "Dropping push session %s for %s after send failure: %s",
                session.id, session.user_id, exc,
            )
            self.unregister(session)
            return False

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def reap_stale(self, timeout_seconds: float, now: float | None = None) -> list[ClientSession]:
        """Unregister sessions not heard from within ``timeout_seconds``."""
        now = time.monotonic() if now is None else now
        stale = [s for s in self._all_sessions() if now - s.last_seen > timeout_seconds]
        for session in stale:
            self.unregister(session)
        return stale

    async def heartbeat_once(self, timeout_seconds: float) -> None:
        for session in self.reap_stale(timeout_seconds):
            try:
                await session.channel.close(code=1001)
            except Exception:
                logger.debug("Close failed for stale session %s", session.id)
        await asyncio.gather(
            *(self._send(s, {"type": "ping"}) for s in list(self._all_sessions()))
        )

    async def run_heartbeat(self, interval_seconds: float, timeout_seconds: float) -> None:
        """Ping live sessions and reap stale ones until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            await self.heartbeat_once(timeout_seconds)
